"""
Passive house benchmark.

Baseload comes from the mildest low-setpoint away days; measured heating
intensity is normalized per heating degree day and compared with closed-form
heat-loss models of a tight envelope and a code-minimum envelope.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .config import (AIR_DENSITY_LB_FT3, AIR_SPECIFIC_HEAT, BTU_PER_KWH, KBTU_PER_KWH,
                     AnalysisConfig, EnvelopeSpec)
from .records import BenchmarkResult, ClassifiedDay, DayType, EnvelopeBreakdown

logger = logging.getLogger(__name__)


def split_at_switchover(away_days: Sequence[ClassifiedDay],
                        min_jump_kwh: float) -> Tuple[List[ClassifiedDay], List[ClassifiedDay], Optional[ClassifiedDay]]:
    """Split date-ordered away days at the largest day-over-day jump.

    The jump marks the thermostat being switched from eco mode back to the
    normal setpoint. Without a jump above ``min_jump_kwh`` the days are split
    in half. Returns ``(low_setpoint, normal_setpoint, switchover_day)``.
    """
    days = sorted(away_days, key=lambda d: d.date)
    if not days:
        return [], [], None

    max_jump, max_idx = 0.0, -1
    for i in range(1, len(days)):
        jump = days[i].home_kwh - days[i - 1].home_kwh
        if jump > max_jump:
            max_jump, max_idx = jump, i

    if max_jump > min_jump_kwh and max_idx > 0:
        logger.info(f"  Eco-mode switchover detected: {days[max_idx].date} (jump of +{max_jump:.1f} kWh)")
        return days[:max_idx], days[max_idx:], days[max_idx]

    logger.info("  No clear switchover detected; splitting away days in half")
    mid = len(days) // 2
    return days[:mid], days[mid:], None


def estimate_baseload(low_setpoint: Sequence[ClassifiedDay], fallback_kwh: float) -> Tuple[float, str]:
    """Non-HVAC baseload from the lowest low-setpoint days.

    Only the bottom two days are used; a third day is likely still heating to
    the eco setpoint in cold weather.
    """
    if len(low_setpoint) >= 2:
        lowest = sorted(low_setpoint, key=lambda d: d.home_kwh)[:2]
        baseload = sum(d.home_kwh for d in lowest) / len(lowest)
        return baseload, f"mean of {len(lowest)} lowest eco-mode days"
    if low_setpoint:
        return min(d.home_kwh for d in low_setpoint), "minimum of 1 eco-mode day"
    return fallback_kwh, "fallback estimate"


def air_loss_kwh_per_hdd(ach: float, volume: float) -> float:
    """Q = flow * density * specific heat * 1°F * 24 h, in kWh."""
    return ach * volume * AIR_DENSITY_LB_FT3 * AIR_SPECIFIC_HEAT * 24 / BTU_PER_KWH


def conduction_kwh_per_hdd(spec: EnvelopeSpec) -> float:
    """UA (BTU/hr/°F) = ΣA/R, converted to kWh per HDD."""
    ua = (spec.wall_area / spec.wall_r + spec.roof_area / spec.roof_r
          + spec.window_area / spec.window_r + spec.slab_area / spec.slab_r)
    return ua * 24 / BTU_PER_KWH


def model_envelope(spec: EnvelopeSpec, volume: float, sqft: float, annual_hdd: float) -> EnvelopeBreakdown:
    infiltration = air_loss_kwh_per_hdd(spec.ach50 / spec.n_factor, volume)
    ventilation = air_loss_kwh_per_hdd(spec.ventilation_ach, volume) * (1 - spec.heat_recovery)
    envelope = conduction_kwh_per_hdd(spec)
    electrical = (infiltration + ventilation + envelope) / spec.cop
    return EnvelopeBreakdown(
        name=spec.name,
        ach50=spec.ach50,
        infiltration=infiltration,
        ventilation=ventilation,
        envelope=envelope,
        cop=spec.cop,
        annual_kwh_per_sqft=electrical * annual_hdd / sqft,
    )


def heating_kwh(day: ClassifiedDay, baseload_kwh: float) -> float:
    return max(0.0, day.adjusted_kwh - baseload_kwh)


class BenchmarkCalculator:
    """Measured heating intensity vs theoretical envelopes."""

    def __init__(self, config: AnalysisConfig):
        self.config = config

    def run(self, days: Sequence[ClassifiedDay]) -> BenchmarkResult:
        logger.info("Computing passive house benchmark...")
        config = self.config
        house = config.house

        away = [d for d in days if d.type is DayType.AWAY and d.home_kwh > 0]
        low, normal_setpoint, switchover = split_at_switchover(away, config.switchover_jump_kwh)
        baseload, method = estimate_baseload(low, config.fallback_baseload_kwh)
        logger.info(f"  Non-HVAC baseload: {baseload:.1f} kWh/day ({method})")

        normal = [d for d in days if d.is_modelable]
        total_heating = sum(heating_kwh(d, baseload) for d in normal)
        total_hdd = sum(d.heating_degree_days for d in normal)
        per_hdd = total_heating / total_hdd if total_hdd > 0 else 0.0

        # HDD-based annualization using the climatological normal
        annual_per_sqft = per_hdd * config.annual_hdd / house.sqft
        logger.info(f"  Total heating energy: {total_heating:.1f} kWh over {len(normal)} normal days")
        logger.info(f"  Heating intensity: {per_hdd:.2f} kWh/HDD")
        logger.info(f"  Annualized: {annual_per_sqft:.2f} kWh/ft²/year "
                    f"({annual_per_sqft * KBTU_PER_KWH:.2f} kBtu/ft²/year)")

        passive = model_envelope(config.passive_envelope, house.volume, house.sqft, config.annual_hdd)
        standard = model_envelope(config.standard_envelope, house.volume, house.sqft, config.annual_hdd)
        coldest = min(normal, key=lambda d: (d.temp_min, d.date)) if normal else None
        savings = (standard.annual_kwh_per_sqft - annual_per_sqft) * house.sqft

        logger.info(f"  Passive house (model): {passive.annual_kwh_per_sqft:.2f} kWh/ft²/year, "
                    f"standard build (model): {standard.annual_kwh_per_sqft:.2f} kWh/ft²/year")

        return BenchmarkResult(
            baseload_kwh=baseload,
            baseload_method=method,
            switchover_date=switchover.date if switchover else None,
            low_setpoint_days=tuple(low),
            normal_setpoint_days=tuple(normal_setpoint),
            total_heating_kwh=total_heating,
            total_hdd=total_hdd,
            analysis_days=len(normal),
            heating_kwh_per_hdd=per_hdd,
            annual_hdd=config.annual_hdd,
            annual_heating_kwh_per_sqft=annual_per_sqft,
            annual_heating_kbtu_per_sqft=annual_per_sqft * KBTU_PER_KWH,
            target_kwh_per_sqft=config.target_kwh_per_sqft,
            target_kbtu_per_sqft=config.target_kbtu_per_sqft,
            passive=passive,
            standard=standard,
            coldest_day=coldest,
            savings_vs_standard_kwh=savings,
            savings_vs_standard_cost=savings * config.electricity_rate,
        )
