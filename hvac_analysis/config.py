"""
Configuration management for the HVAC energy analysis.

All physical assumptions (envelope R-values, COPs, climatological HDD normal)
are configuration inputs. They are never inferred from the sample.
"""

import json
from dataclasses import dataclass, field, fields, is_dataclass, replace
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

# Air density (lb/ft³) and specific heat (BTU/lb·°F) at room conditions
AIR_DENSITY_LB_FT3 = 0.075
AIR_SPECIFIC_HEAT = 0.24
BTU_PER_KWH = 3412.0
KBTU_PER_KWH = 3.412

# Prior-day minimum and the 3-day thermal-mass lag reach back two days
WEATHER_LEAD_DAYS = 2


@dataclass(frozen=True)
class EnvelopeSpec:
    """Assumed envelope used for the theoretical heating-load comparison."""

    name: str
    ach50: float
    cop: float
    wall_r: float
    roof_r: float
    window_r: float
    slab_r: float
    n_factor: float = 20.0  # ACH50 -> natural ACH for a 2-story house
    ventilation_ach: float = 0.3
    heat_recovery: float = 0.0

    # Surface areas (ft²), same geometry for both envelopes
    wall_area: float = 2800.0
    roof_area: float = 1200.0
    window_area: float = 400.0
    slab_area: float = 1100.0


def _passive_envelope() -> EnvelopeSpec:
    # R-40 walls, R-60 roof, triple-pane R-5 windows, R-20 slab, ERV at 80%
    return EnvelopeSpec(name='Passive House', ach50=0.4, cop=2.5,
                        wall_r=40, roof_r=60, window_r=5, slab_r=20,
                        heat_recovery=0.80)


def _standard_envelope() -> EnvelopeSpec:
    # Code minimum: R-20 walls, R-38 roof, double-pane R-3 windows, R-10 slab
    return EnvelopeSpec(name='Standard Build', ach50=3.5, cop=2.0,
                        wall_r=20, roof_r=38, window_r=3, slab_r=10,
                        heat_recovery=0.0)


@dataclass
class HouseConfig:
    """Single-building description."""

    sqft: float = 2600.0
    ceiling_height_ft: float = 9.0
    thermostat_normal_f: float = 68.0
    thermostat_away_f: float = 50.0

    @property
    def volume(self) -> float:
        return self.sqft * self.ceiling_height_ft


@dataclass(frozen=True)
class TelemetryQuery:
    """One telemetry range query: ``period`` window ending at ``end_date``."""

    period: str
    end_date: date
    label: str = ''


def _default_queries() -> List[TelemetryQuery]:
    return [
        TelemetryQuery('month', date(2025, 12, 1), 'November 2025'),
        TelemetryQuery('month', date(2026, 1, 1), 'December 2025'),
        TelemetryQuery('month', date(2026, 2, 1), 'January 2026'),
        TelemetryQuery('day', date(2026, 2, 2), 'February 1 2026'),
        TelemetryQuery('week', date(2026, 2, 9), 'February 2-8 2026'),
    ]


@dataclass
class AnalysisConfig:
    """Configuration for the HVAC analysis parameters."""

    # Analysis window
    start_date: date = date(2025, 11, 1)
    end_date: date = date(2026, 2, 8)
    timezone: str = 'America/New_York'
    latitude: float = 41.07
    longitude: float = -73.71

    # Calendar metadata
    away_start: Optional[date] = date(2025, 12, 13)
    away_end: Optional[date] = date(2026, 1, 2)
    home_during_away: Tuple[date, ...] = (date(2025, 12, 27),)
    known_high_load_estimate_kwh: float = 25.0  # ~12 kW for ~2 hours

    house: HouseConfig = field(default_factory=HouseConfig)
    passive_envelope: EnvelopeSpec = field(default_factory=_passive_envelope)
    standard_envelope: EnvelopeSpec = field(default_factory=_standard_envelope)

    # Degree days
    hdd_base_f: float = 65.0
    annual_hdd: float = 5100.0  # NOAA 1991-2020 normals, White Plains NY
    target_kbtu_per_sqft: float = 4.75

    # Signal-pattern detection
    high_power_wh: float = 1000.0
    min_run_intervals: int = 10
    candidate_sigma: float = 1.5
    candidate_floor_kwh: float = 50.0

    # Modeling
    min_normal_days: int = 10
    min_segment_days: int = 4
    anomaly_sigma: float = 1.5
    drilldown_limit: int = 5

    # Baseload
    switchover_jump_kwh: float = 10.0
    fallback_baseload_kwh: float = 12.0

    electricity_rate: float = 0.20  # $/kWh

    # External calls
    request_timeout_s: float = 60.0
    telemetry_queries: List[TelemetryQuery] = field(default_factory=_default_queries)

    # Output
    output_dir: Path = Path('data')
    cache_path: Path = Path('data/cached-data.json')

    @property
    def target_kwh_per_sqft(self) -> float:
        return self.target_kbtu_per_sqft / KBTU_PER_KWH

    def in_window(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def weather_start(self) -> date:
        return self.start_date - timedelta(days=WEATHER_LEAD_DAYS)

    def in_weather_window(self, day: date) -> bool:
        return self.weather_start <= day <= self.end_date

    def is_away(self, day: date) -> bool:
        if self.away_start is None or self.away_end is None:
            return False
        if day in self.home_during_away:
            return False
        return self.away_start <= day <= self.away_end


def _coerce(current, value):
    """Convert a JSON value to the type of the default it replaces."""
    if isinstance(current, date):
        return date.fromisoformat(value)
    if isinstance(current, Path):
        return Path(value)
    if isinstance(current, tuple):
        return tuple(date.fromisoformat(v) for v in value)
    if isinstance(current, float):
        return float(value)
    if is_dataclass(current):
        return _overlay(current, value)
    return value


def _overlay(obj, overrides: Dict):
    known = {f.name: f for f in fields(obj)}
    changes = {}
    for key, value in overrides.items():
        if key not in known:
            raise ValueError(f"Unknown configuration key: {key}")
        current = getattr(obj, key)
        if key == 'telemetry_queries':
            changes[key] = [
                TelemetryQuery(q['period'], date.fromisoformat(q['end_date']), q.get('label', ''))
                for q in value
            ]
        elif key in ('away_start', 'away_end'):
            changes[key] = date.fromisoformat(value) if value else None
        else:
            changes[key] = _coerce(current, value)
    return replace(obj, **changes)


def load_config(path: Optional[Union[str, Path]] = None) -> AnalysisConfig:
    """Load configuration, overlaying an optional JSON file on the defaults."""
    config = AnalysisConfig()
    if path is None:
        return config
    with open(path, 'r') as f:
        overrides = json.load(f)
    return _overlay(config, overrides)
