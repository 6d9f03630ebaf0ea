"""
Immutable record types passed between pipeline stages.

DailyEnergyRecord -> ClassifiedDay -> ModeledDay -> AnomalyRecord
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .config import KBTU_PER_KWH


class DayType(str, Enum):
    NORMAL = 'normal'
    AWAY = 'away'
    HIGH_LOAD = 'high-load'


class Direction(str, Enum):
    HIGH = 'HIGH'
    LOW = 'LOW'


@dataclass(frozen=True)
class SubDailyInterval:
    """One telemetry sample (e.g. 5 or 30 minutes), energy in Wh."""

    timestamp: datetime
    home_energy_wh: float = 0.0
    solar_energy_wh: float = 0.0
    grid_imported_wh: float = 0.0
    grid_exported_wh: float = 0.0
    battery_charged_wh: float = 0.0
    battery_discharged_wh: float = 0.0


@dataclass(frozen=True)
class DailyEnergyRecord:
    date: date
    home_energy_wh: float
    solar_energy_wh: float
    grid_imported_wh: float
    grid_exported_wh: float
    battery_charged_wh: float
    battery_discharged_wh: float
    interval_count: int

    @property
    def home_kwh(self) -> float:
        return self.home_energy_wh / 1000

    @property
    def solar_kwh(self) -> float:
        return self.solar_energy_wh / 1000


@dataclass(frozen=True)
class WeatherDailyRecord:
    """Daily weather observation, °F and mph."""

    date: date
    temp_max: float
    temp_min: float
    temp_mean: float
    wind_max: Optional[float] = None
    wind_gust_max: Optional[float] = None


@dataclass(frozen=True)
class ClassifiedDay:
    date: date
    type: DayType
    home_kwh: float
    solar_kwh: float = 0.0
    grid_import_kwh: float = 0.0
    grid_export_kwh: float = 0.0
    battery_charged_kwh: float = 0.0
    battery_discharged_kwh: float = 0.0
    interval_count: int = 0

    # Weather (None when the weather source had no record for the date)
    temp_max: Optional[float] = None
    temp_min: Optional[float] = None
    temp_mean: Optional[float] = None
    wind_max: Optional[float] = None
    wind_gust_max: Optional[float] = None

    heating_degree_days: float = 0.0
    prior_day_temp_min: Optional[float] = None
    thermal_mass_lag: Optional[float] = None
    is_weekend: bool = False

    confounding_kwh: float = 0.0
    detected: bool = False

    @property
    def adjusted_kwh(self) -> float:
        return max(0.0, self.home_kwh - self.confounding_kwh)

    @property
    def has_weather(self) -> bool:
        return self.temp_min is not None and self.temp_mean is not None

    @property
    def is_modelable(self) -> bool:
        """Normal day with weather and non-zero consumption."""
        return self.type is DayType.NORMAL and self.has_weather and self.home_kwh > 0

    def as_high_load(self, confounding_kwh: float, detected: bool = True) -> 'ClassifiedDay':
        """Return a copy reclassified as a high-load day."""
        return replace(self, type=DayType.HIGH_LOAD,
                       confounding_kwh=confounding_kwh, detected=detected)


@dataclass(frozen=True)
class ModeledDay:
    day: ClassifiedDay
    expected_kwh: float
    residual_kwh: float
    z_score: float

    @property
    def date(self) -> date:
        return self.day.date


@dataclass(frozen=True)
class ResidualStats:
    mean: float
    stddev: float


@dataclass(frozen=True)
class AnomalyRecord:
    date: date
    direction: Direction
    actual_kwh: float
    expected_kwh: float
    residual_kwh: float
    z_score: float
    suspected_cause: str = 'Unknown'


@dataclass(frozen=True)
class HourlyBucket:
    hour: int
    home_wh: float = 0.0
    solar_wh: float = 0.0
    interval_count: int = 0


@dataclass(frozen=True)
class DrillDown:
    anomaly: AnomalyRecord
    hourly: Tuple[HourlyBucket, ...]
    patterns: Tuple[str, ...] = ()

    @property
    def date(self) -> date:
        return self.anomaly.date


@dataclass(frozen=True)
class EnvelopeBreakdown:
    """Theoretical heat loss per HDD for one envelope, kWh."""

    name: str
    ach50: float
    infiltration: float
    ventilation: float
    envelope: float
    cop: float
    annual_kwh_per_sqft: float

    @property
    def total(self) -> float:
        return self.infiltration + self.ventilation + self.envelope

    @property
    def electrical_per_hdd(self) -> float:
        return self.total / self.cop

    @property
    def annual_kbtu_per_sqft(self) -> float:
        return self.annual_kwh_per_sqft * KBTU_PER_KWH


@dataclass(frozen=True)
class BenchmarkResult:
    baseload_kwh: float
    baseload_method: str
    switchover_date: Optional[date]
    low_setpoint_days: Tuple[ClassifiedDay, ...]
    normal_setpoint_days: Tuple[ClassifiedDay, ...]
    total_heating_kwh: float
    total_hdd: float
    analysis_days: int
    heating_kwh_per_hdd: float
    annual_hdd: float
    annual_heating_kwh_per_sqft: float
    annual_heating_kbtu_per_sqft: float
    target_kwh_per_sqft: float
    target_kbtu_per_sqft: float
    passive: EnvelopeBreakdown
    standard: EnvelopeBreakdown
    coldest_day: Optional[ClassifiedDay] = None
    savings_vs_standard_kwh: float = 0.0
    savings_vs_standard_cost: float = 0.0

    @property
    def meets_target(self) -> bool:
        return self.annual_heating_kbtu_per_sqft <= self.target_kbtu_per_sqft

    @property
    def target_overshoot_pct(self) -> float:
        """Percent above the target intensity; negative when under it."""
        if not self.target_kbtu_per_sqft:
            return 0.0
        return (self.annual_heating_kbtu_per_sqft - self.target_kbtu_per_sqft) / self.target_kbtu_per_sqft * 100

    @property
    def standard_to_measured_ratio(self) -> Optional[float]:
        if self.annual_heating_kwh_per_sqft <= 0:
            return None
        return self.standard.annual_kwh_per_sqft / self.annual_heating_kwh_per_sqft

    @property
    def measured_to_passive_ratio(self) -> float:
        if not self.passive.electrical_per_hdd:
            return 0.0
        return self.heating_kwh_per_hdd / self.passive.electrical_per_hdd

    @property
    def effective_cop(self) -> Optional[float]:
        """Passive-house COP scaled by how far measured heating exceeds the model."""
        ratio = self.measured_to_passive_ratio
        return self.passive.cop / ratio if ratio > 0 else None


@dataclass(frozen=True)
class ConsumptionSummary:
    """Period totals and per-type averages."""

    day_count: int
    total_home_kwh: float
    total_solar_kwh: float
    total_grid_import_kwh: float
    type_counts: Dict[DayType, int]
    type_avg_kwh: Dict[DayType, float]
    high_load_sessions: int
    high_load_kwh: float
    high_load_cost: float

    @property
    def avg_home_kwh(self) -> float:
        return self.total_home_kwh / self.day_count if self.day_count else 0.0

    @classmethod
    def from_days(cls, days: Sequence[ClassifiedDay], electricity_rate: float) -> 'ConsumptionSummary':
        counts, averages = {}, {}
        for day_type in DayType:
            of_type = [d for d in days if d.type is day_type]
            counts[day_type] = len(of_type)
            averages[day_type] = sum(d.home_kwh for d in of_type) / len(of_type) if of_type else 0.0
        high_load = sum(d.confounding_kwh for d in days if d.type is DayType.HIGH_LOAD)
        return cls(
            day_count=len(days),
            total_home_kwh=sum(d.home_kwh for d in days),
            total_solar_kwh=sum(d.solar_kwh for d in days),
            total_grid_import_kwh=sum(d.grid_import_kwh for d in days),
            type_counts=counts,
            type_avg_kwh=averages,
            high_load_sessions=counts[DayType.HIGH_LOAD],
            high_load_kwh=high_load,
            high_load_cost=high_load * electricity_rate,
        )


@dataclass(frozen=True)
class CorrelationFactor:
    feature: str
    correlation: float


@dataclass
class StageWarnings:
    """Warnings collected across stages and embedded in the report."""

    messages: List[str] = field(default_factory=list)

    def add(self, message: str) -> None:
        self.messages.append(message)

    def __iter__(self):
        return iter(self.messages)

    def __len__(self):
        return len(self.messages)
