"""
Sequential analysis pipeline.

aggregation -> classification -> signal-pattern refinement -> model fitting ->
anomaly detection -> drill-down -> benchmark. External calls are awaited one
at a time.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

from .aggregation import collect_daily_energy
from .anomalies import AnomalyDetector
from .benchmark import BenchmarkCalculator
from .classification import DayClassifier
from .config import AnalysisConfig
from .drilldown import DrillDownAnalyzer
from .records import (AnomalyRecord, BenchmarkResult, ClassifiedDay, ConsumptionSummary, CorrelationFactor,
                      DailyEnergyRecord, DayType, DrillDown, ModeledDay, ResidualStats,
                      StageWarnings, WeatherDailyRecord)
from .regression import ModelBuilder, SegmentedModel, prediction_curve
from .results import Fatal, InsufficientDataError, Ok, Skipped, StageResult, guarded_call
from .root_cause import rank_root_causes
from .signal_pattern import SignalPatternDetector
from .sources import RawDataCache, TelemetrySource, WeatherSource

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    config: AnalysisConfig
    days: List[ClassifiedDay]
    modeled_days: List[ModeledDay]
    model: SegmentedModel
    residual_stats: ResidualStats
    anomalies: List[AnomalyRecord]
    drilldowns: List[DrillDown]
    benchmark: BenchmarkResult
    root_causes: List[CorrelationFactor]
    prediction_curve: List[Tuple[float, float]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    def modeled_for(self, day: date) -> Optional[ModeledDay]:
        return self._modeled_index().get(day)

    def _modeled_index(self) -> Dict[date, ModeledDay]:
        return {m.date: m for m in self.modeled_days}

    def days_of_type(self, day_type: DayType) -> List[ClassifiedDay]:
        return [d for d in self.days if d.type is day_type]

    @property
    def summary(self) -> ConsumptionSummary:
        return ConsumptionSummary.from_days(self.days, self.config.electricity_rate)

    @property
    def anomaly_threshold_kwh(self) -> float:
        return self.config.anomaly_sigma * self.residual_stats.stddev

    def to_dict(self) -> Dict:
        """Machine-readable result."""
        model = self.model
        bench = self.benchmark
        modeled = self._modeled_index()
        summary = self.summary
        coldest = bench.coldest_day

        def envelope(e):
            return {
                'name': e.name, 'ach50': e.ach50,
                'infiltration_kwh_per_hdd': e.infiltration,
                'ventilation_kwh_per_hdd': e.ventilation,
                'envelope_kwh_per_hdd': e.envelope,
                'thermal_kwh_per_hdd': e.total,
                'cop': e.cop,
                'electrical_kwh_per_hdd': e.electrical_per_hdd,
                'annual_kwh_per_sqft': e.annual_kwh_per_sqft,
            }

        return {
            'generated_at': self.generated_at.isoformat(timespec='seconds'),
            'period': {'start': self.config.start_date.isoformat(), 'end': self.config.end_date.isoformat()},
            'summary': {
                'day_count': summary.day_count,
                'total_home_kwh': summary.total_home_kwh,
                'avg_home_kwh': summary.avg_home_kwh,
                'total_solar_kwh': summary.total_solar_kwh,
                'total_grid_import_kwh': summary.total_grid_import_kwh,
                'day_types': {
                    t.value: {'count': summary.type_counts[t], 'avg_home_kwh': summary.type_avg_kwh[t]}
                    for t in DayType
                },
                'high_load_sessions': summary.high_load_sessions,
                'high_load_kwh': summary.high_load_kwh,
                'high_load_cost': summary.high_load_cost,
            },
            'days': [
                {
                    'date': d.date.isoformat(),
                    'type': d.type.value,
                    'home_kwh': d.home_kwh,
                    'adjusted_kwh': d.adjusted_kwh,
                    'confounding_kwh': d.confounding_kwh,
                    'detected': d.detected,
                    'temp_min': d.temp_min,
                    'temp_mean': d.temp_mean,
                    'wind_max': d.wind_max,
                    'heating_degree_days': d.heating_degree_days,
                    'expected_kwh': modeled[d.date].expected_kwh if d.date in modeled else None,
                    'residual_kwh': modeled[d.date].residual_kwh if d.date in modeled else None,
                    'z_score': modeled[d.date].z_score if d.date in modeled else None,
                }
                for d in self.days
            ],
            'model': {
                'selected': model.global_model.name,
                'global_r2': model.global_model.r_squared,
                'global_coefficients': model.global_model.coefficient_map(),
                'candidates': [{'name': c.name, 'r2': c.r_squared} for c in model.candidates],
                'segments': [
                    {
                        'name': s.name,
                        'day_count': len(s.days),
                        'fitted': s.fitted,
                        'r2': s.model.r_squared if s.fitted else 0.0,
                        'coefficients': s.model.coefficient_map() if s.fitted else {'intercept': s.fallback_kwh},
                    }
                    for s in model.segments
                ],
            },
            'residual_stats': {
                'mean': self.residual_stats.mean,
                'stddev': self.residual_stats.stddev,
                'anomaly_threshold_kwh': self.anomaly_threshold_kwh,
            },
            'anomalies': [
                {
                    'date': a.date.isoformat(), 'direction': a.direction.value, 'z_score': a.z_score,
                    'actual_kwh': a.actual_kwh, 'expected_kwh': a.expected_kwh,
                    'residual_kwh': a.residual_kwh, 'suspected_cause': a.suspected_cause,
                }
                for a in self.anomalies
            ],
            'drilldowns': [
                {
                    'date': dd.date.isoformat(),
                    'patterns': list(dd.patterns),
                    'hourly': [{'hour': h.hour, 'home_wh': h.home_wh, 'solar_wh': h.solar_wh} for h in dd.hourly],
                }
                for dd in self.drilldowns
            ],
            'benchmark': {
                'baseload_kwh': bench.baseload_kwh,
                'baseload_method': bench.baseload_method,
                'switchover_date': bench.switchover_date.isoformat() if bench.switchover_date else None,
                'analysis_days': bench.analysis_days,
                'total_heating_kwh': bench.total_heating_kwh,
                'total_hdd': bench.total_hdd,
                'heating_kwh_per_hdd': bench.heating_kwh_per_hdd,
                'annual_hdd': bench.annual_hdd,
                'annual_heating_kwh_per_sqft': bench.annual_heating_kwh_per_sqft,
                'annual_heating_kbtu_per_sqft': bench.annual_heating_kbtu_per_sqft,
                'target_kwh_per_sqft': bench.target_kwh_per_sqft,
                'target_kbtu_per_sqft': bench.target_kbtu_per_sqft,
                'target_overshoot_pct': bench.target_overshoot_pct,
                'meets_target': bench.meets_target,
                'savings_vs_standard_kwh': bench.savings_vs_standard_kwh,
                'savings_vs_standard_cost': bench.savings_vs_standard_cost,
                'standard_to_measured_ratio': bench.standard_to_measured_ratio,
                'measured_to_passive_ratio': bench.measured_to_passive_ratio,
                'effective_cop': bench.effective_cop,
                'coldest_day': {
                    'date': coldest.date.isoformat(), 'temp_min': coldest.temp_min, 'home_kwh': coldest.home_kwh,
                } if coldest else None,
                'passive': envelope(bench.passive),
                'standard': envelope(bench.standard),
            },
            'root_causes': [{'feature': c.feature, 'correlation': c.correlation} for c in self.root_causes],
            'warnings': list(self.warnings),
        }


class HvacAnalysisPipeline:
    """Runs every stage in order over one fixed historical window."""

    def __init__(self, config: AnalysisConfig,
                 telemetry: Optional[TelemetrySource] = None,
                 weather: Optional[WeatherSource] = None,
                 cache: Optional[RawDataCache] = None,
                 known_high_load: Optional[Set[date]] = None):
        self.config = config
        self.telemetry = telemetry
        self.weather = weather
        self.cache = cache
        self.known_high_load = known_high_load or set()
        self.warnings = StageWarnings()
        self._cache_dirty = False
        self._replaying = False

    # -------------------------------------------------------------------------
    # Acquisition
    # -------------------------------------------------------------------------

    async def _acquire(self, use_cache: bool):
        if use_cache and self.cache is not None and self.cache.exists:
            logger.info("Loading cached data...")
            self.cache.load()
            self._replaying = True
            daily = [d for d in self.cache.daily if self.config.in_window(d.date)]
            weather = [w for w in self.cache.weather if self.config.in_weather_window(w.date)]
            dropped = len(self.cache.daily) - len(daily)
            if dropped:
                logger.info(f"  Dropped {dropped} cached days outside {self.config.start_date} - {self.config.end_date}")
            return daily, weather

        daily: List[DailyEnergyRecord] = []
        if self.telemetry is not None:
            daily = await collect_daily_energy(self.telemetry, self.config, self.warnings)
        else:
            self.warnings.add("No telemetry source configured")

        weather: List[WeatherDailyRecord] = []
        if self.weather is not None:
            logger.info("Collecting weather data...")
            result = await guarded_call(
                "Weather archive",
                self.weather.fetch_daily(self.config.latitude, self.config.longitude,
                                         self.config.weather_start, self.config.end_date),
                timeout=self.config.request_timeout_s,
            )
            if isinstance(result, Ok):
                weather = result.value
                logger.info(f"  Got {len(weather)} days of weather data")
            else:
                self.warnings.add(f"Weather data unavailable ({result.reason})")
        else:
            self.warnings.add("No weather source configured")

        if self.cache is not None:
            self.cache.daily, self.cache.weather = daily, weather
            self._cache_dirty = True
        return daily, weather

    async def fetch_intraday(self, day: date) -> StageResult:
        """Sub-daily series for one day, served from the cache when present."""
        if self.cache is not None and day in self.cache.intraday:
            return Ok(self.cache.intraday[day])
        if self.telemetry is None or self._replaying:
            return Skipped(f"no sub-daily data for {day}")

        result = await guarded_call(f"Sub-daily {day}", self.telemetry.fetch_day(day),
                                    timeout=self.config.request_timeout_s)
        if isinstance(result, Ok) and self.cache is not None:
            self.cache.store_intraday(day, result.value)
            self._cache_dirty = True
        return result

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def run(self, use_cache: bool = False) -> AnalysisResult:
        config = self.config
        daily, weather = await self._acquire(use_cache)

        days = DayClassifier(config, self.known_high_load).classify(daily, weather)
        days = await SignalPatternDetector(config).refine(days, self.fetch_intraday, self.warnings)

        built = ModelBuilder(config).build(days, self.warnings)
        if isinstance(built, Fatal):
            raise InsufficientDataError(built.reason)
        model = built.value

        modeled, stats, anomalies = AnomalyDetector(config).run(days, model)
        anomalies, drilldowns = await DrillDownAnalyzer(config).run(anomalies, self.fetch_intraday, self.warnings)

        benchmark = BenchmarkCalculator(config).run(days)
        root_causes = rank_root_causes(days)

        if self._cache_dirty:
            self.cache.save()

        return AnalysisResult(
            config=config,
            days=days,
            modeled_days=modeled,
            model=model,
            residual_stats=stats,
            anomalies=anomalies,
            drilldowns=drilldowns,
            benchmark=benchmark,
            root_causes=root_causes,
            prediction_curve=prediction_curve(model, hdd_base_f=config.hdd_base_f),
            warnings=list(self.warnings),
        )


def save_structured_results(result: AnalysisResult, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(result.to_dict(), f, indent=2)
    logger.info(f"Structured data written to {path}")
    return path
