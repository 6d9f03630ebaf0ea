"""Day classification from calendar metadata and the known-high-load cross-reference."""

import logging
from collections import Counter
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set

from .config import AnalysisConfig
from .records import ClassifiedDay, DailyEnergyRecord, DayType, WeatherDailyRecord

logger = logging.getLogger(__name__)


class DayClassifier:
    """Initial classification pass; performs no statistical inference.

    Precedence: away period (minus present-at-home overrides), then the
    known-high-load cross-reference, then normal.
    """

    def __init__(self, config: AnalysisConfig, known_high_load: Optional[Set[date]] = None):
        self.config = config
        self.known_high_load = known_high_load or set()

    def day_type(self, day: date) -> DayType:
        if self.config.is_away(day):
            return DayType.AWAY
        if day in self.known_high_load:
            return DayType.HIGH_LOAD
        return DayType.NORMAL

    def classify(self, energy: Iterable[DailyEnergyRecord],
                 weather: Iterable[WeatherDailyRecord]) -> List[ClassifiedDay]:
        logger.info("Classifying days...")
        weather_by_date = {w.date: w for w in weather}

        classified = [self._classify_one(record, weather_by_date)
                      for record in sorted(energy, key=lambda r: r.date)]

        counts = Counter(d.type for d in classified)
        logger.info(f"  Classified: {counts[DayType.NORMAL]} normal, "
                    f"{counts[DayType.AWAY]} away, {counts[DayType.HIGH_LOAD]} high-load")
        return classified

    def _classify_one(self, record: DailyEnergyRecord,
                      weather_by_date: Dict[date, WeatherDailyRecord]) -> ClassifiedDay:
        day_type = self.day_type(record.date)
        confounding = self.config.known_high_load_estimate_kwh if day_type is DayType.HIGH_LOAD else 0.0

        w = weather_by_date.get(record.date)
        weather_fields = {}
        if w is not None:
            prior = weather_by_date.get(record.date - timedelta(days=1))
            # Trailing 3-day mean of tempMean (thermal mass lag)
            window = [weather_by_date.get(record.date - timedelta(days=k)) for k in range(3)]
            lag = (sum(x.temp_mean for x in window) / 3
                   if all(x is not None for x in window) else w.temp_mean)
            weather_fields = {
                'temp_max': w.temp_max,
                'temp_min': w.temp_min,
                'temp_mean': w.temp_mean,
                'wind_max': w.wind_max,
                'wind_gust_max': w.wind_gust_max,
                'heating_degree_days': max(0.0, self.config.hdd_base_f - w.temp_mean),
                'prior_day_temp_min': prior.temp_min if prior is not None else w.temp_min,
                'thermal_mass_lag': lag,
            }

        return ClassifiedDay(
            date=record.date,
            type=day_type,
            home_kwh=record.home_energy_wh / 1000,
            solar_kwh=record.solar_energy_wh / 1000,
            grid_import_kwh=record.grid_imported_wh / 1000,
            grid_export_kwh=record.grid_exported_wh / 1000,
            battery_charged_kwh=record.battery_charged_wh / 1000,
            battery_discharged_kwh=record.battery_discharged_wh / 1000,
            interval_count=record.interval_count,
            # Sat/Sun: higher occupancy -> more cooking/appliances
            is_weekend=record.date.weekday() >= 5,
            confounding_kwh=confounding,
            **weather_fields,
        )
