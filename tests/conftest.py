"""Shared fixtures: day factories and in-memory data sources."""

from datetime import date, datetime, timedelta
from typing import Dict, List

import numpy as np
import pytest
import pytz

from hvac_analysis.config import AnalysisConfig, TelemetryQuery
from hvac_analysis.records import ClassifiedDay, DayType, SubDailyInterval, WeatherDailyRecord
from hvac_analysis.sources import TelemetrySource, WeatherSource

TZ = pytz.timezone('America/New_York')

JAN_START = date(2026, 1, 1)
JAN_END = date(2026, 1, 31)
SPIKE_DAY = date(2026, 1, 20)
SAUNA_DAY = date(2026, 1, 10)


def make_day(day=date(2026, 1, 5), home_kwh=30.0, temp_min=20.0, wind_max=10.0, **kwargs) -> ClassifiedDay:
    """ClassifiedDay with weather filled in from ``temp_min``."""
    temp_mean = kwargs.pop('temp_mean', temp_min + 8 if temp_min is not None else None)
    fields = dict(
        date=day,
        type=DayType.NORMAL,
        home_kwh=home_kwh,
        temp_max=temp_mean + 8 if temp_mean is not None else None,
        temp_min=temp_min,
        temp_mean=temp_mean,
        wind_max=wind_max,
        wind_gust_max=wind_max * 1.8,
        heating_degree_days=max(0.0, 65 - temp_mean) if temp_mean is not None else 0.0,
        prior_day_temp_min=temp_min,
        thermal_mass_lag=temp_mean,
        is_weekend=day.weekday() >= 5,
    )
    fields.update(kwargs)
    return ClassifiedDay(**fields)


@pytest.fixture
def day_factory():
    return make_day


def synthetic_days(n=30, start=JAN_START, seed=7) -> List[ClassifiedDay]:
    """Normal days with consumption driven by temperature and wind plus noise."""
    rng = np.random.RandomState(seed)
    days = []
    for i in range(n):
        temp_min = -2.0 + (i * 13) % 45
        wind = 5.0 + (i * 7) % 17
        home = 12 + 0.5 * (40 - temp_min) + 0.2 * wind + rng.normal(0, 1.0)
        days.append(make_day(start + timedelta(days=i), home_kwh=round(home, 3),
                             temp_min=temp_min, wind_max=wind,
                             prior_day_temp_min=-2.0 + ((i - 1) * 13) % 45,
                             thermal_mass_lag=temp_min + 6 + rng.normal(0, 2.0)))
    return days


@pytest.fixture
def normal_days() -> List[ClassifiedDay]:
    return synthetic_days()


# =============================================================================
# IN-MEMORY SOURCES
# =============================================================================

def january_weather(day: date) -> WeatherDailyRecord:
    i = (day - JAN_START).days
    temp_min = -2.0 + (i * 13) % 45
    return WeatherDailyRecord(
        date=day,
        temp_max=temp_min + 16,
        temp_min=temp_min,
        temp_mean=temp_min + 8,
        wind_max=5.0 + (i * 7) % 17,
        wind_gust_max=12.0 + (i * 11) % 23,
    )


def daily_intervals(day: date, home_kwh: float, spike_wh: float = 0.0) -> List[SubDailyInterval]:
    """96 quarter-hour intervals; ``spike_wh`` is added to 12 consecutive ones from 14:00."""
    base = home_kwh * 1000 / 96
    intervals = []
    for k in range(96):
        ts = TZ.localize(datetime(day.year, day.month, day.day, k // 4, (k % 4) * 15))
        extra = spike_wh if 56 <= k < 68 else 0.0
        intervals.append(SubDailyInterval(timestamp=ts, home_energy_wh=base + extra,
                                          solar_energy_wh=50.0 if 40 <= k < 64 else 0.0))
    return intervals


def january_home_kwh(day: date) -> float:
    w = january_weather(day)
    i = (day - JAN_START).days
    noise = ((i * 37) % 11 - 5) / 4
    return 12 + 0.5 * (40 - w.temp_min) + 0.2 * w.wind_max + noise


class FakeTelemetrySource(TelemetrySource):
    """Serves January 2026 regardless of the requested window; the aggregator trims."""

    def __init__(self):
        self.calls = []
        self.series: Dict[date, List[SubDailyInterval]] = {}
        day = JAN_START
        while day <= JAN_END:
            spike = 3000.0 if day == SPIKE_DAY else 0.0
            self.series[day] = daily_intervals(day, january_home_kwh(day), spike)
            day += timedelta(days=1)

    async def fetch_history(self, period, end_date):
        self.calls.append((period, end_date))
        if period == 'day':
            day = end_date - timedelta(days=1)
            return list(self.series.get(day, []))
        return [i for series in self.series.values() for i in series]


class FakeWeatherSource(WeatherSource):
    async def fetch_daily(self, latitude, longitude, start, end):
        out = []
        day = start
        while day <= end:
            out.append(january_weather(day))
            day += timedelta(days=1)
        return out


@pytest.fixture
def january_config(tmp_path) -> AnalysisConfig:
    return AnalysisConfig(
        start_date=JAN_START,
        end_date=JAN_END,
        away_start=None,
        away_end=None,
        home_during_away=(),
        telemetry_queries=[TelemetryQuery('month', date(2026, 2, 1), 'January 2026'),
                           TelemetryQuery('week', date(2026, 1, 8), 'January 1-7 2026')],
        request_timeout_s=5.0,
        output_dir=tmp_path / 'out',
        cache_path=tmp_path / 'cache.json',
    )


@pytest.fixture
def telemetry() -> FakeTelemetrySource:
    return FakeTelemetrySource()


@pytest.fixture
def weather() -> FakeWeatherSource:
    return FakeWeatherSource()
