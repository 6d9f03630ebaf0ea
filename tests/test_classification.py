"""Day classification and weather-derived features."""

from datetime import date, timedelta

import pytest

from hvac_analysis.classification import DayClassifier
from hvac_analysis.config import AnalysisConfig
from hvac_analysis.records import DailyEnergyRecord, DayType, WeatherDailyRecord


def _energy(day, kwh=30.0):
    return DailyEnergyRecord(date=day, home_energy_wh=kwh * 1000, solar_energy_wh=1500.0,
                             grid_imported_wh=kwh * 1000, grid_exported_wh=0.0,
                             battery_charged_wh=0.0, battery_discharged_wh=0.0, interval_count=288)


def _weather(day, temp_min, temp_mean):
    return WeatherDailyRecord(date=day, temp_max=temp_mean + 8, temp_min=temp_min, temp_mean=temp_mean,
                              wind_max=12.0, wind_gust_max=24.0)


def test_precedence_away_over_high_load():
    config = AnalysisConfig()
    classifier = DayClassifier(config, known_high_load={date(2025, 12, 20), date(2025, 12, 27), date(2026, 1, 10)})

    assert classifier.day_type(date(2025, 12, 20)) is DayType.AWAY
    # Present-at-home override inside the away period
    assert classifier.day_type(date(2025, 12, 27)) is DayType.HIGH_LOAD
    assert classifier.day_type(date(2026, 1, 10)) is DayType.HIGH_LOAD
    assert classifier.day_type(date(2026, 1, 11)) is DayType.NORMAL


def test_classify_joins_weather_and_derives_features():
    days = [date(2026, 1, 8), date(2026, 1, 9), date(2026, 1, 10)]
    energy = [_energy(d, 30.0 + i) for i, d in enumerate(days)]
    weather = [_weather(days[0], 10.0, 20.0), _weather(days[1], 4.0, 14.0), _weather(days[2], 16.0, 26.0)]

    classified = DayClassifier(AnalysisConfig()).classify(reversed(energy), weather)

    assert [d.date for d in classified] == days
    last = classified[2]
    assert last.heating_degree_days == pytest.approx(39.0)
    assert last.prior_day_temp_min == 4.0
    assert last.thermal_mass_lag == pytest.approx((20.0 + 14.0 + 26.0) / 3)
    assert last.is_weekend  # Saturday
    assert last.home_kwh == pytest.approx(32.0)
    assert last.solar_kwh == pytest.approx(1.5)
    assert last.interval_count == 288

    first = classified[0]
    assert first.prior_day_temp_min == first.temp_min
    assert first.thermal_mass_lag == first.temp_mean
    assert not first.is_weekend


def test_missing_weather_leaves_day_unmodelable():
    day = date(2026, 1, 12)
    (classified,) = DayClassifier(AnalysisConfig()).classify([_energy(day)], [])
    assert classified.type is DayType.NORMAL
    assert not classified.has_weather
    assert not classified.is_modelable


def test_hdd_floor_at_zero():
    day = date(2026, 1, 12)
    (classified,) = DayClassifier(AnalysisConfig()).classify([_energy(day)], [_weather(day, 60.0, 70.0)])
    assert classified.heating_degree_days == 0.0


def test_known_high_load_gets_estimated_confounding():
    day = date(2026, 1, 10)
    (classified,) = DayClassifier(AnalysisConfig(), {day}).classify([_energy(day, 60.0)], [_weather(day, 10, 20)])
    assert classified.type is DayType.HIGH_LOAD
    assert classified.confounding_kwh == 25.0
    assert classified.adjusted_kwh == pytest.approx(35.0)
    assert not classified.detected


def test_every_day_has_exactly_one_type_and_nonnegative_adjusted():
    config = AnalysisConfig()
    start = config.start_date
    days = [start + timedelta(days=i) for i in range((config.end_date - start).days + 1)]
    known = set(days[::9])
    energy = [_energy(d, 10.0 if i % 5 == 0 else 40.0) for i, d in enumerate(days)]
    weather = [_weather(d, 15.0, 25.0) for d in days]

    classified = DayClassifier(config, known).classify(energy, weather)

    assert len(classified) == len(days)
    assert len({d.date for d in classified}) == len(days)
    for d in classified:
        assert d.type in (DayType.NORMAL, DayType.AWAY, DayType.HIGH_LOAD)
        assert d.adjusted_kwh >= 0
        assert d.adjusted_kwh == pytest.approx(max(0.0, d.home_kwh - d.confounding_kwh))
