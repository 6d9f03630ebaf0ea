"""Configuration defaults and JSON overlay."""

import json
from datetime import date
from pathlib import Path

import pytest

from hvac_analysis.config import AnalysisConfig, TelemetryQuery, load_config


def test_defaults():
    config = AnalysisConfig()
    assert config.start_date == date(2025, 11, 1)
    assert config.end_date == date(2026, 2, 8)
    assert config.house.sqft == 2600
    assert config.house.volume == 2600 * 9
    assert config.passive_envelope.ach50 == 0.4
    assert config.passive_envelope.cop == 2.5
    assert config.standard_envelope.cop == 2.0
    assert config.annual_hdd == 5100
    assert config.target_kwh_per_sqft == pytest.approx(4.75 / 3.412)
    assert len(config.telemetry_queries) == 5


def test_away_period_with_present_override():
    config = AnalysisConfig()
    assert config.is_away(date(2025, 12, 13))
    assert config.is_away(date(2026, 1, 2))
    assert not config.is_away(date(2025, 12, 27))
    assert not config.is_away(date(2026, 1, 3))


def test_no_away_period():
    config = AnalysisConfig(away_start=None, away_end=None)
    assert not config.is_away(date(2025, 12, 20))


def test_load_config_without_path():
    assert load_config() == AnalysisConfig()


def test_load_config_overlay(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({
        'start_date': '2026-01-01',
        'away_start': None,
        'home_during_away': ['2026-01-15'],
        'anomaly_sigma': 2,
        'drilldown_limit': 3,
        'house': {'sqft': 1800},
        'passive_envelope': {'cop': 3.0},
        'telemetry_queries': [{'period': 'week', 'end_date': '2026-01-08'}],
        'output_dir': 'reports',
    }))

    config = load_config(path)

    assert config.start_date == date(2026, 1, 1)
    assert config.away_start is None
    assert config.home_during_away == (date(2026, 1, 15),)
    assert config.anomaly_sigma == 2.0
    assert isinstance(config.anomaly_sigma, float)
    assert config.drilldown_limit == 3
    assert config.house.sqft == 1800
    assert config.house.ceiling_height_ft == 9.0
    assert config.passive_envelope.cop == 3.0
    assert config.passive_envelope.ach50 == 0.4
    assert config.telemetry_queries == [TelemetryQuery('week', date(2026, 1, 8))]
    assert config.output_dir == Path('reports')
    # Untouched keys keep their defaults
    assert config.end_date == date(2026, 2, 8)


def test_load_config_unknown_key(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'anomaly_sigmaa': 2.0}))
    with pytest.raises(ValueError, match='anomaly_sigmaa'):
        load_config(path)


def test_load_config_unknown_nested_key(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'house': {'floors': 2}}))
    with pytest.raises(ValueError, match='floors'):
        load_config(path)
