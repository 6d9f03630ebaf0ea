"""Regression fitting, model selection and segment assignment."""

from datetime import date, timedelta

import numpy as np
import pytest

from conftest import make_day, synthetic_days
from hvac_analysis.config import AnalysisConfig
from hvac_analysis.records import DayType, StageWarnings
from hvac_analysis.regression import (GLOBAL_FEATURE_SETS, HDD_WIND, TEMP_MIN_WIND, ModelBuilder,
                                      RegressionModel, assign_segment, empty_segments,
                                      fit_linear_regression, prediction_curve, r_squared,
                                      select_best_model, solve_linear_system)
from hvac_analysis.results import DegenerateFitError, Fatal, Ok


def test_solver_recovers_known_solution():
    A = np.array([[2.0, 1.0, -1.0], [-3.0, -1.0, 2.0], [-2.0, 1.0, 2.0]])
    b = np.array([8.0, -11.0, -3.0])
    x = solve_linear_system(A, b)
    assert x == pytest.approx([2.0, 3.0, -1.0])


def test_solver_needs_pivoting():
    # Zero in the first pivot position
    A = np.array([[0.0, 1.0], [1.0, 1.0]])
    b = np.array([2.0, 5.0])
    assert solve_linear_system(A, b) == pytest.approx([3.0, 2.0])


def test_solver_singular_raises():
    A = np.array([[1.0, 2.0], [2.0, 4.0]])
    with pytest.raises(DegenerateFitError):
        solve_linear_system(A, np.array([1.0, 2.0]))


def test_fit_recovers_exact_coefficients():
    days = []
    for i in range(12):
        temp_min = float(i * 4 - 5)
        wind = float((i * 5) % 13 + 2)
        home = 50 - 1.2 * temp_min + 0.5 * wind
        days.append(make_day(date(2026, 1, 1) + timedelta(days=i), home_kwh=home,
                             temp_min=temp_min, wind_max=wind))

    model = fit_linear_regression(days, TEMP_MIN_WIND)

    assert model.coefficient('tempMin') == pytest.approx(-1.2)
    assert model.coefficient('windMax') == pytest.approx(0.5)
    assert model.intercept == pytest.approx(50.0)
    assert model.r_squared == pytest.approx(1.0)
    assert model.n_samples == 12
    assert model.coefficient('hdd') is None


def test_fit_uses_adjusted_kwh():
    days = [make_day(date(2026, 1, 1) + timedelta(days=i), home_kwh=60.0 + i,
                     temp_min=float(i * 3), wind_max=float(i % 4),
                     type=DayType.NORMAL, confounding_kwh=25.0)
            for i in range(8)]
    model = fit_linear_regression(days, TEMP_MIN_WIND)
    predicted = model.predict(days[0])
    assert predicted == pytest.approx(35.0, abs=1e-6)


def test_fit_too_few_samples_raises():
    days = [make_day(date(2026, 1, i + 1), temp_min=float(i)) for i in range(3)]
    with pytest.raises(DegenerateFitError):
        fit_linear_regression(days, TEMP_MIN_WIND)


def test_fit_collinear_features_raises():
    # Constant wind makes windMax collinear with the intercept
    days = [make_day(date(2026, 1, i + 1), home_kwh=30.0 + i, temp_min=float(i), wind_max=10.0)
            for i in range(8)]
    with pytest.raises(DegenerateFitError):
        fit_linear_regression(days, TEMP_MIN_WIND)


def test_r_squared_constant_target_is_zero():
    y = np.array([5.0, 5.0, 5.0])
    assert r_squared(y, y) == 0.0


def _model(name_set, r2):
    return RegressionModel(feature_set=name_set, coefficients=(0.0, 0.0), intercept=0.0,
                           r_squared=r2, n_samples=10)


def test_select_best_model_highest_r2():
    a, b = _model(TEMP_MIN_WIND, 0.71), _model(HDD_WIND, 0.83)
    assert select_best_model([a, b]) is b


def test_select_best_model_tie_goes_to_first():
    a, b = _model(TEMP_MIN_WIND, 0.8), _model(HDD_WIND, 0.8)
    assert select_best_model([a, b]) is a


def test_select_best_model_empty():
    with pytest.raises(ValueError):
        select_best_model([])


@pytest.mark.parametrize('temp_min, expected', [
    (45.0, 'Mild (>32°F)'),
    (32.0, 'Moderate (20-32°F)'),
    (20.1, 'Moderate (20-32°F)'),
    (20.0, 'Cold (5-20°F)'),
    (5.0, 'Extreme (≤5°F)'),
    (-8.0, 'Extreme (≤5°F)'),
])
def test_segment_boundaries(temp_min, expected):
    segments = empty_segments()
    idx = assign_segment(segments, make_day(temp_min=temp_min))
    assert segments[idx].name == expected


def test_day_without_weather_has_no_segment():
    segments = empty_segments()
    assert assign_segment(segments, make_day(temp_min=None, temp_mean=None)) is None


def test_build_selects_max_r2(normal_days):
    result = ModelBuilder(AnalysisConfig()).build(normal_days, StageWarnings())

    assert isinstance(result, Ok)
    model = result.value
    assert len(model.candidates) == len(GLOBAL_FEATURE_SETS)
    for candidate in model.candidates:
        assert model.global_model.r_squared >= candidate.r_squared
    assert len(model.training_days) == 30
    assert [s.name for s in model.segments] == [s.name for s in empty_segments()]


def test_build_too_few_days_is_fatal():
    days = synthetic_days(n=9)
    result = ModelBuilder(AnalysisConfig()).build(days, StageWarnings())
    assert isinstance(result, Fatal)
    assert '9' in result.reason


def test_build_ignores_non_normal_days():
    days = synthetic_days(n=12)
    days = [d if i % 2 else d.as_high_load(20.0) for i, d in enumerate(days)]
    result = ModelBuilder(AnalysisConfig()).build(days, StageWarnings())
    assert isinstance(result, Fatal)


def test_sparse_segment_falls_back_to_mean():
    # Only two mild days: Mild segment cannot be fitted
    days = synthetic_days(n=30)
    mild = [d for d in days if d.temp_min > 32][:2]
    kept = [d for d in days if d.temp_min <= 32] + mild

    model = ModelBuilder(AnalysisConfig()).build(kept, StageWarnings()).value
    mild_segment = model.segments[0]

    assert not mild_segment.fitted
    assert mild_segment.fallback_kwh == pytest.approx(np.mean([d.adjusted_kwh for d in mild]))
    # Prediction for a mild day uses the global model
    mild_day = make_day(temp_min=40.0, wind_max=8.0)
    assert model.predict(mild_day) == pytest.approx(model.global_model.predict(mild_day))


def test_degenerate_candidate_is_excluded_with_warning():
    # All weekdays: the weekend column is all zeros
    start = date(2026, 1, 5)  # Monday
    days = [d for d in synthetic_days(n=40, start=start) if not d.is_weekend][:20]
    warnings = StageWarnings()

    model = ModelBuilder(AnalysisConfig()).build(days, warnings).value

    names = [c.name for c in model.candidates]
    assert 'tempMin+gust+priorDay+weekend' not in names
    assert len(names) == len(GLOBAL_FEATURE_SETS) - 1
    assert any('weekend' in w for w in warnings)


def test_prediction_curve_decreases_with_temperature(normal_days):
    model = ModelBuilder(AnalysisConfig()).build(normal_days, StageWarnings()).value
    curve = prediction_curve(model)
    temps = [t for t, _ in curve]
    assert temps == [float(t) for t in range(-5, 55, 5)]
    assert curve[0][1] > curve[-1][1]
