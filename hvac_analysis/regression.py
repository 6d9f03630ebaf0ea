"""
Temperature-vs-consumption regression.

Ordinary multiple linear regression solved from the normal equations
``(XᵗX)β = Xᵗy`` with Gaussian elimination and partial pivoting. Two tracks:

* segmented: one two-feature model (tempMin, windMax) per outdoor-minimum
  temperature bucket, or the bucket mean when it has too few days;
* global: several competing feature sets, the best R² wins.

Prediction uses the matching fitted segment and falls back to the global model.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import AnalysisConfig
from .records import ClassifiedDay, DayType, StageWarnings
from .results import DegenerateFitError, Fatal, Ok, StageResult

logger = logging.getLogger(__name__)

PIVOT_EPSILON = 1e-10


# =============================================================================
# FEATURES
# =============================================================================

@dataclass(frozen=True)
class Feature:
    name: str
    extract: Callable[[ClassifiedDay], float] = field(compare=False)


TEMP_MIN = Feature('tempMin', lambda d: d.temp_min)
WIND_MAX = Feature('windMax', lambda d: d.wind_max or 0.0)
WIND_GUST_MAX = Feature('windGustMax', lambda d: d.wind_gust_max or 0.0)
HDD = Feature('hdd', lambda d: d.heating_degree_days)
THERMAL_MASS_LAG = Feature(
    'thermalMassLag', lambda d: d.thermal_mass_lag if d.thermal_mass_lag is not None else d.temp_mean)
# A cold night depletes thermal mass, raising next-day heating demand
PRIOR_DAY_TEMP_MIN = Feature(
    'priorDayTempMin', lambda d: d.prior_day_temp_min if d.prior_day_temp_min is not None else d.temp_min)
IS_WEEKEND = Feature('isWeekend', lambda d: 1.0 if d.is_weekend else 0.0)


@dataclass(frozen=True)
class FeatureSet:
    """One candidate model variant: a label and an ordered feature tuple."""

    name: str
    features: Tuple[Feature, ...]

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.features)

    def row(self, day: ClassifiedDay) -> List[float]:
        return [float(f.extract(day)) for f in self.features]


TEMP_MIN_WIND = FeatureSet('tempMin+wind', (TEMP_MIN, WIND_MAX))
TEMP_MIN_WIND_LAG = FeatureSet('tempMin+wind+lag', (TEMP_MIN, WIND_MAX, THERMAL_MASS_LAG))
HDD_WIND = FeatureSet('HDD+wind', (HDD, WIND_MAX))
TEMP_MIN_GUST_PRIOR_DAY = FeatureSet('tempMin+gust+priorDay', (TEMP_MIN, WIND_GUST_MAX, PRIOR_DAY_TEMP_MIN))
TEMP_MIN_GUST_PRIOR_DAY_WEEKEND = FeatureSet(
    'tempMin+gust+priorDay+weekend', (TEMP_MIN, WIND_GUST_MAX, PRIOR_DAY_TEMP_MIN, IS_WEEKEND))

GLOBAL_FEATURE_SETS = (
    TEMP_MIN_WIND,
    TEMP_MIN_WIND_LAG,
    HDD_WIND,
    TEMP_MIN_GUST_PRIOR_DAY,
    TEMP_MIN_GUST_PRIOR_DAY_WEEKEND,
)
SEGMENT_FEATURE_SET = TEMP_MIN_WIND


# =============================================================================
# FITTING
# =============================================================================

def solve_linear_system(A: np.ndarray, b: np.ndarray, epsilon: float = PIVOT_EPSILON) -> np.ndarray:
    """Solve ``A x = b`` by Gaussian elimination with partial pivoting.

    Raises DegenerateFitError when a pivot magnitude falls below ``epsilon``.
    """
    n = len(b)
    M = np.hstack([np.asarray(A, dtype=float), np.asarray(b, dtype=float).reshape(-1, 1)])

    for col in range(n):
        pivot = col + int(np.argmax(np.abs(M[col:, col])))
        if pivot != col:
            M[[col, pivot]] = M[[pivot, col]]
        if abs(M[col, col]) < epsilon:
            raise DegenerateFitError(f"singular system (pivot {M[col, col]:.3g} in column {col})")
        for row in range(col + 1, n):
            factor = M[row, col] / M[col, col]
            M[row, col:] -= factor * M[col, col:]

    x = np.zeros(n)
    for i in range(n - 1, -1, -1):
        x[i] = (M[i, n] - M[i, i + 1:n] @ x[i + 1:n]) / M[i, i]
    return x


@dataclass(frozen=True)
class RegressionModel:
    feature_set: FeatureSet
    coefficients: Tuple[float, ...]
    intercept: float
    r_squared: float
    n_samples: int

    @property
    def name(self) -> str:
        return self.feature_set.name

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return self.feature_set.feature_names

    def coefficient(self, feature_name: str) -> Optional[float]:
        for name, value in zip(self.feature_names, self.coefficients):
            if name == feature_name:
                return value
        return None

    def coefficient_map(self) -> Dict[str, float]:
        coeffs = dict(zip(self.feature_names, self.coefficients))
        coeffs['intercept'] = self.intercept
        return coeffs

    def predict(self, day: ClassifiedDay) -> float:
        return float(np.dot(self.coefficients, self.feature_set.row(day)) + self.intercept)


def r_squared(y: np.ndarray, predicted: np.ndarray) -> float:
    """Coefficient of determination, 0 when y has no variance."""
    ss_res = float(np.sum((y - predicted) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    return 1 - ss_res / ss_tot if ss_tot > 0 else 0.0


def fit_linear_regression(days: Sequence[ClassifiedDay], feature_set: FeatureSet) -> RegressionModel:
    """Fit ``adjusted_kwh`` on ``feature_set`` plus an intercept."""
    n = len(days)
    p = len(feature_set.features) + 1
    if n < p + 1:
        raise DegenerateFitError(f"{n} samples for {p} parameters")

    X = np.array([feature_set.row(d) + [1.0] for d in days])
    y = np.array([d.adjusted_kwh for d in days])

    beta = solve_linear_system(X.T @ X, X.T @ y)
    return RegressionModel(
        feature_set=feature_set,
        coefficients=tuple(float(b) for b in beta[:-1]),
        intercept=float(beta[-1]),
        r_squared=r_squared(y, X @ beta),
        n_samples=n,
    )


def select_best_model(candidates: Sequence[RegressionModel]) -> RegressionModel:
    """Highest R²; ties go to the earlier candidate."""
    if not candidates:
        raise ValueError("no candidate models")
    best = candidates[0]
    for candidate in candidates[1:]:
        if candidate.r_squared > best.r_squared:
            best = candidate
    return best


# =============================================================================
# SEGMENTS
# =============================================================================

@dataclass(frozen=True)
class Segment:
    """Outdoor-minimum bucket: ``lower < tempMin <= upper`` (open where None)."""

    name: str
    lower: Optional[float]
    upper: Optional[float]
    days: Tuple[ClassifiedDay, ...] = ()
    model: Optional[RegressionModel] = None
    fallback_kwh: float = 0.0

    def matches(self, day: ClassifiedDay) -> bool:
        if day.temp_min is None:
            return False
        if self.lower is not None and not day.temp_min > self.lower:
            return False
        if self.upper is not None and not day.temp_min <= self.upper:
            return False
        return True

    @property
    def fitted(self) -> bool:
        return self.model is not None

    def predict(self, day: ClassifiedDay) -> float:
        return self.model.predict(day) if self.model is not None else self.fallback_kwh


SEGMENT_BOUNDS = (
    ('Mild (>32°F)', 32.0, None),
    ('Moderate (20-32°F)', 20.0, 32.0),
    ('Cold (5-20°F)', 5.0, 20.0),
    ('Extreme (≤5°F)', None, 5.0),
)


def empty_segments() -> List[Segment]:
    return [Segment(name, lower, upper) for name, lower, upper in SEGMENT_BOUNDS]


def assign_segment(segments: Sequence[Segment], day: ClassifiedDay) -> Optional[int]:
    for idx, segment in enumerate(segments):
        if segment.matches(day):
            return idx
    return None


@dataclass(frozen=True)
class SegmentedModel:
    segments: Tuple[Segment, ...]
    global_model: RegressionModel
    candidates: Tuple[RegressionModel, ...]
    training_days: Tuple[ClassifiedDay, ...]

    def predict(self, day: ClassifiedDay) -> float:
        for segment in self.segments:
            if segment.matches(day) and segment.fitted:
                return segment.predict(day)
        return self.global_model.predict(day)


# =============================================================================
# BUILDER
# =============================================================================

class ModelBuilder:
    """Fits segment and global models over modelable normal days."""

    def __init__(self, config: AnalysisConfig):
        self.config = config

    def build(self, days: Sequence[ClassifiedDay], warnings: StageWarnings) -> StageResult:
        logger.info("Building segmented regression model...")
        training = tuple(d for d in days if d.is_modelable)
        if len(training) < self.config.min_normal_days:
            return Fatal(f"Not enough normal days for modeling: {len(training)} "
                         f"(need {self.config.min_normal_days})")

        segments = self._fit_segments(training, warnings)

        candidates = []
        for feature_set in GLOBAL_FEATURE_SETS:
            try:
                model = fit_linear_regression(training, feature_set)
            except DegenerateFitError as e:
                logger.warning(f"  Global ({feature_set.name}) excluded: {e}")
                warnings.add(f"Global model {feature_set.name} excluded from selection: degenerate fit ({e})")
                continue
            logger.info(f"  Global ({feature_set.name}): {model.n_samples} days, R²={model.r_squared:.3f}")
            candidates.append(model)

        if not candidates:
            return Fatal("Every global feature set produced a degenerate fit")

        best = select_best_model(candidates)
        logger.info(f"  Best global model: {best.name} (R²={best.r_squared:.3f})")
        return Ok(SegmentedModel(
            segments=tuple(segments),
            global_model=best,
            candidates=tuple(candidates),
            training_days=training,
        ))

    def _fit_segments(self, training: Sequence[ClassifiedDay], warnings: StageWarnings) -> List[Segment]:
        buckets: Dict[int, List[ClassifiedDay]] = {i: [] for i in range(len(SEGMENT_BOUNDS))}
        template = empty_segments()
        for day in training:
            idx = assign_segment(template, day)
            if idx is not None:
                buckets[idx].append(day)

        segments = []
        for idx, seg in enumerate(template):
            seg_days = tuple(buckets[idx])
            mean = float(np.mean([d.adjusted_kwh for d in seg_days])) if seg_days else 0.0
            model = None
            if len(seg_days) >= self.config.min_segment_days:
                try:
                    model = fit_linear_regression(seg_days, SEGMENT_FEATURE_SET)
                except DegenerateFitError as e:
                    warnings.add(f"Segment {seg.name} fell back to its mean: degenerate fit ({e})")
                    logger.warning(f"  {seg.name}: degenerate fit, using segment mean")

            if model is not None:
                logger.info(f"  {seg.name}: {len(seg_days)} days, R²={model.r_squared:.3f}, "
                            f"coefficients: tempMin={model.coefficients[0]:.3f}, "
                            f"windMax={model.coefficients[1]:.3f}, intercept={model.intercept:.2f}")
            else:
                logger.info(f"  {seg.name}: {len(seg_days)} days (using segment mean {mean:.1f} kWh)")
            segments.append(Segment(seg.name, seg.lower, seg.upper, seg_days, model, mean))
        return segments


def prediction_curve(model: SegmentedModel, temps=range(-5, 55, 5),
                     wind_mph: float = 10.0, gust_mph: float = 20.0, hdd_base_f: float = 65.0) -> List[Tuple[float, float]]:
    """Predicted kWh across a range of minimum temperatures at typical wind."""
    points = []
    for temp in temps:
        day = ClassifiedDay(
            date=date.min, type=DayType.NORMAL, home_kwh=0.0,
            temp_min=temp, temp_mean=temp, wind_max=wind_mph, wind_gust_max=gust_mph,
            heating_degree_days=max(0.0, hdd_base_f - temp),
            prior_day_temp_min=temp, thermal_mass_lag=temp,
        )
        points.append((float(temp), model.predict(day)))
    return points
