"""Rank weather/occupancy factors by their correlation with daily consumption."""

from typing import List, Sequence

import numpy as np
from scipy import stats

from .records import ClassifiedDay, CorrelationFactor

MIN_DAYS = 6

FACTORS = {
    'Minimum temperature': lambda d: d.temp_min,
    'Mean temperature': lambda d: d.temp_mean,
    'Heating degree days': lambda d: d.heating_degree_days,
    'Max wind speed': lambda d: d.wind_max or 0.0,
    'Max wind gust': lambda d: d.wind_gust_max or 0.0,
    'Prior-day min temp': lambda d: d.prior_day_temp_min if d.prior_day_temp_min is not None else d.temp_min,
    'Weekend': lambda d: 1.0 if d.is_weekend else 0.0,
    'Solar production': lambda d: d.solar_kwh,
}


def _is_constant(values: np.ndarray) -> bool:
    # Equal up to float rounding, e.g. sums of identical 5-minute readings
    return bool(np.allclose(values, values[0]))


def rank_root_causes(days: Sequence[ClassifiedDay]) -> List[CorrelationFactor]:
    """Pearson correlation of each factor with adjusted kWh, by |r| descending."""
    normal = [d for d in days if d.is_modelable]
    if len(normal) < MIN_DAYS:
        return []

    target = np.array([d.adjusted_kwh for d in normal])
    ranked = []
    for name, get in FACTORS.items():
        values = np.array([float(get(d)) for d in normal])
        # Constant columns (e.g. no weekend in the sample) have no correlation
        if _is_constant(values) or _is_constant(target):
            corr = 0.0
        else:
            corr, _ = stats.pearsonr(values, target)
            if not np.isfinite(corr):
                corr = 0.0
        ranked.append(CorrelationFactor(name, float(corr)))

    return sorted(ranked, key=lambda c: -abs(c.correlation))
