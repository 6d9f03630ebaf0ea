"""Residual-based anomaly detection against the fitted consumption model."""

import logging
from typing import List, Sequence, Tuple

import numpy as np

from .config import AnalysisConfig
from .records import AnomalyRecord, ClassifiedDay, Direction, ModeledDay, ResidualStats
from .regression import SegmentedModel

logger = logging.getLogger(__name__)


def z_score(residual: float, stats: ResidualStats) -> float:
    return (residual - stats.mean) / stats.stddev if stats.stddev > 0 else 0.0


def suspected_cause(day: ClassifiedDay, direction: Direction) -> str:
    """Weather/solar heuristic label for an anomalous day."""
    wind = day.wind_max or 0.0
    gust = day.wind_gust_max or 0.0
    if day.temp_min <= 5:
        return 'Extreme cold, COP degradation + defrost'
    if wind > 30:
        return 'High wind, infiltration + coil efficiency loss'
    if direction is Direction.LOW:
        if day.solar_kwh > 10:
            return f'High solar ({day.solar_kwh:.0f} kWh) offset HVAC demand; passive solar gain'
        if day.temp_min > 40:
            return 'Mild day, low heating demand'
        if wind < 8:
            return 'Calm day, reduced infiltration losses'
        return 'Unknown'
    if gust > 35:
        return 'High wind gusts, infiltration + coil efficiency loss'
    return 'Possible occupancy/cooking/unusual load'


class AnomalyDetector:
    """Flags modeled normal days whose standardized residual exceeds the threshold."""

    def __init__(self, config: AnalysisConfig):
        self.config = config

    def model_days(self, days: Sequence[ClassifiedDay],
                   model: SegmentedModel) -> Tuple[List[ModeledDay], ResidualStats]:
        normal = [d for d in days if d.is_modelable]
        expected = [model.predict(d) for d in normal]
        residuals = np.array([d.adjusted_kwh - e for d, e in zip(normal, expected)])

        stats = ResidualStats(
            mean=float(residuals.mean()) if residuals.size else 0.0,
            stddev=float(residuals.std()) if residuals.size else 0.0,
        )
        modeled = [
            ModeledDay(day=d, expected_kwh=e, residual_kwh=float(r), z_score=z_score(float(r), stats))
            for d, e, r in zip(normal, expected, residuals)
        ]
        return modeled, stats

    def detect(self, modeled: Sequence[ModeledDay]) -> List[AnomalyRecord]:
        logger.info("Detecting anomalies...")
        anomalies = []
        for m in modeled:
            if abs(m.z_score) <= self.config.anomaly_sigma:
                continue
            direction = Direction.HIGH if m.z_score > 0 else Direction.LOW
            anomalies.append(AnomalyRecord(
                date=m.date,
                direction=direction,
                actual_kwh=m.day.adjusted_kwh,
                expected_kwh=m.expected_kwh,
                residual_kwh=m.residual_kwh,
                z_score=m.z_score,
                suspected_cause=suspected_cause(m.day, direction),
            ))
            logger.info(f"  {direction.value} anomaly: {m.date} (actual={m.day.adjusted_kwh:.1f}, "
                        f"expected={m.expected_kwh:.1f}, residual={m.residual_kwh:.1f}, z={m.z_score:.2f})")
        logger.info(f"  Found {len(anomalies)} anomalies")
        return anomalies

    def run(self, days: Sequence[ClassifiedDay], model: SegmentedModel):
        modeled, stats = self.model_days(days, model)
        logger.info(f"  Residual mean: {stats.mean:.2f} kWh, StdDev: {stats.stddev:.2f} kWh")
        return modeled, stats, self.detect(modeled)
