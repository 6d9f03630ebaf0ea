"""
Sustained high-power signature detection on sub-daily telemetry.

A sauna session (~12 kW for 1-2 hours) shows up as a run of consecutive
intervals above a fixed power threshold. Only statistically high-consumption
normal days are inspected, which bounds the number of sub-daily fetches.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable, List, Sequence

import numpy as np

from .config import AnalysisConfig
from .records import ClassifiedDay, DayType, StageWarnings, SubDailyInterval
from .results import Ok, StageResult

logger = logging.getLogger(__name__)

IntradayFetcher = Callable[[date], Awaitable[StageResult]]


@dataclass(frozen=True)
class RunSummary:
    length: int
    energy_wh: float


def find_longest_run(intervals: Sequence[SubDailyInterval], threshold_wh: float) -> RunSummary:
    """Longest run of consecutive intervals with ``home_energy_wh > threshold_wh``.

    Intervals are scanned in timestamp order; any interval at or below the
    threshold breaks the run. The first of equally long runs wins.
    """
    best_length, best_wh = 0, 0.0
    length, run_wh = 0, 0.0
    for interval in sorted(intervals, key=lambda i: i.timestamp):
        if interval.home_energy_wh > threshold_wh:
            length += 1
            run_wh += interval.home_energy_wh
            if length > best_length:
                best_length, best_wh = length, run_wh
        else:
            length, run_wh = 0, 0.0
    return RunSummary(best_length, best_wh)


class SignalPatternDetector:
    """Reclassifies high-consumption normal days that carry a high-power run."""

    def __init__(self, config: AnalysisConfig):
        self.config = config

    def candidate_threshold(self, days: Sequence[ClassifiedDay]) -> float:
        normal = np.array([d.home_kwh for d in days if d.type is DayType.NORMAL])
        if normal.size == 0:
            return float('inf')
        mean, stddev = normal.mean(), normal.std()
        threshold = mean + self.config.candidate_sigma * stddev
        logger.info(f"  Mean daily consumption: {mean:.1f} kWh, StdDev: {stddev:.1f} kWh")
        logger.info(f"  Threshold: {threshold:.1f} kWh (or {self.config.candidate_floor_kwh:.0f} kWh minimum)")
        return max(threshold, self.config.candidate_floor_kwh)

    def candidates(self, days: Sequence[ClassifiedDay]) -> List[ClassifiedDay]:
        threshold = self.candidate_threshold(days)
        return [d for d in days if d.type is DayType.NORMAL and d.home_kwh > threshold]

    def inspect(self, day: ClassifiedDay, intervals: Sequence[SubDailyInterval]) -> ClassifiedDay:
        """Return ``day`` reclassified when the series carries the signature."""
        run = find_longest_run(intervals, self.config.high_power_wh)
        if run.length >= self.config.min_run_intervals:
            logger.info(f"    HIGH-LOAD DETECTED on {day.date}: {run.length} consecutive "
                        f"high-power intervals, ~{run.energy_wh / 1000:.1f} kWh")
            return day.as_high_load(run.energy_wh / 1000)
        logger.info(f"    No high-load pattern on {day.date} (max consecutive high-power: {run.length})")
        return day

    async def refine(self, days: Sequence[ClassifiedDay], fetch: IntradayFetcher,
                     warnings: StageWarnings) -> List[ClassifiedDay]:
        logger.info("Detecting high-load sessions from sub-daily data...")
        suspects = self.candidates(days)
        logger.info(f"  Suspect days: {len(suspects)}")

        refined = {}
        for suspect in suspects:
            logger.info(f"  Checking {suspect.date} ({suspect.home_kwh:.1f} kWh)...")
            result = await fetch(suspect.date)
            if not isinstance(result, Ok):
                warnings.add(f"High-load check skipped for {suspect.date} ({result.reason})")
                continue
            refined[suspect.date] = self.inspect(suspect, result.value)

        return [refined.get(d.date, d) for d in days]
