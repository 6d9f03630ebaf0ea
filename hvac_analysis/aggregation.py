"""Telemetry aggregation: overlapping range queries -> deduplicated daily totals."""

import logging
from datetime import date, datetime
from typing import Iterable, List, Sequence, Set, Tuple

import pandas as pd

from .config import AnalysisConfig, TelemetryQuery
from .records import DailyEnergyRecord, StageWarnings, SubDailyInterval
from .results import Ok, guarded_call
from .sources import TelemetrySource

logger = logging.getLogger(__name__)

ENERGY_COLUMNS = [
    'home_energy_wh', 'solar_energy_wh', 'grid_imported_wh',
    'grid_exported_wh', 'battery_charged_wh', 'battery_discharged_wh',
]


class TelemetryAggregator:
    """Sums sub-daily intervals per date, counting each timestamp once.

    Adjacent queries overlap on boundary dates (Dec 1 appears in both the
    November and December month windows), so consumed timestamps are tracked.
    """

    def __init__(self, start_date: date, end_date: date):
        self.start_date = start_date
        self.end_date = end_date
        self._seen: Set[datetime] = set()
        self._accepted: List[SubDailyInterval] = []
        self.duplicates = 0

    def add(self, intervals: Iterable[SubDailyInterval]) -> Tuple[int, int]:
        """Consume one query result. Returns ``(added, duplicate)`` counts."""
        added = skipped = 0
        for interval in intervals:
            day = interval.timestamp.date()
            if day < self.start_date or day > self.end_date:
                continue
            if interval.timestamp in self._seen:
                skipped += 1
                continue
            self._seen.add(interval.timestamp)
            self._accepted.append(interval)
            added += 1
        self.duplicates += skipped
        return added, skipped

    def records(self) -> List[DailyEnergyRecord]:
        """One record per date, sorted by date."""
        if not self._accepted:
            return []
        df = pd.DataFrame([vars(i) for i in self._accepted])
        df['date'] = df['timestamp'].map(lambda ts: ts.date())
        grouped = df.groupby('date')
        totals = grouped[ENERGY_COLUMNS].sum()
        counts = grouped.size()

        return [
            DailyEnergyRecord(
                date=day,
                interval_count=int(counts[day]),
                **{col: float(totals.at[day, col]) for col in ENERGY_COLUMNS},
            )
            for day in sorted(totals.index)
        ]


async def collect_daily_energy(source: TelemetrySource, config: AnalysisConfig,
                               warnings: StageWarnings,
                               queries: Sequence[TelemetryQuery] = None) -> List[DailyEnergyRecord]:
    """Run the telemetry query plan one call at a time and aggregate by date."""
    logger.info("Collecting daily energy data...")
    aggregator = TelemetryAggregator(config.start_date, config.end_date)

    for query in (queries if queries is not None else config.telemetry_queries):
        label = query.label or f"{query.period} ending {query.end_date}"
        result = await guarded_call(
            f"Telemetry {label}",
            source.fetch_history(query.period, query.end_date),
            timeout=config.request_timeout_s,
        )
        if not isinstance(result, Ok):
            warnings.add(f"Telemetry query skipped ({result.reason})")
            continue
        added, skipped = aggregator.add(result.value)
        logger.info(f"  {label}: {len(result.value)} intervals ({added} new, {skipped} duplicate)")

    records = aggregator.records()
    logger.info(f"  Total: {len(records)} unique days collected")
    return records
