"""Hourly drill-down of the most extreme anomalies."""

import logging
from dataclasses import replace
from typing import List, Sequence, Tuple

import pandas as pd
import pytz

from .config import AnalysisConfig
from .records import AnomalyRecord, DrillDown, HourlyBucket, StageWarnings, SubDailyInterval
from .results import Ok
from .signal_pattern import IntradayFetcher

logger = logging.getLogger(__name__)

OVERNIGHT_HOURS = range(0, 6)
MORNING_HOURS = range(6, 9)

OVERNIGHT_RAMP_RATIO = 1.5
OVERNIGHT_RAMP_FLOOR_WH = 2000
MORNING_SURGE_RATIO = 1.8
MORNING_SURGE_FLOOR_WH = 3000
SUSTAINED_HIGH_FLOOR_WH = 3000
SUSTAINED_HIGH_MIN_HOURS = 6
PEAK_FLOOR_WH = 4000


def aggregate_to_hourly(intervals: Sequence[SubDailyInterval],
                        tz: pytz.BaseTzInfo = None) -> Tuple[HourlyBucket, ...]:
    """24 local-hour buckets; hours without data have ``interval_count == 0``."""
    if not intervals:
        return tuple(HourlyBucket(hour) for hour in range(24))

    df = pd.DataFrame({
        'timestamp': [i.timestamp.astimezone(tz) if tz else i.timestamp for i in intervals],
        'home_wh': [i.home_energy_wh for i in intervals],
        'solar_wh': [i.solar_energy_wh for i in intervals],
    })
    df['hour'] = df['timestamp'].map(lambda ts: ts.hour)
    grouped = df.groupby('hour').agg(home_wh=('home_wh', 'sum'),
                                     solar_wh=('solar_wh', 'sum'),
                                     interval_count=('home_wh', 'size'))
    grouped = grouped.reindex(range(24), fill_value=0)

    return tuple(
        HourlyBucket(hour=int(hour), home_wh=float(row.home_wh),
                     solar_wh=float(row.solar_wh), interval_count=int(row.interval_count))
        for hour, row in grouped.iterrows()
    )


def detect_hourly_patterns(hourly: Sequence[HourlyBucket]) -> List[str]:
    """Independent load-shape checks; any subset may fire."""
    patterns = []
    with_data = [h for h in hourly if h.interval_count > 0]

    # Overnight ramp: consumption escalating 12am-6am
    overnight = [h for h in with_data if h.hour in OVERNIGHT_HOURS]
    if len(overnight) >= 4:
        first, last = overnight[0].home_wh, overnight[-1].home_wh
        if last >= first * OVERNIGHT_RAMP_RATIO and last > OVERNIGHT_RAMP_FLOOR_WH:
            patterns.append('overnight-ramp')

    # Morning surge: 6-9am spike over the overnight average
    night_avg = sum(h.home_wh for h in overnight) / len(overnight) if overnight else 0.0
    morning_max = max((h.home_wh for h in with_data if h.hour in MORNING_HOURS), default=0.0)
    if morning_max >= night_avg * MORNING_SURGE_RATIO and morning_max > MORNING_SURGE_FLOOR_WH:
        patterns.append('morning-surge')

    if sum(1 for h in with_data if h.home_wh > SUSTAINED_HIGH_FLOOR_WH) >= SUSTAINED_HIGH_MIN_HOURS:
        patterns.append('sustained-high')

    if with_data:
        peak = max(with_data, key=lambda h: h.home_wh)
        if peak.home_wh > PEAK_FLOOR_WH:
            patterns.append(f"peak-{peak.hour:02d}:00-{peak.home_wh / 1000:.1f}kWh")

    return patterns


def top_anomalies(anomalies: Sequence[AnomalyRecord], limit: int) -> List[AnomalyRecord]:
    return sorted(anomalies, key=lambda a: (-abs(a.z_score), a.date))[:limit]


def with_drilldown_cause(anomaly: AnomalyRecord, patterns: Sequence[str]) -> AnomalyRecord:
    if not patterns:
        return anomaly
    drill_cause = ', '.join(patterns)
    cause = drill_cause if anomaly.suspected_cause == 'Unknown' else f"{anomaly.suspected_cause}; {drill_cause}"
    return replace(anomaly, suspected_cause=cause)


class DrillDownAnalyzer:
    """Fetches sub-daily data for the top-N anomalies and tags load shapes."""

    def __init__(self, config: AnalysisConfig):
        self.config = config
        self.tz = pytz.timezone(config.timezone)

    async def run(self, anomalies: Sequence[AnomalyRecord], fetch: IntradayFetcher,
                  warnings: StageWarnings) -> Tuple[List[AnomalyRecord], List[DrillDown]]:
        """Returns the anomaly list with drill-down causes appended, and the drill-downs."""
        logger.info("Drilling down into anomalous days...")
        drilldowns = []
        for anomaly in top_anomalies(anomalies, self.config.drilldown_limit):
            logger.info(f"  Fetching sub-daily data for {anomaly.date}...")
            result = await fetch(anomaly.date)
            if not isinstance(result, Ok):
                warnings.add(f"Drill-down skipped for {anomaly.date} ({result.reason})")
                continue
            hourly = aggregate_to_hourly(result.value, self.tz)
            patterns = detect_hourly_patterns(hourly)
            drilldowns.append(DrillDown(anomaly=anomaly, hourly=hourly, patterns=tuple(patterns)))
            logger.info(f"    Patterns: {', '.join(patterns) or 'none detected'}")

        by_date = {dd.date: dd.patterns for dd in drilldowns}
        enriched = [with_drilldown_cause(a, by_date.get(a.date, ())) for a in anomalies]
        return enriched, drilldowns
