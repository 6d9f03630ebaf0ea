"""
Data sources: telemetry, weather, the known-high-load cross-reference and the
raw-data cache.

Vendor protocol clients live outside this package; anything that can return
an energy-history payload can be wrapped as a ``TelemetrySource``.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

import httpx
import pytz
from dateutil.parser import isoparse

from .records import DailyEnergyRecord, SubDailyInterval, WeatherDailyRecord
from .results import MalformedResponseError

logger = logging.getLogger(__name__)

OPEN_METEO_ARCHIVE_URL = 'https://archive-api.open-meteo.com/v1/archive'

# payload key -> SubDailyInterval field; first key present wins
_INTERVAL_FIELDS = {
    'home_energy_wh': ('home_energy',),
    'solar_energy_wh': ('solar_energy',),
    'grid_imported_wh': ('grid_energy_imported',),
    'grid_exported_wh': ('grid_energy_exported',),
    'battery_charged_wh': ('battery_energy_imported', 'battery_energy_charged'),
    'battery_discharged_wh': ('battery_energy_exported', 'battery_energy_discharged'),
}


def parse_timestamp(value: str, tz: pytz.BaseTzInfo) -> datetime:
    """Parse an ISO-8601 timestamp and express it in the local timezone."""
    ts = isoparse(value)
    if ts.tzinfo is None:
        return tz.localize(ts)
    return ts.astimezone(tz)


def parse_time_series(payload: Dict, tz: pytz.BaseTzInfo) -> List[SubDailyInterval]:
    """Convert an energy-history payload into intervals."""
    if not isinstance(payload, dict) or not isinstance(payload.get('time_series'), list):
        raise MalformedResponseError('energy history payload has no time_series list')

    intervals = []
    for entry in payload['time_series']:
        if not isinstance(entry, dict) or 'timestamp' not in entry:
            raise MalformedResponseError(f"time_series entry without timestamp: {str(entry)[:100]}")
        values = {}
        try:
            for field_name, keys in _INTERVAL_FIELDS.items():
                raw = next((entry[k] for k in keys if entry.get(k) is not None), 0)
                values[field_name] = float(raw)
            timestamp = parse_timestamp(entry['timestamp'], tz)
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"bad time_series entry {str(entry)[:100]}: {e}") from e
        intervals.append(SubDailyInterval(timestamp=timestamp, **values))
    return intervals


# =============================================================================
# TELEMETRY
# =============================================================================

class TelemetrySource(ABC):
    """Read-only energy history. ``period`` is one of day/week/month."""

    @abstractmethod
    async def fetch_history(self, period: str, end_date: date) -> List[SubDailyInterval]:
        """Intervals for the ``period`` window ending at ``end_date``."""

    async def fetch_day(self, day: date) -> List[SubDailyInterval]:
        """Sub-daily series for one calendar day."""
        # A "day" query returns the day before end_date
        intervals = await self.fetch_history('day', day + timedelta(days=1))
        return [i for i in intervals if i.timestamp.date() == day]


class JsonDirectoryTelemetrySource(TelemetrySource):
    """Energy-history payloads exported as ``<period>_<end_date>.json``."""

    def __init__(self, directory: Union[str, Path], timezone: str = 'America/New_York'):
        self.directory = Path(directory)
        self.tz = pytz.timezone(timezone)

    async def fetch_history(self, period: str, end_date: date) -> List[SubDailyInterval]:
        path = self.directory / f"{period}_{end_date.isoformat()}.json"
        try:
            payload = await asyncio.to_thread(_read_json, path)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"{path.name}: {e}") from e
        intervals = parse_time_series(payload, self.tz)
        logger.debug(f"Read {len(intervals)} intervals from {path}")
        return intervals


def _read_json(path: Path):
    with open(path, 'r') as f:
        return json.load(f)


# =============================================================================
# WEATHER
# =============================================================================

class WeatherSource(ABC):
    """Read-only daily weather archive."""

    @abstractmethod
    async def fetch_daily(self, latitude: float, longitude: float,
                          start: date, end: date) -> List[WeatherDailyRecord]:
        """One record per calendar date in ``[start, end]``."""


class OpenMeteoWeatherSource(WeatherSource):
    """Open-Meteo archive API (free, no key)."""

    def __init__(self, timezone: str = 'America/New_York',
                 url: str = OPEN_METEO_ARCHIVE_URL,
                 timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timezone = timezone
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def fetch_daily(self, latitude: float, longitude: float,
                          start: date, end: date) -> List[WeatherDailyRecord]:
        params = {
            'latitude': latitude,
            'longitude': longitude,
            'start_date': start.isoformat(),
            'end_date': end.isoformat(),
            'daily': ','.join([
                'temperature_2m_max', 'temperature_2m_min', 'temperature_2m_mean',
                'wind_speed_10m_max', 'wind_gusts_10m_max',
            ]),
            'temperature_unit': 'fahrenheit',
            'wind_speed_unit': 'mph',
            'timezone': self.timezone,
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(self.url, params=params)
            response.raise_for_status()
            payload = response.json()
        return parse_open_meteo_daily(payload)


def parse_open_meteo_daily(payload: Dict) -> List[WeatherDailyRecord]:
    daily = payload.get('daily') if isinstance(payload, dict) else None
    if not daily or not daily.get('time'):
        raise MalformedResponseError(f"Invalid weather response: {str(payload)[:300]}")

    def column(name):
        values = daily.get(name) or []
        return lambda i: values[i] if i < len(values) else None

    t_max, t_min, t_mean = column('temperature_2m_max'), column('temperature_2m_min'), column('temperature_2m_mean')
    wind, gust = column('wind_speed_10m_max'), column('wind_gusts_10m_max')

    records = []
    for i, day in enumerate(daily['time']):
        if t_min(i) is None or t_mean(i) is None:
            logger.debug(f"Weather for {day} incomplete, skipping")
            continue
        try:
            day = date.fromisoformat(day)
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"Invalid weather date {day!r}") from e
        records.append(WeatherDailyRecord(
            date=day,
            temp_max=t_max(i) if t_max(i) is not None else t_mean(i),
            temp_min=t_min(i),
            temp_mean=t_mean(i),
            wind_max=wind(i),
            wind_gust_max=gust(i),
        ))
    return records


# =============================================================================
# KNOWN HIGH-LOAD DAYS
# =============================================================================

def load_known_high_load_days(path: Optional[Union[str, Path]]) -> Set[date]:
    """Dates already known to contain a confounding load (e.g. sauna sessions).

    Accepts the appliance-history layout ``{"dailyStats": [{"date", "saunaUsed"}]}``
    or a flat ``{"YYYY-MM-DD": true}`` mapping. A missing file is an empty set.
    """
    if path is None or not Path(path).exists():
        return set()
    with open(path, 'r') as f:
        data = json.load(f)

    if isinstance(data, dict) and 'dailyStats' in data:
        entries = ((d.get('date'), d.get('saunaUsed')) for d in data['dailyStats'])
    elif isinstance(data, dict):
        entries = data.items()
    else:
        raise MalformedResponseError(f"{path}: unrecognised high-load history layout")

    days = {date.fromisoformat(d[:10]) for d, flag in entries if d and flag}
    logger.info(f"Loaded {len(days)} known high-load days from {path}")
    return days


# =============================================================================
# RAW-DATA CACHE
# =============================================================================

class RawDataCache:
    """JSON cache of raw inputs so repeated runs can skip re-fetching."""

    def __init__(self, path: Union[str, Path], timezone: str = 'America/New_York'):
        self.path = Path(path)
        self.tz = pytz.timezone(timezone)
        self.daily: List[DailyEnergyRecord] = []
        self.weather: List[WeatherDailyRecord] = []
        self.intraday: Dict[date, List[SubDailyInterval]] = {}

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> 'RawDataCache':
        with open(self.path, 'r') as f:
            data = json.load(f)
        self.daily = [
            DailyEnergyRecord(**{**d, 'date': date.fromisoformat(d['date'])})
            for d in data.get('daily', [])
        ]
        self.weather = [
            WeatherDailyRecord(**{**w, 'date': date.fromisoformat(w['date'])})
            for w in data.get('weather', [])
        ]
        self.intraday = {
            date.fromisoformat(day): [
                SubDailyInterval(**{**i, 'timestamp': parse_timestamp(i['timestamp'], self.tz)})
                for i in intervals
            ]
            for day, intervals in data.get('intraday', {}).items()
        }
        logger.info(f"Loaded cache {self.path}: {len(self.daily)} days, "
                    f"{len(self.weather)} weather records, {len(self.intraday)} sub-daily series")
        return self

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            'daily': [_record_dict(d) for d in self.daily],
            'weather': [_record_dict(w) for w in self.weather],
            'intraday': {
                day.isoformat(): [_record_dict(i) for i in intervals]
                for day, intervals in sorted(self.intraday.items())
            },
        }
        with open(self.path, 'w') as f:
            json.dump(data, f, indent=2)
        logger.info(f"Cached raw data to {self.path}")

    def store_intraday(self, day: date, intervals: Iterable[SubDailyInterval]) -> None:
        self.intraday[day] = list(intervals)


def _record_dict(record) -> Dict:
    out = {}
    for key, value in vars(record).items():
        out[key] = value.isoformat() if isinstance(value, (date, datetime)) else value
    return out
