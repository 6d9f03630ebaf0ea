"""Guarded external calls and stage results."""

import asyncio
import json

import httpx
import pytest

from hvac_analysis.results import MalformedResponseError, Ok, Skipped, guarded_call


async def _value(v):
    return v


async def _raise(exc):
    raise exc


async def _slow():
    await asyncio.sleep(5)
    return 'late'


@pytest.mark.asyncio
async def test_ok():
    result = await guarded_call('weather', _value([1, 2]), timeout=1.0)
    assert result == Ok([1, 2])


@pytest.mark.asyncio
async def test_timeout_is_skipped():
    result = await guarded_call('telemetry', _slow(), timeout=0.01)
    assert isinstance(result, Skipped)
    assert 'timed out' in result.reason


@pytest.mark.asyncio
@pytest.mark.parametrize('exc', [
    httpx.ConnectError('connection refused'),
    MalformedResponseError('no time_series'),
    FileNotFoundError('month_2026-01-01.json'),
    json.JSONDecodeError('Expecting value', '{', 1),
])
async def test_recoverable_errors_are_skipped(exc):
    result = await guarded_call('telemetry', _raise(exc))
    assert isinstance(result, Skipped)
    assert result.reason.startswith('telemetry:')


@pytest.mark.asyncio
async def test_programming_errors_propagate():
    with pytest.raises(TypeError):
        await guarded_call('telemetry', _raise(TypeError('bad call')))


@pytest.mark.asyncio
@pytest.mark.parametrize('exc', [
    ValueError('could not convert string to float'),
    PermissionError('export directory not readable'),
    KeyError('home_energy'),
])
async def test_non_data_errors_propagate(exc):
    with pytest.raises(type(exc)):
        await guarded_call('telemetry', _raise(exc), timeout=1.0)
