"""
Stage result types and error taxonomy.

External calls go through ``guarded_call`` so the skip-vs-abort policy lives in
one place: timeouts, transport errors and malformed payloads become
``Skipped``; anything else propagates.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar, Union

import httpx

logger = logging.getLogger(__name__)

T = TypeVar('T')


class AnalysisError(Exception):
    """Base class for analysis errors."""


class InsufficientDataError(AnalysisError):
    """Too few normal days to fit any global model. Fatal."""


class DegenerateFitError(AnalysisError):
    """Normal-equations system is singular or under-determined."""


class MalformedResponseError(AnalysisError):
    """An external source returned a payload that cannot be parsed."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Skipped:
    reason: str


@dataclass(frozen=True)
class Fatal:
    reason: str


StageResult = Union[Ok, Skipped, Fatal]

# Errors that mean "this piece of data is unavailable", never a bug
RECOVERABLE_ERRORS = (
    asyncio.TimeoutError,
    httpx.HTTPError,
    MalformedResponseError,
    json.JSONDecodeError,
    FileNotFoundError,
)


async def guarded_call(label: str, call: Awaitable[T], timeout: Optional[float] = None) -> StageResult:
    """Await one external call, mapping recoverable failures to ``Skipped``."""
    try:
        if timeout is not None:
            value = await asyncio.wait_for(call, timeout=timeout)
        else:
            value = await call
    except asyncio.TimeoutError:
        logger.warning(f"{label}: timed out after {timeout:.0f}s")
        return Skipped(f"{label}: timed out")
    except RECOVERABLE_ERRORS as e:
        logger.warning(f"{label}: {e}")
        return Skipped(f"{label}: {e}")
    return Ok(value)
