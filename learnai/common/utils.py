"""
Common utility functions for the LearnAI backend.

Time helpers (all timestamps are naive UTC), rounding and small numeric
helpers shared by the mastery, streak and scheduling code.
"""

import math
import uuid
import datetime
from typing import Any, Iterable, List, Optional, TypeVar, Union

T = TypeVar("T")

Number = Union[int, float]


def utcnow() -> datetime.datetime:
    """Current time as a naive UTC datetime, the format stored in the database."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def serialize_datetime(obj: Any) -> str:
    """
    Serialize datetime objects to ISO format strings.

    Used as the ``default`` hook of ``json.dumps``.
    """
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()
    raise TypeError(f"Type {type(obj)} not serializable")


def parse_datetime(value: Optional[Union[str, datetime.datetime]]) -> Optional[datetime.datetime]:
    if value is None or isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.fromisoformat(value)


def parse_date(value: Optional[Union[str, datetime.date]]) -> Optional[datetime.date]:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(value)


def round_half_up(value: Number) -> int:
    """
    Round to the nearest integer with halves rounded up.

    ``round()`` uses banker's rounding (``round(2.5) == 2``); interval and
    score calculations need ``2.5 -> 3``.
    """
    return int(math.floor(value + 0.5))


def clamp(value: Number, minimum: Number, maximum: Number) -> Number:
    return max(minimum, min(maximum, value))


def safe_divide(numerator: Number, denominator: Number, default: Number = 0) -> float:
    if denominator == 0:
        return default
    return numerator / denominator


def unique(items: Iterable[T]) -> List[T]:
    """Order-preserving de-duplication."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result
