from __future__ import annotations

import datetime as dt
from typing import Callable


UtcNow = Callable[[], dt.datetime]


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def get_utcnow() -> UtcNow:
    return utcnow


def to_epoch_seconds(value: dt.datetime) -> int:
    return int(value.timestamp())


def from_epoch_seconds(value: int | float) -> dt.datetime:
    return dt.datetime.fromtimestamp(value, tz=dt.UTC)
