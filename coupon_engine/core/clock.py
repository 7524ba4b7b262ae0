from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime: ...


def today(clock: Clock) -> date:
    return clock.now().date()


def weekday(clock: Clock) -> int:
    """Current weekday with 0 = Sunday ... 6 = Saturday."""
    return (clock.now().weekday() + 1) % 7


def time_of_day(clock: Clock) -> str:
    """Zero-padded ``HHMMSS`` wall-clock time, comparable lexicographically."""
    return clock.now().strftime("%H%M%S")


@dataclass(frozen=True)
class SystemClock:
    tz: str = "UTC"

    def now(self) -> datetime:
        return datetime.now(ZoneInfo(self.tz))


@dataclass
class FixedClock:
    """Clock pinned to a single instant; tests move it with ``set``."""

    current: datetime

    def now(self) -> datetime:
        if self.current.tzinfo is None:
            return self.current.replace(tzinfo=timezone.utc)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value
