from collections import Counter
from threading import Lock
from typing import Counter as CounterType, Dict


class CouponMetrics:
    """In-process counters for redemption outcomes and store health."""

    def __init__(self) -> None:
        self._counts: CounterType[str] = Counter()
        self._lock = Lock()

    def incr(self, key: str, by: int = 1) -> None:
        with self._lock:
            self._counts[key] += by

    def snapshot(self, prefix: str = "") -> Dict[str, int]:
        with self._lock:
            return {key: value for key, value in self._counts.items() if key.startswith(prefix)}

    def clear(self) -> None:
        with self._lock:
            self._counts.clear()


_metrics = CouponMetrics()


def record_redemption(status: str) -> None:
    _metrics.incr(f"redemptions_{status}")


def record_commit_race_lost() -> None:
    _metrics.incr("redemption_commit_races_lost")


def record_code_conflict() -> None:
    _metrics.incr("coupon_code_conflicts")


def record_storage_failure(operation: str) -> None:
    _metrics.incr(f"storage_failures_{operation}")


def snapshot(prefix: str = "") -> Dict[str, int]:
    return _metrics.snapshot(prefix)


def reset() -> None:
    _metrics.clear()
