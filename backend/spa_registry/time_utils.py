from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from flask import current_app, has_app_context


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC (naive, canonical)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class ManualClock:
    """
    Clock that only moves when told to.

    Installed on the app in tests so expiry windows can be crossed
    deterministically without sleeping.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or SystemClock().now()
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta | None = None, **kwargs) -> datetime:
        step = delta if delta is not None else timedelta(**kwargs)
        if step < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now = self._now + step
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = value


_system_clock = SystemClock()


def get_clock() -> Clock:
    """Clock registered on the current app, or the system clock outside a request/app context."""
    if has_app_context():
        clock = current_app.extensions.get("clock")
        if clock is not None:
            return clock
    return _system_clock


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return get_clock().now()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
