# Overview: Interval job scheduler driven by the injectable clock.

"""
Periodic sweep scheduler.

WHY: Session idle expiry, third-party grant expiry and the payment overdue
check all run on fixed intervals. Jobs are evaluated against the app clock
(see time_utils), so tests advance a ManualClock and call run_pending()
instead of sleeping. Production runs the same jobs from a daemon thread.

RULES:
- A due job runs once per run_pending() call, even if several intervals were
  missed while the process was idle. Its next run is rescheduled from "now".
- A failing job is logged and rescheduled; it never stops the other jobs.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from flask import Flask, current_app, has_app_context

from .time_utils import Clock, get_clock


@dataclass
class ScheduledJob:
    name: str
    interval: timedelta
    func: Callable[[], object]
    next_run: datetime | None = None
    last_run: datetime | None = None
    run_count: int = field(default=0)


class Scheduler:
    def __init__(self, app: Flask | None = None, clock: Clock | None = None, tick_seconds: float = 1.0):
        self.app = app
        self._clock = clock
        self.tick_seconds = tick_seconds
        self._jobs: dict[str, ScheduledJob] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def clock(self) -> Clock:
        if self._clock is not None:
            return self._clock
        if self.app is not None:
            return self.app.extensions.get("clock") or get_clock()
        return get_clock()

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def every(self, interval: timedelta, name: str, func: Callable[[], object], *, run_immediately: bool = False) -> ScheduledJob:
        """Register func to run every interval. The first run is one interval from now unless run_immediately."""
        if interval <= timedelta(0):
            raise ValueError("Job interval must be positive")
        now = self.clock.now()
        job = ScheduledJob(
            name=name,
            interval=interval,
            func=func,
            next_run=now if run_immediately else now + interval,
        )
        with self._lock:
            if name in self._jobs:
                raise ValueError(f"Job '{name}' is already scheduled")
            self._jobs[name] = job
        return job

    def cancel(self, name: str) -> bool:
        with self._lock:
            return self._jobs.pop(name, None) is not None

    def due_jobs(self) -> list[ScheduledJob]:
        now = self.clock.now()
        with self._lock:
            return [job for job in self._jobs.values() if job.next_run is not None and job.next_run <= now]

    def run_pending(self) -> list[str]:
        """Run every due job once. Returns the names of the jobs that ran."""
        ran = []
        for job in self.due_jobs():
            self._run_job(job)
            ran.append(job.name)
        return ran

    def _run_job(self, job: ScheduledJob) -> None:
        try:
            if self.app is None or (has_app_context() and current_app._get_current_object() is self.app):
                job.func()
            else:
                with self.app.app_context():
                    job.func()
        except Exception:
            if self.app is not None:
                self.app.logger.exception("Scheduled job '%s' failed", job.name)
            else:
                raise
        finally:
            now = self.clock.now()
            job.last_run = now
            job.run_count += 1
            job.next_run = now + job.interval

    # Background driver

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="spa-registry-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_pending()
            self._stop.wait(self.tick_seconds)
