"""Cron scheduler: register(expression, callback), fire callbacks whose cron matches the current minute."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from croniter import croniter

logger = logging.getLogger(__name__)


def cron_matches(expression: str, now: datetime) -> bool:
    """True if the cron expression fires in the minute containing ``now``."""
    now_trunc = now.replace(second=0, microsecond=0)
    base = now_trunc - timedelta(minutes=1)
    next_run = croniter(expression, base).get_next(datetime)
    return next_run.replace(second=0, microsecond=0) == now_trunc


@dataclass
class ScheduledJob:
    name: str
    expression: str
    callback: Callable[[], Any]


class CronScheduler:
    """In-process scheduler; registration happens once during wiring."""

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.jobs: list[ScheduledJob] = []
        self._clock = clock
        self._sleep = sleep
        self._last_minute: datetime | None = None

    def register(self, expression: str, callback: Callable[[], Any], name: str = "") -> None:
        if not croniter.is_valid(expression):
            raise ValueError(f"invalid cron expression: {expression!r}")
        job = ScheduledJob(name or expression, expression, callback)
        self.jobs.append(job)
        logger.info("registered job %s (%s)", job.name, expression)

    def due(self, now: datetime) -> list[ScheduledJob]:
        return [j for j in self.jobs if cron_matches(j.expression, now)]

    def tick(self, now: datetime) -> int:
        """Run every job due at ``now``; a failing job is logged and does not stop the others."""
        minute = now.replace(second=0, microsecond=0)
        if minute == self._last_minute:
            return 0
        self._last_minute = minute
        ran = 0
        for job in self.due(now):
            logger.info("running job %s", job.name)
            try:
                job.callback()
            except Exception as e:
                logger.exception("job failed name=%s: %s", job.name, e)
            ran += 1
        return ran

    def run_forever(self, stop: threading.Event | None = None) -> None:
        logger.info("scheduler started with %s job(s)", len(self.jobs))
        while stop is None or not stop.is_set():
            now = self._clock()
            self.tick(now)
            # wake shortly after the next minute boundary
            now = self._clock()
            wait = 60 - now.second - now.microsecond / 1_000_000 + 0.5
            self._sleep(wait)
