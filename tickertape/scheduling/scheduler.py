"""Named-job scheduler on top of APScheduler.

Jobs are described by JobSpec rows and registered in one place. Every firing
runs on the thread pool, so a slow job never delays another job's trigger,
and every handler is wrapped so that an exception is logged at the job
boundary instead of reaching the scheduler. Successive firings of one job may
overlap (bounded by the pool size) unless its JobSpec sets allow_overlap=False.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Dict, List, Optional

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED, JobEvent
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from tickertape.errors import ScheduleError

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 60
_EVERY_RE = re.compile(r"^@every\s+(\d+)\s*([smh])$", re.IGNORECASE)
_ALIASES = {
    "@hourly": "0 * * * *",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
}


def parse_schedule(expr: str, timezone: str = "UTC") -> BaseTrigger:
    """Turn a 5-field cron string or an `@every <n>[smh]` shorthand into a trigger.

    Intervals below one minute are rejected.
    """
    s = (expr or "").strip()
    if not s:
        raise ScheduleError("empty schedule")

    m = _EVERY_RE.match(s)
    if m:
        n = int(m.group(1))
        seconds = n * {"s": 1, "m": 60, "h": 3600}[m.group(2).lower()]
        if seconds < MIN_INTERVAL_SECONDS:
            raise ScheduleError(f"interval {s!r} is shorter than one minute")
        return IntervalTrigger(seconds=seconds, timezone=timezone)

    s = _ALIASES.get(s.lower(), s)
    if len(s.split()) != 5:
        raise ScheduleError(f"expected 5 cron fields in {expr!r}")
    try:
        return CronTrigger.from_crontab(s, timezone=timezone)
    except ValueError as e:
        raise ScheduleError(f"invalid cron expression {expr!r}: {e}") from e


@dataclass(frozen=True)
class JobSpec:
    name: str
    schedule: str
    handler: Callable[[], object]
    allow_overlap: bool = True


def _guarded(name: str, handler: Callable[[], object]) -> Callable[[], None]:
    @wraps(handler)
    def run() -> None:
        logger.debug(f"job {name}: start")
        try:
            handler()
        except Exception:
            logger.exception(f"job {name} failed")
        else:
            logger.debug(f"job {name}: done")
    return run


class JobScheduler:
    def __init__(self, *, max_workers: int = 8, timezone: str = "UTC", overlap_limit: Optional[int] = None):
        self.timezone = timezone
        self.overlap_limit = max(2, overlap_limit or max_workers)
        self._specs: Dict[str, JobSpec] = {}
        self._scheduler = BackgroundScheduler(
            timezone=timezone,
            executors={"default": ThreadPoolExecutor(max_workers=max_workers)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 30,
            },
        )
        self._scheduler.add_listener(self._on_skipped, EVENT_JOB_MAX_INSTANCES | EVENT_JOB_MISSED)

    def _on_skipped(self, event: JobEvent) -> None:
        if event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning(f"job {event.job_id}: previous run still in progress, skipping this firing")
        else:
            logger.warning(f"job {event.job_id}: missed scheduled run at {event.scheduled_run_time}")

    def register(self, spec: JobSpec) -> None:
        if spec.name in self._specs:
            raise ScheduleError(f"job {spec.name!r} already registered")
        trigger = parse_schedule(spec.schedule, self.timezone)
        self._scheduler.add_job(
            _guarded(spec.name, spec.handler),
            trigger=trigger,
            id=spec.name,
            name=spec.name,
            max_instances=self.overlap_limit if spec.allow_overlap else 1,
        )
        self._specs[spec.name] = spec
        logger.info(f"Registered job {spec.name} ({spec.schedule})")

    def register_all(self, specs: List[JobSpec]) -> None:
        for spec in specs:
            self.register(spec)

    @property
    def job_names(self) -> List[str]:
        return list(self._specs)

    def run_now(self, name: str) -> None:
        """Invoke a registered job synchronously, with the same error guard."""
        spec = self._specs.get(name)
        if spec is None:
            raise ScheduleError(f"unknown job {name!r}")
        _guarded(spec.name, spec.handler)()

    def start(self) -> None:
        self._scheduler.start()
        for job in self._scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.id} - next run: {job.next_run_time}")

    def shutdown(self, drain: bool = False) -> None:
        if not self._scheduler.running:
            return
        logger.info(f"Stopping scheduler ({'waiting for' if drain else 'not waiting for'} running jobs)")
        self._scheduler.shutdown(wait=drain)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def next_run_time(self, name: str) -> Optional[object]:
        job = self._scheduler.get_job(name)
        return getattr(job, "next_run_time", None) if job else None
