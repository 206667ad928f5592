"""
Cron scheduler for the engine's background jobs.

Jobs are coroutines registered under a unique name with a five field cron
expression (minute hour day-of-month month day-of-week, UTC). Firing is
delegated to APScheduler's AsyncIOScheduler on the running event loop;
this module keeps the job registry, overlap guard and run bookkeeping.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from celery.schedules import ParseException, crontab_parser

from looptrading.core.exceptions import JobRegistrationError

logger = logging.getLogger(__name__)

JobHandler = Callable[[], Awaitable[None]]

# APScheduler numbers weekdays from Monday (0); crontab from Sunday (0)
_WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _crontab_day_of_week(field: str) -> str:
    if field == "*":
        return field
    # 0-7 so that 7 is accepted as Sunday too
    days = sorted({day % 7 for day in crontab_parser(8).parse(field)})
    return ",".join(_WEEKDAY_NAMES[day] for day in days)


def parse_cron(expression: str) -> CronTrigger:
    """Parse a five field cron expression; raises ValueError when invalid."""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"expected 5 fields, got {len(fields)}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    try:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day_of_month,
            month=month_of_year,
            day_of_week=_crontab_day_of_week(day_of_week),
            timezone=timezone.utc,
        )
    except (ParseException, ValueError) as e:
        raise ValueError(str(e)) from e


@dataclass
class JobStatus:
    name: str
    expression: str
    running: bool
    last_run: Optional[str]


@dataclass
class ScheduledJob:
    name: str
    expression: str
    trigger: CronTrigger
    handler: JobHandler
    prevent_overlap: bool = True
    running: bool = False
    executing: bool = False
    last_run: Optional[datetime] = None


class Scheduler:
    """Runs registered jobs on their cron schedule on the current event loop."""

    def __init__(self, now: Callable[[], datetime] = _utcnow):
        self._now = now
        self._jobs: dict[str, ScheduledJob] = {}
        self._executions: set[asyncio.Task] = set()
        self._started = False
        self._aps = AsyncIOScheduler(
            timezone=timezone.utc,
            job_defaults={
                "coalesce": True,
                "misfire_grace_time": 60,
            },
        )

    def register_job(
        self,
        name: str,
        expression: str,
        handler: JobHandler,
        prevent_overlap: bool = True,
    ) -> None:
        if name in self._jobs:
            raise JobRegistrationError(f'Job "{name}" is already registered')

        try:
            trigger = parse_cron(expression)
        except ValueError as e:
            raise JobRegistrationError(
                f'Invalid cron expression for job "{name}": {expression}',
                details={"reason": str(e)},
            ) from e

        job = ScheduledJob(
            name=name,
            expression=expression,
            trigger=trigger,
            handler=handler,
            prevent_overlap=prevent_overlap,
        )
        self._jobs[name] = job

        # Added paused; start() resumes it
        self._aps.add_job(
            self._execute,
            trigger=trigger,
            args=(job,),
            id=name,
            name=name,
            max_instances=1 if prevent_overlap else 10,
            next_run_time=None,
        )
        logger.info(f"[Scheduler] Registered job: {name} ({expression})")

        # Jobs registered after start() begin ticking right away
        if self._started:
            self._start_job(job)

    def start(self) -> None:
        if self._started:
            return
        if not self._aps.running:
            self._aps.start()
        for job in self._jobs.values():
            self._start_job(job)
        self._started = True
        logger.info(f"[Scheduler] All jobs started ({len(self._jobs)} total)")

    def stop(self) -> None:
        if not self._started:
            return
        for job in self._jobs.values():
            self._aps.pause_job(job.name)
            job.running = False
            logger.info(f"[Scheduler] Stopped job: {job.name}")
        self._started = False
        logger.info("[Scheduler] All jobs stopped")

    async def shutdown(self) -> None:
        """Stop firing, wait for in-flight executions and release the loop timer."""
        self.stop()
        if self._executions:
            await asyncio.gather(*self._executions, return_exceptions=True)
        if self._aps.running:
            self._aps.shutdown(wait=False)
            # AsyncIOScheduler.shutdown is dispatched onto the loop
            await asyncio.sleep(0)

    def is_running(self) -> bool:
        return self._started

    def get_status(self) -> list[JobStatus]:
        return [
            JobStatus(
                name=job.name,
                expression=job.expression,
                running=job.running,
                last_run=job.last_run.isoformat() if job.last_run else None,
            )
            for job in self._jobs.values()
        ]

    def next_run_time(self, name: str, after: Optional[datetime] = None) -> Optional[datetime]:
        """Next scheduled fire time strictly after ``after`` (default: now)."""
        job = self._get_job(name)
        reference = (after or self._now()) + timedelta(microseconds=1)
        return job.trigger.get_next_fire_time(None, reference)

    async def run_job_now(self, name: str) -> bool:
        """Execute a job immediately. Returns False when skipped for overlap."""
        return await self._execute(self._get_job(name))

    def _get_job(self, name: str) -> ScheduledJob:
        job = self._jobs.get(name)
        if job is None:
            raise JobRegistrationError(f'Job "{name}" is not registered')
        return job

    def _start_job(self, job: ScheduledJob) -> None:
        self._aps.resume_job(job.name)
        job.running = True
        logger.info(f"[Scheduler] Started job: {job.name}")

    async def _execute(self, job: ScheduledJob) -> bool:
        if job.prevent_overlap and job.executing:
            logger.info(f"[Scheduler] [{job.name}] Skipped (previous execution still running)")
            return False

        task = asyncio.current_task()
        if task is not None:
            self._executions.add(task)
        job.executing = True
        start = time.monotonic()
        logger.info(f"[Scheduler] [{job.name}] Starting...")
        try:
            await job.handler()
        except Exception:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.exception(f"[Scheduler] [{job.name}] Failed after {duration_ms}ms")
            return True
        finally:
            job.executing = False
            self._executions.discard(task)

        job.last_run = self._now()
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"[Scheduler] [{job.name}] Completed in {duration_ms}ms")
        return True
