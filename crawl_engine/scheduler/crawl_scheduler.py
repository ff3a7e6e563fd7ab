"""
Cron-driven scheduling of crawl and cleanup jobs.

A single periodic tick checks every running job against the clock. Due jobs
are dispatched as background tasks; the schedule row is re-read from storage
when the job fires, so edits apply from the next fire without a restart.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from crawl_engine.interfaces import ICrawlStorage, ScheduleError
from crawl_engine.models import CleanupSchedule, CrawlResult, Schedule
from crawl_engine.core.cleanup import RetentionCleaner
from crawl_engine.core.crawl_engine import CrawlEngine
from utils.config import CrawlerSettings


class ScheduleState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class JobKind(Enum):
    CRAWL = "crawl"
    CLEANUP = "cleanup"


@dataclass
class ScheduledJob:
    """A running cron job. Only the id and expression are captured here."""
    kind: JobKind
    job_id: int
    cron_expression: str
    trigger: CronTrigger
    next_fire: Optional[datetime]


class CrawlScheduler:
    """
    Owns the per-schedule Stopped/Running state machine.

    Crawl jobs and cleanup jobs share the tick loop. Firing never waits for
    the crawl; ``last_run`` is written once the crawl has finished.
    """

    NEXT_RUN_FALLBACK = timedelta(minutes=10)

    def __init__(self, engine: CrawlEngine, storage: ICrawlStorage,
                 settings: Optional[CrawlerSettings] = None):
        self.engine = engine
        self.storage = storage
        self.settings = settings or engine.settings
        self.tz = self.settings.timezone
        self.cleaner = RetentionCleaner(storage)

        self._jobs: Dict[Tuple[JobKind, int], ScheduledJob] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._stop_event: Optional[asyncio.Event] = None

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def _build_trigger(self, cron_expression: str) -> CronTrigger:
        try:
            return CronTrigger.from_crontab(cron_expression, timezone=self.tz)
        except (ValueError, TypeError) as e:
            raise ScheduleError(f"Invalid cron expression '{cron_expression}': {e}", cause=e)

    def _start_job(self, kind: JobKind, job_id: int, cron_expression: str,
                   now: Optional[datetime] = None) -> ScheduledJob:
        trigger = self._build_trigger(cron_expression)
        key = (kind, job_id)
        if key in self._jobs:
            self._jobs.pop(key)

        job = ScheduledJob(
            kind=kind,
            job_id=job_id,
            cron_expression=cron_expression,
            trigger=trigger,
            next_fire=trigger.get_next_fire_time(None, now or self.now()),
        )
        self._jobs[key] = job
        logger.info(f"Started {kind.value} schedule {job_id} ('{cron_expression}'), "
                    f"next fire {job.next_fire}")
        return job

    def start_schedule(self, schedule: Schedule, now: Optional[datetime] = None) -> ScheduledJob:
        """
        Move a crawl schedule to Running.

        Raises:
            ScheduleError: If the cron expression is invalid
        """
        return self._start_job(JobKind.CRAWL, schedule.id, schedule.cron_expression, now)

    def stop_schedule(self, schedule_id: int) -> bool:
        """Move a crawl schedule to Stopped. In-flight runs are not interrupted."""
        job = self._jobs.pop((JobKind.CRAWL, schedule_id), None)
        if job is not None:
            logger.info(f"Stopped crawl schedule {schedule_id}")
        return job is not None

    def update_schedule(self, schedule: Schedule, now: Optional[datetime] = None) -> Optional[ScheduledJob]:
        """Stop then restart with the new parameters; inactive schedules stay stopped."""
        self.stop_schedule(schedule.id)
        if not schedule.active:
            return None
        return self.start_schedule(schedule, now)

    def start_cleanup_schedule(self, cleanup: CleanupSchedule,
                               now: Optional[datetime] = None) -> ScheduledJob:
        return self._start_job(JobKind.CLEANUP, cleanup.id, cleanup.cron_expression, now)

    def stop_cleanup_schedule(self, cleanup_id: int) -> bool:
        return self._jobs.pop((JobKind.CLEANUP, cleanup_id), None) is not None

    def get_state(self, schedule_id: int) -> ScheduleState:
        if (JobKind.CRAWL, schedule_id) in self._jobs:
            return ScheduleState.RUNNING
        return ScheduleState.STOPPED

    async def load_schedules(self) -> int:
        """Start every active crawl and cleanup schedule in storage."""
        started = 0

        for schedule in await self.storage.list_schedules():
            if not schedule.active:
                logger.info(f"Schedule {schedule.id} is inactive")
                continue
            try:
                self.start_schedule(schedule)
                started += 1
            except ScheduleError as e:
                logger.error(f"Schedule {schedule.id} not started: {e}")

        for cleanup in await self.storage.list_cleanup_schedules():
            if not cleanup.active:
                continue
            try:
                self.start_cleanup_schedule(cleanup)
                started += 1
            except ScheduleError as e:
                logger.error(f"Cleanup schedule {cleanup.id} not started: {e}")

        logger.info(f"Loaded {started} schedules")
        return started

    async def tick(self, now: Optional[datetime] = None) -> List[asyncio.Task]:
        """
        Dispatch every job whose fire time has passed.

        Missed fires are coalesced into one. Returns the dispatched tasks.
        """
        now = now or self.now()
        dispatched = []

        for job in list(self._jobs.values()):
            if job.next_fire is None or job.next_fire > now:
                continue
            job.next_fire = job.trigger.get_next_fire_time(None, now + timedelta(microseconds=1))
            if job.kind == JobKind.CRAWL:
                dispatched.append(self._spawn(self._execute(job.job_id)))
            else:
                dispatched.append(self._spawn(self._execute_cleanup(job.job_id)))

        return dispatched

    def run_now(self, schedule_id: int) -> asyncio.Task:
        """Run a schedule once, immediately, without waiting for it."""
        logger.info(f"Manual run requested for schedule {schedule_id}")
        return self._spawn(self._execute(schedule_id, manual=True))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _execute(self, schedule_id: int, manual: bool = False) -> Optional[CrawlResult]:
        try:
            schedule = await self.storage.get_schedule(schedule_id)
        except Exception as e:
            logger.error(f"Could not read schedule {schedule_id}: {e}")
            return None

        if schedule is None:
            logger.error(f"Schedule {schedule_id} not found, stopping it")
            self.stop_schedule(schedule_id)
            return None
        if not schedule.active and not manual:
            logger.info(f"Schedule {schedule_id} was deactivated, stopping it")
            self.stop_schedule(schedule_id)
            return None

        options = schedule.to_crawl_options()
        label = "Manual" if manual else "Scheduled"
        logger.info(f"{label} crawl for source {schedule.source_id}: limit={options.limit} "
                    f"depth={options.crawl_depth} full_content={options.full_content} "
                    f"timeout={options.timeout} follow_links={options.follow_links}")

        result = None
        try:
            result = await self.engine.run_crawl(schedule.source_id, options)
        except Exception as e:
            logger.error(f"{label} crawl for source {schedule.source_id} failed: {e}")
        finally:
            try:
                await self.storage.update_schedule_last_run(schedule.id)
            except Exception as e:
                logger.error(f"Could not update last run of schedule {schedule.id}: {e}")

        return result

    async def _execute_cleanup(self, cleanup_id: int) -> Optional[Dict[str, Any]]:
        try:
            cleanup = await self.storage.get_cleanup_schedule(cleanup_id)
            if cleanup is None or not cleanup.active:
                logger.info(f"Cleanup schedule {cleanup_id} missing or inactive, stopping it")
                self.stop_cleanup_schedule(cleanup_id)
                return None

            outcome = await self.cleaner.run(cleanup)
            if outcome["status"] == "success":
                self.engine.metrics.record_cleanup(outcome["deleted"])
            return outcome
        except Exception as e:
            logger.error(f"Cleanup schedule {cleanup_id} failed: {e}")
            return None

    def next_run(self, cron_expression: str, now: Optional[datetime] = None) -> Optional[datetime]:
        """
        Advisory next fire time for display.

        Returns None for expressions without five fields and ``now`` plus ten
        minutes when the expression cannot be parsed.
        """
        now = now or self.now()
        if not cron_expression or len(cron_expression.split()) != 5:
            return None
        try:
            trigger = CronTrigger.from_crontab(cron_expression, timezone=self.tz)
            return trigger.get_next_fire_time(None, now)
        except (ValueError, TypeError):
            return now + self.NEXT_RUN_FALLBACK

    def list_jobs(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": job.job_id,
                "kind": job.kind.value,
                "cron_expression": job.cron_expression,
                "state": ScheduleState.RUNNING.value,
                "next_run": job.next_fire.isoformat() if job.next_fire else None,
            }
            for job in self._jobs.values()
        ]

    async def wait_idle(self) -> None:
        """Wait for every dispatched job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run_forever(self) -> None:
        """Tick every ``scheduler_tick_seconds`` until ``stop()`` is called."""
        self._stop_event = asyncio.Event()
        logger.info(f"Scheduler running (tick every {self.settings.scheduler_tick_seconds}s, "
                    f"timezone {self.settings.scheduler_timezone})")

        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Scheduler tick failed: {e}")
            try:
                await asyncio.wait_for(self._stop_event.wait(),
                                       timeout=self.settings.scheduler_tick_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Scheduler stopped")

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
