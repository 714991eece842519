"""
Recurring test scheduler.

Scheduled jobs are stored in the ``TestDataStore``; the scheduler only owns
the timer handles. Jobs fire either from an in-process timer or from the
cron sweep (``run_due_jobs``), and both paths reschedule through the same
code so a key never has more than one live timer.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from app.schemas.testing import (
    CompanyTestConfig,
    ScheduledJob,
    ScheduleInterval,
    TestSettings,
    TestType,
)
from app.services.job_executors import BaseJobExecutor
from app.services.test_data_store import TestDataStore

logger = logging.getLogger(__name__)

INTERVAL_DELTAS: Dict[ScheduleInterval, timedelta] = {
    ScheduleInterval.THIRTY_MINUTES: timedelta(minutes=30),
    ScheduleInterval.HOURLY: timedelta(hours=1),
    ScheduleInterval.DAILY: timedelta(days=1),
    ScheduleInterval.EVERY_OTHER_DAY: timedelta(days=2),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def calculate_next_run(interval: ScheduleInterval, now: Optional[datetime] = None) -> datetime:
    """``now`` plus the fixed offset for ``interval``."""
    if now is None:
        now = _utcnow()
    return now + INTERVAL_DELTAS[ScheduleInterval(interval)]


class TestScheduler:
    __test__ = False

    def __init__(
        self,
        store: TestDataStore,
        executor: BaseJobExecutor,
        *,
        timers_enabled: bool = True,
    ) -> None:
        self._store = store
        self._executor = executor
        self.timers_enabled = timers_enabled
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._fire_tasks: Set[asyncio.Task] = set()
        self._running: Set[str] = set()
        self._closed = False

    @property
    def armed_keys(self) -> List[str]:
        return list(self._timers)

    def schedule_test(
        self,
        company_id: str,
        test_type: TestType,
        interval: ScheduleInterval,
        auth_token: str,
        settings: Optional[TestSettings] = None,
    ) -> ScheduledJob:
        """Replace any job for ``(company_id, test_type)`` and arm its timer."""
        test_type = TestType(test_type)
        interval = ScheduleInterval(interval)
        key = ScheduledJob.make_id(company_id, test_type)
        previous = self._store.get_scheduled_job(key)
        self.clear_job(key)

        now = _utcnow()
        job = ScheduledJob(
            id=key,
            company_id=company_id,
            test_type=test_type,
            interval=interval,
            next_run=calculate_next_run(interval, now),
            last_run=previous.last_run if previous else None,
            enabled=True,
            auth_token=auth_token,
            settings=settings,
        )
        self._store.save_scheduled_job(job)
        self._arm(job, now)
        logger.info("Scheduled %s (%s), next run at %s", key, interval.value, job.next_run.isoformat())
        return job

    def cancel_test(self, company_id: str, test_type: TestType) -> bool:
        return self.clear_job(ScheduledJob.make_id(company_id, test_type))

    def clear_job(self, key: str) -> bool:
        """Cancel the timer for ``key`` and then remove its job."""
        self._cancel_timer(key)
        removed = self._store.delete_scheduled_job(key)
        if removed:
            logger.info("Cleared scheduled job %s", key)
        return removed

    def clear_all(self) -> None:
        for key in list(self._timers):
            self._cancel_timer(key)
        for job in self._store.get_all_scheduled_jobs():
            self._store.delete_scheduled_job(job.id)

    def get_company_jobs(self, company_id: str) -> List[ScheduledJob]:
        return self._store.get_company_jobs(company_id)

    def get_job_status(self, company_id: str, test_type: TestType) -> Optional[ScheduledJob]:
        return self._store.get_scheduled_job(ScheduledJob.make_id(company_id, test_type))

    def update_from_config(
        self,
        company_id: str,
        config: CompanyTestConfig,
        auth_token: str,
    ) -> List[ScheduledJob]:
        """Bring the company's jobs in line with the enabled tests in ``config``."""
        enabled = {test.id: test for test in config.tests if test.enabled}
        for job in self.get_company_jobs(company_id):
            if job.test_type not in enabled:
                self.clear_job(job.id)

        return [
            self.schedule_test(company_id, test.id, test.schedule, auth_token, test.settings)
            for test in enabled.values()
        ]

    async def run_due_jobs(self, now: Optional[datetime] = None) -> List[str]:
        """Run every enabled job whose next run has passed. Returns the keys run."""
        if now is None:
            now = _utcnow()
        due = [
            job
            for job in self._store.get_all_scheduled_jobs()
            if job.enabled and job.next_run <= now and job.id not in self._running
        ]
        logger.info("Cron sweep found %d due job(s)", len(due))
        for job in due:
            await self._fire(job)
        return [job.id for job in due]

    async def shutdown(self) -> None:
        """Cancel every timer and in-flight fire."""
        self._closed = True
        for key in list(self._timers):
            self._cancel_timer(key)
        tasks = list(self._fire_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._fire_tasks.clear()

    def _arm(self, job: ScheduledJob, now: datetime) -> None:
        self._cancel_timer(job.id)
        if not self.timers_enabled or self._closed or not job.enabled:
            return
        delay = max((job.next_run - now).total_seconds(), 0.0)
        loop = asyncio.get_running_loop()
        self._timers[job.id] = loop.call_later(delay, self._on_timer, job.id)

    def _cancel_timer(self, key: str) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _on_timer(self, key: str) -> None:
        self._timers.pop(key, None)
        job = self._store.get_scheduled_job(key)
        if job is None or not job.enabled:
            return
        task = asyncio.get_running_loop().create_task(self._fire(job), name=f"scheduled-test:{key}")
        self._fire_tasks.add(task)
        task.add_done_callback(self._fire_tasks.discard)

    async def _fire(self, job: ScheduledJob) -> None:
        if job.id in self._running:
            logger.warning("Scheduled test %s is already running; deferring to its next interval", job.id)
            self._defer(job)
            return
        self._running.add(job.id)
        try:
            await self._executor.execute(job)
        except Exception as exc:
            logger.exception("Scheduled test %s failed: %s", job.id, exc)
        finally:
            self._running.discard(job.id)
        self._reschedule(job)

    def _reschedule(self, job: ScheduledJob) -> None:
        current = self._store.get_scheduled_job(job.id)
        # A cancel or a newer schedule_test during the run owns the key now
        if current is not job or not current.enabled:
            return
        now = _utcnow()
        updated = job.model_copy(update={"last_run": now, "next_run": calculate_next_run(job.interval, now)})
        self._store.save_scheduled_job(updated)
        self._sync_config(updated)
        self._arm(updated, now)
        logger.info("Rescheduled %s, next run at %s", job.id, updated.next_run.isoformat())

    def _defer(self, job: ScheduledJob) -> None:
        """Push a skipped job to its next interval without touching ``last_run``."""
        current = self._store.get_scheduled_job(job.id)
        if current is not job or not current.enabled:
            return
        now = _utcnow()
        updated = job.model_copy(update={"next_run": calculate_next_run(job.interval, now)})
        self._store.save_scheduled_job(updated)
        self._sync_config(updated)
        self._arm(updated, now)

    def _sync_config(self, job: ScheduledJob) -> None:
        config = self._store.get_test_config(job.company_id)
        if config is None:
            return
        for test in config.tests:
            if test.id == job.test_type:
                test.last_run = job.last_run
                test.next_run = job.next_run
