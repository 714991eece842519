import asyncio
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from app.schemas.testing import (
    CompanyTestConfig,
    ScheduledJob,
    ScheduleInterval,
    TestResult,
    TestType,
)
from app.services import scheduler as scheduler_module
from app.services.job_executors import BaseJobExecutor
from app.services.scheduler import TestScheduler, calculate_next_run
from app.services.test_data_store import TestDataStore

FAST = timedelta(milliseconds=30)


class RecordingExecutor(BaseJobExecutor):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.executed: List[str] = []

    async def execute(self, job: ScheduledJob) -> TestResult:
        self.executed.append(job.id)
        if self.fail:
            raise RuntimeError("upstream down")
        return TestResult(id="r", test_type=job.test_type, start_time=datetime.now(timezone.utc))


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def fast_intervals(monkeypatch):
    for interval in ScheduleInterval:
        monkeypatch.setitem(scheduler_module.INTERVAL_DELTAS, interval, FAST)


def test_daily_next_run_is_exact():
    now = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert calculate_next_run(ScheduleInterval.DAILY, now) == datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "interval,delta",
    [
        (ScheduleInterval.THIRTY_MINUTES, timedelta(minutes=30)),
        (ScheduleInterval.HOURLY, timedelta(hours=1)),
        (ScheduleInterval.DAILY, timedelta(days=1)),
        (ScheduleInterval.EVERY_OTHER_DAY, timedelta(days=2)),
    ],
)
def test_next_run_offsets(interval, delta):
    now = datetime(2024, 3, 9, 23, 45, tzinfo=timezone.utc)
    assert calculate_next_run(interval, now) - now == delta


@pytest.mark.asyncio
async def test_cancel_before_fire_never_runs(fast_intervals):
    executor = RecordingExecutor()
    scheduler = TestScheduler(TestDataStore(), executor)

    scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok")
    assert scheduler.cancel_test("acme", TestType.REFUND_FLOW) is True

    await asyncio.sleep(0.1)
    assert executor.executed == []
    assert scheduler.armed_keys == []
    assert scheduler.get_job_status("acme", TestType.REFUND_FLOW) is None


@pytest.mark.asyncio
async def test_rescheduling_replaces_the_job(fast_intervals):
    store = TestDataStore()
    executor = RecordingExecutor()
    scheduler = TestScheduler(store, executor)

    scheduler.schedule_test("acme", TestType.CUSTOMER_AUTH, ScheduleInterval.HOURLY, "tok-1")
    scheduler.schedule_test("acme", TestType.CUSTOMER_AUTH, ScheduleInterval.DAILY, "tok-2")

    jobs = scheduler.get_company_jobs("acme")
    assert len(jobs) == 1
    assert jobs[0].auth_token == "tok-2"
    assert jobs[0].interval == ScheduleInterval.DAILY
    assert scheduler.armed_keys == ["acme::customer-auth"]

    await _wait_for(lambda: executor.executed)
    await scheduler.shutdown()
    assert executor.executed == ["acme::customer-auth"]


@pytest.mark.asyncio
async def test_fired_job_is_rescheduled(fast_intervals):
    store = TestDataStore()
    executor = RecordingExecutor()
    scheduler = TestScheduler(store, executor)

    scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok")
    await _wait_for(lambda: executor.executed)

    job = scheduler.get_job_status("acme", TestType.REFUND_FLOW)
    assert executor.executed
    assert job.last_run is not None
    assert job.next_run > job.last_run
    assert scheduler.armed_keys == ["acme::refund-flow"]
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_failing_job_keeps_firing(fast_intervals):
    executor = RecordingExecutor(fail=True)
    scheduler = TestScheduler(TestDataStore(), executor)

    scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok")
    await asyncio.sleep(0.2)
    await scheduler.shutdown()

    assert len(executor.executed) >= 2
    assert scheduler.get_job_status("acme", TestType.REFUND_FLOW).last_run is not None


@pytest.mark.asyncio
async def test_schedule_keeps_previous_last_run():
    store = TestDataStore()
    scheduler = TestScheduler(store, RecordingExecutor(), timers_enabled=False)
    job = scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok")
    last_run = datetime(2024, 1, 1, tzinfo=timezone.utc)
    store.save_scheduled_job(job.model_copy(update={"last_run": last_run}))

    replaced = scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.DAILY, "tok")
    assert replaced.last_run == last_run
    assert scheduler.armed_keys == []


@pytest.mark.asyncio
async def test_run_due_jobs_only_runs_due_jobs():
    store = TestDataStore()
    executor = RecordingExecutor()
    scheduler = TestScheduler(store, executor, timers_enabled=False)
    scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok")
    scheduler.schedule_test("acme", TestType.CUSTOMER_AUTH, ScheduleInterval.DAILY, "tok")

    later = datetime.now(timezone.utc) + timedelta(hours=2)
    ran = await scheduler.run_due_jobs(later)

    assert ran == ["acme::refund-flow"]
    assert executor.executed == ["acme::refund-flow"]
    refreshed = scheduler.get_job_status("acme", TestType.REFUND_FLOW)
    assert refreshed.last_run is not None
    assert await scheduler.run_due_jobs(datetime.now(timezone.utc)) == []


@pytest.mark.asyncio
async def test_update_from_config_syncs_enabled_tests():
    store = TestDataStore()
    scheduler = TestScheduler(store, RecordingExecutor(), timers_enabled=False)
    scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok")

    config = CompanyTestConfig.defaults()
    config.tests[0].enabled = True
    config.tests[0].schedule = ScheduleInterval.THIRTY_MINUTES

    jobs = scheduler.update_from_config("acme", config, "new-token")

    assert [job.id for job in jobs] == ["acme::product-purchase"]
    assert [job.id for job in scheduler.get_company_jobs("acme")] == ["acme::product-purchase"]
    assert jobs[0].auth_token == "new-token"
    assert jobs[0].interval == ScheduleInterval.THIRTY_MINUTES


@pytest.mark.asyncio
async def test_clear_all_and_shutdown(fast_intervals):
    store = TestDataStore()
    executor = RecordingExecutor()
    scheduler = TestScheduler(store, executor)
    scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok")
    scheduler.schedule_test("globex", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok")

    scheduler.clear_all()
    assert store.get_all_scheduled_jobs() == []
    assert scheduler.armed_keys == []

    scheduler.schedule_test("acme", TestType.CUSTOMER_AUTH, ScheduleInterval.HOURLY, "tok")
    await scheduler.shutdown()
    await asyncio.sleep(0.06)
    assert executor.executed == []


class SlowFirstRunExecutor(BaseJobExecutor):
    def __init__(self, first_run_seconds: float) -> None:
        self.first_run_seconds = first_run_seconds
        self.tokens: List[str] = []

    async def execute(self, job: ScheduledJob) -> TestResult:
        self.tokens.append(job.auth_token)
        if len(self.tokens) == 1:
            await asyncio.sleep(self.first_run_seconds)
        return TestResult(id="r", test_type=job.test_type, start_time=datetime.now(timezone.utc))


@pytest.mark.asyncio
async def test_replacing_a_job_while_it_runs_keeps_the_new_job_firing(fast_intervals):
    executor = SlowFirstRunExecutor(first_run_seconds=0.15)
    scheduler = TestScheduler(TestDataStore(), executor)

    scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok-1")
    await _wait_for(lambda: executor.tokens == ["tok-1"])
    await asyncio.sleep(0.02)
    scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok-2")

    await _wait_for(lambda: "tok-2" in executor.tokens, timeout=1.5)
    job = scheduler.get_job_status("acme", TestType.REFUND_FLOW)
    assert job.auth_token == "tok-2"
    assert job.enabled is True
    assert scheduler.armed_keys == ["acme::refund-flow"]
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_skipped_fire_keeps_last_run(fast_intervals):
    store = TestDataStore()
    scheduler = TestScheduler(store, RecordingExecutor())
    job = scheduler.schedule_test("acme", TestType.REFUND_FLOW, ScheduleInterval.HOURLY, "tok")
    scheduler._running.add(job.id)

    await scheduler._fire(job)

    deferred = scheduler.get_job_status("acme", TestType.REFUND_FLOW)
    assert deferred.last_run is None
    assert deferred.next_run > job.next_run
    assert scheduler.armed_keys == ["acme::refund-flow"]
    await scheduler.shutdown()
