"""Analytics derived on demand from stored test results."""
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from app.schemas.testing import DailyStats, TestAnalytics, TestResult, TestStatus, TestType, TestTypeStats

HISTORY_DAYS = 7


def _success_rate(results: Sequence[TestResult]) -> float:
    if not results:
        return 0.0
    passed = sum(1 for result in results if result.status == TestStatus.PASSED)
    return passed / len(results) * 100


def _average_duration(results: Sequence[TestResult]) -> float:
    if not results:
        return 0.0
    return sum(result.duration or 0 for result in results) / len(results)


def _local_date(moment: datetime) -> date:
    return moment.astimezone().date()


def _last_days(results: Iterable[TestResult], today: date, days: int = HISTORY_DAYS) -> List[DailyStats]:
    buckets: Dict[date, DailyStats] = {}
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        buckets[day] = DailyStats(date=day.isoformat(), passed=0, failed=0)

    for result in results:
        bucket = buckets.get(_local_date(result.start_time))
        if bucket is None:
            continue
        if result.status == TestStatus.PASSED:
            bucket.passed += 1
        elif result.status == TestStatus.FAILED:
            bucket.failed += 1
    return list(buckets.values())


def compute_analytics(results: Sequence[TestResult], now: Optional[datetime] = None) -> TestAnalytics:
    """
    Summarise ``results``.

    ``lastSevenDays`` always holds seven local calendar dates, oldest first,
    ending with the day of ``now``. ``byTestType`` has one entry per test type.
    """
    today = _local_date(now) if now is not None else date.today()

    by_test_type = []
    for test_type in TestType:
        typed = [result for result in results if result.test_type == test_type]
        by_test_type.append(
            TestTypeStats(
                test_type=test_type,
                success_rate=_success_rate(typed),
                total_runs=len(typed),
            )
        )

    return TestAnalytics(
        total_runs=len(results),
        success_rate=_success_rate(results),
        average_duration=_average_duration(results),
        last_seven_days=_last_days(results, today),
        by_test_type=by_test_type,
    )
