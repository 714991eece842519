import logging
from typing import Awaitable, Callable, Optional

import httpx

from app.schemas.testing import CompanyTestConfig, ScheduledJob, TestResult, TestSettings, TestType
from app.services.notifications import EmailNotifier, build_notification, scheduled_subject
from app.services.test_data_store import TestDataStore

logger = logging.getLogger(__name__)

RunTest = Callable[[TestType, str, str, Optional[TestSettings]], Awaitable[TestResult]]


class BaseJobExecutor:
    """Abstract base class for running a scheduled job once."""

    async def execute(self, job: ScheduledJob) -> TestResult:
        """Run the job's test, store the result and notify. Returns the result."""
        raise NotImplementedError("Executors must implement execute()")


class LocalJobExecutor(BaseJobExecutor):
    """Runs scheduled jobs in-process."""

    def __init__(self, run_test: RunTest, store: TestDataStore, notifier: EmailNotifier) -> None:
        self._run_test = run_test
        self._store = store
        self._notifier = notifier

    async def execute(self, job: ScheduledJob) -> TestResult:
        logger.info("Executing scheduled test %s", job.id)
        # Tenant subdomain and company id are the same identifier
        result = await self._run_test(job.test_type, job.company_id, job.auth_token, job.settings)
        self._store.save_test_result(job.company_id, result)

        config = self._store.get_test_config(job.company_id)
        if config is None or not _should_notify(config):
            return result
        try:
            await self._notifier.notify_results(
                config.email_notifications.recipients,
                [result],
                subject=scheduled_subject(result),
            )
        except Exception as exc:
            logger.warning("Notification for scheduled test %s failed: %s", job.id, exc)
        return result


class HttpJobExecutor(BaseJobExecutor):
    """Runs scheduled jobs by calling back into this service's HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client

    async def execute(self, job: ScheduledJob) -> TestResult:
        logger.info("Executing scheduled test %s via %s", job.id, self.base_url)
        if self._http_client is not None:
            return await self._execute(self._http_client, job)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._execute(client, job)

    async def _execute(self, client: httpx.AsyncClient, job: ScheduledJob) -> TestResult:
        run_body = {
            "testType": job.test_type.value,
            "companySubdomain": job.company_id,
            "authToken": job.auth_token,
            "settings": job.settings.model_dump(mode="json", by_alias=True) if job.settings else None,
        }
        response = await client.post(f"{self.base_url}/api/tests/run", json=run_body)
        response.raise_for_status()
        result = TestResult.model_validate(response.json())

        response = await client.post(
            f"{self.base_url}/api/tests/results",
            json={"companyId": job.company_id, "result": result.model_dump(mode="json", by_alias=True)},
        )
        response.raise_for_status()

        # The result is already stored; config problems only cost the notification
        try:
            response = await client.get(f"{self.base_url}/api/tests/config", params={"companyId": job.company_id})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Config fetch for scheduled test %s failed; skipping notification: %s", job.id, exc)
            return result
        config = CompanyTestConfig.model_validate(response.json())
        if not _should_notify(config):
            return result

        notification = build_notification(
            config.email_notifications.recipients,
            [result],
            subject=scheduled_subject(result),
        )
        try:
            response = await client.post(
                f"{self.base_url}/api/tests/notify",
                json=notification.model_dump(mode="json", by_alias=True),
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Notification for scheduled test %s failed: %s", job.id, exc)
        return result


def _should_notify(config: CompanyTestConfig) -> bool:
    settings = config.email_notifications
    return settings.enabled and bool(settings.recipients)
