import asyncio
import logging
from typing import Any, Callable, Optional

from app.core.config import Settings, settings as app_settings
from app.schemas.testing import CompanyTestConfig, TestResult, TestSettings, TestType
from app.services.fluid.client import FluidApiClient, create_fluid_client
from app.services.fluid.sdk import CommerceCartSdk
from app.services.job_executors import BaseJobExecutor, HttpJobExecutor, LocalJobExecutor
from app.services.notifications import EmailNotifier
from app.services.scheduler import TestScheduler
from app.services.test_data_store import TestDataStore
from app.services.test_runner import ProgressCallback, TestRunner

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], FluidApiClient]


class TestingServices:
    """Process-wide store, scheduler and notifier shared by every request."""

    __test__ = False

    def __init__(
        self,
        *,
        store: Optional[TestDataStore] = None,
        notifier: Optional[EmailNotifier] = None,
        client_factory: ClientFactory = create_fluid_client,
        executor: Optional[BaseJobExecutor] = None,
        timers_enabled: bool = True,
        sdk_enabled: bool = False,
        sdk_wait_seconds: float = 5.0,
    ) -> None:
        self.store = store or TestDataStore()
        self.notifier = notifier or EmailNotifier()
        self.client_factory = client_factory
        self.sdk_enabled = sdk_enabled
        self.sdk_wait_seconds = sdk_wait_seconds
        self.executor = executor or LocalJobExecutor(self.run_test, self.store, self.notifier)
        self.scheduler = TestScheduler(self.store, self.executor, timers_enabled=timers_enabled)

    async def run_test(
        self,
        test_type: TestType,
        company_subdomain: str,
        auth_token: str,
        settings: Optional[TestSettings] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TestResult:
        async with self.client_factory(company_subdomain, auth_token) as client:
            sdk = CommerceCartSdk(client) if self.sdk_enabled else None
            runner = TestRunner(
                client,
                settings,
                on_progress=on_progress,
                sdk=sdk,
                sdk_wait_seconds=self.sdk_wait_seconds,
            )
            return await runner.run_test(test_type)

    def get_config(self, company_id: str) -> CompanyTestConfig:
        """Stored config for ``company_id``, created with defaults on first read."""
        config = self.store.get_test_config(company_id)
        if config is None:
            config = CompanyTestConfig.defaults()
            self.store.save_test_config(company_id, config)
        return config

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()


def build_services(config: Settings, **overrides: Any) -> TestingServices:
    executor: Optional[BaseJobExecutor] = None
    if config.APP_BASE_URL:
        executor = HttpJobExecutor(config.APP_BASE_URL, timeout=config.SCHEDULER_REQUEST_TIMEOUT)
    options = dict(
        store=TestDataStore(max_results_per_company=config.MAX_RESULTS_PER_COMPANY),
        executor=executor,
        timers_enabled=config.SCHEDULER_TIMERS_ENABLED,
        sdk_enabled=config.PURCHASE_SDK_ENABLED,
        sdk_wait_seconds=config.PURCHASE_SDK_WAIT_SECONDS,
    )
    options.update(overrides)
    return TestingServices(**options)


services: Optional[TestingServices] = None
_initialization_lock = asyncio.Lock()


async def initialize_services() -> None:
    """Create the service container singleton."""
    async with _initialization_lock:
        _ensure_services()


async def shutdown_services() -> None:
    """Cancel scheduled timers and drop the singleton."""
    global services
    async with _initialization_lock:
        if services is not None:
            await services.shutdown()
            services = None


async def get_services() -> TestingServices:
    async with _initialization_lock:
        return _ensure_services()


def _ensure_services() -> TestingServices:
    global services
    if services is None:
        mode = "http callback" if app_settings.APP_BASE_URL else "in-process"
        logger.info("Initializing testing services (scheduled runs %s)", mode)
        services = build_services(app_settings)
    return services
