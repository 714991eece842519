import enum
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TestType(str, enum.Enum):
    """Synthetic end-to-end scenarios the droplet can run."""

    __test__ = False

    PRODUCT_PURCHASE = "product-purchase"
    ENROLLMENT_PURCHASE = "enrollment-purchase"
    SUBSCRIPTION_PURCHASE = "subscription-purchase"
    REFUND_FLOW = "refund-flow"
    CUSTOMER_AUTH = "customer-auth"

    @property
    def display_name(self) -> str:
        return TEST_DEFINITIONS[self]["name"]

    @property
    def description(self) -> str:
        return TEST_DEFINITIONS[self]["description"]


TEST_DEFINITIONS: Dict[TestType, Dict[str, str]] = {
    TestType.PRODUCT_PURCHASE: {
        "name": "Product Purchase Flow",
        "description": "Test adding a product to cart, going through checkout, and completing purchase",
    },
    TestType.ENROLLMENT_PURCHASE: {
        "name": "Enrollment Purchase Flow",
        "description": "Test the complete enrollment purchase process with product enrollment",
    },
    TestType.SUBSCRIPTION_PURCHASE: {
        "name": "Subscription Purchase Flow",
        "description": "Test subscription-based product purchase and recurring billing setup",
    },
    TestType.REFUND_FLOW: {
        "name": "Refund/Return Flow",
        "description": "Test the refund and return process for completed orders",
    },
    TestType.CUSTOMER_AUTH: {
        "name": "Customer Authentication",
        "description": "Test customer login, registration, and authentication flows",
    },
}


class ScheduleInterval(str, enum.Enum):
    THIRTY_MINUTES = "30min"
    HOURLY = "hourly"
    DAILY = "daily"
    EVERY_OTHER_DAY = "every-other-day"

    @property
    def label(self) -> str:
        return SCHEDULE_LABELS[self]


SCHEDULE_LABELS: Dict[ScheduleInterval, str] = {
    ScheduleInterval.THIRTY_MINUTES: "Every 30 minutes",
    ScheduleInterval.HOURLY: "Every hour",
    ScheduleInterval.DAILY: "Once daily",
    ScheduleInterval.EVERY_OTHER_DAY: "Every other day",
}


class TestStatus(str, enum.Enum):
    """Lifecycle of a single run: running, then passed or failed."""

    __test__ = False

    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


class StepStatus(str, enum.Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class CamelModel(BaseModel):
    """Base for wire models; fields are exposed in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TestSettings(CamelModel):
    __test__ = False

    selected_product_ids: Optional[List[str]] = None
    selected_enrollment_product_ids: Optional[List[str]] = None
    selected_subscription_product_ids: Optional[List[str]] = None
    subscription_intervals: Optional[Dict[str, str]] = None
    test_refund_amount: Optional[Literal["full", "partial"]] = None
    test_email_domain: Optional[str] = None


class TestConfig(CamelModel):
    __test__ = False

    id: TestType
    name: str = ""
    description: str = ""
    enabled: bool = False
    schedule: ScheduleInterval = ScheduleInterval.HOURLY
    settings: Optional[TestSettings] = None
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None

    @classmethod
    def default_for(cls, test_type: TestType) -> "TestConfig":
        return cls(
            id=test_type,
            name=test_type.display_name,
            description=test_type.description,
        )


class EmailNotificationSettings(CamelModel):
    enabled: bool = True
    recipients: List[str] = Field(default_factory=list)


class CompanyTestConfig(CamelModel):
    tests: List[TestConfig] = Field(default_factory=list)
    email_notifications: EmailNotificationSettings = Field(default_factory=EmailNotificationSettings)

    @classmethod
    def defaults(cls) -> "CompanyTestConfig":
        return cls(tests=[TestConfig.default_for(test_type) for test_type in TestType])


class TestStep(CamelModel):
    __test__ = False
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    status: StepStatus
    duration: int = 0
    error: Optional[str] = None
    details: Optional[str] = None


class TestResult(CamelModel):
    __test__ = False

    id: str
    test_type: TestType
    status: TestStatus = TestStatus.RUNNING
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    steps: List[TestStep] = Field(default_factory=list)
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ScheduledJob(CamelModel):
    id: str
    company_id: str
    test_type: TestType
    interval: ScheduleInterval
    next_run: datetime
    last_run: Optional[datetime] = None
    enabled: bool = True
    auth_token: str
    settings: Optional[TestSettings] = None

    @staticmethod
    def make_id(company_id: str, test_type: TestType) -> str:
        return f"{company_id}::{TestType(test_type).value}"


class ScheduledJobResponse(CamelModel):
    """Scheduled job as exposed over HTTP; the auth token is never echoed."""

    id: str
    company_id: str
    test_type: TestType
    interval: ScheduleInterval
    next_run: datetime
    last_run: Optional[datetime] = None
    enabled: bool
    settings: Optional[TestSettings] = None


class DailyStats(CamelModel):
    date: str
    passed: int
    failed: int


class TestTypeStats(CamelModel):
    __test__ = False

    test_type: TestType
    success_rate: float
    total_runs: int


class TestAnalytics(CamelModel):
    __test__ = False

    total_runs: int
    success_rate: float
    average_duration: float
    last_seven_days: List[DailyStats]
    by_test_type: List[TestTypeStats]


class NotificationSummary(CamelModel):
    passed: int = 0
    failed: int = 0
    total: int = 0


class EmailNotification(CamelModel):
    to: str = ""
    subject: str = ""
    test_results: List[TestResult] = Field(default_factory=list)
    summary: NotificationSummary = Field(default_factory=NotificationSummary)


# Request / response bodies


class RunTestRequest(CamelModel):
    test_type: TestType
    company_subdomain: str = Field(..., min_length=1)
    auth_token: str = Field(..., min_length=1)
    settings: Optional[TestSettings] = None


class ScheduleRequest(CamelModel):
    company_id: str = Field(..., min_length=1)
    test_type: TestType
    interval: Optional[ScheduleInterval] = None
    enabled: bool = False
    auth_token: Optional[str] = None
    settings: Optional[TestSettings] = None


class ScheduleInfo(CamelModel):
    interval: Optional[ScheduleInterval] = None
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None


class ScheduleResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    schedule: ScheduleInfo


class ScheduledJobListResponse(CamelModel):
    jobs: List[ScheduledJobResponse]


class SaveResultRequest(CamelModel):
    company_id: str = Field(..., min_length=1)
    result: TestResult


class SaveConfigRequest(CamelModel):
    company_id: str = Field(..., min_length=1)
    config: CompanyTestConfig
    auth_token: Optional[str] = None


class SaveConfigResponse(CamelModel):
    success: bool = True
    config: CompanyTestConfig


class ProductsRequest(CamelModel):
    company_subdomain: str = Field(..., min_length=1)
    auth_token: str = Field(..., min_length=1)
    type: Optional[str] = None
    product_type: Optional[str] = None


class ProductsResponse(CamelModel):
    products: List[Dict[str, Any]]
    count: int
