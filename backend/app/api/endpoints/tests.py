import asyncio
import json
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from app.core.service_provider import TestingServices, get_services
from app.schemas.testing import (
    CompanyTestConfig,
    EmailNotification,
    RunTestRequest,
    SaveConfigRequest,
    SaveConfigResponse,
    SaveResultRequest,
    ScheduledJobListResponse,
    ScheduledJobResponse,
    ScheduleInfo,
    ScheduleRequest,
    ScheduleResponse,
    TestAnalytics,
    TestResult,
)
from app.services.analytics import compute_analytics
from app.services.notifications import NotificationError

router = APIRouter(prefix="/tests", tags=["tests"])
logger = structlog.get_logger()

STREAM_END_EVENTS = {"result", "error"}


def _require_company(company_id: Optional[str]) -> str:
    if not company_id or not company_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Company ID is required")
    return company_id.strip()


def _sse(payload: Dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode()


@router.post("/run", response_model=TestResult)
async def run_test(
    request: RunTestRequest,
    services: TestingServices = Depends(get_services),
) -> TestResult:
    logger.info("Running test", test_type=request.test_type.value, company=request.company_subdomain)
    return await services.run_test(
        request.test_type,
        request.company_subdomain,
        request.auth_token,
        request.settings,
    )


@router.post("/run/stream")
async def run_test_stream(
    request: RunTestRequest,
    services: TestingServices = Depends(get_services),
):
    """Run a test and stream step progress, then the result, as server-sent events."""
    queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    async def on_progress(step: str, current: int, total: int) -> None:
        await queue.put({"event": "progress", "step": step, "current": current, "total": total})

    async def execute() -> None:
        try:
            result = await services.run_test(
                request.test_type,
                request.company_subdomain,
                request.auth_token,
                request.settings,
                on_progress=on_progress,
            )
        except Exception as exc:
            logger.exception("Streamed test run crashed", test_type=request.test_type.value)
            await queue.put({"event": "error", "error": str(exc) or type(exc).__name__})
            return
        await queue.put({"event": "result", "result": result.model_dump(mode="json", by_alias=True)})

    async def event_generator():
        task = asyncio.create_task(execute())
        try:
            while True:
                payload = await queue.get()
                yield _sse(payload)
                if payload["event"] in STREAM_END_EVENTS:
                    break
        finally:
            if not task.done():
                task.cancel()

    logger.info("Streaming test run", test_type=request.test_type.value, company=request.company_subdomain)
    return StreamingResponse(event_generator(), media_type="text/event-stream")


@router.post("/schedule", response_model=ScheduleResponse)
async def save_schedule(
    request: ScheduleRequest,
    services: TestingServices = Depends(get_services),
) -> ScheduleResponse:
    company_id = _require_company(request.company_id)
    logger.info(
        "Schedule request",
        company=company_id,
        test_type=request.test_type.value,
        interval=request.interval.value if request.interval else None,
        enabled=request.enabled,
    )

    if not request.enabled:
        services.scheduler.cancel_test(company_id, request.test_type)
        return ScheduleResponse(message="Schedule cleared", schedule=ScheduleInfo())

    if not request.interval or not request.auth_token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Interval and auth token required to enable scheduling",
        )

    job = services.scheduler.schedule_test(
        company_id,
        request.test_type,
        request.interval,
        request.auth_token,
        request.settings,
    )
    return ScheduleResponse(
        schedule=ScheduleInfo(interval=job.interval, next_run=job.next_run, last_run=job.last_run),
    )


@router.get("/schedule", response_model=ScheduledJobListResponse)
async def list_schedules(
    company_id: Optional[str] = Query(default=None, alias="companyId"),
    services: TestingServices = Depends(get_services),
) -> ScheduledJobListResponse:
    company_id = _require_company(company_id)
    jobs = services.scheduler.get_company_jobs(company_id)
    return ScheduledJobListResponse(
        jobs=[ScheduledJobResponse.model_validate(job.model_dump()) for job in jobs],
    )


@router.get("/results", response_model=List[TestResult])
async def get_results(
    company_id: Optional[str] = Query(default=None, alias="companyId"),
    limit: int = Query(default=50, ge=1),
    services: TestingServices = Depends(get_services),
) -> List[TestResult]:
    company_id = _require_company(company_id)
    return services.store.get_test_results(company_id, limit)


@router.post("/results")
async def save_result(
    request: SaveResultRequest,
    services: TestingServices = Depends(get_services),
) -> Dict[str, Any]:
    company_id = _require_company(request.company_id)
    services.store.save_test_result(company_id, request.result)
    return {"success": True}


@router.get("/config", response_model=CompanyTestConfig)
async def get_config(
    company_id: Optional[str] = Query(default=None, alias="companyId"),
    services: TestingServices = Depends(get_services),
) -> CompanyTestConfig:
    return services.get_config(_require_company(company_id))


@router.post("/config", response_model=SaveConfigResponse)
async def save_config(
    request: SaveConfigRequest,
    services: TestingServices = Depends(get_services),
) -> SaveConfigResponse:
    company_id = _require_company(request.company_id)
    config = request.config

    if request.auth_token:
        jobs = services.scheduler.update_from_config(company_id, config, request.auth_token)
        scheduled = {job.test_type: job for job in jobs}
        for test in config.tests:
            job = scheduled.get(test.id)
            test.next_run = job.next_run if job else None
            if job and job.last_run:
                test.last_run = job.last_run
        logger.info("Schedules synced from config", company=company_id, scheduled=len(jobs))

    services.store.save_test_config(company_id, config)
    return SaveConfigResponse(config=config)


@router.get("/analytics", response_model=TestAnalytics)
async def get_analytics(
    company_id: Optional[str] = Query(default=None, alias="companyId"),
    services: TestingServices = Depends(get_services),
) -> TestAnalytics:
    company_id = _require_company(company_id)
    return compute_analytics(services.store.get_all_test_results(company_id))


@router.post("/notify")
async def send_notification(
    notification: EmailNotification,
    services: TestingServices = Depends(get_services),
) -> Dict[str, Any]:
    try:
        return await services.notifier.send(notification)
    except NotificationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
