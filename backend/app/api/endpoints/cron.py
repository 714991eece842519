from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends

from app.core.service_auth import require_cron_secret, require_non_production
from app.core.service_provider import TestingServices, get_services

router = APIRouter(prefix="/cron", tags=["cron"])
logger = structlog.get_logger()


async def _sweep(services: TestingServices, source: str) -> Dict[str, Any]:
    checked = datetime.now(timezone.utc)
    logger.info("Running scheduled tests check", source=source)
    executed = await services.scheduler.run_due_jobs(checked)
    logger.info("Scheduled tests check finished", source=source, executed=len(executed))
    return {
        "success": True,
        "checked": checked.isoformat(),
        "executed": len(executed),
        "jobs": executed,
    }


@router.get("", dependencies=[Depends(require_cron_secret)])
async def run_cron(services: TestingServices = Depends(get_services)) -> Dict[str, Any]:
    return await _sweep(services, "cron")


@router.get("/trigger", dependencies=[Depends(require_non_production)])
async def trigger_cron(services: TestingServices = Depends(get_services)) -> Dict[str, Any]:
    """Run the sweep by hand during development."""
    return await _sweep(services, "manual")
