from fastapi import APIRouter
from app.api.endpoints import cron, fluid, tests

api_router = APIRouter(prefix="/api")
api_router.include_router(tests.router)
api_router.include_router(cron.router)
api_router.include_router(fluid.router)
