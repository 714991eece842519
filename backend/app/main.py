from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.api import api_router
from app.core.config import settings
from app.core.service_provider import initialize_services, shutdown_services
from app.middleware.request_id import RequestIdMiddleware, get_request_id
import logging
import time
import structlog

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(message)s",
)

_shared_processors = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.format_exc_info,
]

# Configure structlog: JSON in production, console in dev
if settings.APP_ENV.lower() != "dev":
    structlog.configure(
        processors=[*_shared_processors, structlog.processors.JSONRenderer()],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
else:
    structlog.configure(
        processors=[*_shared_processors, structlog.dev.ConsoleRenderer()],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the testing services on startup and cancel scheduled timers on shutdown."""
    logger.info("Initializing testing services...", env=settings.APP_ENV)
    await initialize_services()
    try:
        yield
    finally:
        logger.info("Shutting down and cancelling scheduled tests...")
        await shutdown_services()
        logger.info("Application shutdown completed.")


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Configure CORS using settings from environment
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
    expose_headers=settings.CORS_EXPOSE_HEADERS,
    max_age=settings.CORS_MAX_AGE,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests (headers redacted)."""
    start_time = time.time()

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client=request.client.host if request.client else None,
    )

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time_ms=round(process_time * 1000, 2),
        )

        return response
    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            exception_type=type(e).__name__,
            request_id=get_request_id(request),
        )
        raise


# Outermost, so the request id is bound before request logging runs
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors (body content redacted)."""
    logger.warning("Validation error", method=request.method, path=request.url.path)
    # Request bodies carry auth tokens; never echo them back
    safe_errors = [
        {"loc": e.get("loc"), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={"detail": safe_errors},
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.APP_NAME}


app.include_router(api_router)
