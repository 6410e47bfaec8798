"""FastAPI main application."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finsight.api.v1 import market_data, portfolio
from finsight.config import settings
from finsight.core.database import close_db, init_db
from finsight.core.exceptions import (
    DataInconsistency,
    HoldingValidationError,
    UpstreamUnavailable,
)
from finsight.core.logging_config import setup_logging
from finsight.core.metrics import create_metrics_app, setup_metrics
from finsight.middleware.error_handler import ErrorHandlerMiddleware
from finsight.services.cache_preload import run_startup_tasks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}")

    await init_db()
    await run_startup_tasks()

    metrics_task = None
    if settings.METRICS_ENABLED:
        import uvicorn

        metrics_config = uvicorn.Config(
            create_metrics_app(),
            host="0.0.0.0",  # nosec B104 - internal admin port behind basic auth
            port=settings.METRICS_ADMIN_PORT,
            log_level="warning",
        )
        metrics_task = asyncio.create_task(uvicorn.Server(metrics_config).serve())
        logger.info(f"Metrics admin server started on port {settings.METRICS_ADMIN_PORT}")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")
    if metrics_task is not None:
        metrics_task.cancel()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

# Instrument the app with Prometheus (metrics served on admin port, not here)
if settings.METRICS_ENABLED:
    setup_metrics(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(ErrorHandlerMiddleware)


def upstream_status_code(exc: UpstreamUnavailable) -> int:
    """Map an upstream failure onto the status returned to the client."""
    if exc.timed_out:
        return status.HTTP_504_GATEWAY_TIMEOUT
    if exc.status_code in (
        status.HTTP_400_BAD_REQUEST,
        status.HTTP_404_NOT_FOUND,
        status.HTTP_429_TOO_MANY_REQUESTS,
    ):
        return exc.status_code
    return status.HTTP_502_BAD_GATEWAY


@app.exception_handler(HoldingValidationError)
async def validation_error_handler(request: Request, exc: HoldingValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": exc.code, "detail": str(exc)},
    )


@app.exception_handler(UpstreamUnavailable)
async def upstream_error_handler(request: Request, exc: UpstreamUnavailable):
    logger.warning(
        "upstream_unavailable",
        extra={"provider": exc.provider, "status_code": exc.status_code, "path": request.url.path},
    )
    return JSONResponse(
        status_code=upstream_status_code(exc),
        content={"error": exc.code, "detail": str(exc)},
    )


@app.exception_handler(DataInconsistency)
async def data_inconsistency_handler(request: Request, exc: DataInconsistency):
    logger.error(
        "data_inconsistency_detected",
        extra={"path": request.url.path, "error": str(exc)},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Data inconsistency",
            "code": exc.code,
            "detail": "Stored holdings disagree with each other. An operator must repair them.",
        },
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(portfolio.router, prefix="/api/v1/portfolio", tags=["Portfolio"])
app.include_router(market_data.router, prefix="/api/v1/market-data", tags=["Market Data"])
