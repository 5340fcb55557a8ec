import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from apps.api.middlewares.metrics import MetricsMiddleware
from apps.api.middlewares.request_log import logging_middleware
from apps.api.routers import chat, events, health, likes, match
from core import close_redis
from core.config import settings
from core.errors import DomainError, TransientError
from core.logging_config import setup_logging
from core.metrics import transient_errors_total
from services.notifier import notifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    setup_logging()
    logger.info("API starting (environment=%s, notifier=%s)", settings.environment, settings.notifier_backend)
    yield
    # Shutdown
    await notifier.close()
    await close_redis()


app = FastAPI(
    title="Pairly API",
    description="Likes, matches and ordered conversations",
    version="0.1.0",
    lifespan=lifespan,
)

# Middlewares
app.add_middleware(MetricsMiddleware)
app.middleware("http")(logging_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map the error taxonomy onto HTTP statuses."""
    if isinstance(exc, TransientError):
        transient_errors_total.labels(operation=request.url.path).inc()
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers={"Retry-After": "1"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(likes.router, prefix="/likes", tags=["likes"])
app.include_router(match.router, prefix="/matches", tags=["matches"])
app.include_router(chat.router, prefix="/conversations", tags=["conversations"])
app.include_router(events.router, prefix="/events", tags=["events"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"status": "ok", "service": "pairly"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
