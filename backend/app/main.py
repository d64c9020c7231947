import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

import redis
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .config import settings
from .errors import CatalogError, DuplicateKey, NotFound, UpstreamUnavailable, ValidationError
from .integrations.fipe import FipeClient
from .messaging import BrandPublisher, RedisBrokerQueue
from .routers.fipe import router as fipe_router
from .routers.monitoring import router as monitoring_router
from .schemas.fipe import ErrorOut
from .services.ingestion_service import BrandIngestionProcessor
from .utils.log import configure_logging
from .utils.redis_cache import CatalogCache, build_redis

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (DuplicateKey, status.HTTP_409_CONFLICT),
    (UpstreamUnavailable, status.HTTP_502_BAD_GATEWAY),
)


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(ErrorOut(error=message).model_dump(mode="json"), status_code=status_code)


def status_for(exc: CatalogError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    redis_client: Optional[redis.Redis] = None,
    fipe_client: Optional[FipeClient] = None,
) -> FastAPI:
    configure_logging(settings.LOG_LEVEL, settings.INGESTION_LOG_FILE)

    if session_factory is None:
        from .db import SessionLocal
        session_factory = SessionLocal
    if redis_client is None:
        redis_client = build_redis(settings.REDIS_URL)
    if fipe_client is None:
        fipe_client = FipeClient(
            settings.FIPE_BASE_URL,
            timeout=settings.FIPE_REQUEST_TIMEOUT_SECONDS,
            max_retries=settings.FIPE_MAX_RETRIES,
            backoff=settings.FIPE_RETRY_BACKOFF_SECONDS,
            user_agent=settings.FIPE_USER_AGENT,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.fipe_client.close()

    app = FastAPI(title="FIPE Catalog Ingestion", version="0.1.0", lifespan=lifespan)

    cache = CatalogCache(redis_client if settings.CACHE_ENABLED else None, prefix=settings.CACHE_PREFIX)
    queue = RedisBrokerQueue(
        redis_client,
        settings.QUEUE_NAME,
        max_deliveries=settings.QUEUE_MAX_DELIVERIES,
        poll_interval=settings.QUEUE_POLL_INTERVAL_SECONDS,
    )
    app.state.session_factory = session_factory
    app.state.fipe_client = fipe_client
    app.state.cache = cache
    app.state.queue = queue
    app.state.publisher = BrandPublisher(queue, max_workers=settings.PUBLISH_CONCURRENCY)
    app.state.processor = BrandIngestionProcessor(
        session_factory,
        fipe_client,
        cache=cache,
        max_retries=settings.PROCESSING_MAX_RETRIES,
        retry_delay_ms=settings.PROCESSING_RETRY_DELAY_MS,
        delay_between_requests_ms=settings.PROCESSING_DELAY_BETWEEN_REQUESTS_MS,
    )

    @app.middleware("http")
    async def timing_middleware(request: Request, call_next):
        t0 = time.perf_counter()
        req_id = uuid.uuid4().hex[:8]
        response = await call_next(request)
        total = time.perf_counter() - t0
        response.headers["X-Process-Time"] = f"{total:.3f}"
        logger.debug(
            "req_timing id=%s path=%s status=%s total=%.3f",
            req_id, request.url.path, response.status_code, total,
        )
        return response

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        code = status_for(exc)
        if code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error_response(str(exc), code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return _error_response("; ".join(parts) or "Requisição inválida", status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return _error_response(f"Erro interno: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR)

    app.include_router(fipe_router)
    app.include_router(monitoring_router)

    @app.get("/health", include_in_schema=False)
    def healthcheck():
        return {"status": "ok"}

    return app


app = create_app()
