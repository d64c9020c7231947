import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ..deps import get_cache, get_processor, get_publisher, get_queue
from ..messaging import BrandPublisher, RedisBrokerQueue
from ..services.ingestion_service import BrandIngestionProcessor
from ..utils.redis_cache import CatalogCache

router = APIRouter(prefix="/api/v2/monitoring", tags=["monitoring"])
logger = logging.getLogger(__name__)


@router.get("/health")
def health(processor: BrandIngestionProcessor = Depends(get_processor)):
    try:
        stats = processor.processing_stats()
    except Exception as exc:
        logger.error("health check failed: %s", exc)
        return JSONResponse(
            {"status": f"Consumidor com problemas: {exc}", "healthy": False, "stats": None},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return {"status": "Consumidor funcionando", "healthy": True, "stats": stats}


@router.get("/ping")
def ping():
    return {"status": "ok"}


@router.get("/stats")
def stats(
    processor: BrandIngestionProcessor = Depends(get_processor),
    queue: RedisBrokerQueue = Depends(get_queue),
    cache: CatalogCache = Depends(get_cache),
    publisher: BrandPublisher = Depends(get_publisher),
):
    data = processor.processing_stats()
    try:
        data["queue"] = queue.stats()
    except Exception as exc:
        logger.warning("queue stats unavailable: %s", exc)
        data["queue"] = None
    data["producerReady"] = publisher.is_ready()
    data["cacheAvailable"] = cache.is_available()
    logger.info("stats requested - brands: %d, models: %d", data["total_brands"], data["total_models"])
    return data


@router.get("/brands/{code}/processed")
def brand_processed(code: str, processor: BrandIngestionProcessor = Depends(get_processor)):
    processed = processor.is_brand_processed(code)
    return {
        "codigoMarca": code,
        "processada": processed,
        "message": "Marca já processada" if processed else "Marca não processada",
    }
