from __future__ import annotations

import argparse
import logging
import signal
import threading

from ..config import settings
from ..db import SessionLocal
from ..integrations.fipe import FipeClient
from ..messaging import BrandConsumer, ConsumerWorker, RedisBrokerQueue
from ..services.ingestion_service import BrandIngestionProcessor
from ..utils.log import configure_logging
from ..utils.redis_cache import CatalogCache, build_redis

logger = logging.getLogger("ingestion")


def build_worker(concurrency: int) -> tuple[ConsumerWorker, FipeClient]:
    client = build_redis(settings.REDIS_URL)
    fipe = FipeClient(
        settings.FIPE_BASE_URL,
        timeout=settings.FIPE_REQUEST_TIMEOUT_SECONDS,
        max_retries=settings.FIPE_MAX_RETRIES,
        backoff=settings.FIPE_RETRY_BACKOFF_SECONDS,
        user_agent=settings.FIPE_USER_AGENT,
    )
    cache = CatalogCache(client if settings.CACHE_ENABLED else None, prefix=settings.CACHE_PREFIX)
    queue = RedisBrokerQueue(
        client,
        settings.QUEUE_NAME,
        max_deliveries=settings.QUEUE_MAX_DELIVERIES,
        poll_interval=settings.QUEUE_POLL_INTERVAL_SECONDS,
    )
    processor = BrandIngestionProcessor(
        SessionLocal,
        fipe,
        cache=cache,
        max_retries=settings.PROCESSING_MAX_RETRIES,
        retry_delay_ms=settings.PROCESSING_RETRY_DELAY_MS,
        delay_between_requests_ms=settings.PROCESSING_DELAY_BETWEEN_REQUESTS_MS,
    )
    worker = ConsumerWorker(
        queue,
        BrandConsumer(queue, processor),
        concurrency=concurrency,
        receive_timeout=settings.QUEUE_POLL_INTERVAL_SECONDS,
    )
    return worker, fipe


def main() -> None:
    parser = argparse.ArgumentParser(description="Consume brand messages and ingest their models")
    parser.add_argument("--once", action="store_true", help="process the queue until empty and exit")
    parser.add_argument("--concurrency", type=int, default=settings.CONSUMER_CONCURRENCY)
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL, settings.INGESTION_LOG_FILE)
    worker, fipe = build_worker(args.concurrency)
    try:
        if args.once:
            handled = worker.drain()
        else:
            stop = threading.Event()

            def _stop(signum, _frame):
                logger.info("signal %s received, stopping worker", signum)
                stop.set()

            signal.signal(signal.SIGINT, _stop)
            signal.signal(signal.SIGTERM, _stop)
            handled = worker.run(stop)
    finally:
        fipe.close()
    print(f"consumer_worker handled={handled}")


if __name__ == "__main__":
    main()
