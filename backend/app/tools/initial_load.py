from __future__ import annotations

import argparse
import sys

from ..config import settings
from ..errors import CatalogError
from ..integrations.fipe import FipeClient
from ..messaging import BrandPublisher, RedisBrokerQueue
from ..services.initial_load_service import InitialLoadService
from ..utils.log import configure_logging
from ..utils.redis_cache import build_redis
from ..utils.taxonomy import VEHICLE_TYPES


def main() -> None:
    parser = argparse.ArgumentParser(description="Fetch FIPE brands and queue them for ingestion")
    parser.add_argument("--vehicle-type", choices=VEHICLE_TYPES, action="append",
                        help="limit to one vehicle type (repeatable); default all")
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL, settings.INGESTION_LOG_FILE)
    queue = RedisBrokerQueue(build_redis(settings.REDIS_URL), settings.QUEUE_NAME,
                             max_deliveries=settings.QUEUE_MAX_DELIVERIES)
    publisher = BrandPublisher(queue, max_workers=settings.PUBLISH_CONCURRENCY)
    client = FipeClient(
        settings.FIPE_BASE_URL,
        timeout=settings.FIPE_REQUEST_TIMEOUT_SECONDS,
        max_retries=settings.FIPE_MAX_RETRIES,
        backoff=settings.FIPE_RETRY_BACKOFF_SECONDS,
        user_agent=settings.FIPE_USER_AGENT,
    )
    try:
        summary = InitialLoadService(client, publisher).run(args.vehicle_type)
    except CatalogError as exc:
        print(f"initial_load failed: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        client.close()
    for vt, count in summary.published.items():
        print(f"{vt}: {count}")
    print(f"total={summary.total}")


if __name__ == "__main__":
    main()
