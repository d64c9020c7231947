from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, List, Protocol, Tuple

from ..errors import BatchPublishError, PublishError
from ..schemas.messages import BrandMessage
from ..utils.taxonomy import require_text, require_vehicle_type

logger = logging.getLogger(__name__)


class MessageQueue(Protocol):
    def send(self, payload: str) -> None: ...

    def is_ready(self) -> bool: ...


class BrandRefLike(Protocol):
    code: str
    name: str


def build_message(brand_code: str, brand_name: str, vehicle_type: str) -> BrandMessage:
    code = require_text(brand_code, "Código da marca é obrigatório")
    name = require_text(brand_name, "Nome da marca é obrigatório")
    vt = require_vehicle_type(vehicle_type)
    return BrandMessage(brand_code=code, brand_name=name, vehicle_type=vt)


class BrandPublisher:
    def __init__(self, queue: MessageQueue, *, max_workers: int = 8) -> None:
        self.queue = queue
        self.max_workers = max(1, max_workers)

    def publish(self, brand_code: str, brand_name: str, vehicle_type: str) -> BrandMessage:
        message = build_message(brand_code, brand_name, vehicle_type)
        logger.info(
            "publishing brand %s - %s (%s)", message.brand_code, message.brand_name, message.vehicle_type)
        try:
            self.queue.send(message.to_json())
        except PublishError:
            raise
        except Exception as exc:
            raise PublishError(f"Falha no envio da marca {message.brand_code}: {exc}") from exc
        return message

    def publish_batch(self, brands: Iterable[BrandRefLike], vehicle_type: str) -> int:
        """Send one message per brand concurrently.

        Blocks until every send finished. Raises ``BatchPublishError`` listing
        each failed brand when any send fails; messages already sent stay sent.
        """
        items = list(brands or [])
        vt = require_vehicle_type(vehicle_type)
        if not items:
            logger.warning("empty brand list for %s, nothing published", vt)
            return 0

        logger.info("publishing %d brands of type %s", len(items), vt)
        failures: List[Tuple[str, Exception]] = []
        workers = min(self.max_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self.publish, brand.code, brand.name, vt): brand.code
                for brand in items
            }
            for fut in as_completed(futures):
                code = futures[fut]
                try:
                    fut.result()
                except Exception as exc:
                    logger.error("failed to publish brand %s (%s): %s", code, vt, exc)
                    failures.append((code, exc))

        if failures:
            raise BatchPublishError(vt, failures, len(items))
        logger.info("all %d brands of type %s published", len(items), vt)
        return len(items)

    def is_ready(self) -> bool:
        return self.queue.is_ready()


__all__ = ["BrandPublisher", "MessageQueue", "build_message"]
