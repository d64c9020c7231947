from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import redis

from ..errors import PublishError

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    payload: str
    attempt: int


class RedisBrokerQueue:
    """
    Durable at-least-once queue on Redis lists.

    ``<name>`` holds ready messages, ``<name>:processing`` holds messages
    handed to a consumer and not yet acknowledged, ``<name>:dlq`` holds
    dead letters. Delivery counts live in the ``<name>:deliveries`` hash.
    """

    def __init__(
        self,
        client: redis.Redis,
        name: str = "fipe:marcas",
        *,
        max_deliveries: int = 5,
        poll_interval: float = 1.0,
    ) -> None:
        self.client = client
        self.name = name
        self.processing_key = f"{name}:processing"
        self.dead_letter_key = f"{name}:dlq"
        self.deliveries_key = f"{name}:deliveries"
        self.max_deliveries = max(1, max_deliveries)
        self.poll_interval = poll_interval

    def send(self, payload: str) -> None:
        try:
            self.client.lpush(self.name, payload)
        except redis.RedisError as exc:
            raise PublishError(f"queue {self.name} unavailable: {exc}") from exc

    def receive(self, timeout: float = 0.0) -> Optional[Delivery]:
        deadline = time.monotonic() + max(0.0, timeout)
        while True:
            raw = self.client.lmove(self.name, self.processing_key, "RIGHT", "LEFT")
            if raw is not None:
                attempt = int(self.client.hincrby(self.deliveries_key, raw, 1))
                return Delivery(payload=raw, attempt=attempt)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            time.sleep(min(self.poll_interval, remaining))

    def ack(self, delivery: Delivery) -> None:
        self.client.lrem(self.processing_key, 1, delivery.payload)
        self.client.hdel(self.deliveries_key, delivery.payload)

    def nack(self, delivery: Delivery, *, requeue: bool = True) -> bool:
        """Returns True when the message went back to the ready list."""
        self.client.lrem(self.processing_key, 1, delivery.payload)
        if requeue and delivery.attempt < self.max_deliveries:
            self.client.lpush(self.name, delivery.payload)
            return True
        self.client.hdel(self.deliveries_key, delivery.payload)
        self.client.lpush(self.dead_letter_key, delivery.payload)
        logger.warning(
            "message dead-lettered after %d deliveries: %s", delivery.attempt, delivery.payload)
        return False

    def requeue_inflight(self) -> int:
        """Move messages a crashed worker left unacknowledged back to the ready list."""
        moved = 0
        while self.client.lmove(self.processing_key, self.name, "RIGHT", "RIGHT") is not None:
            moved += 1
        if moved:
            logger.info("requeued %d in-flight messages from %s", moved, self.processing_key)
        return moved

    def stats(self) -> Dict[str, int]:
        return {
            "ready": int(self.client.llen(self.name)),
            "processing": int(self.client.llen(self.processing_key)),
            "dead_letter": int(self.client.llen(self.dead_letter_key)),
        }

    def is_ready(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as exc:
            logger.warning("queue backend unavailable: %s", exc)
            return False


__all__ = ["Delivery", "RedisBrokerQueue"]
