from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Optional, Protocol

import pydantic
import redis

from ..errors import CatalogError
from ..schemas.messages import BrandMessage
from ..utils.taxonomy import require_text, require_vehicle_type
from .queue import Delivery, RedisBrokerQueue

logger = logging.getLogger("ingestion")


class MessageState(str, Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    PROCESSING = "processing"
    ACKNOWLEDGED = "acknowledged"
    NACKED = "negatively_acknowledged"


class BrandProcessor(Protocol):
    def process(self, brand_code: str, brand_name: str, vehicle_type: str): ...


def validate_message(message: BrandMessage) -> BrandMessage:
    code = require_text(message.brand_code, "Código da marca é obrigatório")
    name = require_text(message.brand_name, "Nome da marca é obrigatório")
    vt = require_vehicle_type(message.vehicle_type)
    return message.model_copy(update={"brand_code": code, "brand_name": name, "vehicle_type": vt})


class BrandConsumer:
    """Turns one queue delivery into one processor call plus an ack or nack."""

    def __init__(self, queue: RedisBrokerQueue, processor: BrandProcessor) -> None:
        self.queue = queue
        self.processor = processor

    def _transition(self, delivery: Delivery, state: MessageState) -> None:
        logger.debug("delivery attempt=%d -> %s", delivery.attempt, state.value)

    def handle(self, delivery: Delivery) -> MessageState:
        self._transition(delivery, MessageState.RECEIVED)
        self._transition(delivery, MessageState.VALIDATING)
        try:
            message = validate_message(BrandMessage.from_json(delivery.payload))
        except (pydantic.ValidationError, ValueError) as exc:
            # straight to the dead-letter list
            logger.error("rejecting invalid message %r: %s", delivery.payload, exc)
            self.queue.nack(delivery, requeue=False)
            self._transition(delivery, MessageState.NACKED)
            return MessageState.NACKED

        self._transition(delivery, MessageState.PROCESSING)
        try:
            self.processor.process(message.brand_code, message.brand_name, message.vehicle_type)
        except Exception as exc:
            logger.error(
                "processing failed for brand %s (%s): %s",
                message.brand_code, message.vehicle_type, exc,
                exc_info=not isinstance(exc, CatalogError),
            )
            requeued = self.queue.nack(delivery, requeue=True)
            logger.info("brand %s nacked, requeued=%s", message.brand_code, requeued)
            self._transition(delivery, MessageState.NACKED)
            return MessageState.NACKED

        self.queue.ack(delivery)
        self._transition(delivery, MessageState.ACKNOWLEDGED)
        logger.info("brand %s (%s) processed and acknowledged", message.brand_name, message.brand_code)
        return MessageState.ACKNOWLEDGED


class ConsumerWorker:
    """
    Pulls deliveries from the queue and runs ``BrandConsumer.handle`` on a
    bounded thread pool. At most ``concurrency`` deliveries are in flight.
    """

    def __init__(
        self,
        queue: RedisBrokerQueue,
        consumer: BrandConsumer,
        *,
        concurrency: int = 4,
        receive_timeout: float = 1.0,
    ) -> None:
        self.queue = queue
        self.consumer = consumer
        self.concurrency = max(1, concurrency)
        self.receive_timeout = receive_timeout
        self._slots = threading.BoundedSemaphore(self.concurrency)

    def _run_one(self, delivery: Delivery) -> None:
        try:
            self.consumer.handle(delivery)
        except Exception:
            # handle() acks/nacks itself; reaching here means the queue call failed
            logger.exception("unexpected failure handling delivery %r", delivery.payload)
        finally:
            self._slots.release()

    def run(self, stop_event: Optional[threading.Event] = None) -> int:
        stop_event = stop_event or threading.Event()
        try:
            self.queue.requeue_inflight()
        except redis.RedisError as exc:
            logger.warning("could not requeue in-flight messages: %s", exc)
        handled = 0
        logger.info("consumer worker started, concurrency=%d", self.concurrency)
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="brand-consumer") as pool:
            while not stop_event.is_set():
                if not self._slots.acquire(timeout=self.receive_timeout):
                    continue
                try:
                    delivery = self.queue.receive(timeout=self.receive_timeout)
                except redis.RedisError as exc:
                    self._slots.release()
                    logger.warning("queue receive failed, retrying: %s", exc)
                    stop_event.wait(self.queue.poll_interval)
                    continue
                if delivery is None:
                    self._slots.release()
                    continue
                pool.submit(self._run_one, delivery)
                handled += 1
        logger.info("consumer worker stopped after %d deliveries", handled)
        return handled

    def drain(self) -> int:
        """Process until the ready list is empty, then wait for in-flight work."""
        handled = 0
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="brand-consumer") as pool:
            while True:
                self._slots.acquire()
                try:
                    delivery = self.queue.receive(timeout=0)
                except redis.RedisError:
                    self._slots.release()
                    raise
                if delivery is None:
                    self._slots.release()
                    break
                pool.submit(self._run_one, delivery)
                handled += 1
        return handled


__all__ = ["BrandConsumer", "ConsumerWorker", "MessageState", "validate_message"]
