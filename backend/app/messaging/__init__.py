from .queue import Delivery, RedisBrokerQueue
from .publisher import BrandPublisher, build_message
from .consumer import BrandConsumer, ConsumerWorker, MessageState, validate_message

__all__ = [
    "Delivery",
    "RedisBrokerQueue",
    "BrandPublisher",
    "build_message",
    "BrandConsumer",
    "ConsumerWorker",
    "MessageState",
    "validate_message",
]
