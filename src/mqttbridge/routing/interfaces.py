from abc import ABC, abstractmethod
from typing import Callable

from loguru import logger

from ..core.message import Message

CommandHandler = Callable[[Message], str]
PayloadHandler = Callable[[bytes], None]
DeliveryFailureHook = Callable[[str, Exception], None]


def log_delivery_failure(context: str, error: Exception) -> None:
    logger.warning(f"Delivery failed for {context}: {error}")


class Publisher(ABC):
    """Defines the broker-side operations the bridges rely on."""

    @abstractmethod
    def publish(
        self, topic: str, payload: bytes, qos: int = 0, retain: bool = False
    ) -> bool:
        """Publishes a raw payload. Returns False if it could not be queued."""
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, topic: str, qos: int, handler: PayloadHandler) -> None:
        """Registers a handler for every payload received on a topic."""
        raise NotImplementedError
