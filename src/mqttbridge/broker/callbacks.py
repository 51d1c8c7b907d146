from dataclasses import dataclass
from typing import Callable

from loguru import logger


def log_connected() -> None:
    logger.info("Connected to broker.")


def log_connection_lost(error: Exception | None) -> None:
    logger.warning(f"Connection to broker lost: {error}")


def log_reconnecting() -> None:
    logger.info("Attempting to reconnect to broker...")


def log_unexpected_message(topic: str, payload: bytes) -> None:
    payload_str = payload.decode("utf-8", errors="replace")
    logger.warning(f"Unexpected message on topic '{topic}': {payload_str}")


@dataclass
class ConnectionCallbacks:
    """
    Connection lifecycle notifications handed to a connection manager.
    Every field defaults to a handler that only logs.
    """

    on_connect: Callable[[], None] = log_connected
    on_connection_lost: Callable[[Exception | None], None] = log_connection_lost
    on_reconnecting: Callable[[], None] = log_reconnecting
    default_handler: Callable[[str, bytes], None] = log_unexpected_message
