import threading
from typing import Iterable

from loguru import logger

from ..broker.connection import MqttConnectionManager
from ..core.codec import decode
from ..core.errors import DecodeError, DownstreamError
from ..downstream.client import DownstreamClient
from ..routing.interfaces import DeliveryFailureHook, log_delivery_failure


class OutboundBridge:
    """
    Relays every message of the broker's output topic to the downstream
    command service. Forwarding is at-most-once: failures are reported
    and the message is dropped.
    """

    def __init__(
        self,
        connection: MqttConnectionManager,
        downstream: DownstreamClient,
        output_topic: str,
        on_delivery_failure: DeliveryFailureHook = log_delivery_failure,
    ):
        self.connection = connection
        self.downstream = downstream
        self.output_topic = output_topic
        self.on_delivery_failure = on_delivery_failure
        self._worker: threading.Thread | None = None

    def start(self):
        """Subscribes to the output topic and consumes it on a worker thread."""
        stream = self.connection.messages(self.output_topic, qos=0)
        self._worker = threading.Thread(
            target=self.run, args=(stream,), name="outbound-bridge", daemon=True
        )
        self._worker.start()
        logger.info(f"Outbound bridge listening on topic '{self.output_topic}'.")

    def run(self, stream: Iterable[bytes]):
        for payload in stream:
            try:
                self.handle(payload)
            except Exception:
                logger.exception("An unexpected error occurred while relaying a message.")
        logger.debug("Outbound bridge stream closed.")

    def handle(self, payload: bytes) -> bool:
        """Forwards one payload. Returns True if the service accepted it."""
        try:
            message = decode(payload)
        except DecodeError as e:
            self.on_delivery_failure(f"topic '{self.output_topic}'", e)
            return False

        logger.debug(
            f"MQTT < Topic: {self.output_topic} | Forwarding command "
            f"'{message.command}' from module '{message.module}'"
        )
        try:
            reply = self.downstream.send(message)
        except DownstreamError as e:
            self.on_delivery_failure(f"command '{e.command}'", e)
            return False

        if reply is not None and reply.msg:
            logger.debug(f"Downstream replied to '{message.command}': {reply.msg}")
        return True

    def stop(self, timeout: float | None = None):
        if self._worker:
            self._worker.join(timeout)
            self._worker = None
