import queue
import threading
from enum import Enum
from typing import Callable

import paho.mqtt.client as mqtt
from loguru import logger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_when_event_set,
    wait_fixed,
)

from ..core.errors import TransportError
from ..routing.interfaces import PayloadHandler, Publisher
from .callbacks import ConnectionCallbacks

ClientFactory = Callable[[str], mqtt.Client]


def default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_PENDING = "reconnect_pending"


class Subscription:
    """
    Lazy, unbounded stream of the raw payloads received on one topic.
    Iteration blocks until a payload arrives and ends once the stream is
    closed. A closed stream cannot be restarted.
    """

    _CLOSED = object()

    def __init__(self, topic: str):
        self.topic = topic
        self._queue: queue.Queue = queue.Queue()
        self._closed = False

    def put(self, payload: bytes):
        if not self._closed:
            self._queue.put(payload)

    def close(self):
        if not self._closed:
            self._closed = True
            self._queue.put(self._CLOSED)

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        item = self._queue.get()
        if item is self._CLOSED:
            # keep the marker so later reads also stop
            self._queue.put(self._CLOSED)
            raise StopIteration
        return item


class MqttConnectionManager(Publisher):
    """
    Owns the single MQTT connection of the bridge: connection retries,
    automatic reconnection, subscriptions and orderly shutdown.
    Publish and subscribe are safe to call from any thread.
    """

    def __init__(
        self,
        host: str,
        port: int,
        client_id: str,
        retry_interval: float = 5,
        connect_retry: bool = True,
        keepalive: int = 60,
        callbacks: ConnectionCallbacks | None = None,
        client_factory: ClientFactory = default_client_factory,
    ):
        self.host = host
        self.port = port
        self.retry_interval = retry_interval
        self.connect_retry = connect_retry
        self.keepalive = keepalive
        self.callbacks = callbacks or ConnectionCallbacks()

        self.client = client_factory(client_id)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_unexpected_message
        self.client.reconnect_delay_set(
            min_delay=retry_interval, max_delay=retry_interval
        )

        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._stop_event = threading.Event()
        self._disconnected = threading.Event()
        self._loop_started = False
        self._subscriptions: dict[str, tuple[int, PayloadHandler]] = {}
        self._streams: list[Subscription] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState):
        with self._lock:
            if self._state != state:
                logger.debug(f"MQTT: State {self._state.value} -> {state.value}")
            self._state = state

    def connect(self):
        """
        Connects to the broker, blocking until the connection is made.

        With retry enabled, failed attempts are logged and repeated every
        retry interval until one succeeds or disconnect() is called.

        Raises:
            TransportError: if the first attempt fails and retry is disabled.
        """
        self._stop_event.clear()
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"Attempting to connect to MQTT broker at {self.host}:{self.port}...")

        if not self.connect_retry:
            try:
                self._attempt_connect()
            except TransportError:
                self._set_state(ConnectionState.DISCONNECTED)
                raise
            return

        retrier = Retrying(
            retry=retry_if_exception_type(TransportError),
            wait=wait_fixed(self.retry_interval),
            stop=stop_when_event_set(self._stop_event),
            sleep=self._stop_event.wait,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            retrier(self._attempt_connect)
        except TransportError:
            logger.info("MQTT: Connection attempts cancelled by shutdown.")
            self._set_state(ConnectionState.DISCONNECTED)

    def cancel_connect(self):
        """Stops pending connection retries without touching a live connection."""
        self._stop_event.set()

    def _attempt_connect(self):
        if self._stop_event.is_set():
            raise TransportError("Connection cancelled")

        try:
            self.client.connect(self.host, self.port, self.keepalive)
        except OSError as e:
            raise TransportError(
                f"Could not reach broker at {self.host}:{self.port}. Error: {e}"
            ) from e

        if self._stop_event.is_set():
            self.client.disconnect()
            raise TransportError("Connection cancelled")

        self._disconnected.clear()
        if not self._loop_started:
            self.client.loop_start()
            self._loop_started = True

    def _log_retry(self, retry_state: RetryCallState):
        logger.warning(
            f"MQTT connection failed: {retry_state.outcome.exception()}. "
            f"Retrying in {self.retry_interval} seconds..."
        )

    def disconnect(self, timeout_ms: int = 1000):
        """
        Closes the connection, waiting up to timeout_ms for the broker to
        acknowledge. The connection is closed even if the wait times out.
        Safe to call more than once.
        """
        self._stop_event.set()
        with self._lock:
            state = self._state

        if state == ConnectionState.DISCONNECTED and not self._loop_started:
            logger.debug("MQTT: Already disconnected.")
            self._close_streams()
            return

        logger.info("MQTT: Disconnecting from broker...")
        try:
            self.client.disconnect()
            if state == ConnectionState.CONNECTED and not self._disconnected.wait(
                timeout_ms / 1000
            ):
                logger.warning(
                    f"MQTT: Disconnect not acknowledged within {timeout_ms} ms. Forcing closure."
                )
        except Exception as e:
            logger.warning(f"MQTT: Exception during disconnection: {e}")
        finally:
            if self._loop_started:
                self.client.loop_stop()
                self._loop_started = False
            self._set_state(ConnectionState.DISCONNECTED)
            self._close_streams()

        logger.info("MQTT: Stopped.")

    def _close_streams(self):
        with self._lock:
            streams, self._streams = self._streams, []
        for stream in streams:
            stream.close()

    def publish(
        self, topic: str, payload: bytes, qos: int = 0, retain: bool = False
    ) -> bool:
        with self._lock:
            if self._state != ConnectionState.CONNECTED:
                logger.warning(
                    f"MQTT: Not connected, message for topic '{topic}' was dropped."
                )
                return False
            info = self.client.publish(topic, payload, qos=qos, retain=retain)

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(
                f"MQTT: Failed to publish to topic '{topic}'. Error code: {info.rc}"
            )
            return False

        logger.debug(f"MQTT > Topic: {topic} | {len(payload)} bytes published")
        return True

    def subscribe(self, topic: str, qos: int, handler: PayloadHandler):
        def on_message(client, userdata, msg):
            try:
                handler(msg.payload)
            except Exception:
                logger.exception(f"Unhandled error in handler for topic '{msg.topic}'")

        with self._lock:
            self._subscriptions[topic] = (qos, handler)
            self.client.message_callback_add(topic, on_message)
            if self._state == ConnectionState.CONNECTED:
                self.client.subscribe(topic, qos)
                logger.info(f"Subscribed to topic: {topic}")

    def messages(self, topic: str, qos: int = 0) -> Subscription:
        """Subscribes to a topic and returns the stream of its payloads."""
        stream = Subscription(topic)
        with self._lock:
            self._streams.append(stream)
        self.subscribe(topic, qos, stream.put)
        return stream

    # --- Callbacks ---

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code != 0:
            logger.warning(
                f"MQTT connection failed with code: {reason_code}. The client will try again automatically."
            )
            return

        with self._lock:
            self._state = ConnectionState.CONNECTED
            subscriptions = list(self._subscriptions.items())
            for topic, (qos, _) in subscriptions:
                client.subscribe(topic, qos)

        logger.success(f"Connected to MQTT broker: {self.host}:{self.port}")
        for topic, _ in subscriptions:
            logger.info(f"Subscribed to topic: {topic}")
        self.callbacks.on_connect()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        if self._stop_event.is_set():
            logger.info("MQTT client disconnected successfully.")
            self._disconnected.set()
            return

        self._set_state(ConnectionState.RECONNECT_PENDING)
        logger.warning(f"Unexpected MQTT disconnection. Reason code: {reason_code}")
        self.callbacks.on_connection_lost(
            TransportError(f"Broker connection lost. Reason code: {reason_code}")
        )
        self.callbacks.on_reconnecting()

    def _on_unexpected_message(self, client, userdata, msg):
        try:
            self.callbacks.default_handler(msg.topic, msg.payload)
        except Exception:
            logger.exception(f"Default handler failed for topic '{msg.topic}'")
