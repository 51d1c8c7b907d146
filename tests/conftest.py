"""
Pytest fixtures for the bridge tests.
"""

from types import SimpleNamespace

import pytest

from mqttbridge.broker.callbacks import ConnectionCallbacks
from mqttbridge.broker.connection import MqttConnectionManager
from mqttbridge.core.message import Message
from mqttbridge.routing.interfaces import Publisher


class FakeMqttClient:
    """Stands in for paho's Client, driving callbacks synchronously."""

    def __init__(self, client_id: str = "test"):
        self.client_id = client_id
        self.fail_connects = 0
        self.auto_connack = True
        self.ack_disconnect = True
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.loop_running = False
        self.published = []
        self.subscribed = []
        self.callbacks = {}
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None

    def reconnect_delay_set(self, min_delay=1, max_delay=120):
        self.reconnect_delay = (min_delay, max_delay)

    def connect(self, host, port, keepalive):
        self.connect_calls += 1
        if self.connect_calls <= self.fail_connects:
            raise ConnectionRefusedError("Connection refused")
        if self.auto_connack:
            self.connack()
        return 0

    def connack(self, reason_code=0):
        self.on_connect(self, None, {}, reason_code, None)

    def loop_start(self):
        self.loop_running = True

    def loop_stop(self):
        self.loop_running = False

    def disconnect(self):
        self.disconnect_calls += 1
        if self.ack_disconnect and self.on_disconnect:
            self.on_disconnect(self, None, {}, 0, None)

    def drop_connection(self, reason_code=7):
        self.on_disconnect(self, None, {}, reason_code, None)

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))
        return SimpleNamespace(rc=0)

    def subscribe(self, topic, qos=0):
        self.subscribed.append((topic, qos))
        return (0, len(self.subscribed))

    def message_callback_add(self, topic, callback):
        self.callbacks[topic] = callback

    def deliver(self, topic: str, payload: bytes):
        callback = self.callbacks.get(topic, self.on_message)
        callback(self, None, SimpleNamespace(topic=topic, payload=payload))


class FakePublisher(Publisher):
    def __init__(self):
        self.published = []
        self.handlers = {}

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))
        return True

    def subscribe(self, topic, qos, handler):
        self.handlers[topic] = handler

    def deliver(self, topic: str, payload: bytes):
        self.handlers[topic](payload)


class FakeDownstream:
    def __init__(self, error: Exception | None = None):
        self.sent = []
        self.error = error
        self.closed = False

    def send(self, message: Message):
        self.sent.append(message)
        if self.error:
            raise self.error
        return Message(module="gowon", msg="ok", dest=message.dest)

    def close(self):
        self.closed = True


class Recorder:
    """Collects calls made to a callback."""

    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)


@pytest.fixture
def fake_client() -> FakeMqttClient:
    return FakeMqttClient()


@pytest.fixture
def callbacks() -> ConnectionCallbacks:
    return ConnectionCallbacks(
        on_connect=Recorder(),
        on_connection_lost=Recorder(),
        on_reconnecting=Recorder(),
        default_handler=Recorder(),
    )


@pytest.fixture
def connection(fake_client, callbacks) -> MqttConnectionManager:
    return MqttConnectionManager(
        "localhost",
        1883,
        client_id="gowon_test",
        retry_interval=0.01,
        callbacks=callbacks,
        client_factory=lambda client_id: fake_client,
    )


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def downstream() -> FakeDownstream:
    return FakeDownstream()
