import threading
import time

import uvicorn
from loguru import logger

from .bridges.inbound import create_app
from .bridges.outbound import OutboundBridge
from .broker.connection import MqttConnectionManager
from .config import BridgeConfig
from .core.errors import ServerStartupError
from .downstream.client import DownstreamClient
from .routing.router import MessageRouter, probe_handler

HTTP_STARTUP_TIMEOUT = 10.0


class Orchestrator:
    """
    Wires the broker connection, both bridges and the local command router
    together and drives their lifecycle.
    """

    def __init__(
        self,
        config: BridgeConfig,
        connection: MqttConnectionManager | None = None,
        downstream: DownstreamClient | None = None,
    ):
        self.config = config
        self.connection = connection or MqttConnectionManager(
            config.broker_host,
            config.broker_port,
            client_id=config.client_id,
            retry_interval=config.retry_interval,
            connect_retry=config.connect_retry,
        )
        self.downstream = downstream or DownstreamClient(config.gowon_host)

        self.router = MessageRouter(config.module_name)
        self.router.register("test", probe_handler)

        self.outbound = OutboundBridge(
            self.connection, self.downstream, config.output_topic
        )
        self.app = create_app(
            self.connection,
            config.module_name,
            config.input_topic,
            state=lambda: self.connection.state,
        )

        self._stop_event = threading.Event()
        self._server: uvicorn.Server | None = None
        self._server_thread: threading.Thread | None = None

    def run(self):
        """
        Starts the bridge and blocks until request_stop() is called.

        Raises:
            ServerStartupError: if the HTTP server could not be started.
            TransportError: if the broker cannot be reached and connection
                retries are disabled.
        """
        logger.info("Starting the bridge...")

        self.router.attach(
            self.connection, self.config.input_topic, self.config.output_topic
        )
        self.outbound.start()

        try:
            self._start_http_server()
            self.connection.connect()
            if not self._stop_event.is_set():
                logger.success("Bridge is running.")
            self._stop_event.wait()
        except KeyboardInterrupt:
            logger.info("Keyboard interruption detected. Shutting down...")
        finally:
            self.stop()

    def request_stop(self):
        self._stop_event.set()
        self.connection.cancel_connect()

    def _start_http_server(self):
        server_config = uvicorn.Config(
            self.app,
            host="0.0.0.0",
            port=self.config.http_port,
            log_level="warning",
        )
        self._server = uvicorn.Server(server_config)
        self._server_thread = threading.Thread(
            target=self._server.run, name="http-server", daemon=True
        )
        logger.info(f"Starting HTTP server on 0.0.0.0:{self.config.http_port}")
        self._server_thread.start()

        deadline = time.monotonic() + HTTP_STARTUP_TIMEOUT
        while not self._server.started and self._server_thread.is_alive():
            if time.monotonic() >= deadline:
                logger.warning("HTTP server is taking long to start. Continuing.")
                return
            self._server_thread.join(0.05)

        if not self._server.started:
            raise ServerStartupError(
                f"HTTP server could not listen on port {self.config.http_port}"
            )

    def stop(self):
        logger.info("Shutting down the bridge...")
        grace = self.config.disconnect_timeout_ms / 1000

        self.connection.disconnect(self.config.disconnect_timeout_ms)

        if self._server and self._server_thread:
            self._server.should_exit = True
            self._server_thread.join(grace)
            if self._server_thread.is_alive():
                logger.warning("HTTP server did not drain in time. Forcing exit.")
                self._server.force_exit = True
            self._server = None
            self._server_thread = None

        self.outbound.stop(grace)
        self.downstream.close()

        logger.success("Bridge shut down successfully.")
