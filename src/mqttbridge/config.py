import argparse
import os
from dataclasses import dataclass
from urllib.parse import urlparse

import yaml
from loguru import logger

from .core.errors import ConfigurationError

MODULE_NAME = "mqttbroker"
INPUT_TOPIC = "/gowon/input"
OUTPUT_TOPIC = "/gowon/output"

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

DEFAULTS = {
    "http_port": 8080,
    "broker": "localhost:1883",
    "gowon_host": None,
    "retry_interval": 5.0,
    "disconnect_timeout_ms": 1000,
    "log_level": "INFO",
    "connect_retry": True,
    "input_topic": INPUT_TOPIC,
    "output_topic": OUTPUT_TOPIC,
}

ENV_VARS = {
    "http_port": "GOWON_HTTP_PORT",
    "broker": "GOWON_BROKER",
    "gowon_host": "GOWON_HOST",
    "retry_interval": "GOWON_RETRY_INTERVAL",
    "disconnect_timeout_ms": "GOWON_DISCONNECT_TIMEOUT",
    "log_level": "GOWON_LOG_LEVEL",
}


@dataclass(frozen=True)
class BridgeConfig:
    http_port: int
    broker_host: str
    broker_port: int
    gowon_host: str
    retry_interval: float
    disconnect_timeout_ms: int
    log_level: str
    connect_retry: bool = True
    input_topic: str = INPUT_TOPIC
    output_topic: str = OUTPUT_TOPIC
    module_name: str = MODULE_NAME

    @property
    def client_id(self) -> str:
        return f"gowon_{self.module_name}"


def create_parser():
    parser = argparse.ArgumentParser(
        description="gowon MQTT bridge",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="FILE",
        help="Optional YAML config file",
    )
    parser.add_argument(
        "-H", "--http-port", dest="http_port", help="HTTP port [env GOWON_HTTP_PORT]"
    )
    parser.add_argument(
        "-b", "--broker", help="MQTT broker host:port [env GOWON_BROKER]"
    )
    parser.add_argument(
        "-g", "--gowon-host", dest="gowon_host", help="gowon address [env GOWON_HOST]"
    )
    parser.add_argument(
        "--retry-interval",
        dest="retry_interval",
        help="Seconds between broker connection attempts [env GOWON_RETRY_INTERVAL]",
    )
    parser.add_argument(
        "--disconnect-timeout",
        dest="disconnect_timeout_ms",
        help="Milliseconds allowed for a graceful disconnect [env GOWON_DISCONNECT_TIMEOUT]",
    )
    parser.add_argument(
        "--log-level", dest="log_level", help="Log level [env GOWON_LOG_LEVEL]"
    )
    parser.add_argument(
        "--no-connect-retry",
        dest="connect_retry",
        action="store_false",
        default=None,
        help="Exit if the first broker connection attempt fails",
    )

    return parser


def load_yaml(path: str) -> dict:
    config_path = os.path.join(os.getcwd(), path)

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found in '{config_path}'") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Syntax error in YAML file '{config_path}': {e}"
        ) from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Config file '{config_path}' must hold a mapping")

    logger.info("Config loaded succesfully.")
    return config


def _to_int(name: str, value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"'{name}' must be an integer, got {value!r}") from e


def _to_float(name: str, value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"'{name}' must be a number, got {value!r}") from e


def _parse_broker(value: str) -> tuple[str, int]:
    host, sep, port = str(value).rpartition(":")
    if not sep or not host:
        raise ConfigurationError(f"Broker must be given as host:port, got {value!r}")
    port_number = _to_int("broker port", port)
    if not 1 <= port_number <= 65535:
        raise ConfigurationError(f"Broker port must be in 1-65535, got {port_number}")
    return host, port_number


def build_config(raw: dict) -> BridgeConfig:
    """
    Validates raw settings and builds the bridge configuration.

    Raises:
        ConfigurationError: if a setting is missing or invalid.
    """
    http_port = _to_int("http_port", raw.get("http_port"))
    if not 1 <= http_port <= 65535:
        raise ConfigurationError(f"HTTP port must be in 1-65535, got {http_port}")

    broker_host, broker_port = _parse_broker(raw.get("broker"))

    gowon_host = raw.get("gowon_host")
    if not gowon_host:
        raise ConfigurationError("The gowon address is required (--gowon-host / GOWON_HOST)")
    parsed = urlparse(str(gowon_host))
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f"The gowon address must be an http(s) URL, got {gowon_host!r}"
        )

    retry_interval = _to_float("retry_interval", raw.get("retry_interval"))
    if retry_interval <= 0:
        raise ConfigurationError("Retry interval must be greater than zero")

    disconnect_timeout_ms = _to_int(
        "disconnect_timeout_ms", raw.get("disconnect_timeout_ms")
    )
    if disconnect_timeout_ms < 0:
        raise ConfigurationError("Disconnect timeout cannot be negative")

    log_level = str(raw.get("log_level", "INFO")).upper()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(f"Unknown log level '{log_level}'")

    connect_retry = raw.get("connect_retry", True)
    if not isinstance(connect_retry, bool):
        raise ConfigurationError(
            f"'connect_retry' must be true or false, got {connect_retry!r}"
        )

    return BridgeConfig(
        http_port=http_port,
        broker_host=broker_host,
        broker_port=broker_port,
        gowon_host=str(gowon_host).rstrip("/"),
        retry_interval=retry_interval,
        disconnect_timeout_ms=disconnect_timeout_ms,
        log_level=log_level,
        connect_retry=connect_retry,
        input_topic=raw.get("input_topic") or INPUT_TOPIC,
        output_topic=raw.get("output_topic") or OUTPUT_TOPIC,
    )


def load_config(argv: list[str] | None = None, environ=None) -> BridgeConfig:
    """
    Resolves the configuration. Precedence: command line flag, environment
    variable, YAML file, built-in default.
    """
    environ = os.environ if environ is None else environ
    args = create_parser().parse_args(argv)

    raw = dict(DEFAULTS)
    if args.config:
        raw.update(load_yaml(args.config))

    for key, env_name in ENV_VARS.items():
        if environ.get(env_name):
            raw[key] = environ[env_name]

    for key, value in vars(args).items():
        if key != "config" and value is not None:
            raw[key] = value

    return build_config(raw)
