import signal
import sys

from loguru import logger

from .config import MODULE_NAME, load_config
from .core.errors import ConfigurationError, ServerStartupError, TransportError
from .orchestrator import Orchestrator


def setup_logging(level: str):
    logger.remove()
    logger.add(sys.stderr, level=level, colorize=True)
    logger.info(f"Logger level set to: {level}")


def main(argv: list[str] | None = None) -> int:
    logger.info(f"{MODULE_NAME} starting")

    try:
        config = load_config(argv)
    except ConfigurationError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 1

    setup_logging(config.log_level)
    bridge = Orchestrator(config)

    def handle_signal(signum, frame):
        logger.info("Signal caught, exiting...")
        bridge.request_stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        bridge.run()
    except TransportError as e:
        logger.critical(f"Could not connect to the broker: {e}")
        return 1
    except ServerStartupError as e:
        logger.critical(str(e))
        return 1

    logger.info("Shutdown complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
