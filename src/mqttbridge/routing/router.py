from dataclasses import dataclass

from loguru import logger

from ..core.codec import decode, encode
from ..core.errors import DecodeError
from ..core.message import Message
from .interfaces import (
    CommandHandler,
    DeliveryFailureHook,
    Publisher,
    log_delivery_failure,
)


@dataclass(frozen=True)
class DispatchResult:
    handled: bool
    result: str = ""
    error: Exception | None = None


def probe_handler(message: Message) -> str:
    """Liveness probe answered without leaving the process."""
    return "testing"


class MessageRouter:
    """
    Dispatches messages addressed to this bridge's own module to locally
    registered command handlers.
    """

    def __init__(
        self,
        module_name: str,
        on_delivery_failure: DeliveryFailureHook = log_delivery_failure,
    ):
        self.module_name = module_name
        self.on_delivery_failure = on_delivery_failure
        self._handlers: dict[str, CommandHandler] = {}
        logger.debug(f"Command router initialized for module '{module_name}'.")

    def register(self, command: str, handler: CommandHandler):
        """Registers the handler for a command name. Last registration wins."""
        if command in self._handlers:
            logger.debug(f"Replacing handler for command: '{command}'")
        self._handlers[command] = handler
        logger.debug(f"Registered handler for command: '{command}'")

    def dispatch(self, message: Message) -> DispatchResult:
        if message.module != self.module_name:
            return DispatchResult(handled=False)

        handler = self._handlers.get(message.command)
        if handler is None:
            return DispatchResult(handled=False)

        try:
            return DispatchResult(handled=True, result=handler(message))
        except Exception as e:
            return DispatchResult(handled=True, error=e)

    def handle_payload(self, payload: bytes) -> Message | None:
        """
        Entry point for raw broker traffic. Returns the reply to publish,
        or None when the message is not owned by this module.
        """
        try:
            message = decode(payload)
        except DecodeError as e:
            logger.debug(f"Ignoring undecodable message on input topic: {e}")
            return None

        outcome = self.dispatch(message)
        if not outcome.handled:
            logger.debug(
                f"Command '{message.command}' from module '{message.module}' "
                "is not handled locally. Ignoring."
            )
            return None

        if outcome.error is not None:
            self.on_delivery_failure(f"command '{message.command}'", outcome.error)
            return None

        logger.info(f"Command '{message.command}' handled locally.")
        return message.reply(self.module_name, outcome.result)

    def attach(self, publisher: Publisher, input_topic: str, output_topic: str):
        """Subscribes the router to the input topic, replying on the output topic."""

        def on_payload(payload: bytes):
            reply = self.handle_payload(payload)
            if reply is not None:
                publisher.publish(output_topic, encode(reply), qos=0, retain=False)

        publisher.subscribe(input_topic, 0, on_payload)
        logger.debug(f"Command router listening on topic '{input_topic}'.")
