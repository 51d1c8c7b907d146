class BridgeError(Exception):
    """Base class for every error raised by the bridge."""


class ConfigurationError(BridgeError):
    """Invalid or missing configuration. Fatal at startup."""


class DecodeError(BridgeError):
    """A payload could not be parsed into a Message."""


class TransportError(BridgeError):
    """The broker connection could not be established or used."""


class DownstreamError(BridgeError):
    """The downstream command service call failed."""

    def __init__(self, message: str, status: int | None = None, command: str = ""):
        super().__init__(message)
        self.status = status
        self.command = command


class RequestBodyError(BridgeError):
    """The body of an inbound HTTP request could not be read."""


class ServerStartupError(BridgeError):
    """The inbound HTTP server could not be started."""
