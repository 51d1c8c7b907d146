import requests
from loguru import logger

from ..core.codec import decode, to_dict
from ..core.errors import DecodeError, DownstreamError
from ..core.message import Message


class DownstreamClient:
    """
    Synchronous client for the gowon command service. Each message is
    posted once to its '/message' endpoint, without retries.
    """

    def __init__(self, host: str, timeout: float = 10.0):
        self.url = host.rstrip("/") + "/message"
        self.timeout = timeout
        self.session = requests.Session()

    def send(self, message: Message) -> Message | None:
        """
        Posts a message and returns the decoded reply, or None when the
        service answered successfully with a body that is not a message.

        Raises:
            DownstreamError: on transport failure or non-success status.
        """
        try:
            response = self.session.post(
                self.url, json=to_dict(message), timeout=self.timeout
            )
        except requests.RequestException as e:
            raise DownstreamError(
                f"Request to {self.url} failed: {e}", command=message.command
            ) from e

        if not response.ok:
            raise DownstreamError(
                f"Command {message.command} returned an unsuccessful response: "
                f"{response.status_code} {response.reason}",
                status=response.status_code,
                command=message.command,
            )

        try:
            return decode(response.content)
        except DecodeError as e:
            logger.debug(f"Downstream reply for '{message.command}' ignored: {e}")
            return None

    def close(self):
        self.session.close()
