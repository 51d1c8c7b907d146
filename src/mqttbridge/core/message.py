from dataclasses import dataclass, field


@dataclass(frozen=True)
class Message:
    """
    Represents an immutable gowon message, the unit exchanged both over
    the broker topics and the downstream HTTP endpoint.
    """

    module: str
    command: str = ""
    args: tuple[str, ...] = field(default_factory=tuple)
    dest: str = ""
    msg: str = ""
    nick: str = ""

    def reply(self, module: str, msg: str) -> "Message":
        """Builds the answer to this message, keeping its destination."""
        return Message(module=module, msg=msg, dest=self.dest)
