import json
from typing import Any

from .errors import DecodeError
from .message import Message

_STRING_FIELDS = ("command", "dest", "msg", "nick")


def to_dict(message: Message) -> dict[str, Any]:
    """
    Returns the JSON-ready envelope of a message. The 'module', 'msg' and
    'dest' keys are always present, empty optional fields are omitted.
    """
    data: dict[str, Any] = {
        "module": message.module,
        "msg": message.msg,
        "dest": message.dest,
    }
    if message.command:
        data["command"] = message.command
    if message.args:
        data["args"] = list(message.args)
    if message.nick:
        data["nick"] = message.nick
    return data


def encode(message: Message) -> bytes:
    return json.dumps(to_dict(message)).encode("utf-8")


def decode(data: bytes) -> Message:
    """
    Parses a raw payload into a Message.

    Raises:
        DecodeError: if the payload is not UTF-8 JSON, is not an object,
            lacks a non-empty 'module' or carries a field of the wrong type.
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise DecodeError(f"Payload is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise DecodeError(f"Payload is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise DecodeError(
            f"Expected a JSON object, got {type(document).__name__}"
        )

    module = document.get("module")
    if not isinstance(module, str) or not module:
        raise DecodeError("Message is missing the required 'module' field")

    fields: dict[str, Any] = {"module": module}
    for name in _STRING_FIELDS:
        value = document.get(name, "")
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise DecodeError(f"Field '{name}' must be a string")
        fields[name] = value

    args = document.get("args")
    if args is None:
        args = []
    if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
        raise DecodeError("Field 'args' must be a list of strings")
    fields["args"] = tuple(args)

    return Message(**fields)
