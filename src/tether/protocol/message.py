"""Named messages and their JSON wire encoding.

Every message travels as one frame holding a compact JSON object::

    {"type": "send-notice", "payload": {"content": "Hi"}}

The ``type`` is chosen by application code and is used by the dispatcher to
find handlers. The ``payload`` can be any JSON value.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tether.shared.exceptions import ProtocolDecodeError


class Message(BaseModel):
    """A named message exchanged between the two sides of a channel."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(min_length=1, strict=True)
    """
    Name used to route the message to handlers, e.g. "send-notice".
    """

    payload: Any = None
    """
    Any JSON-compatible value: scalar, mapping, or sequence of such.
    """


def encode_message(message: Message) -> str:
    """Serialize a message to its wire frame.

    Args:
        message: Message to serialize

    Returns:
        Compact JSON text for a single frame

    Raises:
        ValueError: If the payload is not JSON-serializable
    """
    try:
        return json.dumps(
            {"type": message.type, "payload": message.payload},
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise ValueError(
            f"Failed to serialize '{message.type}' message to JSON: {e}"
        ) from e


def decode_message(frame: str | bytes) -> Message:
    """Parse a wire frame into a message.

    A frame without a ``payload`` field decodes to a message with a ``None``
    payload.

    Args:
        frame: Raw text (or UTF-8 bytes) received from the peer

    Returns:
        The decoded message

    Raises:
        ProtocolDecodeError: If the frame is not a JSON object with a
            non-empty string ``type``
    """
    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolDecodeError(f"Frame is not valid UTF-8: {e}", frame) from e

    try:
        data = json.loads(frame)
    except json.JSONDecodeError as e:
        raise ProtocolDecodeError(f"Frame is not valid JSON: {e}", frame) from e

    if not isinstance(data, dict):
        raise ProtocolDecodeError("Frame is not a JSON object", frame)

    if not isinstance(data.get("type"), str) or not data["type"]:
        raise ProtocolDecodeError("Frame lacks a non-empty string 'type'", frame)

    try:
        return Message.model_validate(
            {"type": data["type"], "payload": data.get("payload")}
        )
    except ValidationError as e:
        raise ProtocolDecodeError(f"Invalid message: {e}", frame) from e
