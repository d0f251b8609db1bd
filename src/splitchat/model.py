"""Chat value types and the JSON wire format exchanged over the user queue."""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class FrameParseError(ValueError):
    """Raised when an inbound frame cannot be turned into a :class:`Message`."""


class MessageType(str, Enum):
    CHAT = "CHAT"
    TYPING = "TYPING"
    READ_RECEIPT = "READ_RECEIPT"


@dataclass(frozen=True)
class Identity:
    id: int
    email: str
    display_name: str = ""

    @classmethod
    def from_contact(cls, payload: Dict[str, Any]) -> "Identity":
        """Build an identity from a ``{id, name, email}`` contact entry."""

        user_id = payload.get("id")
        email = payload.get("email")
        if not _is_int(user_id) or not isinstance(email, str):
            raise FrameParseError("contact requires integer id and string email")
        name = payload.get("name")
        return cls(id=user_id, email=email, display_name=name if isinstance(name, str) else "")


@dataclass(frozen=True)
class Message:
    """A single frame delivered on the user queue.

    Only ``CHAT`` messages belong in a transcript; ``TYPING`` and
    ``READ_RECEIPT`` are control signals sharing the same channel. Instances
    are immutable, so marking a message read yields a new object.
    """

    sender_id: int
    recipient_id: int
    type: MessageType = MessageType.CHAT
    content: Optional[str] = None
    timestamp: Optional[datetime] = None
    is_read: bool = False
    id: Optional[int] = None
    sender_name: Optional[str] = None

    def mark_read(self) -> "Message":
        if self.is_read:
            return self
        return dataclasses.replace(self, is_read=True)

    def involves(self, user_id: int) -> bool:
        return self.sender_id == user_id or self.recipient_id == user_id


_FRACTION = re.compile(r"(?<=:\d\d)\.(\d+)")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 broker timestamp; naive values are taken as UTC."""

    if value is None:
        return None
    if not isinstance(value, str):
        raise FrameParseError("timestamp must be an ISO-8601 string")
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    # Broker fractions run from 1 to 9 digits; fromisoformat wants exactly 6.
    raw = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), raw, count=1)
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise FrameParseError(f"invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_message(payload: Any) -> Message:
    """Validate a decoded wire frame and return the typed message."""

    if not isinstance(payload, dict):
        raise FrameParseError("frame payload must be a JSON object")

    raw_type = payload.get("type", MessageType.CHAT.value)
    try:
        message_type = MessageType(raw_type)
    except ValueError as exc:
        raise FrameParseError(f"unknown message type: {raw_type!r}") from exc

    sender_id = payload.get("senderId")
    recipient_id = payload.get("recipientId")
    if not _is_int(sender_id) or not _is_int(recipient_id):
        raise FrameParseError("senderId and recipientId must be integers")

    content = payload.get("content")
    if content is not None and not isinstance(content, str):
        raise FrameParseError("content must be a string")
    if message_type is MessageType.CHAT and not content:
        raise FrameParseError("CHAT frames require non-empty content")

    is_read = payload.get("isRead", payload.get("read", False))
    if not isinstance(is_read, bool):
        raise FrameParseError("isRead must be a boolean")

    message_id = payload.get("id")
    if message_id is not None and not _is_int(message_id):
        raise FrameParseError("id must be an integer")
    sender_name = payload.get("senderName")

    return Message(
        sender_id=sender_id,
        recipient_id=recipient_id,
        type=message_type,
        content=content,
        timestamp=parse_timestamp(payload.get("timestamp")),
        is_read=is_read,
        id=message_id,
        sender_name=sender_name if isinstance(sender_name, str) else None,
    )


def chat_payload(recipient_id: int, content: str) -> Dict[str, object]:
    if not content or not content.strip():
        raise ValueError("chat content must not be empty")
    return {"recipientId": recipient_id, "content": content, "type": MessageType.CHAT.value}


def typing_payload(recipient_id: int) -> Dict[str, object]:
    return {"recipientId": recipient_id, "type": MessageType.TYPING.value}


def read_receipt_payload(recipient_id: int) -> Dict[str, object]:
    # recipientId names the peer whose messages were read.
    return {"recipientId": recipient_id, "type": MessageType.READ_RECEIPT.value}
