"""Versioned broker envelope carried over the websocket."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .model import FrameParseError

ENVELOPE_VERSION = 1

USER_QUEUE = "/user/queue/messages"
CHAT_DESTINATION = "/app/chat.private"
READ_DESTINATION = "/app/chat.read"


@dataclass(frozen=True)
class InboundFrame:
    t: str
    destination: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    body: Dict[str, Any] = field(default_factory=dict)


def _encode(t: str, body: Optional[Dict[str, Any]] = None) -> str:
    frame: Dict[str, Any] = {"v": ENVELOPE_VERSION, "t": t}
    if body is not None:
        frame["body"] = body
    return json.dumps(frame, separators=(",", ":"))


def encode_subscribe(destination: str) -> str:
    return _encode("subscribe", {"destination": destination})


def encode_send(destination: str, payload: Dict[str, Any]) -> str:
    return _encode("send", {"destination": destination, "payload": payload})


def encode_pong() -> str:
    return _encode("pong")


def decode_inbound(raw: str) -> InboundFrame:
    """Decode one websocket text message into an :class:`InboundFrame`."""

    try:
        frame = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise FrameParseError("frame is not valid JSON") from exc
    if not isinstance(frame, dict):
        raise FrameParseError("frame must be a JSON object")
    if frame.get("v") != ENVELOPE_VERSION:
        raise FrameParseError(f"unsupported frame version: {frame.get('v')!r}")

    t = frame.get("t")
    if not isinstance(t, str) or not t:
        raise FrameParseError("frame type missing")
    body = frame.get("body") or {}
    if not isinstance(body, dict):
        raise FrameParseError("frame body must be an object")

    if t != "message":
        return InboundFrame(t=t, body=body)

    destination = body.get("destination")
    payload = body.get("payload")
    if not isinstance(destination, str) or not isinstance(payload, dict):
        raise FrameParseError("message frames require destination and payload")
    return InboundFrame(t=t, destination=destination, payload=payload, body=body)
