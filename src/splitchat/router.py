from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List

from .frames import USER_QUEUE, InboundFrame
from .model import FrameParseError, Message, parse_message
from .transport import TransportConnection

log = logging.getLogger("splitchat.router")

Callback = Callable[[Message], None]


@dataclass(eq=False)
class Listener:
    callback: Callback
    active: bool = field(default=True)

    def deliver(self, message: Message) -> None:
        self.callback(message)


class MessageRouter:
    """Fans messages from the user queue out to every registered listener.

    Listeners run in registration order and a failing listener does not stop
    the rest. Adding or removing listeners from inside a callback is safe:
    additions take effect from the next message, removals immediately.
    """

    def __init__(self, transport: TransportConnection, destination: str = USER_QUEUE) -> None:
        self.transport = transport
        self.destination = destination
        self._listeners: List[Listener] = []
        self._attached = False

    def start(self) -> None:
        if self._attached:
            return
        self.transport.on_frame(self._on_frame)
        self.transport.subscribe(self.destination)
        self._attached = True

    def stop(self) -> None:
        if self._attached:
            self.transport.remove_frame_listener(self._on_frame)
            self._attached = False
        for listener in self._listeners:
            listener.active = False
        self._listeners.clear()

    def subscribe(self, callback: Callback) -> Listener:
        listener = Listener(callback=callback)
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        listener.active = False
        try:
            self._listeners.remove(listener)
        except ValueError:
            return

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispatch(self, message: Message) -> None:
        for listener in list(self._listeners):
            if not listener.active:
                continue
            try:
                listener.deliver(message)
            except Exception:
                log.exception("listener failed type=%s sender=%s", message.type.value, message.sender_id)

    def _on_frame(self, frame: InboundFrame) -> None:
        if frame.destination != self.destination:
            return
        try:
            message = parse_message(frame.payload)
        except FrameParseError as exc:
            log.warning("dropping malformed message on %s: %s", self.destination, exc)
            return
        self.dispatch(message)
