from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol, Sequence

from .api import HistoryFetchError
from .frames import CHAT_DESTINATION, READ_DESTINATION
from .model import Message, MessageType, chat_payload, read_receipt_payload, typing_payload
from .router import Listener, MessageRouter
from .typing_indicator import TypingIndicator
from .unread import UnreadRegistry

log = logging.getLogger("splitchat.conversation")

Observer = Callable[["ConversationSession"], None]


class HistorySource(Protocol):
    async def history(self, peer_id: int) -> List[Message]: ...


class Publisher(Protocol):
    def publish(self, frame: dict, destination: str = CHAT_DESTINATION) -> bool: ...


class ConversationSession:
    """State of the one conversation currently on screen.

    The transcript only grows while the conversation is open. Self-sent
    messages are not appended locally; they appear when the broker echoes them
    back on the user queue. Messages that arrive while history is loading are
    held back and replayed once the history is installed, so a history fetch
    can never hide a live message.
    """

    def __init__(
        self,
        *,
        local_user_id: int,
        router: MessageRouter,
        transport: Publisher,
        history: HistorySource,
        unread: UnreadRegistry,
        typing_timeout_s: float = 3.0,
    ) -> None:
        self.local_user_id = local_user_id
        self.router = router
        self.transport = transport
        self._history = history
        self.unread = unread
        self.peer_id: Optional[int] = None
        self.history_error: Optional[HistoryFetchError] = None
        self.seen_index: Optional[int] = None
        self.typing = TypingIndicator(typing_timeout_s, on_change=lambda _active: self._notify())
        self._transcript: List[Message] = []
        self._listener: Listener | None = None
        self._generation = 0
        self._loading = False
        self._buffered: List[Message] = []
        self._carried: List[Message] = []
        self._observers: List[Observer] = []

    @property
    def transcript(self) -> Sequence[Message]:
        return tuple(self._transcript)

    @property
    def is_open(self) -> bool:
        return self.peer_id is not None

    @property
    def is_typing(self) -> bool:
        return self.typing.active

    @property
    def loading(self) -> bool:
        return self._loading

    def on_change(self, callback: Observer) -> Observer:
        self._observers.append(callback)
        return callback

    def remove_observer(self, callback: Observer) -> None:
        try:
            self._observers.remove(callback)
        except ValueError:
            return

    async def open(self, peer_id: int) -> None:
        self.close()
        self.peer_id = peer_id
        self._listener = self.router.subscribe(self._on_message)
        self.unread.set_focus(peer_id)
        await self._load_history()

    async def retry_history(self) -> bool:
        """Reload history after a failed fetch; a no-op otherwise."""

        if self.peer_id is None:
            raise RuntimeError("no conversation is open")
        if self.history_error is None:
            return False
        # Live messages received since the failure are merged into the reload.
        self._carried = list(self._transcript)
        await self._load_history()
        return self.history_error is None

    def close(self) -> None:
        if self._listener is not None:
            self.router.unsubscribe(self._listener)
            self._listener = None
        self._generation += 1
        self.typing.clear()
        if self.peer_id is not None and self.unread.focused_peer == self.peer_id:
            self.unread.set_focus(None)
        self.peer_id = None
        self._loading = False
        self._buffered = []
        self._carried = []
        self._transcript = []
        self.seen_index = None
        self.history_error = None

    def send(self, text: str) -> bool:
        if self.peer_id is None:
            raise RuntimeError("no conversation is open")
        return self.transport.publish(chat_payload(self.peer_id, text), CHAT_DESTINATION)

    def send_typing(self) -> bool:
        if self.peer_id is None:
            return False
        return self.transport.publish(typing_payload(self.peer_id), CHAT_DESTINATION)

    def input_changed(self, text: str) -> bool:
        if not text:
            return False
        return self.send_typing()

    async def _load_history(self) -> None:
        self._generation += 1
        generation = self._generation
        peer_id = self.peer_id
        assert peer_id is not None
        self._loading = True
        self.history_error = None
        try:
            history = await self._history.history(peer_id)
        except HistoryFetchError as exc:
            if generation != self._generation:
                return
            log.warning("history fetch failed peer=%s: %s", peer_id, exc)
            self.history_error = exc
            if self._install([]):
                self._send_read_receipt()
            return
        if generation != self._generation:
            log.debug("discarding stale history peer=%s", peer_id)
            return

        self._install(history)
        self._send_read_receipt()
        self.unread.clear(peer_id)

    def _install(self, history: List[Message]) -> bool:
        """Install ``history`` and replay held-back messages on top of it.

        Returns ``True`` when a peer CHAT that arrived during the load was
        replayed, so the caller still owes the peer a read receipt.
        """

        self._transcript = list(history)
        carried, self._carried = self._carried, []
        buffered, self._buffered = self._buffered, []
        self._loading = False
        known_ids = {message.id for message in self._transcript if message.id is not None}
        for message in carried:
            if not self._already_known(message, known_ids):
                self._handle(message, replay=True)
        unacknowledged = False
        for message in buffered:
            if self._already_known(message, known_ids):
                continue
            self._handle(message, replay=True)
            if message.type is MessageType.CHAT and message.sender_id == self.peer_id:
                unacknowledged = True
        self._changed()
        return unacknowledged

    @staticmethod
    def _already_known(message: Message, known_ids: set) -> bool:
        return message.type is MessageType.CHAT and message.id is not None and message.id in known_ids

    def _on_message(self, message: Message) -> None:
        if self.peer_id is None or not message.involves(self.peer_id):
            return
        if self._loading:
            self._buffered.append(message)
            return
        self._handle(message)

    def _handle(self, message: Message, *, replay: bool = False) -> None:
        peer_id = self.peer_id
        if message.type is MessageType.CHAT:
            self._transcript.append(message)
            if message.sender_id == peer_id:
                self.typing.clear()
                # Replays are acknowledged once by whoever installed the history.
                if not replay:
                    self._send_read_receipt()
                self.unread.clear(peer_id)
            self._changed()
        elif message.type is MessageType.TYPING:
            if message.sender_id != peer_id:
                return
            if self._is_stale(message):
                log.debug("discarding stale typing event peer=%s", peer_id)
                return
            self.typing.trigger()
        elif message.type is MessageType.READ_RECEIPT:
            if message.sender_id != peer_id:
                return
            self._transcript = [
                m.mark_read() if m.sender_id == self.local_user_id else m for m in self._transcript
            ]
            self._changed()

    def _is_stale(self, message: Message) -> bool:
        if message.timestamp is None:
            return False
        for previous in reversed(self._transcript):
            if previous.sender_id == message.sender_id:
                return previous.timestamp is not None and message.timestamp < previous.timestamp
        return False

    def _send_read_receipt(self) -> None:
        if self.peer_id is not None:
            self.transport.publish(read_receipt_payload(self.peer_id), READ_DESTINATION)

    def _changed(self) -> None:
        self._refresh_seen()
        self._notify()

    def _refresh_seen(self) -> None:
        transcript = self._transcript
        self.seen_index = None
        if not transcript or transcript[-1].sender_id != self.local_user_id:
            return
        for index in range(len(transcript) - 1, -1, -1):
            message = transcript[index]
            if message.sender_id == self.local_user_id and message.is_read:
                self.seen_index = index
                return

    def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self)
            except Exception:
                log.exception("conversation observer failed")
