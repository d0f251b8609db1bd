from __future__ import annotations

from typing import Dict, Optional

from .model import Message, MessageType


class UnreadRegistry:
    """Per-peer unread CHAT counters; no entry is kept for the focused peer."""

    def __init__(self, local_user_id: int) -> None:
        self.local_user_id = local_user_id
        self._counters: Dict[int, int] = {}
        self._focus: Optional[int] = None

    @property
    def focused_peer(self) -> Optional[int]:
        return self._focus

    def on_message(self, message: Message) -> None:
        if message.type is not MessageType.CHAT:
            return
        sender_id = message.sender_id
        if sender_id == self.local_user_id or sender_id == self._focus:
            return
        self._counters[sender_id] = self._counters.get(sender_id, 0) + 1

    def set_focus(self, peer_id: Optional[int]) -> None:
        self._focus = peer_id
        if peer_id is not None:
            self._counters.pop(peer_id, None)

    def clear(self, peer_id: int) -> None:
        self._counters.pop(peer_id, None)

    def count(self, peer_id: int) -> int:
        return self._counters.get(peer_id, 0)

    def snapshot(self) -> Dict[int, int]:
        return dict(self._counters)

    @property
    def total_conversations(self) -> int:
        return len(self._counters)

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._counters
