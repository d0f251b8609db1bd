from __future__ import annotations

import asyncio
from typing import Callable, Optional


class TypingIndicator:
    """Peer typing flag that hides itself after ``timeout_s`` without a new event."""

    def __init__(
        self,
        timeout_s: float = 3.0,
        *,
        on_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self._on_change = on_change
        self._handle: asyncio.TimerHandle | None = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def trigger(self) -> None:
        """Show the indicator and restart the auto-hide timer."""

        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout_s, self._expire)
        self._set(True)

    def clear(self) -> None:
        self._cancel_timer()
        self._set(False)

    def _expire(self) -> None:
        self._handle = None
        self._set(False)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _set(self, active: bool) -> None:
        if active == self._active:
            return
        self._active = active
        if self._on_change is not None:
            self._on_change(active)
