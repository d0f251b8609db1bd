from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, FrozenSet, Iterable

from .api import ApiError

log = logging.getLogger("splitchat.presence")

SnapshotFetcher = Callable[[], Awaitable[Iterable[str]]]


class PresenceTracker:
    """Polls the online-user snapshot and answers ``is_online`` lookups.

    Each successful poll replaces the whole set. A poll that fails keeps the
    previous snapshot, and a poll that completes after a newer one has already
    been applied is discarded.
    """

    def __init__(self, fetch: SnapshotFetcher, *, interval_s: float = 30.0) -> None:
        self._fetch = fetch
        self.interval_s = interval_s
        self._online: FrozenSet[str] = frozenset()
        self._issued = 0
        self._applied = 0
        self._poll_task: asyncio.Task | None = None

    @property
    def online(self) -> FrozenSet[str]:
        return self._online

    def is_online(self, email: str) -> bool:
        return email in self._online

    async def refresh(self) -> bool:
        self._issued += 1
        request_id = self._issued
        try:
            emails = await self._fetch()
        except ApiError as exc:
            log.warning("presence refresh failed: %s", exc)
            return False
        if request_id < self._applied:
            return False
        self._online = frozenset(email for email in emails if isinstance(email, str))
        self._applied = request_id
        return True

    def start(self) -> None:
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll())

    async def stop(self) -> None:
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        try:
            await self._poll_task
        except asyncio.CancelledError:
            pass
        self._poll_task = None

    @property
    def running(self) -> bool:
        return self._poll_task is not None

    async def _poll(self) -> None:
        try:
            while True:
                await self.refresh()
                await asyncio.sleep(self.interval_s)
        except asyncio.CancelledError:
            return
