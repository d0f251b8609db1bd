"""REST client for the chat endpoints owned by the application server."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

import aiohttp

from .model import FrameParseError, Identity, Message, parse_message

log = logging.getLogger("splitchat.api")


class ApiError(Exception):
    def __init__(self, message: str, *, status: int | None = None):
        self.status = status
        super().__init__(message)


class HistoryFetchError(ApiError):
    pass


def _build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


class ChatApi:
    def __init__(
        self,
        base_url: str,
        credential: str,
        *,
        http: Optional[aiohttp.ClientSession] = None,
        timeout_s: float = 10.0,
    ) -> None:
        self.base_url = base_url
        self._credential = credential
        self._http = http
        self._owns_http = http is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    async def close(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None

    async def _get_json(self, path: str) -> Any:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        url = _build_url(self.base_url, path)
        headers = {"Authorization": f"Bearer {self._credential}"}
        try:
            async with self._http.get(url, headers=headers, timeout=self._timeout) as response:
                if response.status >= 400:
                    raise ApiError(f"GET {path} failed with status {response.status}", status=response.status)
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ApiError(f"GET {path} failed: {exc}") from exc

    async def history(self, peer_id: int) -> List[Message]:
        """Return the conversation with ``peer_id``, oldest first."""

        try:
            payload = await self._get_json(f"/messages/{peer_id}")
        except ApiError as exc:
            raise HistoryFetchError(str(exc), status=exc.status) from exc
        if not isinstance(payload, list):
            raise HistoryFetchError("history response must be a list")

        messages: List[Message] = []
        for entry in payload:
            try:
                messages.append(parse_message(entry))
            except FrameParseError as exc:
                log.warning("skipping malformed history entry peer=%s: %s", peer_id, exc)
        return messages

    async def recent_contacts(self) -> List[Identity]:
        payload = await self._get_json("/chat/recent-contacts")
        if not isinstance(payload, list):
            raise ApiError("recent-contacts response must be a list")
        contacts: List[Identity] = []
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            try:
                contacts.append(Identity.from_contact(entry))
            except FrameParseError as exc:
                log.warning("skipping malformed contact: %s", exc)
        return contacts

    async def online_users(self) -> List[str]:
        payload = await self._get_json("/chat/online-users")
        if not isinstance(payload, list):
            raise ApiError("online-users response must be a list")
        return [entry for entry in payload if isinstance(entry, str)]
