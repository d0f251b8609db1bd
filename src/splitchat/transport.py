from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

import aiohttp
from aiohttp import WSMsgType

from .frames import CHAT_DESTINATION, InboundFrame, decode_inbound, encode_pong, encode_send, encode_subscribe
from .model import FrameParseError, Identity

log = logging.getLogger("splitchat.transport")

FrameCallback = Callable[[InboundFrame], None]
StateCallback = Callable[["ConnectionState"], None]


class TransportError(Exception):
    """A refused or dropped broker connection."""


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


class TransportConnection:
    """Owns the single reconnecting websocket to the broker.

    Loss of the connection moves the state back to ``CONNECTING`` and a new
    attempt is made every ``reconnect_delay_s`` seconds until
    :meth:`disconnect` is called. Subscribed destinations are re-sent after
    every successful (re)connect. Outbound frames are only buffered for the
    lifetime of one live connection; nothing is queued while disconnected.
    """

    def __init__(
        self,
        url: str,
        *,
        reconnect_delay_s: float = 5.0,
        heartbeat_s: Optional[float] = 4.0,
        http: Optional[aiohttp.ClientSession] = None,
        outbound_limit: int = 1000,
    ) -> None:
        self.url = url
        self.reconnect_delay_s = reconnect_delay_s
        self.heartbeat_s = heartbeat_s
        self._http = http
        self._owns_http = http is None
        self._outbound_limit = outbound_limit
        self._state = ConnectionState.DISCONNECTED
        self._identity: Identity | None = None
        self._credential: str | None = None
        self._destinations: List[str] = []
        self._frame_listeners: List[FrameCallback] = []
        self._state_listeners: List[StateCallback] = []
        self._task: asyncio.Task | None = None
        self._outbound: asyncio.Queue[str] | None = None
        self._connected = asyncio.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def on_frame(self, callback: FrameCallback) -> FrameCallback:
        self._frame_listeners.append(callback)
        return callback

    def remove_frame_listener(self, callback: FrameCallback) -> None:
        try:
            self._frame_listeners.remove(callback)
        except ValueError:
            return

    def on_state_change(self, callback: StateCallback) -> StateCallback:
        self._state_listeners.append(callback)
        return callback

    async def connect(self, identity: Identity, credential: str) -> None:
        """Start the connection loop; a no-op while already active.

        Returns once the first attempt has either succeeded or failed. A
        failed attempt leaves the transport ``CONNECTING`` with a retry
        scheduled.
        """

        if self._state is not ConnectionState.DISCONNECTED:
            return
        self._identity = identity
        self._credential = credential
        if self._http is None:
            self._http = aiohttp.ClientSession()
        first_attempt = asyncio.Event()
        self._set_state(ConnectionState.CONNECTING)
        self._task = asyncio.create_task(self._run(first_attempt))
        await first_attempt.wait()

    async def disconnect(self) -> None:
        task = self._task
        self._task = None
        self._destinations.clear()
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def wait_connected(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def subscribe(self, destination: str) -> None:
        if destination in self._destinations:
            return
        self._destinations.append(destination)
        if self.is_connected:
            self._enqueue(encode_subscribe(destination))

    def publish(self, frame: dict, destination: str = CHAT_DESTINATION) -> bool:
        """Send ``frame`` to ``destination``; returns ``False`` when it was dropped."""

        if not self.is_connected or self._outbound is None:
            log.warning("publish dropped destination=%s state=%s", destination, self._state.value)
            return False
        return self._enqueue(encode_send(destination, frame))

    def _enqueue(self, text: str) -> bool:
        outbound = self._outbound
        if outbound is None:
            return False
        try:
            outbound.put_nowait(text)
        except asyncio.QueueFull:
            log.warning("outbound buffer full, frame dropped")
            return False
        return True

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        if state is ConnectionState.CONNECTED:
            self._connected.set()
        else:
            self._connected.clear()
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                log.exception("state listener failed")

    async def _run(self, first_attempt: asyncio.Event) -> None:
        try:
            while True:
                try:
                    await self._session_once(first_attempt)
                except TransportError as exc:
                    log.warning("transport down url=%s: %s; retrying in %.1fs", self.url, exc, self.reconnect_delay_s)
                self._set_state(ConnectionState.CONNECTING)
                first_attempt.set()
                await asyncio.sleep(self.reconnect_delay_s)
        finally:
            first_attempt.set()

    async def _session_once(self, first_attempt: asyncio.Event) -> None:
        assert self._http is not None
        headers = {"Authorization": f"Bearer {self._credential}"}
        try:
            ws = await self._http.ws_connect(self.url, headers=headers, heartbeat=self.heartbeat_s)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise TransportError(f"connect failed: {exc}") from exc

        outbound: asyncio.Queue[str] = asyncio.Queue(maxsize=self._outbound_limit)
        for destination in self._destinations:
            outbound.put_nowait(encode_subscribe(destination))
        writer_task = asyncio.create_task(self._writer(ws, outbound))
        self._outbound = outbound
        self._set_state(ConnectionState.CONNECTED)
        log.info("transport connected url=%s user=%s", self.url, self._identity.id if self._identity else None)
        first_attempt.set()

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self._deliver(msg.data)
                elif msg.type == WSMsgType.ERROR:
                    break
                else:
                    log.debug("ignoring websocket message type=%s", msg.type)
        finally:
            self._outbound = None
            writer_task.cancel()
            await asyncio.gather(writer_task, return_exceptions=True)
            if not ws.closed:
                await ws.close()
        raise TransportError(f"connection closed code={ws.close_code}")

    async def _writer(self, ws: aiohttp.ClientWebSocketResponse, outbound: asyncio.Queue[str]) -> None:
        while True:
            text = await outbound.get()
            try:
                await ws.send_str(text)
            except (ConnectionError, aiohttp.ClientError, RuntimeError) as exc:
                log.warning("transport send failed: %s", exc)
                if self._outbound is outbound:
                    self._outbound = None
                await ws.close()
                return

    def _deliver(self, raw: str) -> None:
        try:
            frame = decode_inbound(raw)
        except FrameParseError as exc:
            log.warning("dropping malformed frame: %s", exc)
            return

        if frame.t == "ping":
            self._enqueue(encode_pong())
            return
        if frame.t == "error":
            log.warning("broker error code=%s message=%s", frame.body.get("code"), frame.body.get("message"))
            return
        if frame.t != "message":
            log.debug("ignoring frame type=%s", frame.t)
            return

        for listener in list(self._frame_listeners):
            try:
                listener(frame)
            except Exception:
                log.exception("frame listener failed destination=%s", frame.destination)
