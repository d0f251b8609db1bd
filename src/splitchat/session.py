from __future__ import annotations

import logging
from typing import List, Optional

import aiohttp

from .api import ChatApi
from .config import ChatConfig
from .conversation import ConversationSession
from .model import Identity
from .presence import PresenceTracker
from .router import Listener, MessageRouter
from .transport import TransportConnection
from .unread import UnreadRegistry

log = logging.getLogger("splitchat.session")


class ChatSession:
    """Owns every chat component for one logged-in user.

    Created at login and closed at logout. Holds the single transport, the
    router feeding both the unread registry and the focused conversation,
    and the presence poller.
    """

    def __init__(
        self,
        identity: Identity,
        credential: str,
        config: Optional[ChatConfig] = None,
        *,
        http: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.identity = identity
        self.config = config or ChatConfig()
        self._http = http
        self._owns_http = http is None
        self._credential = credential
        self.transport: TransportConnection | None = None
        self.router: MessageRouter | None = None
        self.api: ChatApi | None = None
        self.presence: PresenceTracker | None = None
        self.unread = UnreadRegistry(identity.id)
        self.conversation: ConversationSession | None = None
        self._unread_listener: Listener | None = None
        self._started = False

    @property
    def is_connected(self) -> bool:
        return self.transport is not None and self.transport.is_connected

    async def start(self) -> None:
        if self._started:
            return
        if self._http is None:
            self._http = aiohttp.ClientSession()
        config = self.config
        self.transport = TransportConnection(
            config.ws_url,
            reconnect_delay_s=config.reconnect_delay_s,
            heartbeat_s=config.heartbeat_s,
            http=self._http,
        )
        self.router = MessageRouter(self.transport)
        self.api = ChatApi(config.api_url, self._credential, http=self._http, timeout_s=config.request_timeout_s)
        self.presence = PresenceTracker(self.api.online_users, interval_s=config.presence_interval_s)

        self.router.start()
        self._unread_listener = self.router.subscribe(self.unread.on_message)
        self._started = True
        await self.transport.connect(self.identity, self._credential)
        self.presence.start()
        log.info("chat session started user=%s state=%s", self.identity.id, self.transport.state.value)

    async def open_conversation(self, peer_id: int) -> ConversationSession:
        if not self._started or self.router is None or self.transport is None or self.api is None:
            raise RuntimeError("chat session is not started")
        self.close_conversation()
        conversation = ConversationSession(
            local_user_id=self.identity.id,
            router=self.router,
            transport=self.transport,
            history=self.api,
            unread=self.unread,
            typing_timeout_s=self.config.typing_timeout_s,
        )
        self.conversation = conversation
        await conversation.open(peer_id)
        return conversation

    def close_conversation(self) -> None:
        if self.conversation is not None:
            self.conversation.close()
            self.conversation = None

    async def recent_contacts(self) -> List[Identity]:
        if self.api is None:
            raise RuntimeError("chat session is not started")
        return await self.api.recent_contacts()

    def is_online(self, email: str) -> bool:
        return self.presence is not None and self.presence.is_online(email)

    async def close(self) -> None:
        self.close_conversation()
        if self.presence is not None:
            await self.presence.stop()
        if self.router is not None:
            self.router.stop()
        self._unread_listener = None
        if self.transport is not None:
            await self.transport.disconnect()
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None
        self._started = False
        log.info("chat session closed user=%s", self.identity.id)

    async def __aenter__(self) -> "ChatSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
