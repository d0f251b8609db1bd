"""Real-time private messaging core for the bill-splitting client."""

from .api import ApiError, ChatApi, HistoryFetchError
from .config import ChatConfig
from .conversation import ConversationSession
from .model import FrameParseError, Identity, Message, MessageType, parse_message
from .presence import PresenceTracker
from .router import Listener, MessageRouter
from .session import ChatSession
from .transport import ConnectionState, TransportConnection, TransportError
from .unread import UnreadRegistry

__all__ = [
    "ApiError",
    "ChatApi",
    "ChatConfig",
    "ChatSession",
    "ConnectionState",
    "ConversationSession",
    "FrameParseError",
    "HistoryFetchError",
    "Identity",
    "Listener",
    "Message",
    "MessageRouter",
    "MessageType",
    "PresenceTracker",
    "TransportConnection",
    "TransportError",
    "UnreadRegistry",
    "parse_message",
]
