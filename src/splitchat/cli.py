"""Command line access to the chat core: contacts, presence, send and tail."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Mapping, Optional, TextIO

from .api import ApiError
from .config import ChatConfig
from .conversation import ConversationSession
from .model import Identity, Message
from .session import ChatSession


def _env_int(environ: Mapping[str, str], name: str) -> Optional[int]:
    raw = environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def format_message(message: Message, local_user_id: int, *, seen: bool = False) -> str:
    who = "me" if message.sender_id == local_user_id else (message.sender_name or str(message.sender_id))
    stamp = message.timestamp.strftime("%H:%M") if message.timestamp else "--:--"
    line = f"[{stamp}] {who}: {message.content}"
    if seen:
        line += " (seen)"
    return line


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="splitchat", description="Private chat client")
    parser.add_argument("--base-url", default=None, help="Application server URL (SPLITCHAT_BASE_URL)")
    parser.add_argument("--token", default=None, help="Bearer credential (SPLITCHAT_TOKEN)")
    parser.add_argument("--user-id", type=int, default=None, help="Local user id (SPLITCHAT_USER_ID)")
    parser.add_argument("--email", default=None, help="Local user email (SPLITCHAT_EMAIL)")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("contacts", help="List recent chat partners")
    subparsers.add_parser("online", help="List online users")

    send_parser = subparsers.add_parser("send", help="Send one message")
    send_parser.add_argument("--peer", type=int, required=True, help="Recipient user id")
    send_parser.add_argument("--connect-timeout", type=float, default=10.0, help="Seconds to wait for the broker")
    send_parser.add_argument("text", help="Message text")

    tail_parser = subparsers.add_parser("tail", help="Print a conversation and follow it")
    tail_parser.add_argument("--peer", type=int, required=True, help="Peer user id")
    tail_parser.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")
    return parser


def resolve_session_args(
    args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None
) -> tuple[ChatConfig, Identity, str]:
    env = os.environ if environ is None else environ
    config = ChatConfig.from_env(env)
    if args.base_url:
        config.base_url = args.base_url
    token = args.token or env.get("SPLITCHAT_TOKEN")
    user_id = args.user_id if args.user_id is not None else _env_int(env, "SPLITCHAT_USER_ID")
    email = args.email or env.get("SPLITCHAT_EMAIL", "")
    if not token:
        raise ValueError("a bearer credential is required (--token or SPLITCHAT_TOKEN)")
    if user_id is None:
        raise ValueError("the local user id is required (--user-id or SPLITCHAT_USER_ID)")
    identity = Identity(id=user_id, email=email, display_name=env.get("SPLITCHAT_NAME", ""))
    return config, identity, token


async def run_contacts(session: ChatSession, output: TextIO) -> int:
    contacts = await session.recent_contacts()
    if session.presence is not None:
        await session.presence.refresh()
    for contact in contacts:
        status = "online" if session.is_online(contact.email) else "offline"
        unread = session.unread.count(contact.id)
        suffix = f" ({unread} new)" if unread else ""
        output.write(f"{contact.id}\t{contact.display_name}\t{contact.email}\t{status}{suffix}\n")
    return 0


async def run_online(session: ChatSession, output: TextIO) -> int:
    assert session.presence is not None
    if not await session.presence.refresh():
        output.write("presence unavailable\n")
        return 1
    for email in sorted(session.presence.online):
        output.write(email + "\n")
    return 0


async def run_send(session: ChatSession, peer_id: int, text: str, output: TextIO, *, connect_timeout: float) -> int:
    assert session.transport is not None
    if not await session.transport.wait_connected(connect_timeout):
        output.write("not connected to the broker\n")
        return 1
    conversation = await session.open_conversation(peer_id)
    if not conversation.send(text):
        output.write("message was not sent\n")
        return 1
    return 0


async def run_tail(session: ChatSession, peer_id: int, output: TextIO, *, duration: Optional[float]) -> int:
    conversation = await session.open_conversation(peer_id)
    local_id = session.identity.id
    printed = 0
    typing_shown = False

    def render(current: ConversationSession) -> None:
        nonlocal printed, typing_shown
        transcript = current.transcript
        for index in range(printed, len(transcript)):
            output.write(format_message(transcript[index], local_id, seen=index == current.seen_index) + "\n")
        printed = len(transcript)
        if current.is_typing and not typing_shown:
            output.write("... typing\n")
        typing_shown = current.is_typing

    if conversation.history_error is not None:
        output.write(f"history unavailable: {conversation.history_error}\n")
    render(conversation)
    conversation.on_change(render)
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        conversation.remove_observer(render)
    return 0


async def _run(args: argparse.Namespace, output: TextIO) -> int:
    config, identity, token = resolve_session_args(args)
    async with ChatSession(identity, token, config) as session:
        try:
            if args.command == "contacts":
                return await run_contacts(session, output)
            if args.command == "online":
                return await run_online(session, output)
            if args.command == "send":
                return await run_send(session, args.peer, args.text, output, connect_timeout=args.connect_timeout)
            return await run_tail(session, args.peer, output, duration=args.duration)
        except ApiError as exc:
            output.write(f"request failed: {exc}\n")
            return 1


def main(argv: list[str] | None = None, output: TextIO | None = None) -> int:
    """Entry point for the ``splitchat`` command."""

    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))
    stream = output or sys.stdout
    try:
        return asyncio.run(_run(args, stream))
    except ValueError as exc:
        stream.write(f"error: {exc}\n")
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":  # pragma: no cover - convenience execution
    raise SystemExit(main())
