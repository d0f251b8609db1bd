from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

ENV_PREFIX = "SPLITCHAT_"

_ENV_NAMES = {
    "base_url": "BASE_URL",
    "ws_path": "WS_PATH",
    "api_prefix": "API_PREFIX",
    "reconnect_delay_s": "RECONNECT_DELAY",
    "heartbeat_s": "HEARTBEAT",
    "presence_interval_s": "PRESENCE_INTERVAL",
    "typing_timeout_s": "TYPING_TIMEOUT",
    "request_timeout_s": "REQUEST_TIMEOUT",
}


@dataclass
class ChatConfig:
    base_url: str = "http://localhost:8080"
    ws_path: str = "/ws"
    api_prefix: str = "/api"
    reconnect_delay_s: float = 5.0
    heartbeat_s: float = 4.0
    presence_interval_s: float = 30.0
    typing_timeout_s: float = 3.0
    request_timeout_s: float = 10.0

    @property
    def ws_url(self) -> str:
        base = self.base_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return f"{base}{self.ws_path}"

    @property
    def api_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.api_prefix}"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ChatConfig":
        """Build a config from ``SPLITCHAT_*`` variables, falling back to defaults."""

        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for item in fields(cls):
            name = ENV_PREFIX + _ENV_NAMES[item.name]
            raw = env.get(name)
            if raw is None or raw == "":
                continue
            if item.type in ("float", float):
                try:
                    value = float(raw)
                except ValueError as exc:
                    raise ValueError(f"{name} must be a number, got {raw!r}") from exc
                if value <= 0:
                    raise ValueError(f"{name} must be positive")
                values[item.name] = value
            else:
                values[item.name] = raw
        return cls(**values)
