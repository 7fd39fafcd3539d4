from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from . import constants

ENV_AUTH_DIR = "WHATSAPP_AUTH_DIR"
ENV_MEDIA_DIR = "WHATSAPP_MEDIA_DIR"
ENV_PERSIST_MESSAGES = "WHATSAPP_PERSIST_MESSAGES"
ENV_MAX_MESSAGES_PER_CHAT = "WHATSAPP_MAX_MESSAGES_PER_CHAT"
ENV_MAX_MESSAGES_TOTAL = "WHATSAPP_MAX_MESSAGES_TOTAL"
ENV_LOG_LEVEL = "LOG_LEVEL"


def expand_path(value: str | Path) -> Path:
    return Path(value).expanduser()


@dataclass(slots=True)
class SessionConfig:
    auth_dir: Path = expand_path(constants.DEFAULT_AUTH_DIR)
    media_dir: Path | None = None

    persist_messages: bool = False
    max_messages_per_chat: int = constants.DEFAULT_MAX_MESSAGES_PER_CHAT
    max_messages_total: int = constants.DEFAULT_MAX_MESSAGES_TOTAL

    chat_save_delay_s: float = constants.CHAT_SAVE_DELAY_S
    message_save_delay_s: float = constants.MESSAGE_SAVE_DELAY_S

    reconnect_delay_s: float = constants.RECONNECT_DELAY_S
    conflict_reconnect_delay_s: float = constants.CONFLICT_RECONNECT_DELAY_S
    max_conflict_reconnects: int = constants.MAX_CONFLICT_RECONNECTS
    stable_connection_s: float = constants.STABLE_CONNECTION_S

    group_metadata_timeout_s: float = constants.GROUP_METADATA_TIMEOUT_S
    group_fetch_timeout_s: float = constants.GROUP_FETCH_TIMEOUT_S

    log_level: str = "INFO"

    @property
    def data_dir(self) -> Path:
        """Directory holding the persisted stores (the auth folder's parent)."""

        return self.auth_dir.parent

    @property
    def chat_store_path(self) -> Path:
        return self.data_dir / constants.CHAT_STORE_FILE

    @property
    def message_store_path(self) -> Path:
        return self.data_dir / constants.MESSAGE_STORE_FILE

    @property
    def resolved_media_dir(self) -> Path:
        return self.media_dir or (self.data_dir / constants.MEDIA_DIR_NAME)


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y"}


def load_session_config(*, env_file: str | Path | None = None) -> SessionConfig:
    """
    Build a `SessionConfig` from the environment.

    A `.env` file is loaded first when present; real environment variables win.
    Malformed integers fall back to the defaults.
    """

    load_dotenv(env_file)

    auth_dir = os.getenv(ENV_AUTH_DIR) or constants.DEFAULT_AUTH_DIR
    media_dir = os.getenv(ENV_MEDIA_DIR)

    per_chat = _get_env_int(ENV_MAX_MESSAGES_PER_CHAT, constants.DEFAULT_MAX_MESSAGES_PER_CHAT)
    total = _get_env_int(ENV_MAX_MESSAGES_TOTAL, constants.DEFAULT_MAX_MESSAGES_TOTAL)

    return SessionConfig(
        auth_dir=expand_path(auth_dir),
        media_dir=expand_path(media_dir) if media_dir else None,
        persist_messages=_get_env_bool(ENV_PERSIST_MESSAGES, False),
        max_messages_per_chat=max(1, per_chat),
        max_messages_total=max(1, total),
        log_level=os.getenv(ENV_LOG_LEVEL, "INFO").upper(),
    )
