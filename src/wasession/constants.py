from __future__ import annotations

from typing import Final

S_WHATSAPP_NET: Final[str] = "@s.whatsapp.net"
G_US: Final[str] = "@g.us"
BROADCAST_SUFFIX: Final[str] = "@broadcast"
STATUS_BROADCAST_JID: Final[str] = "status@broadcast"

DEFAULT_AUTH_DIR: Final[str] = "~/.whatsapp-mcp/auth"
CHAT_STORE_FILE: Final[str] = "chat-store.json"
MESSAGE_STORE_FILE: Final[str] = "message-store.json"
MEDIA_DIR_NAME: Final[str] = "media"

DEFAULT_MAX_MESSAGES_PER_CHAT: Final[int] = 200
DEFAULT_MAX_MESSAGES_TOTAL: Final[int] = 2000

# Debounce windows (seconds). The chat directory is small and read eagerly.
CHAT_SAVE_DELAY_S: Final[float] = 0.25
MESSAGE_SAVE_DELAY_S: Final[float] = 1.0

RECONNECT_DELAY_S: Final[float] = 2.0
CONFLICT_RECONNECT_DELAY_S: Final[float] = 5.0
MAX_CONFLICT_RECONNECTS: Final[int] = 2
STABLE_CONNECTION_S: Final[float] = 30.0

GROUP_METADATA_TIMEOUT_S: Final[float] = 2.0
GROUP_FETCH_TIMEOUT_S: Final[float] = 10.0

MIN_LIST_LIMIT: Final[int] = 1
MAX_LIST_LIMIT: Final[int] = 100

LOGGED_OUT_ERROR: Final[str] = (
    "Logged out from WhatsApp. Delete auth directory and re-scan QR code."
)
CONFLICT_ERROR: Final[str] = "Connection conflict. Restart to reconnect."

LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan> | {message}"
)
