from __future__ import annotations

from .chats import ChatDirectory
from .messages import MessageStore
from .models import ChatRecord, MediaInfo, MediaKind, StoredMessage
from .persistence import PersistenceScheduler, read_snapshot
from .raw import RawPayloadCache, raw_key

__all__ = [
    "ChatDirectory",
    "ChatRecord",
    "MediaInfo",
    "MediaKind",
    "MessageStore",
    "PersistenceScheduler",
    "RawPayloadCache",
    "StoredMessage",
    "raw_key",
    "read_snapshot",
]
