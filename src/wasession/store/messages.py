from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from loguru import logger

from .models import StoredMessage
from .persistence import PersistenceScheduler
from .raw import RawPayloadCache

log = logger.bind(component="message-store")


def _by_timestamp(m: StoredMessage) -> int:
    return m.timestamp


class MessageStore:
    """
    Bounded per-chat message history.

    Lists keep delivery order; reads sort by timestamp. After every append the
    mutated chat is trimmed to `max_per_chat` and then the whole store to
    `max_total`, oldest first in both passes (ties keep insertion order).
    """

    def __init__(
        self,
        *,
        max_per_chat: int,
        max_total: int,
        raw: RawPayloadCache | None = None,
        persistence: PersistenceScheduler | None = None,
    ) -> None:
        self.max_per_chat = max_per_chat
        self.max_total = max_total
        self.raw = raw
        self.persistence = persistence
        self._chats: dict[str, list[StoredMessage]] = {}
        self._keys: set[tuple[str, str]] = set()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def keys(self) -> Iterator[tuple[str, str]]:
        return iter(self._keys)

    def chat_ids(self) -> list[str]:
        return list(self._chats)

    def count(self, chat_id: str) -> int:
        return len(self._chats.get(chat_id, ()))

    def get(self, chat_id: str, message_id: str) -> StoredMessage | None:
        if (chat_id, message_id) not in self._keys:
            return None
        for m in reversed(self._chats.get(chat_id, ())):
            if m.id == message_id:
                return m
        return None

    def append(self, msg: StoredMessage, raw: Any | None = None) -> bool:
        """
        Store `msg` (and its raw envelope) and enforce retention.

        A redelivery of an already-retained `(chat_id, id)` is ignored and
        returns False.
        """

        if msg.key in self._keys:
            return False
        self._insert(msg)
        if raw is not None and self.raw is not None:
            self.raw.put(msg.chat_id, msg.id, raw)
        self.enforce_retention(msg.chat_id)
        if self.persistence is not None:
            self.persistence.schedule()
        return True

    def _insert(self, msg: StoredMessage) -> None:
        self._chats.setdefault(msg.chat_id, []).append(msg)
        self._keys.add(msg.key)

    def enforce_retention(self, chat_id: str | None = None) -> int:
        """
        Apply the per-chat cap (to `chat_id`, or every chat) then the global cap.

        Returns the number of evicted messages.
        """

        evicted = 0
        targets = [chat_id] if chat_id is not None else list(self._chats)
        for cid in targets:
            msgs = self._chats.get(cid)
            if msgs is None or len(msgs) <= self.max_per_chat:
                continue
            msgs.sort(key=_by_timestamp)
            dropped = msgs[: len(msgs) - self.max_per_chat]
            del msgs[: len(msgs) - self.max_per_chat]
            for m in dropped:
                self._keys.discard(m.key)
            evicted += len(dropped)

        total = sum(len(v) for v in self._chats.values())
        if total > self.max_total:
            flat = sorted(
                (m for msgs in self._chats.values() for m in msgs), key=_by_timestamp
            )
            survivors = flat[len(flat) - self.max_total :]
            self._chats = {}
            self._keys = set()
            for m in survivors:
                self._insert(m)
            evicted += total - len(survivors)

        if evicted:
            log.debug("evicted {} message(s), {} retained", evicted, len(self._keys))
        if self.raw is not None:
            self.raw.prune_to_match(self)
        return evicted

    def list(self, chat_id: str | None = None, limit: int = 20) -> list[StoredMessage]:
        """
        The `limit` most recent messages, oldest first.

        `limit` is not clamped here; callers bound it.
        """

        if limit <= 0:
            return []
        if chat_id is not None:
            pool: Iterable[StoredMessage] = self._chats.get(chat_id, ())
        else:
            pool = (m for msgs in self._chats.values() for m in msgs)
        ordered = sorted(pool, key=_by_timestamp)
        return ordered[-limit:]

    def snapshot(self) -> list[dict[str, Any]]:
        return [m.to_dict() for msgs in self._chats.values() for m in msgs]

    def load(self, records: Iterable[Mapping[str, Any]]) -> int:
        """
        Append persisted records in file order, then trim once.

        A file written under larger caps shrinks to the current ones. Returns the
        number of messages retained.
        """

        for rec in records:
            if not isinstance(rec, Mapping):
                continue
            msg = StoredMessage.from_dict(rec)
            if msg is None or msg.key in self._keys:
                continue
            self._insert(msg)
        if self.raw is not None:
            self.raw.load(m for msgs in self._chats.values() for m in msgs)
        self.enforce_retention()
        return len(self._keys)
