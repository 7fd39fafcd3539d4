from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from loguru import logger

from ..jid import is_broadcast_jid, is_group_jid, local_part
from ..util.asyncio import ensure_task
from .models import ChatRecord
from .persistence import PersistenceScheduler

log = logger.bind(component="chat-directory")

GroupMetadataFetcher = Callable[[str], Awaitable[Mapping[str, Any]]]


def contact_display_name(contact: Mapping[str, Any]) -> str | None:
    for field in ("notify", "name", "verifiedName"):
        v = contact.get(field)
        if isinstance(v, str) and v:
            return v
    return None


class ChatDirectory:
    """
    Chat id -> display metadata.

    Records are never removed. New chats start with the id's local part as a
    provisional name, which contact names and group subjects replace later.
    """

    def __init__(
        self,
        *,
        persistence: PersistenceScheduler | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.persistence = persistence
        self._clock = clock
        self._records: dict[str, ChatRecord] = {}
        self._group_lookups: set[str] = set()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._records

    def get(self, chat_id: str) -> ChatRecord | None:
        return self._records.get(chat_id)

    def _changed(self) -> None:
        if self.persistence is not None:
            self.persistence.schedule()

    def upsert_from_message(
        self, chat_id: str, is_group: bool, push_name: str | None
    ) -> ChatRecord:
        placeholder = local_part(chat_id)
        rec = self._records.get(chat_id)
        if rec is None:
            # For groups the push name belongs to the sending participant, not the chat.
            name = placeholder if is_group else (push_name or placeholder)
            rec = ChatRecord(id=chat_id, name=name, is_group=is_group)
            self._records[chat_id] = rec
        rec.last_activity = max(rec.last_activity, int(self._clock()))
        if not is_group and push_name and rec.name == placeholder:
            rec.name = push_name
        self._changed()
        return rec

    def upsert_from_contact(self, contact_id: str, name: str | None) -> ChatRecord | None:
        """Authoritative name update for individual chats; groups and broadcasts are ignored."""

        if not contact_id or is_group_jid(contact_id) or is_broadcast_jid(contact_id):
            return None
        display = name or local_part(contact_id)
        rec = self._records.get(contact_id)
        if rec is None:
            rec = ChatRecord(id=contact_id, name=display, is_group=False)
            self._records[contact_id] = rec
        else:
            rec.name = display
        self._changed()
        return rec

    def upsert_contacts(self, contacts: Iterable[Mapping[str, Any]]) -> int:
        updated = 0
        for contact in contacts:
            cid = contact.get("id")
            if not isinstance(cid, str):
                continue
            if self.upsert_from_contact(cid, contact_display_name(contact)) is not None:
                updated += 1
        if updated:
            log.info("contacts updated, chat directory now has {} entries", len(self._records))
        return updated

    def upsert_group(self, group_id: str, subject: str | None) -> ChatRecord:
        rec = self._records.get(group_id)
        name = subject or local_part(group_id)
        if rec is None:
            rec = ChatRecord(id=group_id, name=name, is_group=True)
            self._records[group_id] = rec
        elif subject:
            rec.name = subject
        self._changed()
        return rec

    def list(self, limit: int) -> list[ChatRecord]:
        """Most recently active chats first."""

        if limit <= 0:
            return []
        ordered = sorted(self._records.values(), key=lambda r: r.last_activity, reverse=True)
        return ordered[:limit]

    def maybe_enrich_group_name(
        self, group_id: str, fetch: GroupMetadataFetcher, *, timeout_s: float
    ) -> asyncio.Task[None] | None:
        """
        Look up the group subject in the background.

        At most one lookup per group runs at a time, and none is started once the
        record holds a real name.
        """

        if group_id in self._group_lookups:
            return None
        rec = self._records.get(group_id)
        if rec is not None and rec.name != local_part(group_id):
            return None
        self._group_lookups.add(group_id)
        return ensure_task(
            self._enrich_group_name(group_id, fetch, timeout_s),
            name=f"wasession.group_subject.{group_id}",
        )

    async def _enrich_group_name(
        self, group_id: str, fetch: GroupMetadataFetcher, timeout_s: float
    ) -> None:
        try:
            metadata = await asyncio.wait_for(fetch(group_id), timeout=timeout_s)
        except Exception as e:
            log.debug("group subject lookup for {} failed: {!r}", group_id, e)
            return
        finally:
            self._group_lookups.discard(group_id)

        subject = metadata.get("subject") if isinstance(metadata, Mapping) else None
        if not isinstance(subject, str) or not subject:
            return
        rec = self._records.get(group_id)
        if rec is None:
            return
        if rec.name != subject:
            rec.name = subject
            self._changed()

    def snapshot(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self._records.values()]

    def load(self, records: Iterable[Mapping[str, Any]]) -> int:
        """
        Merge persisted records by id.

        Records already in memory win, as does the first occurrence of an id in
        `records`. Returns the number of records added.
        """

        added = 0
        for raw in records:
            if not isinstance(raw, Mapping):
                continue
            rec = ChatRecord.from_dict(raw)
            if rec is None or rec.id in self._records:
                continue
            self._records[rec.id] = rec
            added += 1
        return added
