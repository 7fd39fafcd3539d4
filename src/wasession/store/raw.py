from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Any

from .models import StoredMessage

if TYPE_CHECKING:
    from .messages import MessageStore


def raw_key(chat_id: str, message_id: str) -> str:
    return f"{chat_id}:{message_id}"


def synthesize_envelope(msg: StoredMessage) -> dict[str, Any]:
    """
    Best-effort envelope rebuilt from a persisted message.

    Media keys, direct paths and hashes are not persisted, so downloads from such an
    envelope may fail; the transport reports that as a download error.
    """

    key: dict[str, Any] = {"remoteJid": msg.chat_id, "id": msg.id, "fromMe": msg.is_from_me}
    if msg.is_group:
        key["participant"] = msg.sender

    content: dict[str, Any]
    if msg.media is not None:
        body: dict[str, Any] = {}
        if msg.media.mimetype:
            body["mimetype"] = msg.media.mimetype
        if msg.media.file_name:
            body["fileName"] = msg.media.file_name
        if msg.media.file_length is not None:
            body["fileLength"] = msg.media.file_length
        if msg.media.seconds is not None:
            body["seconds"] = msg.media.seconds
        if msg.media.kind == "audio":
            body["ptt"] = msg.media.is_voice_note
        content = {f"{msg.media.kind}Message": body}
    else:
        content = {"conversation": msg.text}

    return {
        "key": key,
        "message": content,
        "messageTimestamp": msg.timestamp,
        "pushName": msg.sender_name,
    }


class RawPayloadCache:
    """
    Original envelopes keyed by `"{chat_id}:{message_id}"`.

    Entries only ever leave through `prune_to_match`, which keeps the key set a
    subset of the message store's retained messages.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> Iterator[str]:
        return iter(self._entries)

    def put(self, chat_id: str, message_id: str, envelope: Any) -> None:
        self._entries[raw_key(chat_id, message_id)] = envelope

    def get(self, chat_id: str, message_id: str) -> Any | None:
        return self._entries.get(raw_key(chat_id, message_id))

    def prune_to_match(self, store: MessageStore) -> int:
        """Drop every entry whose message is no longer retained. Returns the count removed."""

        live = {raw_key(chat_id, msg_id) for chat_id, msg_id in store.keys()}
        stale = [k for k in self._entries if k not in live]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def load(self, messages: Iterable[StoredMessage]) -> None:
        """Rebuild degraded envelopes for persisted messages that have none cached."""

        for msg in messages:
            k = raw_key(msg.chat_id, msg.id)
            if k not in self._entries:
                self._entries[k] = synthesize_envelope(msg)
