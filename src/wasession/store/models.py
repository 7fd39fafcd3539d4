from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias, cast

from ..normalize import to_int

MediaKind: TypeAlias = Literal["image", "video", "document", "audio", "sticker"]

MEDIA_KINDS: tuple[MediaKind, ...] = ("image", "video", "document", "audio", "sticker")


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


@dataclass(frozen=True, slots=True)
class MediaInfo:
    kind: MediaKind
    mimetype: str | None = None
    file_name: str | None = None
    file_length: int | None = None
    seconds: int | None = None
    is_voice_note: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind, "isVoiceNote": self.is_voice_note}
        if self.mimetype is not None:
            out["mimetype"] = self.mimetype
        if self.file_name is not None:
            out["fileName"] = self.file_name
        if self.file_length is not None:
            out["fileLength"] = self.file_length
        if self.seconds is not None:
            out["seconds"] = self.seconds
        return out

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> MediaInfo | None:
        kind = d.get("kind")
        if kind not in MEDIA_KINDS:
            return None
        return cls(
            kind=cast(MediaKind, kind),
            mimetype=_opt_str(d.get("mimetype")),
            file_name=_opt_str(d.get("fileName")),
            file_length=to_int(d.get("fileLength")),
            seconds=to_int(d.get("seconds")),
            is_voice_note=bool(d.get("isVoiceNote")),
        )


@dataclass(slots=True)
class ChatRecord:
    """
    Display metadata for one chat.

    `last_activity` is Unix seconds (0 when unknown) and never moves backwards.
    """

    id: str
    name: str
    is_group: bool = False
    last_activity: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "isGroup": self.is_group,
            "conversationTimestamp": self.last_activity,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> ChatRecord | None:
        chat_id = d.get("id")
        if not isinstance(chat_id, str) or not chat_id:
            return None
        name = _opt_str(d.get("name")) or chat_id.split("@", 1)[0]
        return cls(
            id=chat_id,
            name=name,
            is_group=bool(d.get("isGroup")),
            last_activity=to_int(d.get("conversationTimestamp")) or 0,
        )


@dataclass(frozen=True, slots=True)
class StoredMessage:
    id: str
    chat_id: str
    sender: str
    sender_name: str
    timestamp: int
    text: str
    is_from_me: bool
    is_group: bool
    type: str
    media: MediaInfo | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.chat_id, self.id)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "chatId": self.chat_id,
            "sender": self.sender,
            "senderName": self.sender_name,
            "timestamp": self.timestamp,
            "text": self.text,
            "isFromMe": self.is_from_me,
            "isGroup": self.is_group,
            "type": self.type,
        }
        if self.media is not None:
            out["media"] = self.media.to_dict()
        return out

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> StoredMessage | None:
        chat_id = d.get("chatId")
        if not isinstance(chat_id, str) or not chat_id:
            return None
        media = d.get("media")
        sender = _opt_str(d.get("sender")) or chat_id
        return cls(
            id=_opt_str(d.get("id")) or "unknown",
            chat_id=chat_id,
            sender=sender,
            sender_name=_opt_str(d.get("senderName")) or sender.split("@", 1)[0],
            timestamp=to_int(d.get("timestamp")) or 0,
            text=d.get("text") if isinstance(d.get("text"), str) else "",
            is_from_me=bool(d.get("isFromMe")),
            is_group=bool(d.get("isGroup")),
            type=_opt_str(d.get("type")) or "unknown",
            media=MediaInfo.from_dict(media) if isinstance(media, Mapping) else None,
        )
