from __future__ import annotations

import asyncio
import base64
import datetime as dt
import mimetypes
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from loguru import logger

from .config import SessionConfig, expand_path
from .connection import ConnectionState, ConnectionStateMachine, Phase
from .constants import MAX_LIST_LIMIT, MIN_LIST_LIMIT, STATUS_BROADCAST_JID
from .exceptions import (
    MediaDownloadError,
    MediaNotFoundError,
    NotConnectedError,
    SessionTerminatedError,
    TransportError,
)
from .jid import is_group_jid, local_part, normalize_jid, phone_of
from .messages import classify_message, extract_media
from .normalize import to_int, to_unix_seconds
from .qr import render_qr
from .store import (
    ChatDirectory,
    ChatRecord,
    MediaInfo,
    MessageStore,
    PersistenceScheduler,
    RawPayloadCache,
    StoredMessage,
    read_snapshot,
)
from .transport import SendFileOptions, Transport, TransportFactory
from .util.events import Listener
from .util.json import to_plain

log = logger.bind(component="session")

MediaFormat = Literal["base64", "data_url"]

_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._ -]+")

_KIND_MIMETYPES = {
    "image": "image/jpeg",
    "video": "video/mp4",
    "audio": "audio/mpeg",
    "voice": "audio/ogg; codecs=opus",
    "document": "application/octet-stream",
}


@dataclass(frozen=True, slots=True)
class SendResult:
    id: str
    timestamp: int


@dataclass(frozen=True, slots=True)
class DownloadResult:
    path: Path
    media: MediaInfo


@dataclass(frozen=True, slots=True)
class MediaPayload:
    data: str
    media: MediaInfo


@dataclass(frozen=True, slots=True)
class GroupParticipant:
    id: str
    admin: bool


@dataclass(frozen=True, slots=True)
class GroupInfo:
    id: str
    subject: str
    description: str
    participants: list[GroupParticipant]
    creation: int


def format_timestamp(timestamp: int) -> str:
    """`DD.MM.YYYY HH:MM` in local time."""

    return dt.datetime.fromtimestamp(timestamp).strftime("%d.%m.%Y %H:%M")


def _safe_filename(name: str) -> str:
    cleaned = _UNSAFE_FILENAME_RE.sub("_", Path(name).name).strip(" .")
    return cleaned or "media"


def _clamp_limit(limit: int) -> int:
    return max(MIN_LIST_LIMIT, min(MAX_LIST_LIMIT, int(limit)))


def _extension_for(mimetype: str | None) -> str:
    if not mimetype:
        return ".bin"
    base = mimetype.split(";", 1)[0].strip().lower()
    if base == "audio/ogg":
        return ".ogg"
    return mimetypes.guess_extension(base) or ".bin"


class WhatsAppSession:
    """
    Facade used by the tool layer.

    Owns the connection state machine and the local stores, feeds inbound events
    into the stores, and answers requests. Every operation except `get_status`
    requires an open connection.
    """

    def __init__(
        self,
        factory: TransportFactory,
        *,
        config: SessionConfig | None = None,
        qr_renderer: Callable[[str], None] = render_qr,
    ) -> None:
        self.config = config or SessionConfig()
        cfg = self.config

        self.chat_persistence = PersistenceScheduler(
            cfg.chat_store_path,
            lambda: self.chats.snapshot(),
            delay_s=cfg.chat_save_delay_s,
            name="chat store",
        )
        self.message_persistence: PersistenceScheduler | None = None
        if cfg.persist_messages:
            self.message_persistence = PersistenceScheduler(
                cfg.message_store_path,
                lambda: self.messages.snapshot(),
                delay_s=cfg.message_save_delay_s,
                name="message store",
            )

        self.chats = ChatDirectory(persistence=self.chat_persistence)
        self.raw = RawPayloadCache()
        self.messages = MessageStore(
            max_per_chat=cfg.max_messages_per_chat,
            max_total=cfg.max_messages_total,
            raw=self.raw,
            persistence=self.message_persistence,
        )
        self.connection = ConnectionStateMachine(
            factory,
            config=cfg,
            on_messages=self._handle_messages,
            on_contacts=self._handle_contacts,
            qr_renderer=qr_renderer,
        )
        self._loaded = False

    # lifecycle

    async def load(self) -> None:
        """Read persisted stores once; later calls are no-ops."""

        if self._loaded:
            return
        self._loaded = True
        added = self.chats.load(await read_snapshot(self.config.chat_store_path))
        if added:
            log.info("loaded {} chats from persistent store", added)
        if self.config.persist_messages:
            kept = self.messages.load(await read_snapshot(self.config.message_store_path))
            if kept:
                log.info("loaded {} messages from persistent store", kept)

    async def start(self) -> None:
        await self.load()
        await self.connection.connect()

    async def connect(self) -> int:
        return await self.connection.connect()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    async def close(self) -> None:
        """Stop timers and flush pending writes. Does not log out."""

        await self.connection.close()
        await self.chat_persistence.close()
        if self.message_persistence is not None:
            await self.message_persistence.close()

    def on_status(self, listener: Listener) -> None:
        self.connection.on_status(listener)

    # inbound events

    def _handle_messages(self, envelopes: Sequence[Any]) -> None:
        for item in envelopes:
            try:
                self.ingest(item)
            except Exception:
                log.exception("failed to store inbound message")

    def _handle_contacts(self, contacts: Sequence[Mapping[str, Any]]) -> None:
        plain = (to_plain(c) for c in contacts)
        self.chats.upsert_contacts([c for c in plain if isinstance(c, Mapping)])

    def ingest(self, envelope: Any) -> StoredMessage | None:
        """Record one inbound envelope in the chat directory, message store and raw cache."""

        env = to_plain(envelope)
        if not isinstance(env, Mapping):
            return None
        key = env.get("key") or {}
        chat_id = key.get("remoteJid")
        if not isinstance(chat_id, str) or not chat_id or chat_id == STATUS_BROADCAST_JID:
            return None

        is_group = is_group_jid(chat_id)
        push_name = env.get("pushName") if isinstance(env.get("pushName"), str) else None
        self.chats.upsert_from_message(chat_id, is_group, push_name)
        sock = self.connection.socket
        if is_group and sock is not None:
            self.chats.maybe_enrich_group_name(
                chat_id, sock.group_metadata, timeout_s=self.config.group_metadata_timeout_s
            )

        from_me = bool(key.get("fromMe"))
        participant = key.get("participant") if isinstance(key.get("participant"), str) else None
        if from_me:
            own = sock.user_id if sock is not None else None
            sender = own or "me"
        else:
            sender = participant if is_group and participant else chat_id
        sender_name = push_name or self._known_name(sender) or phone_of(sender)

        result = classify_message(env)
        msg = StoredMessage(
            id=str(key.get("id") or "unknown"),
            chat_id=chat_id,
            sender=sender,
            sender_name=sender_name,
            timestamp=to_unix_seconds(env.get("messageTimestamp")),
            text=result.text,
            is_from_me=from_me,
            is_group=is_group,
            type=result.type,
            media=result.media,
        )
        self.messages.append(msg, raw=env)
        return msg

    def _known_name(self, jid: str) -> str | None:
        rec = self.chats.get(jid)
        if rec is not None and rec.name != local_part(jid):
            return rec.name
        return None

    # outbound operations

    def _ensure_connected(self) -> Transport:
        sock = self.connection.socket
        if self.connection.phase is Phase.CLOSED_TERMINAL:
            raise SessionTerminatedError(self.connection.state.error or "session terminated")
        if sock is None or not self.connection.is_connected:
            raise NotConnectedError()
        return sock

    def get_status(self) -> ConnectionState:
        return self.connection.state

    async def get_chats(self, limit: int = 20) -> list[ChatRecord]:
        sock = self._ensure_connected()
        limit = _clamp_limit(limit)
        if len(self.chats) > 0:
            return self.chats.list(limit)

        log.info(
            "chat directory empty, falling back to participating groups ({}s timeout)",
            self.config.group_fetch_timeout_s,
        )
        try:
            groups = await asyncio.wait_for(
                sock.group_fetch_all_participating(), timeout=self.config.group_fetch_timeout_s
            )
        except Exception as e:
            log.warning("group fallback failed: {!r}", e)
            return []

        out: list[ChatRecord] = []
        for gid, meta in groups.items():
            if len(out) >= limit:
                break
            subject = meta.get("subject") if isinstance(meta, Mapping) else None
            out.append(self.chats.upsert_group(gid, subject if isinstance(subject, str) else None))
        return out

    async def send_message(self, chat_id: str, text: str) -> SendResult:
        sock = self._ensure_connected()
        jid = normalize_jid(chat_id)
        try:
            res = await sock.send_text(jid, text)
        except Exception as e:
            raise TransportError(f"failed to send message to {jid}: {e}") from e
        return self._send_result(res)

    async def send_file(
        self, chat_id: str, path: str | Path, options: SendFileOptions | None = None
    ) -> SendResult:
        sock = self._ensure_connected()
        opts = options or SendFileOptions()
        if opts.kind not in _KIND_MIMETYPES:
            supported = ", ".join(sorted(_KIND_MIMETYPES))
            raise ValueError(f"unsupported file kind {opts.kind!r} (expected one of: {supported})")
        file_path = expand_path(path)
        if not file_path.is_file():
            raise FileNotFoundError(f"file not found: {file_path}")
        mimetype = (
            opts.mimetype
            or mimetypes.guess_type(opts.file_name or file_path.name)[0]
            or _KIND_MIMETYPES[opts.kind]
        )
        if opts.kind == "voice":
            mimetype = opts.mimetype or _KIND_MIMETYPES["voice"]
        jid = normalize_jid(chat_id)
        try:
            res = await sock.send_media(jid, file_path, options=opts, mimetype=mimetype)
        except Exception as e:
            raise TransportError(f"failed to send {opts.kind} to {jid}: {e}") from e
        return self._send_result(res)

    @staticmethod
    def _send_result(res: Any) -> SendResult:
        res = to_plain(res)
        key = res.get("key") if isinstance(res, Mapping) else None
        msg_id = key.get("id") if isinstance(key, Mapping) else None
        ts = res.get("messageTimestamp") if isinstance(res, Mapping) else None
        return SendResult(id=str(msg_id or "unknown"), timestamp=to_unix_seconds(ts))

    async def list_messages(
        self, chat_id: str | None = None, limit: int = 20
    ) -> list[StoredMessage]:
        self._ensure_connected()
        cid = normalize_jid(chat_id) if chat_id else None
        return self.messages.list(cid, _clamp_limit(limit))

    async def _fetch_media(self, chat_id: str, message_id: str) -> tuple[bytes, MediaInfo]:
        sock = self._ensure_connected()
        cid = normalize_jid(chat_id)
        envelope = self.raw.get(cid, message_id)
        if envelope is None:
            raise MediaNotFoundError(
                cid,
                message_id,
                "Message not found in local store"
                " (only messages observed by this server are available)",
            )
        media = extract_media(envelope.get("message") if isinstance(envelope, Mapping) else None)
        if media is None:
            raise MediaNotFoundError(cid, message_id, "Message has no downloadable media")
        try:
            data = await sock.download_media(envelope)
        except Exception as e:
            raise MediaDownloadError(f"failed to download media for {message_id}: {e}") from e
        return data, media

    async def download_media(
        self, chat_id: str, message_id: str, output_dir: str | Path | None = None
    ) -> DownloadResult:
        data, media = await self._fetch_media(chat_id, message_id)
        target_dir = expand_path(output_dir) if output_dir else self.config.resolved_media_dir
        if media.file_name:
            name = _safe_filename(media.file_name)
        else:
            name = _safe_filename(message_id) + _extension_for(media.mimetype)
        path = (target_dir / name).resolve()

        def _write() -> None:
            target_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        log.info("downloaded {} media ({} bytes) to {}", media.kind, len(data), path)
        return DownloadResult(path=path, media=media)

    async def get_media(
        self, chat_id: str, message_id: str, format: MediaFormat = "base64"
    ) -> MediaPayload:
        data, media = await self._fetch_media(chat_id, message_id)
        encoded = base64.b64encode(data).decode("ascii")
        if format == "data_url":
            mime = (media.mimetype or "application/octet-stream").split(";", 1)[0].strip()
            encoded = f"data:{mime};base64,{encoded}"
        return MediaPayload(data=encoded, media=media)

    async def get_group_info(self, group_id: str) -> GroupInfo:
        sock = self._ensure_connected()
        jid = normalize_jid(group_id)
        try:
            meta = to_plain(await sock.group_metadata(jid))
        except Exception as e:
            raise TransportError(f"failed to fetch group metadata for {jid}: {e}") from e

        participants = [
            GroupParticipant(id=str(p.get("id")), admin=p.get("admin") in ("admin", "superadmin"))
            for p in meta.get("participants") or []
            if isinstance(p, Mapping) and p.get("id")
        ]
        subject = meta.get("subject")
        if isinstance(subject, str) and subject:
            rec = self.chats.get(jid)
            if rec is not None and rec.name != subject:
                self.chats.upsert_group(jid, subject)
        return GroupInfo(
            id=str(meta.get("id") or jid),
            subject=subject if isinstance(subject, str) else "",
            description=meta.get("desc") or "",
            participants=participants,
            creation=to_int(meta.get("creation")) or 0,
        )

    async def get_contact_name(self, jid: str) -> str:
        sock = self.connection.socket
        if sock is None:
            return jid
        normalized = normalize_jid(jid)
        rec = self.chats.get(normalized) or self.chats.get(jid)
        if rec is not None and rec.name:
            return rec.name
        contact = sock.contacts.get(normalized)
        if isinstance(contact, Mapping):
            for field in ("name", "notify", "verifiedName"):
                v = contact.get(field)
                if isinstance(v, str) and v:
                    return v
        return "+" + phone_of(normalized)

    format_timestamp = staticmethod(format_timestamp)
