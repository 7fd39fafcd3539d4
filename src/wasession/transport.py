"""
Boundary with the WhatsApp transport library.

The wire protocol, Signal encryption and credential storage live in the transport.
This package only needs a socket that emits a handful of events and exposes the
request/response calls below; anything matching `Transport` can be plugged in.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, Literal, Protocol, TypeAlias

from .util.events import Listener

EV_CREDS_UPDATE = "creds.update"
EV_CONNECTION_UPDATE = "connection.update"
EV_MESSAGES_UPSERT = "messages.upsert"
EV_CONTACTS_UPSERT = "contacts.upsert"

ConnectionPhase: TypeAlias = Literal["connecting", "open", "close"]
SendKind: TypeAlias = Literal["document", "image", "video", "audio", "voice"]


class DisconnectReason(IntEnum):
    """Close codes (Baileys `DisconnectReason`)."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


@dataclass(slots=True)
class ConnectionUpdate:
    connection: ConnectionPhase | None = None
    qr: str | None = None
    is_new_login: bool | None = None
    last_disconnect: Exception | None = None
    status_code: int | None = None

    @property
    def close_code(self) -> int | None:
        """The close reason, read from `status_code` or the attached exception."""

        if self.status_code is not None:
            return self.status_code
        err = self.last_disconnect
        if err is None:
            return None
        code = getattr(err, "status_code", None)
        if isinstance(code, int):
            return code
        # Boom-style errors from bridged JS transports: err.output.statusCode
        output = getattr(err, "output", None)
        code = getattr(output, "status_code", None) or getattr(output, "statusCode", None)
        return code if isinstance(code, int) else None


@dataclass(frozen=True, slots=True)
class SendFileOptions:
    kind: SendKind = "document"
    caption: str | None = None
    mimetype: str | None = None
    file_name: str | None = None


class Transport(Protocol):
    """One connected (or connecting) socket."""

    @property
    def user_id(self) -> str | None:
        """The linked account's JID once the connection is open."""

    @property
    def contacts(self) -> Mapping[str, Mapping[str, Any]]: ...

    def on(self, event: str, listener: Listener) -> None: ...

    async def save_creds(self, creds: Any) -> None: ...

    async def send_text(self, jid: str, text: str) -> Mapping[str, Any]: ...

    async def send_media(
        self, jid: str, path: Path, *, options: SendFileOptions, mimetype: str
    ) -> Mapping[str, Any]: ...

    async def group_metadata(self, jid: str) -> Mapping[str, Any]: ...

    async def group_fetch_all_participating(self) -> Mapping[str, Mapping[str, Any]]: ...

    async def download_media(self, envelope: Any) -> bytes: ...

    async def logout(self) -> None: ...


TransportFactory: TypeAlias = Callable[[], Awaitable[Transport]]

MessagesHandler: TypeAlias = Callable[[Sequence[Any]], Awaitable[None] | None]
ContactsHandler: TypeAlias = Callable[[Sequence[Mapping[str, Any]]], Awaitable[None] | None]
