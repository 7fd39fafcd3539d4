from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from wasession.config import SessionConfig
from wasession.transport import EV_CONNECTION_UPDATE, ConnectionUpdate, SendFileOptions
from wasession.util.events import AsyncEventEmitter, Listener

OWN_JID = "4915123456789:3@s.whatsapp.net"


class FakeTransport:
    """In-memory stand-in for a transport socket; tests drive it by emitting events."""

    def __init__(self, *, user_id: str | None = OWN_JID) -> None:
        self.events = AsyncEventEmitter()
        self.user_id = user_id
        self.contacts: dict[str, dict[str, Any]] = {}
        self.group_meta: dict[str, dict[str, Any]] = {}
        self.all_groups: dict[str, dict[str, Any]] = {}
        self.media: dict[str, bytes] = {}
        self.metadata_delay_s = 0.0
        self.fail_downloads = False

        self.saved_creds: list[Any] = []
        self.sent_text: list[tuple[str, str]] = []
        self.sent_media: list[tuple[str, Path, SendFileOptions, str]] = []
        self.metadata_calls: list[str] = []
        self.logged_out = False

    def on(self, event: str, listener: Listener) -> None:
        self.events.on(event, listener)

    async def emit(self, event: str, *args: Any) -> None:
        await self.events.emit(event, *args)

    async def update(self, **kwargs: Any) -> None:
        await self.events.emit(EV_CONNECTION_UPDATE, ConnectionUpdate(**kwargs))

    async def save_creds(self, creds: Any) -> None:
        self.saved_creds.append(creds)

    async def send_text(self, jid: str, text: str) -> Mapping[str, Any]:
        self.sent_text.append((jid, text))
        return {
            "key": {"remoteJid": jid, "id": f"OUT{len(self.sent_text)}"},
            "messageTimestamp": "1700000000",
        }

    async def send_media(
        self, jid: str, path: Path, *, options: SendFileOptions, mimetype: str
    ) -> Mapping[str, Any]:
        self.sent_media.append((jid, path, options, mimetype))
        return {"key": {"id": f"MEDIA{len(self.sent_media)}"}, "messageTimestamp": 1700000001}

    async def group_metadata(self, jid: str) -> Mapping[str, Any]:
        self.metadata_calls.append(jid)
        if self.metadata_delay_s:
            await asyncio.sleep(self.metadata_delay_s)
        if jid not in self.group_meta:
            raise RuntimeError("item-not-found")
        return self.group_meta[jid]

    async def group_fetch_all_participating(self) -> Mapping[str, Mapping[str, Any]]:
        if self.metadata_delay_s:
            await asyncio.sleep(self.metadata_delay_s)
        return self.all_groups

    async def download_media(self, envelope: Any) -> bytes:
        if self.fail_downloads:
            raise RuntimeError("media key missing")
        return self.media[envelope["key"]["id"]]

    async def logout(self) -> None:
        self.logged_out = True


class FakeFactory:
    def __init__(self) -> None:
        self.sockets: list[FakeTransport] = []
        self.fail_with: Exception | None = None

    async def __call__(self) -> FakeTransport:
        if self.fail_with is not None:
            raise self.fail_with
        sock = FakeTransport()
        self.sockets.append(sock)
        return sock

    @property
    def last(self) -> FakeTransport:
        return self.sockets[-1]


def envelope(
    chat_id: str,
    msg_id: str,
    ts: int,
    *,
    message: dict[str, Any] | None = None,
    text: str | None = None,
    push_name: str | None = None,
    participant: str | None = None,
    from_me: bool = False,
) -> dict[str, Any]:
    key: dict[str, Any] = {"remoteJid": chat_id, "id": msg_id, "fromMe": from_me}
    if participant:
        key["participant"] = participant
    env: dict[str, Any] = {
        "key": key,
        "message": message if message is not None else {"conversation": text or f"msg {msg_id}"},
        "messageTimestamp": ts,
    }
    if push_name:
        env["pushName"] = push_name
    return env


async def settle(delay_s: float = 0.0, *, rounds: int = 5) -> None:
    if delay_s:
        await asyncio.sleep(delay_s)
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def config(tmp_path: Path) -> SessionConfig:
    return SessionConfig(
        auth_dir=tmp_path / "auth",
        chat_save_delay_s=0.01,
        message_save_delay_s=0.01,
        reconnect_delay_s=0.01,
        conflict_reconnect_delay_s=0.02,
        stable_connection_s=0.05,
        group_metadata_timeout_s=0.05,
        group_fetch_timeout_s=0.05,
    )


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()
