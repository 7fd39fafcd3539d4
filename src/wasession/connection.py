"""
Connection lifecycle for one WhatsApp account.

Every socket the state machine creates is tagged with a generation number. Event
handlers and timers capture the generation they were created under and do nothing
once a newer socket exists, so a late close from a superseded socket can never
trigger a second reconnect. A socket dropped by `disconnect()` is abandoned the
same way: nothing it emits afterwards reaches the state machine or the stores.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from .config import SessionConfig
from .constants import CONFLICT_ERROR, LOGGED_OUT_ERROR
from .jid import phone_of
from .qr import render_qr
from .transport import (
    EV_CONNECTION_UPDATE,
    EV_CONTACTS_UPSERT,
    EV_CREDS_UPDATE,
    EV_MESSAGES_UPSERT,
    ConnectionUpdate,
    ContactsHandler,
    DisconnectReason,
    MessagesHandler,
    Transport,
    TransportFactory,
)
from .util.asyncio import cancel_suppress, ensure_task, isolated
from .util.events import AsyncEventEmitter, Listener

log = logger.bind(component="connection")

STATUS_EVENT = "status"


class Phase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    QR_PENDING = "qr_pending"
    CONNECTED = "connected"
    CLOSED_RETRYABLE = "closed_retryable"
    CLOSED_TERMINAL = "closed_terminal"


@dataclass(frozen=True, slots=True)
class ConnectionState:
    """Latest status snapshot; each one replaces the previous."""

    connected: bool = False
    qr_code: str | None = None
    phone_number: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"connected": self.connected}
        if self.qr_code is not None:
            out["qrCode"] = self.qr_code
        if self.phone_number is not None:
            out["phoneNumber"] = self.phone_number
        if self.error is not None:
            out["error"] = self.error
        return out


def describe_status(state: ConnectionState) -> str:
    if state.connected:
        return f"WhatsApp is connected.\nPhone: +{state.phone_number}"
    if state.qr_code:
        return (
            "WhatsApp is waiting for QR code scan.\n\n"
            "Please scan the QR code displayed in the terminal with your phone:\n"
            "WhatsApp > Settings > Linked Devices > Link a Device\n\n"
            f"QR data: {state.qr_code}"
        )
    if state.error:
        return f"WhatsApp connection error: {state.error}"
    return "WhatsApp is connecting... Please wait a moment and check again."


class ConnectionStateMachine:
    def __init__(
        self,
        factory: TransportFactory,
        *,
        config: SessionConfig | None = None,
        on_messages: MessagesHandler | None = None,
        on_contacts: ContactsHandler | None = None,
        qr_renderer: Callable[[str], None] = render_qr,
    ) -> None:
        self.config = config or SessionConfig()
        self._factory = factory
        self._on_messages = on_messages
        self._on_contacts = on_contacts
        self._qr_renderer = qr_renderer
        self._events = AsyncEventEmitter()

        self.socket: Transport | None = None
        self.generation = 0
        self.phase = Phase.DISCONNECTED
        self.state = ConnectionState()
        self.conflict_count = 0

        self._qr_rendered_for: int | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._stable_task: asyncio.Task[None] | None = None

    @property
    def is_connected(self) -> bool:
        return self.state.connected and self.socket is not None

    @property
    def is_terminal(self) -> bool:
        return self.phase is Phase.CLOSED_TERMINAL

    def on_status(self, listener: Listener) -> None:
        self._events.on(STATUS_EVENT, listener)

    async def wait_for_status(
        self,
        predicate: Callable[[ConnectionState], bool],
        *,
        timeout_s: float | None = None,
    ) -> ConnectionState:
        if predicate(self.state):
            return self.state
        return await self._events.wait_for(STATUS_EVENT, predicate=predicate, timeout_s=timeout_s)

    async def _publish(self, state: ConnectionState) -> None:
        self.state = state
        await self._events.emit(STATUS_EVENT, state)

    async def connect(self) -> int:
        """
        Open a new socket and return its generation.

        Calling this after a terminal failure is the manual restart: the conflict
        counter starts over. Socket construction errors are published as status
        and re-raised.
        """

        if self.is_terminal:
            self.conflict_count = 0
        return await self._establish()

    async def _establish(self) -> int:
        self.generation += 1
        generation = self.generation
        self.phase = Phase.CONNECTING
        log.info("connecting (generation {})", generation)

        try:
            sock = await self._factory()
        except Exception as e:
            if generation == self.generation:
                self.phase = Phase.DISCONNECTED
                await self._publish(ConnectionState(connected=False, error=str(e) or repr(e)))
            raise

        if generation != self.generation:
            log.debug("socket for generation {} superseded before it was installed", generation)
            return generation

        self.socket = sock
        sock.on(EV_CREDS_UPDATE, functools.partial(self._on_creds_update, sock))
        on_update = functools.partial(self._on_connection_update, generation, sock)
        sock.on(EV_CONNECTION_UPDATE, isolated(EV_CONNECTION_UPDATE, on_update))
        if self._on_messages is not None:
            on_messages = self._current_only(sock, self._on_messages)
            sock.on(EV_MESSAGES_UPSERT, isolated(EV_MESSAGES_UPSERT, on_messages))
        if self._on_contacts is not None:
            on_contacts = self._current_only(sock, self._on_contacts)
            sock.on(EV_CONTACTS_UPSERT, isolated(EV_CONTACTS_UPSERT, on_contacts))
        return generation

    def _current_only(self, sock: Transport, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Drop events from a socket that was replaced or disconnected."""

        def _forward(*args: Any) -> Any:
            if sock is not self.socket:
                log.debug("dropping event from a superseded socket")
                return None
            return handler(*args)

        return _forward

    def _on_creds_update(self, sock: Transport, creds: Any) -> None:
        ensure_task(
            isolated(EV_CREDS_UPDATE, sock.save_creds)(creds), name="wasession.save_creds"
        )

    async def _on_connection_update(
        self, generation: int, sock: Transport, update: ConnectionUpdate
    ) -> None:
        if sock is not self.socket or generation != self.generation:
            log.debug(
                "stale or abandoned socket (gen {} vs {}), ignoring {}",
                generation,
                self.generation,
                update.connection or "update",
            )
            return

        if update.qr:
            self.phase = Phase.QR_PENDING
            await self._publish(ConnectionState(connected=False, qr_code=update.qr))
            if self._qr_rendered_for != generation:
                self._qr_rendered_for = generation
                try:
                    self._qr_renderer(update.qr)
                except Exception as e:
                    log.debug("QR rendering failed: {!r}", e)

        if update.connection == "close":
            await self._handle_close(generation, update.close_code)
        elif update.connection == "open":
            await self._handle_open(generation)
        elif update.connection == "connecting" and self.phase is not Phase.QR_PENDING:
            self.phase = Phase.CONNECTING

    async def _handle_close(self, generation: int, code: int | None) -> None:
        if code == DisconnectReason.LOGGED_OUT:
            log.error("logged out from WhatsApp, not reconnecting")
            await self._terminate(LOGGED_OUT_ERROR)
            return

        conflict = code == DisconnectReason.CONNECTION_REPLACED
        if conflict:
            self.conflict_count += 1
            if self.conflict_count > self.config.max_conflict_reconnects:
                log.error(
                    "too many conflict:replaced reconnects ({}), stopping", self.conflict_count
                )
                await self._terminate(CONFLICT_ERROR)
                return

        delay = (
            self.config.conflict_reconnect_delay_s if conflict else self.config.reconnect_delay_s
        )
        log.warning("connection closed (code: {}), reconnecting in {}s", code, delay)
        self.phase = Phase.CLOSED_RETRYABLE
        await self._publish(ConnectionState(connected=False))
        self._reconnect_task = ensure_task(
            self._reconnect_after(generation, delay), name=f"wasession.reconnect.{generation}"
        )

    async def _terminate(self, error: str) -> None:
        self.phase = Phase.CLOSED_TERMINAL
        self.socket = None
        await self._publish(ConnectionState(connected=False, error=error))

    async def _reconnect_after(self, generation: int, delay_s: float) -> None:
        await asyncio.sleep(delay_s)
        if generation != self.generation or self.phase is not Phase.CLOSED_RETRYABLE:
            return
        try:
            await self._establish()
        except Exception as e:
            log.error("reconnect failed: {!r}", e)

    async def _handle_open(self, generation: int) -> None:
        self.phase = Phase.CONNECTED
        user_id = self.socket.user_id if self.socket is not None else None
        phone = phone_of(user_id) if user_id else "unknown"
        await self._publish(ConnectionState(connected=True, phone_number=phone))
        log.info("WhatsApp connected as +{}", phone)
        self._stable_task = ensure_task(
            self._reset_conflicts_after(generation), name=f"wasession.stable.{generation}"
        )

    async def _reset_conflicts_after(self, generation: int) -> None:
        await asyncio.sleep(self.config.stable_connection_s)
        if self.is_connected and generation == self.generation:
            self.conflict_count = 0

    async def disconnect(self) -> None:
        """Log out and drop the socket. A no-op when there is no socket."""

        sock = self.socket
        if sock is None:
            return
        self.socket = None
        self.phase = Phase.DISCONNECTED
        await cancel_suppress(self._reconnect_task)
        self._reconnect_task = None
        try:
            await sock.logout()
        finally:
            self.phase = Phase.DISCONNECTED
            await self._publish(ConnectionState(connected=False))

    async def close(self) -> None:
        """Cancel pending timers without logging out."""

        await cancel_suppress(self._reconnect_task)
        await cancel_suppress(self._stable_task)
        self._reconnect_task = None
        self._stable_task = None
