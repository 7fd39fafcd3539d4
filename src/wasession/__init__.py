"""
wasession: session lifecycle and local state for a linked WhatsApp account.

A reconnecting connection state machine sits on top of a pluggable transport
socket; inbound messages feed bounded, debounced-to-disk chat and message stores
that the `WhatsAppSession` facade answers tool calls from.
"""

from __future__ import annotations

from .config import SessionConfig, load_session_config
from .connection import ConnectionState, ConnectionStateMachine, Phase, describe_status
from .exceptions import (
    MediaDownloadError,
    MediaNotFoundError,
    NotConnectedError,
    SessionTerminatedError,
    TransportError,
    WaSessionError,
)
from .logging_config import configure_logging
from .session import WhatsAppSession
from .transport import ConnectionUpdate, DisconnectReason, SendFileOptions, Transport

__all__ = [
    "ConnectionState",
    "ConnectionStateMachine",
    "ConnectionUpdate",
    "DisconnectReason",
    "MediaDownloadError",
    "MediaNotFoundError",
    "NotConnectedError",
    "Phase",
    "SendFileOptions",
    "SessionConfig",
    "SessionTerminatedError",
    "Transport",
    "TransportError",
    "WaSessionError",
    "WhatsAppSession",
    "configure_logging",
    "describe_status",
    "load_session_config",
]

__version__ = "0.1.0"
