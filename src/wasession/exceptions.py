from __future__ import annotations


class WaSessionError(Exception):
    """Base error for the wasession library."""


class NotConnectedError(WaSessionError):
    """The operation needs an open WhatsApp connection."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "WhatsApp is not connected. Please wait for QR code scan and connection to complete."
        )


class SessionTerminatedError(NotConnectedError):
    """
    The session reached a terminal state (logged out, or too many conflicts).

    No automatic reconnect happens after this; the process has to be restarted
    (and, after a logout, the device re-linked).
    """


class TransportError(WaSessionError):
    """Socket construction, send or metadata failure reported by the transport."""


class MediaNotFoundError(WaSessionError):
    """Media was requested for a message that is unknown, evicted, or has no attachment."""

    def __init__(self, chat_id: str, message_id: str, reason: str) -> None:
        super().__init__(f"{reason} (chat_id={chat_id}, message_id={message_id})")
        self.chat_id = chat_id
        self.message_id = message_id


class MediaDownloadError(WaSessionError):
    """Media download/decryption failed."""
