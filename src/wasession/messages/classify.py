"""
Classification of inbound message envelopes.

Envelopes are Baileys-shaped mappings (`{"key": ..., "message": ..., ...}`) or the
equivalent WAProto `WebMessageInfo`; protobuf objects are converted to mappings
first. The `message` content has one populated variant (plus bookkeeping keys such
as `messageContextInfo`), which `unwrap_variant` resolves into a `MessageVariant`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

from ..normalize import to_int
from ..store.models import MediaInfo, MediaKind
from ..util.json import to_plain

KNOWN_TAGS: Final[tuple[str, ...]] = (
    "conversation",
    "extendedTextMessage",
    "imageMessage",
    "videoMessage",
    "documentMessage",
    "audioMessage",
    "stickerMessage",
    "contactMessage",
    "locationMessage",
    "buttonsResponseMessage",
    "listResponseMessage",
    "templateButtonReplyMessage",
)

# Containers whose `message` field holds the real content.
WRAPPER_TAGS: Final[tuple[str, ...]] = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "documentWithCaptionMessage",
)

# Keys that ride along with the real variant and never describe it.
_MAX_WRAP_DEPTH: Final[int] = 4

_BOOKKEEPING: Final[frozenset[str]] = frozenset(
    {"messageContextInfo", "senderKeyDistributionMessage"}
)

_MEDIA_KINDS: Final[dict[str, MediaKind]] = {
    "imageMessage": "image",
    "videoMessage": "video",
    "documentMessage": "document",
    "audioMessage": "audio",
    "stickerMessage": "sticker",
}

_TYPE_TAGS: Final[dict[str, str]] = {
    "conversation": "text",
    "extendedTextMessage": "text",
    "imageMessage": "image",
    "videoMessage": "video",
    "documentMessage": "document",
    "audioMessage": "audio",
    "stickerMessage": "sticker",
    "contactMessage": "contact",
    "locationMessage": "location",
    "buttonsResponseMessage": "buttons_response",
    "listResponseMessage": "list_response",
    "templateButtonReplyMessage": "template_reply",
}


@dataclass(frozen=True, slots=True)
class MessageVariant:
    """
    The populated variant of a message content.

    `known` is false for tags this module does not interpret; `body` then holds
    whatever the transport delivered under that tag.
    """

    tag: str
    body: Any
    known: bool


@dataclass(frozen=True, slots=True)
class Classification:
    text: str
    type: str
    media: MediaInfo | None = None


def _as_mapping(obj: Any) -> Mapping[str, Any] | None:
    obj = to_plain(obj)
    return obj if isinstance(obj, Mapping) else None


def _str(body: Any, key: str) -> str | None:
    if not isinstance(body, Mapping):
        return None
    v = body.get(key)
    return v if isinstance(v, str) and v else None


def unwrap_variant(content: Any) -> MessageVariant | None:
    """
    Resolve the populated variant of a message content, unwrapping containers.

    Returns `None` when the content is absent or carries nothing but bookkeeping.
    """

    m = _as_mapping(content)
    for _ in range(_MAX_WRAP_DEPTH):
        if m is None:
            return None
        wrapper = next((t for t in WRAPPER_TAGS if t in m), None)
        if wrapper is not None:
            inner = _as_mapping(m[wrapper])
            m = _as_mapping(inner.get("message")) if inner is not None else None
            continue

        for tag in KNOWN_TAGS:
            if tag in m and m[tag] is not None:
                return MessageVariant(tag=tag, body=m[tag], known=True)
        for tag, body in m.items():
            if tag in _BOOKKEEPING or body is None:
                continue
            return MessageVariant(tag=tag, body=body, known=False)
        return None
    return None


def _variant_text(variant: MessageVariant) -> str:
    tag, body = variant.tag, variant.body

    if tag == "conversation":
        return body if isinstance(body, str) and body else "[text]"
    if tag == "extendedTextMessage":
        return _str(body, "text") or "[text]"
    if tag == "imageMessage":
        return _str(body, "caption") or "[image]"
    if tag == "videoMessage":
        return _str(body, "caption") or "[video]"
    if tag == "documentMessage":
        return (
            _str(body, "caption") or _str(body, "fileName") or _str(body, "title") or "[document]"
        )
    if tag == "audioMessage":
        ptt = isinstance(body, Mapping) and body.get("ptt") is True
        return "[voice-note]" if ptt else "[audio]"
    if tag == "stickerMessage":
        return "[sticker]"
    if tag == "contactMessage":
        name = _str(body, "displayName")
        return f"[contact] {name}" if name else "[contact]"
    if tag == "locationMessage":
        name = _str(body, "name") or _str(body, "address")
        if name:
            return f"[location] {name}"
        lat = body.get("degreesLatitude") if isinstance(body, Mapping) else None
        lng = body.get("degreesLongitude") if isinstance(body, Mapping) else None
        if isinstance(lat, (int, float)) and isinstance(lng, (int, float)):
            return f"[location] {float(lat):.6f},{float(lng):.6f}"
        return "[location]"
    if tag == "buttonsResponseMessage":
        return (
            _str(body, "selectedDisplayText")
            or _str(body, "selectedButtonId")
            or "[buttons_response]"
        )
    if tag == "listResponseMessage":
        reply = body.get("singleSelectReply") if isinstance(body, Mapping) else None
        return _str(body, "title") or _str(reply, "selectedRowId") or "[list_response]"
    if tag == "templateButtonReplyMessage":
        return _str(body, "selectedDisplayText") or _str(body, "selectedId") or "[template_reply]"
    return f"[{tag}]"


def extract_media(content: Any) -> MediaInfo | None:
    """
    Media descriptor for image/video/document/audio/sticker content.

    Every other variant, recognized or not, has no media.
    """

    variant = unwrap_variant(content)
    if variant is None:
        return None
    kind = _MEDIA_KINDS.get(variant.tag)
    if kind is None or not isinstance(variant.body, Mapping):
        return None
    body = variant.body
    return MediaInfo(
        kind=kind,
        mimetype=_str(body, "mimetype"),
        file_name=_str(body, "fileName"),
        file_length=to_int(body.get("fileLength")),
        seconds=to_int(body.get("seconds")),
        is_voice_note=kind == "audio" and body.get("ptt") is True,
    )


def classify_message(envelope: Any) -> Classification:
    """
    Derive `(text, type, media)` for a raw envelope.

    Precedence: stub/system events, absent content, wrappers (unwrapped and
    re-classified), then the populated variant.
    """

    env = _as_mapping(envelope) or {}

    stub = env.get("messageStubType")
    code = to_int(stub)
    if code:
        return Classification(text=f"[stub:{code}]", type="stub")
    if code is None and isinstance(stub, str) and stub:
        # protobuf JSON renders the enum by name
        return Classification(text=f"[stub:{stub}]", type="stub")

    content = env.get("message")
    variant = unwrap_variant(content)
    if variant is None:
        return Classification(text="[no-content]", type="unknown")

    type_tag = _TYPE_TAGS.get(variant.tag, variant.tag)
    return Classification(
        text=_variant_text(variant), type=type_tag, media=extract_media(content)
    )
