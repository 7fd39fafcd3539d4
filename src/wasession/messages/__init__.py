from __future__ import annotations

from .classify import (
    Classification,
    MessageVariant,
    classify_message,
    extract_media,
    unwrap_variant,
)

__all__ = [
    "Classification",
    "MessageVariant",
    "classify_message",
    "extract_media",
    "unwrap_variant",
]
