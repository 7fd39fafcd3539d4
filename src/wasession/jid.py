from __future__ import annotations

import re
from dataclasses import dataclass

from .constants import BROADCAST_SUFFIX, G_US, S_WHATSAPP_NET

_PREFIX_RE = re.compile(r"^whatsapp:", re.IGNORECASE)
_NON_DIGIT_RE = re.compile(r"[^0-9]")


@dataclass(slots=True)
class FullJid:
    user: str
    server: str
    device: int | None = None


def jid_decode(jid: str | None) -> FullJid | None:
    if not jid:
        return None
    sep = jid.find("@")
    if sep < 0:
        return None

    user_combined = jid[:sep]
    user_agent, *device_parts = user_combined.split(":")
    user = user_agent.split("_")[0]
    device: int | None = None
    if device_parts and device_parts[0].isdigit():
        device = int(device_parts[0])
    return FullJid(user=user, server=jid[sep + 1 :], device=device)


def local_part(jid: str) -> str:
    """`"123@s.whatsapp.net"` -> `"123"`; identifiers without `@` are returned as-is."""

    return jid.split("@", 1)[0]


def phone_of(jid: str) -> str:
    """Local part with any `:device` suffix removed."""

    decoded = jid_decode(jid)
    if decoded is not None:
        return decoded.user
    return local_part(jid).split(":", 1)[0]


def is_group_jid(jid: str | None) -> bool:
    return bool(jid and jid.endswith(G_US))


def is_broadcast_jid(jid: str | None) -> bool:
    return bool(jid and jid.endswith(BROADCAST_SUFFIX))


def normalize_jid(value: str) -> str:
    """
    Turn user input into a chat identifier.

    - a leading `whatsapp:` scheme is stripped
    - anything containing `@` is already a JID
    - otherwise the digits are treated as a phone number
    """

    jid = _PREFIX_RE.sub("", value)
    if "@" in jid:
        return jid
    cleaned = _NON_DIGIT_RE.sub("", jid)
    if cleaned:
        return cleaned + S_WHATSAPP_NET
    return jid
