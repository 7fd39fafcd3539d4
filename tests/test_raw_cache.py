from __future__ import annotations

from wasession.messages import extract_media
from wasession.store import MediaInfo, MessageStore, RawPayloadCache, StoredMessage
from wasession.store.raw import synthesize_envelope


def _msg(msg_id: str, ts: int, *, media: MediaInfo | None = None) -> StoredMessage:
    return StoredMessage(
        id=msg_id,
        chat_id="123@g.us",
        sender="49111@s.whatsapp.net",
        sender_name="Bob",
        timestamp=ts,
        text="[voice-note]" if media else "hi",
        is_from_me=False,
        is_group=True,
        type="audio" if media else "text",
        media=media,
    )


def test_put_get_and_prune_follow_the_store() -> None:
    raw = RawPayloadCache()
    store = MessageStore(max_per_chat=2, max_total=10, raw=raw)
    for i in range(1, 4):
        store.append(_msg(str(i), i), raw={"key": {"id": str(i)}})

    assert raw.get("123@g.us", "1") is None
    assert raw.get("123@g.us", "3") == {"key": {"id": "3"}}
    assert "123@g.us:2" in raw
    assert len(raw) == 2


def test_prune_to_match_reports_removed_entries() -> None:
    raw = RawPayloadCache()
    store = MessageStore(max_per_chat=5, max_total=5)
    store.append(_msg("1", 1))
    raw.put("123@g.us", "1", {"a": 1})
    raw.put("123@g.us", "ghost", {"a": 2})

    assert raw.prune_to_match(store) == 1
    assert list(raw.keys()) == ["123@g.us:1"]


def test_synthesized_envelope_keeps_media_shape() -> None:
    media = MediaInfo(
        kind="audio", mimetype="audio/ogg; codecs=opus", seconds=4, is_voice_note=True
    )
    env = synthesize_envelope(_msg("9", 50, media=media))

    assert env["key"] == {
        "remoteJid": "123@g.us",
        "id": "9",
        "fromMe": False,
        "participant": "49111@s.whatsapp.net",
    }
    assert env["messageTimestamp"] == 50
    assert extract_media(env["message"]) == media


def test_load_does_not_replace_cached_originals() -> None:
    raw = RawPayloadCache()
    raw.put("123@g.us", "1", {"original": True})
    raw.load([_msg("1", 1), _msg("2", 2)])

    assert raw.get("123@g.us", "1") == {"original": True}
    assert raw.get("123@g.us", "2")["message"] == {"conversation": "hi"}  # type: ignore[index]
