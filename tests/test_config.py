from __future__ import annotations

from pathlib import Path

import pytest

from wasession.config import (
    ENV_AUTH_DIR,
    ENV_LOG_LEVEL,
    ENV_MAX_MESSAGES_PER_CHAT,
    ENV_MAX_MESSAGES_TOTAL,
    ENV_MEDIA_DIR,
    ENV_PERSIST_MESSAGES,
    SessionConfig,
    load_session_config,
)

_ALL = (
    ENV_AUTH_DIR,
    ENV_LOG_LEVEL,
    ENV_MAX_MESSAGES_PER_CHAT,
    ENV_MAX_MESSAGES_TOTAL,
    ENV_MEDIA_DIR,
    ENV_PERSIST_MESSAGES,
)


@pytest.fixture
def env_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    # setenv first so values loaded from a .env file are removed again on teardown
    for name in _ALL:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    path = tmp_path / ".env"
    path.write_text("", encoding="utf-8")
    return path


def test_defaults(env_file: Path) -> None:
    cfg = load_session_config(env_file=env_file)

    assert cfg.auth_dir == Path("~/.whatsapp-mcp/auth").expanduser()
    assert cfg.data_dir == Path("~/.whatsapp-mcp").expanduser()
    assert cfg.chat_store_path.name == "chat-store.json"
    assert cfg.message_store_path.name == "message-store.json"
    assert cfg.resolved_media_dir == cfg.data_dir / "media"
    assert cfg.persist_messages is False
    assert (cfg.max_messages_per_chat, cfg.max_messages_total) == (200, 2000)
    assert cfg.log_level == "INFO"


def test_environment_overrides(
    env_file: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(ENV_AUTH_DIR, str(tmp_path / "state" / "auth"))
    monkeypatch.setenv(ENV_MEDIA_DIR, str(tmp_path / "downloads"))
    monkeypatch.setenv(ENV_PERSIST_MESSAGES, "Yes")
    monkeypatch.setenv(ENV_MAX_MESSAGES_PER_CHAT, "50")
    monkeypatch.setenv(ENV_MAX_MESSAGES_TOTAL, "0")
    monkeypatch.setenv(ENV_LOG_LEVEL, "debug")

    cfg = load_session_config(env_file=env_file)

    assert cfg.chat_store_path == tmp_path / "state" / "chat-store.json"
    assert cfg.resolved_media_dir == tmp_path / "downloads"
    assert cfg.persist_messages is True
    assert cfg.max_messages_per_chat == 50
    assert cfg.max_messages_total == 1
    assert cfg.log_level == "DEBUG"


def test_env_file_is_read_and_process_env_wins(
    env_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file.write_text(
        f"{ENV_MAX_MESSAGES_PER_CHAT}=25\n{ENV_PERSIST_MESSAGES}=true\n{ENV_LOG_LEVEL}=WARNING\n",
        encoding="utf-8",
    )
    monkeypatch.setenv(ENV_LOG_LEVEL, "ERROR")

    cfg = load_session_config(env_file=env_file)

    assert cfg.max_messages_per_chat == 25
    assert cfg.persist_messages is True
    assert cfg.log_level == "ERROR"


@pytest.mark.parametrize("raw", ["lots", "", "12.5"])
def test_malformed_ints_fall_back(
    raw: str, env_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(ENV_MAX_MESSAGES_PER_CHAT, raw)
    assert load_session_config(env_file=env_file).max_messages_per_chat == 200


@pytest.mark.parametrize("raw", ["0", "false", "no", "off"])
def test_persist_messages_is_opt_in(
    raw: str, env_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(ENV_PERSIST_MESSAGES, raw)
    assert load_session_config(env_file=env_file).persist_messages is False


def test_explicit_config_media_dir() -> None:
    cfg = SessionConfig(auth_dir=Path("/srv/wa/auth"), media_dir=Path("/var/media"))
    assert cfg.data_dir == Path("/srv/wa")
    assert cfg.resolved_media_dir == Path("/var/media")
