from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest
from loguru import logger

from wasession.logging_config import configure_logging


@pytest.fixture
def restore_logging() -> Iterator[None]:
    yield
    logger.remove()
    logging.getLogger().handlers.clear()


def test_stdlib_and_loguru_records_reach_stderr(
    restore_logging: None, capsys: pytest.CaptureFixture[str]
) -> None:
    configure_logging("DEBUG")

    logging.getLogger("thirdparty.http").warning("retrying %s", "upload")
    logger.bind(component="session").debug("ingested {}", 3)

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "thirdparty.http" in captured.err
    assert "retrying upload" in captured.err
    assert "session" in captured.err
    assert "ingested 3" in captured.err


def test_level_filters_debug(restore_logging: None, capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("WARNING")
    logger.debug("hidden")
    logger.warning("shown")

    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "shown" in err
