"""
Tests for settings-driven logging setup.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
from loguru import logger

from zinscriber.config import InscriberSettings
from zinscriber.logging_setup import setup_logging


@pytest.fixture(autouse=True)
def restore_logger(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    monkeypatch.chdir(tmp_path)
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_log_level_is_normalized() -> None:
    assert InscriberSettings(log_level=" debug ").log_level == "DEBUG"


def test_file_sink_honours_level(tmp_path: Path) -> None:
    log_file = tmp_path / "zinscribe.log"
    setup_logging(InscriberSettings(log_level="warning", log_file=str(log_file)))

    logger.info("quiet")
    logger.warning("loud")
    logger.remove()

    text = log_file.read_text()
    assert "loud" in text
    assert "quiet" not in text
    assert "<green>" not in text


def test_verbose_format_names_the_caller(tmp_path: Path) -> None:
    log_file = tmp_path / "zinscribe.log"
    setup_logging(InscriberSettings(log_verbose=True, log_file=str(log_file)))

    logger.info("hello")
    logger.remove()

    assert "test_verbose_format_names_the_caller" in log_file.read_text()


def test_defaults_from_environment(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("ZINSCRIBE_LOG_LEVEL", "error")
    setup_logging()

    logger.warning("hidden")
    logger.error("shown")

    err = capsys.readouterr().err
    assert "shown" in err
    assert "hidden" not in err
