"""
Tests for logging setup.
"""

import logging
from pathlib import Path

import pytest

from footprints.core.observability.logging_config import (
    FILE_ENV,
    FILE_LEVEL_ENV,
    LEVEL_ENV,
    resolve_level,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_logger(monkeypatch):
    for name in (LEVEL_ENV, FILE_ENV, FILE_LEVEL_ENV):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLevel:
    def test_default(self):
        """WARNING is the default level."""
        assert resolve_level() == "WARNING"

    def test_env(self, monkeypatch):
        """FOOTPRINTS_LOG_LEVEL sets the level."""
        monkeypatch.setenv(LEVEL_ENV, "DEBUG")
        assert resolve_level() == "DEBUG"

    def test_cli_wins(self, monkeypatch):
        """A CLI level beats the environment."""
        monkeypatch.setenv(LEVEL_ENV, "DEBUG")
        assert resolve_level("ERROR") == "ERROR"


class TestSetupLogging:
    def test_console_level(self):
        """The console handler gets the requested level."""
        setup_logging("INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_unknown_level_falls_back(self):
        """An unknown level name falls back to WARNING."""
        setup_logging("CHATTY")
        assert logging.getLogger().level == logging.WARNING

    def test_file_handler(self, tmp_path: Path):
        """The file handler can log more than the console."""
        log_file = tmp_path / "footprints.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG

        logging.getLogger("footprints.test").debug("only in the file")
        for handler in root.handlers:
            handler.flush()
        assert "only in the file" in log_file.read_text()

    def test_file_from_env(self, tmp_path: Path, monkeypatch):
        """FOOTPRINTS_LOG_FILE adds a file handler."""
        log_file = tmp_path / "env.log"
        monkeypatch.setenv(FILE_ENV, str(log_file))
        setup_logging("INFO")
        assert any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)
