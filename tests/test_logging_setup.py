from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import pytest

from discord_chunker.logging_setup import ensure_file_logging


def _drop_our_handlers() -> None:
    root = logging.getLogger()
    for h in list(root.handlers):
        if getattr(h, "_discord_chunker_file_log", False):
            root.removeHandler(h)
            h.close()


def test_file_logging_disabled_by_env():
    with tempfile.TemporaryDirectory() as td:
        assert ensure_file_logging(log_dir=Path(td) / "logs") is None
        assert not (Path(td) / "logs").exists()


def test_file_logging_is_idempotent(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("DISCORD_CHUNKER_DISABLE_FILE_LOG", raising=False)
    root = logging.getLogger()
    old_level = root.level
    try:
        with tempfile.TemporaryDirectory() as td:
            log_dir = Path(td) / "logs"
            first = ensure_file_logging(log_dir=log_dir)
            second = ensure_file_logging(log_dir=log_dir)

            assert first == second == (log_dir / "discord-chunker.log").resolve()
            ours = [h for h in root.handlers if getattr(h, "_discord_chunker_file_log", False)]
            assert len(ours) == 1

            logging.getLogger("discord_chunker.test").warning("hello file log")
            ours[0].flush()
            assert "hello file log" in first.read_text(encoding="utf-8")
            _drop_our_handlers()
    finally:
        _drop_our_handlers()
        root.setLevel(old_level)


def test_file_logging_rotation_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("DISCORD_CHUNKER_DISABLE_FILE_LOG", raising=False)
    monkeypatch.setenv("DISCORD_CHUNKER_LOG_MAX_BYTES", "2048")
    monkeypatch.setenv("DISCORD_CHUNKER_LOG_BACKUPS", "-4")
    root = logging.getLogger()
    old_level = root.level
    try:
        with tempfile.TemporaryDirectory() as td:
            ensure_file_logging(log_dir=Path(td), filename="rot.log")
            (handler,) = [h for h in root.handlers if getattr(h, "_discord_chunker_file_log", False)]
            assert handler.maxBytes == 2048
            assert handler.backupCount == 0
            _drop_our_handlers()
    finally:
        _drop_our_handlers()
        root.setLevel(old_level)
