from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the repo root (containing `discord_chunker/`) is importable when pytest
# picks `tests/` as the rootdir (e.g., single-file runs).
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    # Never write log files or pick up a developer's local overrides during tests.
    monkeypatch.setenv("DISCORD_CHUNKER_DISABLE_FILE_LOG", "1")
    for name in (
        "DISCORD_CHUNKER_WEBHOOK_BASE_URL",
        "DISCORD_CHUNKER_TIMEOUT_SECONDS",
        "DISCORD_CHUNKER_MAX_CONNECTIONS",
        "DISCORD_CHUNKER_RETRY_DELAY_SECONDS",
        "DISCORD_CHUNKER_RATE_LIMIT_DELAY_SECONDS",
        "DISCORD_CHUNKER_LOG_LEVEL",
        "DISCORD_CHUNKER_LOG_MAX_BYTES",
        "DISCORD_CHUNKER_LOG_BACKUPS",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


def fence_line_count(chunk: str) -> int:
    from discord_chunker.formatting.fences import is_fence_line  # local import to keep collection cheap

    return sum(1 for line in chunk.split("\n") if is_fence_line(line))
