from __future__ import annotations

import logging
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from pathlib import Path

from discord_chunker.env import env_int, env_str, env_truthy

logger = logging.getLogger(__name__)

_MARKER = "_discord_chunker_file_log"
_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _existing_log_file(root: logging.Logger, log_file: Path) -> Path | None:
    for h in root.handlers:
        base = getattr(h, "baseFilename", None)
        if getattr(h, _MARKER, False):
            return Path(str(base)).resolve() if base else log_file
        if base and Path(str(base)).resolve() == log_file:
            return log_file
    return None


def ensure_file_logging(*, log_dir: Path, filename: str = "discord-chunker.log") -> Path | None:
    """Attach a rotating file handler to the root logger (idempotent).

    Sits next to uvicorn's own handlers. Rotation is tuned with
    DISCORD_CHUNKER_LOG_MAX_BYTES / DISCORD_CHUNKER_LOG_BACKUPS and the root
    level with DISCORD_CHUNKER_LOG_LEVEL. Returns None when
    DISCORD_CHUNKER_DISABLE_FILE_LOG is set.
    """

    if env_truthy("DISCORD_CHUNKER_DISABLE_FILE_LOG"):
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = (log_dir / filename).resolve()

    root = logging.getLogger()
    existing = _existing_log_file(root, log_file)
    if existing is not None:
        return existing

    max_bytes = max(0, env_int("DISCORD_CHUNKER_LOG_MAX_BYTES", 5 * 1024 * 1024))
    backups = max(0, env_int("DISCORD_CHUNKER_LOG_BACKUPS", 3))
    handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    setattr(handler, _MARKER, True)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)

    level = env_str("DISCORD_CHUNKER_LOG_LEVEL")
    if level:
        # Unknown level names leave the root level alone.
        with suppress(ValueError):
            root.setLevel(level.upper())

    logger.info("file log attached: %s (max_bytes=%s backups=%s)", log_file, max_bytes, backups)
    return log_file
