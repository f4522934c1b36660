from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

# Discord rejects message content longer than this.
DISCORD_CHAR_LIMIT = 2_000

DEFAULT_MAX_CHARS = 1_950
DEFAULT_MAX_LINES = 17
MIN_MAX_CHARS = 100


@dataclass(frozen=True)
class ChunkerConfig:
    # Headroom below the hard limit for fence close/reopen lines.
    max_chars: int = DEFAULT_MAX_CHARS

    # Readable lines per message; 0 = unlimited.
    max_lines: int = DEFAULT_MAX_LINES


def _parse_number(raw: str | None, default: int) -> int | float:
    if raw is None:
        return default
    raw = str(raw).strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        num = float(raw)
    except ValueError:
        return default
    if num != num:  # NaN
        return default
    # Keep non-integral values so validate_config() can reject them.
    return int(num) if num.is_integer() else num


def parse_config(params: Mapping[str, str]) -> ChunkerConfig:
    max_chars = _parse_number(params.get("max_chars"), DEFAULT_MAX_CHARS)
    max_lines = _parse_number(params.get("max_lines"), DEFAULT_MAX_LINES)
    return ChunkerConfig(max_chars=max_chars, max_lines=max_lines)  # type: ignore[arg-type]


def _is_int(v: object) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def validate_config(config: ChunkerConfig) -> str | None:
    if not _is_int(config.max_chars) or not (MIN_MAX_CHARS <= config.max_chars <= DISCORD_CHAR_LIMIT):
        return f"max_chars must be an integer between {MIN_MAX_CHARS} and {DISCORD_CHAR_LIMIT}"
    if not _is_int(config.max_lines) or config.max_lines < 0:
        return "max_lines must be an integer >= 0 (0 = unlimited)"
    return None
