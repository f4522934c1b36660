from __future__ import annotations

from collections.abc import Iterable

from discord_chunker.formatting.config import DISCORD_CHAR_LIMIT, ChunkerConfig
from discord_chunker.formatting.fences import FenceTracker, bare_fence_line, is_fence_line


class ChunkingError(ValueError):
    pass


def _is_blank(line: str) -> bool:
    return line.strip() == ""


def count_readable_lines(text: str) -> int:
    """Count lines that are neither blank nor fence delimiters."""

    if not text:
        return 0
    return sum(1 for line in text.split("\n") if not _is_blank(line) and not is_fence_line(line))


def ensure_within_hard_limit(chunks: Iterable[str], limit: int = DISCORD_CHAR_LIMIT) -> None:
    for chunk in chunks:
        if len(chunk) > limit:
            raise ChunkingError(
                f"Unable to chunk: resulting chunk exceeds {limit} character limit (got {len(chunk)})."
            )


def chunk_content(content: str, config: ChunkerConfig) -> list[str]:
    """Split `content` into messages within `config.max_chars` / `config.max_lines`.

    Single forward pass over lines:
    - lines are never split, except a single line longer than max_chars (hard-cut)
    - blank lines and fence delimiters do not count toward max_lines
    - a split inside a code fence closes it and replays the opening line
      at the top of the next chunk
    - an unterminated fence at the end of content stays unterminated

    Raises ChunkingError when max_chars cannot fit the fence wrappers around a
    hard-cut line, or when a chunk ends up above the Discord hard limit.
    """

    max_chars = config.max_chars
    max_lines = config.max_lines

    if len(content) <= max_chars and (max_lines <= 0 or count_readable_lines(content) <= max_lines):
        return [content]

    lines = content.replace("\r\n", "\n").split("\n")

    chunks: list[str] = []
    buf: list[str] = []
    size = 0
    readable = 0
    # False while buf is empty or holds only a replayed opening fence line.
    has_body = False
    # True while the last line in buf is a real opening fence with nothing after it.
    opener_last = False
    fences = FenceTracker()

    def append(piece: str, counts: bool, opens: bool = False) -> None:
        nonlocal size, readable, has_body, opener_last
        size += len(piece) + (1 if buf else 0)
        buf.append(piece)
        if counts:
            readable += 1
        has_body = True
        opener_last = opens

    def flush() -> None:
        nonlocal buf, size, readable, has_body, opener_last
        if not has_body:
            return
        fence = fences.state
        if fence is not None:
            if opener_last:
                # The opener moves to the next chunk with the replay.
                buf.pop()
            else:
                buf.append(fence.close_line)
        text = "\n".join(buf)
        if text:
            chunks.append(text)
        buf = []
        size = 0
        readable = 0
        has_body = False
        opener_last = False
        if fence is not None:
            # The replayed opening line is a delimiter: it costs chars, not lines.
            buf = [fence.open_line]
            size = len(fence.open_line)

    for line in lines:
        is_delim = fences.classify(line)

        # An info string too long to fit would make every replay oversized.
        if is_delim and not fences.is_open and len(line) > max_chars:
            line = bare_fence_line(line)

        if len(line) > max_chars:
            flush()
            fence = fences.state
            remaining = line
            if fence is None:
                while len(remaining) > max_chars:
                    chunks.append(remaining[:max_chars])
                    remaining = remaining[max_chars:]
                if remaining:
                    append(remaining, not is_delim and not _is_blank(remaining))
            else:
                close_cost = 1 + fence.marker_len
                while remaining:
                    room = max_chars - size - (1 if buf else 0) - close_cost
                    if room <= 0:
                        raise ChunkingError(
                            f"Unable to chunk: max_chars ({max_chars}) is too small "
                            "to preserve active code fence wrappers."
                        )
                    piece = remaining[:room]
                    remaining = remaining[room:]
                    append(piece, not is_delim and not _is_blank(piece))
                    if remaining:
                        flush()
            fences.feed(line)
            continue

        counts = not is_delim and not _is_blank(line)
        next_size = size + (1 if buf else 0) + len(line)

        fence = fences.state
        closes_fence = fence is not None and is_delim
        if fence is not None and not closes_fence:
            next_size += 1 + fence.marker_len

        exceeds_chars = next_size > max_chars
        exceeds_lines = max_lines > 0 and readable + (1 if counts else 0) > max_lines
        # A closing line costs what the synthetic close would; it ends the chunk instead.
        if (exceeds_chars or exceeds_lines) and not closes_fence:
            flush()

        append(line, counts, opens=is_delim and fence is None)
        fences.feed(line)

    if has_body:
        text = "\n".join(buf)
        if text:
            chunks.append(text)

    if not chunks:
        return [content]

    ensure_within_hard_limit(chunks)
    return chunks
