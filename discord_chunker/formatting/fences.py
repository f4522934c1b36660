from __future__ import annotations

import re
from dataclasses import dataclass

FENCE_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})(.*)$")


def is_fence_line(line: str) -> bool:
    return FENCE_RE.match(line) is not None


@dataclass(frozen=True)
class FenceState:
    open_line: str  # verbatim opening line, e.g. "```typescript"
    marker_char: str  # "`" or "~"
    marker_len: int  # 3+

    @property
    def close_line(self) -> str:
        return self.marker_char * self.marker_len


class FenceTracker:
    """Tracks whether a line-by-line scan is inside a fenced code block.

    Only one fence can be open at a time. While open, a delimiter line closes
    it only when it uses the same marker character and is at least as long as
    the opening marker; anything else is fenced content.
    """

    def __init__(self) -> None:
        self._state: FenceState | None = None

    @property
    def state(self) -> FenceState | None:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is not None

    def classify(self, line: str) -> bool:
        """Return True if `line` opens or closes a fence given the current state."""

        m = FENCE_RE.match(line)
        if m is None:
            return False
        if self._state is None:
            return True
        marker = m.group(2)
        return marker[0] == self._state.marker_char and len(marker) >= self._state.marker_len

    def feed(self, line: str) -> None:
        m = FENCE_RE.match(line)
        if m is None:
            return
        marker = m.group(2)
        if self._state is None:
            self._state = FenceState(open_line=line, marker_char=marker[0], marker_len=len(marker))
        elif marker[0] == self._state.marker_char and len(marker) >= self._state.marker_len:
            self._state = None


def bare_fence_line(line: str) -> str:
    """Strip the info string from a fence line, keeping indentation and marker."""

    m = FENCE_RE.match(line)
    if m is None:
        return line
    return m.group(1) + m.group(2)
