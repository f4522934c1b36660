from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from discord_chunker.formatting.config import DEFAULT_MAX_CHARS, DEFAULT_MAX_LINES


class ErrorEnvelope(BaseModel):
    code: str
    message: str


class WebhookPayload(BaseModel):
    # Unknown Discord fields (tts, flags, allowed_mentions, ...) pass through untouched.
    model_config = ConfigDict(extra="allow")

    content: str | None = None
    username: str | None = None
    avatar_url: str | None = None
    embeds: list[dict[str, Any]] | None = None


class ChunkPreviewRequest(BaseModel):
    content: str = ""
    max_chars: int = Field(default=DEFAULT_MAX_CHARS)
    max_lines: int = Field(default=DEFAULT_MAX_LINES)


class ChunkOut(BaseModel):
    text: str
    chars: int
    readable_lines: int


class ChunkPreviewResponse(BaseModel):
    count: int
    readable_lines: int
    chunks: list[ChunkOut]
