from __future__ import annotations

import json
import logging
import re
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from discord_chunker.delivery.client import (
    USER_AGENT,
    DeliveryError,
    build_discord_url,
    close_clients,
    forward_raw,
    post_json,
    send_chunks,
)
from discord_chunker.delivery.config import DeliveryConfig, delivery_config_from_env
from discord_chunker.formatting.chunking import ChunkingError, chunk_content, count_readable_lines
from discord_chunker.formatting.config import ChunkerConfig, parse_config, validate_config
from discord_chunker.logging_setup import ensure_file_logging
from discord_chunker.models import ChunkOut, ChunkPreviewRequest, ChunkPreviewResponse, ErrorEnvelope, WebhookPayload

logger = logging.getLogger(__name__)

WORKDIR = Path(__file__).resolve().parent.parent
LOG_DIR = WORKDIR / "logs"

MAX_INPUT_BYTES = 100 * 1024

_WEBHOOK_ID_RE = re.compile(r"^\d+$")


def _error_code_for_status(status_code: int) -> str:
    if status_code == 404:
        return "not_found"
    if status_code == 405:
        return "method_not_allowed"
    if status_code == 413:
        return "payload_too_large"
    if status_code == 415:
        return "unsupported_media_type"
    if status_code == 422:
        return "unprocessable_content"
    if status_code == 400:
        return "bad_request"
    if status_code == 502:
        return "bad_gateway"
    return "internal_error"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": ErrorEnvelope(code=_error_code_for_status(status_code), message=message).model_dump()},
    )


def content_kind(content_type: str) -> str | None:
    ct = (content_type or "").strip().lower()
    if ct.startswith("application/json"):
        return "json"
    if ct.startswith("multipart/form-data"):
        return "multipart"
    return None


def _parse_wait(params: Mapping[str, str]) -> bool | None:
    # Omitted unless the caller set it explicitly.
    if "wait" not in params:
        return None
    return params.get("wait") == "true"


def _delivery_config() -> DeliveryConfig:
    return delivery_config_from_env()


def _chunk_payloads(payload: dict[str, Any], chunks: list[str]) -> list[dict[str, Any]]:
    """First chunk keeps every field; the rest carry content plus sender identity."""

    out: list[dict[str, Any]] = []
    for i, text in enumerate(chunks):
        if i == 0:
            out.append({**payload, "content": text})
            continue
        sub: dict[str, Any] = {"content": text}
        if payload.get("username"):
            sub["username"] = payload["username"]
        if payload.get("avatar_url"):
            sub["avatar_url"] = payload["avatar_url"]
        out.append(sub)
    return out


@asynccontextmanager
async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
    log_file = ensure_file_logging(log_dir=LOG_DIR)
    if log_file is not None:
        logger.info("file logging enabled: %s", log_file)
    cfg = _delivery_config()
    logger.info(
        "delivering to %s (timeout=%ss pool=%s retry_delay=%ss)",
        cfg.base_url,
        cfg.timeout_seconds,
        cfg.max_connections,
        cfg.retry_delay_seconds,
    )

    yield

    close_clients()


app = FastAPI(lifespan=_lifespan)


@app.middleware("http")
async def _service_header(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Service"] = USER_AGENT
    return response


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(_request: Request, exc: StarletteHTTPException):
    return _error(int(exc.status_code), str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(_request: Request, exc: RequestValidationError):
    msg = "bad request"
    errors = exc.errors()
    if errors:
        msg = errors[0].get("msg") or msg
    return _error(400, msg)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(_request: Request, exc: Exception):
    logger.exception("unhandled error", exc_info=exc)
    return _error(500, str(exc))


@app.get("/healthz")
async def healthz():
    return {"ok": True}


@app.post("/api/chunk", response_model=ChunkPreviewResponse)
async def preview_chunks(body: ChunkPreviewRequest = Body(...)):
    if len(body.content.encode("utf-8")) > MAX_INPUT_BYTES:
        raise HTTPException(status_code=413, detail="Payload exceeds 100KB limit")

    config = ChunkerConfig(max_chars=body.max_chars, max_lines=body.max_lines)
    err = validate_config(config)
    if err:
        raise HTTPException(status_code=400, detail=err)

    try:
        chunks = chunk_content(body.content, config)
    except ChunkingError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    return ChunkPreviewResponse(
        count=len(chunks),
        readable_lines=count_readable_lines(body.content),
        chunks=[ChunkOut(text=c, chars=len(c), readable_lines=count_readable_lines(c)) for c in chunks],
    )


@app.post("/api/webhook/{webhook_id}/{token}")
async def proxy_webhook(webhook_id: str, token: str, request: Request):
    if not _WEBHOOK_ID_RE.fullmatch(webhook_id):
        raise HTTPException(status_code=404, detail="Invalid path. Use: /api/webhook/{id}/{token}")

    kind = content_kind(request.headers.get("content-type", ""))
    if kind is None:
        raise HTTPException(
            status_code=415,
            detail="Unsupported Content-Type. Use application/json or multipart/form-data",
        )

    params = request.query_params
    thread_id = params.get("thread_id") or None
    wait = _parse_wait(params)
    cfg = _delivery_config()

    body = await request.body()

    if kind == "multipart":
        # File uploads go straight through; nothing to chunk.
        url = build_discord_url(webhook_id, token, thread_id, wait, base_url=cfg.base_url)
        try:
            resp = await run_in_threadpool(forward_raw, url, body, dict(request.headers), cfg=cfg)
        except DeliveryError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        return Response(
            content=resp.content,
            status_code=resp.status_code,
            media_type=resp.headers.get("content-type"),
        )

    if len(body) > MAX_INPUT_BYTES:
        raise HTTPException(status_code=413, detail="Payload exceeds 100KB limit")

    config = parse_config(params)
    err = validate_config(config)
    if err:
        raise HTTPException(status_code=400, detail=err)

    try:
        raw = json.loads(body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(raw, dict):
        raise HTTPException(status_code=400, detail="JSON body must be an object")
    try:
        payload = WebhookPayload.model_validate(raw)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"invalid payload: {e.errors()[0].get('msg')}") from e

    if not payload.content or payload.embeds:
        url = build_discord_url(webhook_id, token, thread_id, wait, base_url=cfg.base_url)
        try:
            resp = await run_in_threadpool(post_json, url, raw, cfg=cfg)
        except DeliveryError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        logger.info("passthrough webhook=%s status=%s", webhook_id, resp.status_code)
        if wait:
            return Response(content=resp.content, status_code=resp.status_code, media_type="application/json")
        return Response(status_code=204)

    try:
        chunks = chunk_content(payload.content, config)
    except ChunkingError as e:
        logger.warning("chunking failed webhook=%s: %s", webhook_id, e)
        raise HTTPException(status_code=422, detail=str(e)) from e

    result = await run_in_threadpool(
        send_chunks,
        _chunk_payloads(raw, chunks),
        webhook_id,
        token,
        thread_id,
        wait,
        cfg=cfg,
    )
    logger.info(
        "chunked webhook=%s chars=%s max_chars=%s max_lines=%s chunks=%s sent=%s ok=%s",
        webhook_id,
        len(payload.content),
        config.max_chars,
        config.max_lines,
        result.chunks_total,
        result.chunks_sent,
        result.success,
    )

    if not result.success:
        error_body: dict[str, Any] = {
            "error": result.last_error or "Failed to send all chunks to Discord",
            "chunks_sent": result.chunks_sent,
            "chunks_total": result.chunks_total,
        }
        if result.first_message and result.first_message.get("id"):
            error_body["first_message_id"] = result.first_message["id"]
        return JSONResponse(status_code=502, content=error_body)

    if wait and result.first_message is not None:
        return JSONResponse(status_code=200, content=result.first_message)
    return Response(status_code=204)
