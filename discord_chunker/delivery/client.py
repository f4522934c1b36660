from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from discord_chunker.delivery.config import DISCORD_WEBHOOK_BASE_URL, DeliveryConfig

logger = logging.getLogger(__name__)

SERVICE_NAME = "discord-chunker"
SERVICE_VERSION = "1.0.0"
USER_AGENT = f"{SERVICE_NAME}/{SERVICE_VERSION}"

_JSON_HEADERS = {"Content-Type": "application/json", "User-Agent": USER_AGENT}


class DeliveryError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def label(self) -> str:
        return str(self.status_code) if self.status_code is not None else "network error"


@dataclass(frozen=True)
class RateLimitState:
    remaining: int | None = None
    reset_after_seconds: float | None = None


@dataclass(frozen=True)
class SendResult:
    success: bool
    first_message: dict[str, Any] | None
    chunks_sent: int
    chunks_total: int
    last_error: str | None = None


_HTTP_CLIENTS: dict[tuple[str, int], httpx.Client] = {}
_HTTP_CLIENTS_LOCK = threading.Lock()


def _httpx_client_for_url(url: str, *, max_connections: int) -> httpx.Client:
    parsed = httpx.URL(url)
    key = (f"{parsed.scheme}://{parsed.host}:{parsed.port or ''}", int(max_connections))
    with _HTTP_CLIENTS_LOCK:
        client = _HTTP_CLIENTS.get(key)
        if client is None:
            limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections)
            client = httpx.Client(limits=limits)
            _HTTP_CLIENTS[key] = client
        return client


def close_clients() -> None:
    with _HTTP_CLIENTS_LOCK:
        clients = list(_HTTP_CLIENTS.values())
        _HTTP_CLIENTS.clear()
    for c in clients:
        try:
            c.close()
        except Exception:
            logger.exception("failed to close http client")


def build_discord_url(
    webhook_id: str,
    token: str,
    thread_id: str | None = None,
    wait: bool | None = None,
    *,
    base_url: str = DISCORD_WEBHOOK_BASE_URL,
) -> str:
    params: list[str] = []
    if wait is True:
        params.append("wait=true")
    elif wait is False:
        params.append("wait=false")
    if thread_id:
        params.append(f"thread_id={quote(str(thread_id), safe='')}")

    base = f"{base_url.rstrip('/')}/{webhook_id}/{token}"
    return f"{base}?{'&'.join(params)}" if params else base


def rate_limit_from_headers(headers: Mapping[str, str]) -> RateLimitState:
    remaining: int | None = None
    reset_after: float | None = None

    raw = headers.get("X-RateLimit-Remaining")
    if raw is not None:
        try:
            remaining = int(raw)
        except ValueError:
            remaining = None

    raw = headers.get("X-RateLimit-Reset-After")
    if raw is not None:
        try:
            reset_after = float(raw)
        except ValueError:
            reset_after = None

    return RateLimitState(remaining=remaining, reset_after_seconds=reset_after)


def _retry_after(resp: httpx.Response) -> float | None:
    raw = resp.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


def post_json(url: str, payload: Mapping[str, Any], *, cfg: DeliveryConfig) -> httpx.Response:
    """POST a JSON payload; raises DeliveryError only for transport failures."""

    client = _httpx_client_for_url(url, max_connections=cfg.max_connections)
    try:
        return client.post(url, json=dict(payload), headers=_JSON_HEADERS, timeout=cfg.timeout_seconds)
    except httpx.RequestError as e:
        raise DeliveryError(f"Discord request failed: {e}") from e


def forward_raw(url: str, body: bytes, headers: Mapping[str, str], *, cfg: DeliveryConfig) -> httpx.Response:
    """Forward an opaque body (e.g. multipart uploads) without touching it."""

    fwd = {k: v for k, v in headers.items() if k.lower() in {"content-type", "accept"}}
    fwd["User-Agent"] = USER_AGENT
    client = _httpx_client_for_url(url, max_connections=cfg.max_connections)
    try:
        return client.post(url, content=body, headers=fwd, timeout=cfg.timeout_seconds)
    except httpx.RequestError as e:
        raise DeliveryError(f"Discord request failed: {e}") from e


def _post_checked(url: str, payload: Mapping[str, Any], *, cfg: DeliveryConfig) -> httpx.Response:
    resp = post_json(url, payload, cfg=cfg)
    if resp.is_success:
        return resp
    retry_after = _retry_after(resp) if resp.status_code == 429 else None
    raise DeliveryError(
        f"HTTP {resp.status_code} from Discord: {resp.text[:200]}",
        status_code=resp.status_code,
        retry_after=retry_after,
    )


def _safe_json(resp: httpx.Response) -> dict[str, Any] | None:
    # Discord sometimes answers with an HTML error page during outages.
    try:
        obj = resp.json()
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def send_chunks(
    payloads: Sequence[Mapping[str, Any]],
    webhook_id: str,
    token: str,
    thread_id: str | None = None,
    wait: bool | None = None,
    *,
    cfg: DeliveryConfig | None = None,
) -> SendResult:
    """Deliver payloads in order, one retry per chunk, pacing on rate-limit headers.

    Only the first request carries `wait`, so only its message object is returned.
    Delivery stops at the first chunk whose retry also fails.
    """

    cfg = cfg or DeliveryConfig()
    total = len(payloads)
    first_message: dict[str, Any] | None = None
    rate = RateLimitState()

    for i, payload in enumerate(payloads):
        is_first = i == 0
        has_more = i < total - 1
        url = build_discord_url(
            webhook_id,
            token,
            thread_id,
            wait if is_first else None,
            base_url=cfg.base_url,
        )

        if rate.remaining == 1 and has_more:
            delay = rate.reset_after_seconds
            if delay is None:
                delay = cfg.rate_limit_delay_seconds
            logger.info("rate limit window nearly exhausted; sleeping %.3fs before chunk %s/%s", delay, i + 1, total)
            time.sleep(max(0.0, delay))

        try:
            resp = _post_checked(url, payload, cfg=cfg)
        except DeliveryError as first:
            delay = first.retry_after if first.retry_after is not None else cfg.retry_delay_seconds
            logger.warning("chunk %s/%s failed (%s); retrying in %.3fs", i + 1, total, first.label, delay)
            time.sleep(max(0.0, delay))
            try:
                resp = _post_checked(url, payload, cfg=cfg)
            except DeliveryError as second:
                msg = f"Discord API error: {second.label} after retry (initial: {first.label})"
                logger.error("chunk %s/%s failed after retry: %s", i + 1, total, second)
                return SendResult(
                    success=False,
                    first_message=first_message,
                    chunks_sent=i,
                    chunks_total=total,
                    last_error=msg,
                )

        rate = rate_limit_from_headers(resp.headers)
        if is_first and wait:
            first_message = _safe_json(resp)

    return SendResult(success=True, first_message=first_message, chunks_sent=total, chunks_total=total)
