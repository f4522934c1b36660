from __future__ import annotations

from dataclasses import dataclass

from discord_chunker.env import env_float, env_int, env_str

DISCORD_WEBHOOK_BASE_URL = "https://discord.com/api/webhooks"


@dataclass(frozen=True)
class DeliveryConfig:
    # Endpoint
    base_url: str = DISCORD_WEBHOOK_BASE_URL

    timeout_seconds: float = 15.0
    max_connections: int = 10

    # Resilience: one retry per chunk, Retry-After wins for 429.
    retry_delay_seconds: float = 1.0

    # Used when a window has one request left but no X-RateLimit-Reset-After.
    rate_limit_delay_seconds: float = 1.0


def delivery_config_from_env() -> DeliveryConfig:
    return DeliveryConfig(
        base_url=env_str("DISCORD_CHUNKER_WEBHOOK_BASE_URL", DISCORD_WEBHOOK_BASE_URL),
        timeout_seconds=env_float("DISCORD_CHUNKER_TIMEOUT_SECONDS", 15.0),
        max_connections=max(1, env_int("DISCORD_CHUNKER_MAX_CONNECTIONS", 10)),
        retry_delay_seconds=max(0.0, env_float("DISCORD_CHUNKER_RETRY_DELAY_SECONDS", 1.0)),
        rate_limit_delay_seconds=max(0.0, env_float("DISCORD_CHUNKER_RATE_LIMIT_DELAY_SECONDS", 1.0)),
    )
