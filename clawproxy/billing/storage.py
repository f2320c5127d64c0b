"""
Redis key layout of the subscription / usage store.

    clawproxy:subscriber:{fid}         hash: plan, plan_expires_at (ISO-8601)
    clawproxy:usage:{fid}:{period}     hash: input_tokens, output_tokens,
                                             request_count, cost_usd, extra_budget

Usage counters are only ever changed through HINCRBY / HINCRBYFLOAT, so
concurrent writers accumulate instead of overwriting each other.
"""

from __future__ import annotations

import datetime
from typing import Optional

from redis.asyncio import Redis

from clawproxy.models import UsageRecord
from clawproxy.redis_client import redis_get_hash

SUBSCRIBER_KEY_TEMPLATE = "clawproxy:subscriber:{fid}"
USAGE_KEY_TEMPLATE = "clawproxy:usage:{fid}:{period}"


def current_period(now: Optional[datetime.datetime] = None) -> str:
    """
    Billing period of a timestamp, formatted YYYY-MM (UTC).
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return f"{now.year}-{now.month:02d}"


def _float(value: Optional[str]) -> float:
    try:
        return float(value) if value is not None else 0.0
    except ValueError:
        return 0.0


def _int(value: Optional[str]) -> int:
    try:
        return int(float(value)) if value is not None else 0
    except ValueError:
        return 0


async def get_subscriber(redis: Redis, fid: int) -> Optional[dict]:
    return await redis_get_hash(redis, SUBSCRIBER_KEY_TEMPLATE.format(fid=fid))


async def set_subscriber(
    redis: Redis,
    fid: int,
    *,
    plan: str,
    plan_expires_at: Optional[datetime.datetime] = None,
) -> None:
    mapping = {"plan": plan, "plan_expires_at": ""}
    if plan_expires_at is not None:
        mapping["plan_expires_at"] = plan_expires_at.isoformat()
    await redis.hset(SUBSCRIBER_KEY_TEMPLATE.format(fid=fid), mapping=mapping)


async def get_usage(redis: Redis, fid: int, period: str) -> UsageRecord:
    """
    Usage for a period; a missing record reads as zero usage.
    """
    raw = await redis_get_hash(redis, USAGE_KEY_TEMPLATE.format(fid=fid, period=period))
    if not raw:
        return UsageRecord()
    return UsageRecord(
        input_tokens=_int(raw.get("input_tokens")),
        output_tokens=_int(raw.get("output_tokens")),
        request_count=_int(raw.get("request_count")),
        cost_usd=_float(raw.get("cost_usd")),
        extra_budget=_float(raw.get("extra_budget")),
    )


async def increment_usage(
    redis: Redis,
    fid: int,
    period: str,
    *,
    input_tokens: int,
    output_tokens: int,
    cost_usd: float,
) -> None:
    key = USAGE_KEY_TEMPLATE.format(fid=fid, period=period)
    await redis.hincrby(key, "input_tokens", input_tokens)
    await redis.hincrby(key, "output_tokens", output_tokens)
    await redis.hincrby(key, "request_count", 1)
    await redis.hincrbyfloat(key, "cost_usd", cost_usd)


async def increment_extra_budget(
    redis: Redis, fid: int, period: str, amount_usd: float
) -> None:
    key = USAGE_KEY_TEMPLATE.format(fid=fid, period=period)
    await redis.hincrbyfloat(key, "extra_budget", amount_usd)


__all__ = [
    "SUBSCRIBER_KEY_TEMPLATE",
    "USAGE_KEY_TEMPLATE",
    "current_period",
    "get_subscriber",
    "get_usage",
    "increment_extra_budget",
    "increment_usage",
    "set_subscriber",
]
