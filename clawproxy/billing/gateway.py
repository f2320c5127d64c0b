"""
Budget / usage gateway: the proxy's only view of the subscription store.

Failure policy:
- pre-flight checks fail closed: any store error yields an invalid status
  and the request is not sent upstream;
- post-completion usage tracking fails open: errors are logged and never
  reach the client or the response path.
"""

from __future__ import annotations

import asyncio
import datetime
from typing import Optional, Set

from redis.asyncio import Redis

from clawproxy.logging_config import logger
from clawproxy.models import SubscriptionPlan, SubscriptionStatus
from clawproxy.routing.pricing import (
    calculate_request_cost,
    get_remaining_budget,
    get_total_budget,
)
from clawproxy.routing.router import get_provider_key

from . import storage


def _parse_expiry(value: Optional[str]) -> Optional[datetime.datetime]:
    if not value:
        return None
    try:
        expires_at = datetime.datetime.fromisoformat(value)
    except ValueError:
        logger.warning("ignoring malformed plan_expires_at=%r", value)
        return None
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=datetime.timezone.utc)
    return expires_at


class BudgetGateway:
    def __init__(self, redis: Optional[Redis]) -> None:
        self._redis = redis
        self._background: Set[asyncio.Task] = set()

    @property
    def configured(self) -> bool:
        return self._redis is not None

    async def check_subscription(self, fid: int) -> SubscriptionStatus:
        """
        Verify that a subscriber may use managed mode and report budget.
        """
        if self._redis is None:
            return SubscriptionStatus(valid=False, error="Subscription service not configured")

        try:
            subscriber = await storage.get_subscriber(self._redis, fid)
            if not subscriber:
                return SubscriptionStatus(valid=False, error="User not found")

            try:
                plan = SubscriptionPlan(subscriber.get("plan") or SubscriptionPlan.FREE)
            except ValueError:
                plan = SubscriptionPlan.FREE
            if plan == SubscriptionPlan.FREE:
                return SubscriptionStatus(
                    valid=False, error="Free plan — use your own API key"
                )

            expires_at = _parse_expiry(subscriber.get("plan_expires_at"))
            if expires_at is not None and expires_at < datetime.datetime.now(
                datetime.timezone.utc
            ):
                return SubscriptionStatus(valid=False, error="Subscription expired")

            usage = await storage.get_usage(self._redis, fid, storage.current_period())
        except Exception:
            logger.exception("subscription check failed for fid=%s", fid)
            return SubscriptionStatus(valid=False, error="Subscription check failed")

        return SubscriptionStatus(
            valid=True,
            plan=plan,
            cost_usd=usage.cost_usd,
            extra_budget=usage.extra_budget,
            budget_remaining=get_remaining_budget(plan, usage.cost_usd, usage.extra_budget),
            total_budget=get_total_budget(plan, usage.extra_budget),
            usage=usage,
        )

    async def track_usage(
        self, fid: int, input_tokens: int, output_tokens: int, model: str
    ) -> float:
        """
        Accumulate token counts and metered cost into the current period.
        Returns the cost added for this request (0 for unmetered models).
        """
        if self._redis is None:
            return 0.0
        cost = calculate_request_cost(model, input_tokens, output_tokens)
        await storage.increment_usage(
            self._redis,
            fid,
            storage.current_period(),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
        )
        logger.info(
            "usage tracked fid=%s model=%s in=%d out=%d cost=$%.6f",
            fid,
            model,
            input_tokens,
            output_tokens,
            cost,
        )
        return cost

    def track_usage_in_background(
        self, fid: int, input_tokens: int, output_tokens: int, model: str
    ) -> asyncio.Task:
        """
        Fire-and-forget usage reporting: never blocks the response, never
        raises into the caller, never retried.
        """
        task = asyncio.create_task(
            self._track_usage_logged(fid, input_tokens, output_tokens, model)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _track_usage_logged(
        self, fid: int, input_tokens: int, output_tokens: int, model: str
    ) -> None:
        try:
            await self.track_usage(fid, input_tokens, output_tokens, model)
        except Exception:
            logger.exception("usage tracking failed for fid=%s model=%s", fid, model)

    async def drain(self) -> None:
        """
        Wait for pending background usage reports (shutdown, tests).
        """
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def add_extra_budget(self, fid: int, amount_usd: float) -> None:
        """
        Record a purchased top-up for the current period.
        """
        if self._redis is None:
            return
        await storage.increment_extra_budget(
            self._redis, fid, storage.current_period(), amount_usd
        )
        logger.info("extra budget fid=%s +$%.2f", fid, amount_usd)

    async def set_subscription(
        self,
        fid: int,
        plan: str,
        expires_at: Optional[datetime.datetime] = None,
    ) -> None:
        if self._redis is None:
            return
        await storage.set_subscriber(
            self._redis, fid, plan=SubscriptionPlan(plan).value, plan_expires_at=expires_at
        )

    def get_managed_key(self, provider: str) -> Optional[str]:
        return get_provider_key(provider)


__all__ = ["BudgetGateway"]
