from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .routing import SubscriptionPlan


class UsageRecord(BaseModel):
    """
    Metered usage of one subscriber in one billing period (YYYY-MM).
    """

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    request_count: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0)
    extra_budget: float = Field(default=0.0, ge=0, description="Purchased top-ups")


class SubscriptionStatus(BaseModel):
    """
    Result of a managed-mode pre-flight check.

    `valid=False` means the request must not be sent upstream; `error`
    explains why in words suitable for the client.
    """

    valid: bool
    plan: SubscriptionPlan = SubscriptionPlan.FREE
    error: Optional[str] = None
    cost_usd: float = 0.0
    extra_budget: float = 0.0
    budget_remaining: float = 0.0
    total_budget: float = 0.0
    usage: Optional[UsageRecord] = None


__all__ = ["SubscriptionStatus", "UsageRecord"]
