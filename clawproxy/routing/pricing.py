"""
Static price table and plan budgets.

Only metered models count against a subscriber's monthly budget. Prices
are USD per 1M tokens and are calibrated against the `estimate_tokens`
approximation used for billing (characters / 4).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Union

from clawproxy.models import SubscriptionPlan

PlanLike = Union[SubscriptionPlan, str]


@dataclass(frozen=True)
class ModelPrice:
    input: float
    output: float
    metered: bool


MODEL_COSTS: Dict[str, ModelPrice] = {
    # Direct Anthropic key, counts against the plan's cost limit.
    "claude-opus-4-20250514": ModelPrice(input=15.0, output=75.0, metered=True),
    "claude-sonnet-4-5-20250929": ModelPrice(input=3.0, output=15.0, metered=True),
    # Via OpenRouter, free for all plans.
    "deepseek/deepseek-reasoner": ModelPrice(input=0.0, output=0.0, metered=False),
    "google/gemini-2.5-flash-lite": ModelPrice(input=0.0, output=0.0, metered=False),
    "google/gemini-3-flash": ModelPrice(input=0.0, output=0.0, metered=False),
    "openai/gpt-5.2": ModelPrice(input=0.0, output=0.0, metered=False),
}

# Monthly cost caps per plan (USD).
PLAN_COST_LIMITS: Dict[SubscriptionPlan, float] = {
    SubscriptionPlan.FREE: 0.0,
    SubscriptionPlan.STARTER: 5.0,
    SubscriptionPlan.PRO: 15.0,
    SubscriptionPlan.BUSINESS: 35.0,
}

_TOKENS_PER_MILLION = 1_000_000


def _coerce_plan(plan: PlanLike) -> SubscriptionPlan:
    try:
        return SubscriptionPlan(plan)
    except ValueError:
        return SubscriptionPlan.FREE


def is_metered(model: str) -> bool:
    price = MODEL_COSTS.get(model)
    return price.metered if price else False


def calculate_request_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    price = MODEL_COSTS.get(model)
    if price is None or not price.metered:
        return 0.0
    return (input_tokens / _TOKENS_PER_MILLION) * price.input + (
        output_tokens / _TOKENS_PER_MILLION
    ) * price.output


def get_total_budget(plan: PlanLike, extra_budget: float = 0.0) -> float:
    return PLAN_COST_LIMITS[_coerce_plan(plan)] + extra_budget


def has_remaining_budget(
    plan: PlanLike, current_cost_usd: float, extra_budget: float = 0.0
) -> bool:
    """
    Plan base limit plus top-ups, minus spend. The free plan never has
    budget, whatever its top-ups.
    """
    if _coerce_plan(plan) == SubscriptionPlan.FREE:
        return False
    return current_cost_usd < get_total_budget(plan, extra_budget)


def get_remaining_budget(
    plan: PlanLike, current_cost_usd: float, extra_budget: float = 0.0
) -> float:
    if _coerce_plan(plan) == SubscriptionPlan.FREE:
        return 0.0
    return max(0.0, get_total_budget(plan, extra_budget) - current_cost_usd)


def estimate_tokens(text: str) -> int:
    # Billing approximation; the price table assumes it.
    return math.ceil(len(text) / 4)


__all__ = [
    "MODEL_COSTS",
    "ModelPrice",
    "PLAN_COST_LIMITS",
    "calculate_request_cost",
    "estimate_tokens",
    "get_remaining_budget",
    "get_total_budget",
    "has_remaining_budget",
    "is_metered",
]
