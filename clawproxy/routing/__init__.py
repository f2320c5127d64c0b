from .classifier import classify_task
from .pricing import (
    calculate_request_cost,
    estimate_tokens,
    get_remaining_budget,
    get_total_budget,
    has_remaining_budget,
    is_metered,
)
from .router import default_managed_model, get_provider_key, resolve_model

__all__ = [
    "calculate_request_cost",
    "classify_task",
    "default_managed_model",
    "estimate_tokens",
    "get_provider_key",
    "get_remaining_budget",
    "get_total_budget",
    "has_remaining_budget",
    "is_metered",
    "resolve_model",
]
