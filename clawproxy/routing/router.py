"""
Managed-mode model resolution.

Two server-held keys back managed mode:

    MANAGED_ANTHROPIC_KEY  -> Claude Opus (complex tasks only, metered)
    MANAGED_OPENROUTER_KEY -> everything else via OpenRouter (unmetered)

Flow of `resolve_model`:
    1. classify the prompt -> complex / daily / simple
    2. complex with budget left and an Anthropic key -> primary (metered)
    3. complex otherwise -> daily model, budget_exceeded=True
    4. daily -> daily model
    5. simple -> simple model
"""

from __future__ import annotations

from typing import Dict, List, Optional

from clawproxy.models import ModelConfig, ModelRole, ResolvedModel, RoleModel, TaskTier
from clawproxy.settings import settings

from .classifier import classify_task
from .pricing import PlanLike, has_remaining_budget

AGENT_MODELS: Dict[str, ModelConfig] = {
    "complex": ModelConfig(model="claude-opus-4-20250514", provider="anthropic"),
    "daily": ModelConfig(model="deepseek/deepseek-reasoner", provider="openrouter"),
    "simple": ModelConfig(model="google/gemini-2.5-flash-lite", provider="openrouter"),
    "heartbeat": ModelConfig(model="google/gemini-2.5-flash-lite", provider="openrouter"),
    "subagent": ModelConfig(model="deepseek/deepseek-reasoner", provider="openrouter"),
    "image": ModelConfig(model="google/gemini-3-flash", provider="openrouter"),
}

IMAGE_MODEL_FALLBACKS: List[ModelConfig] = [
    ModelConfig(model="openai/gpt-5.2", provider="openrouter"),
]


def get_provider_key(provider: str) -> Optional[str]:
    """
    Server-held credential for a managed provider; never derived from
    user input.
    """
    if provider == "anthropic":
        return settings.managed_anthropic_key or None
    if provider == "openrouter":
        return settings.managed_openrouter_key or None
    return None


def _resolved(
    key: str, role: ModelRole, tier: TaskTier, *, budget_exceeded: bool = False
) -> ResolvedModel:
    config = AGENT_MODELS[key]
    return ResolvedModel(
        model=config.model,
        provider=config.provider,
        role=role,
        tier=tier,
        budget_exceeded=budget_exceeded,
    )


def resolve_model(
    prompt: str,
    plan: PlanLike,
    current_cost_usd: float,
    extra_budget: float = 0.0,
) -> ResolvedModel:
    """
    Resolve which model serves a prompt, given the subscriber's plan and
    spend. A complex request is never refused: without budget, or without a
    managed Anthropic key, it degrades to the daily reasoning model.
    """
    tier = classify_task(prompt)

    if tier == TaskTier.COMPLEX:
        if has_remaining_budget(plan, current_cost_usd, extra_budget) and get_provider_key(
            AGENT_MODELS["complex"].provider
        ):
            return _resolved("complex", ModelRole.PRIMARY, tier)
        return _resolved("daily", ModelRole.DAILY, tier, budget_exceeded=True)

    if tier == TaskTier.DAILY:
        return _resolved("daily", ModelRole.DAILY, tier)

    return _resolved("simple", ModelRole.SIMPLE, tier)


def default_managed_model() -> Optional[RoleModel]:
    """
    Model a managed session starts with: the primary model when its key is
    configured, else the daily model. None when no managed key exists.
    """
    for key, role in (("complex", ModelRole.PRIMARY), ("daily", ModelRole.DAILY)):
        config = AGENT_MODELS[key]
        if get_provider_key(config.provider):
            return RoleModel(model=config.model, provider=config.provider, role=role)
    return None


def get_heartbeat_model() -> RoleModel:
    config = AGENT_MODELS["heartbeat"]
    return RoleModel(model=config.model, provider=config.provider, role=ModelRole.HEARTBEAT)


def get_subagent_model() -> RoleModel:
    config = AGENT_MODELS["subagent"]
    return RoleModel(model=config.model, provider=config.provider, role=ModelRole.SUBAGENT)


def get_image_model() -> RoleModel:
    config = AGENT_MODELS["image"]
    return RoleModel(model=config.model, provider=config.provider, role=ModelRole.IMAGE)


_TIER_LABELS = {
    TaskTier.COMPLEX: "🎯 Opus",
    TaskTier.DAILY: "🤖 DeepSeek",
    TaskTier.SIMPLE: "⚡ Flash",
}

_ROLE_LABELS = {
    ModelRole.PRIMARY: "🎯 Opus",
    ModelRole.DAILY: "🤖 Daily",
    ModelRole.SIMPLE: "⚡ Quick",
    ModelRole.HEARTBEAT: "💓 Heartbeat",
    ModelRole.SUBAGENT: "🔧 Subagent",
    ModelRole.IMAGE: "🖼️ Vision",
}


def tier_label(tier: TaskTier) -> str:
    return _TIER_LABELS[TaskTier(tier)]


def role_label(role: ModelRole) -> str:
    return _ROLE_LABELS[ModelRole(role)]


__all__ = [
    "AGENT_MODELS",
    "IMAGE_MODEL_FALLBACKS",
    "default_managed_model",
    "get_heartbeat_model",
    "get_image_model",
    "get_provider_key",
    "get_subagent_model",
    "resolve_model",
    "role_label",
    "tier_label",
]
