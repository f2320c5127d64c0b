from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class TaskTier(str, Enum):
    COMPLEX = "complex"
    DAILY = "daily"
    SIMPLE = "simple"


class ModelRole(str, Enum):
    PRIMARY = "primary"
    DAILY = "daily"
    SIMPLE = "simple"
    HEARTBEAT = "heartbeat"
    SUBAGENT = "subagent"
    IMAGE = "image"


class SubscriptionPlan(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    BUSINESS = "business"


class ModelConfig(BaseModel):
    model: str = Field(..., description="Upstream model id")
    provider: str = Field(..., description="Provider name, e.g. 'anthropic' or 'openrouter'")


class RoleModel(ModelConfig):
    role: ModelRole


class ResolvedModel(ModelConfig):
    """
    Router output for a single request; never persisted.
    """

    role: ModelRole = Field(..., description="Why this model was picked")
    tier: TaskTier = Field(..., description="Classifier verdict for the prompt")
    budget_exceeded: bool = Field(
        default=False,
        description="A complex request was downgraded because the metered budget is spent",
    )


__all__ = [
    "ModelConfig",
    "ModelRole",
    "ResolvedModel",
    "RoleModel",
    "SubscriptionPlan",
    "TaskTier",
]
