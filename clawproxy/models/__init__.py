from .protocol import (
    ConfigAction,
    ConnectedEvent,
    DeltaEvent,
    ErrorEvent,
    FinalEvent,
    HistoryEvent,
    SendAction,
)
from .routing import (
    ModelConfig,
    ModelRole,
    ResolvedModel,
    RoleModel,
    SubscriptionPlan,
    TaskTier,
)
from .session import KeyMode, Message, Session
from .subscription import SubscriptionStatus, UsageRecord

__all__ = [
    "ConfigAction",
    "ConnectedEvent",
    "DeltaEvent",
    "ErrorEvent",
    "FinalEvent",
    "HistoryEvent",
    "KeyMode",
    "Message",
    "ModelConfig",
    "ModelRole",
    "ResolvedModel",
    "RoleModel",
    "SendAction",
    "Session",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "TaskTier",
    "UsageRecord",
]
