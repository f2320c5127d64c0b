"""
Wire payloads of the session protocol.

Every frame is a JSON object. Client frames carry an `action`
discriminator, server frames a `type` discriminator; keys are camelCase
on the wire and snake_case in Python.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .session import KeyMode, Message


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# Client -> server


class ConfigAction(WireModel):
    action: Literal["config"] = "config"
    key_mode: KeyMode = KeyMode.BYOK
    api_key: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    fid: Optional[int] = None


class SendAction(WireModel):
    action: Literal["send"] = "send"
    message: Optional[str] = None


# Server -> client


class ConnectedEvent(WireModel):
    type: Literal["connected"] = "connected"
    session_id: str
    plan: Optional[str] = None
    budget_remaining: Optional[float] = None
    cost_usd: Optional[float] = None


class DeltaEvent(WireModel):
    type: Literal["delta"] = "delta"
    run_id: str
    text: str
    model_role: Optional[str] = None


class FinalEvent(WireModel):
    type: Literal["final"] = "final"
    run_id: str
    message: str
    model: Optional[str] = None
    model_role: Optional[str] = None


class HistoryEvent(WireModel):
    type: Literal["history"] = "history"
    messages: List[Message] = Field(default_factory=list)


class ErrorEvent(WireModel):
    type: Literal["error"] = "error"
    message: str


__all__ = [
    "WireModel",
    "ConfigAction",
    "ConnectedEvent",
    "DeltaEvent",
    "ErrorEvent",
    "FinalEvent",
    "HistoryEvent",
    "SendAction",
]
