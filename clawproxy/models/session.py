from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


class KeyMode(str, Enum):
    BYOK = "byok"
    MANAGED = "managed"


class Message(BaseModel):
    """
    One conversation turn. Immutable once created; the assistant turn of a
    run reuses the run id so client and server agree on its identity.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    role: Literal["user", "assistant"]
    content: str
    timestamp: int = Field(default_factory=now_ms, description="Epoch milliseconds")


class Session(BaseModel):
    """
    Conversation state of one live client connection.
    """

    model_config = ConfigDict(protected_namespaces=())

    id: str = Field(..., description="Connection-scoped session id")
    messages: List[Message] = Field(default_factory=list)
    model: str
    provider: str
    # BYOK keys are the end user's own secret: never persisted, never logged.
    api_key: SecretStr
    key_mode: KeyMode = KeyMode.BYOK
    fid: Optional[int] = None
    plan: Optional[str] = None
    model_role: Optional[str] = Field(
        default=None, description="Role of the default model in managed mode"
    )
    created_at: float = Field(default_factory=time.time)
    last_activity: float = Field(default_factory=time.time)

    @property
    def is_managed(self) -> bool:
        return self.key_mode == KeyMode.MANAGED

    def upstream_messages(self) -> List[dict]:
        """
        History in the shape sent upstream: role + content only.
        """
        return [{"role": m.role, "content": m.content} for m in self.messages]


__all__ = ["KeyMode", "Message", "Session", "new_id", "now_ms"]
