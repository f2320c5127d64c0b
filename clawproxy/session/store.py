"""
In-memory registry of live conversation sessions.

One process-local map of session id -> Session, owned by a SessionStore
instance that is injected into the protocol server. All mutations are
synchronous, so under asyncio no operation spans a suspension point while
touching the map and no lock is needed.

Lifecycle: `init()` starts a periodic sweep that evicts sessions idle for
longer than `idle_timeout`; `shutdown()` stops it and drops every session.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, List, Optional

from pydantic import SecretStr

from clawproxy.logging_config import logger
from clawproxy.models import KeyMode, Message, Session
from clawproxy.settings import settings


class SessionStore:
    def __init__(
        self,
        *,
        idle_timeout: Optional[float] = None,
        sweep_interval: Optional[float] = None,
        max_messages: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.idle_timeout = (
            settings.session_idle_timeout if idle_timeout is None else idle_timeout
        )
        self.sweep_interval = (
            settings.session_sweep_interval if sweep_interval is None else sweep_interval
        )
        self.max_messages = (
            settings.session_max_messages if max_messages is None else max_messages
        )
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    # Lifecycle

    async def init(self) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "session store started (idle_timeout=%ss, sweep_interval=%ss, max_messages=%d)",
            self.idle_timeout,
            self.sweep_interval,
            self.max_messages,
        )

    async def shutdown(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        dropped = len(self._sessions)
        self._sessions.clear()
        logger.info("session store stopped, dropped %d session(s)", dropped)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("session sweep failed")

    # Registry

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def create(
        self,
        session_id: str,
        *,
        model: str,
        provider: str,
        api_key: str,
        key_mode: KeyMode = KeyMode.BYOK,
        fid: Optional[int] = None,
        plan: Optional[str] = None,
        model_role: Optional[str] = None,
    ) -> Session:
        now = self._clock()
        session = Session(
            id=session_id,
            model=model,
            provider=provider,
            api_key=SecretStr(api_key),
            key_mode=key_mode,
            fid=fid,
            plan=plan,
            model_role=model_role,
            created_at=now,
            last_activity=now,
        )
        self._sessions[session_id] = session
        return session

    def update_config(
        self,
        session_id: str,
        *,
        model: str,
        provider: str,
        api_key: str,
        key_mode: KeyMode = KeyMode.BYOK,
        fid: Optional[int] = None,
        plan: Optional[str] = None,
        model_role: Optional[str] = None,
    ) -> Session:
        """
        Re-point an existing session at a new routing target, keeping its
        history; creates the session when it does not exist yet.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return self.create(
                session_id,
                model=model,
                provider=provider,
                api_key=api_key,
                key_mode=key_mode,
                fid=fid,
                plan=plan,
                model_role=model_role,
            )
        session.model = model
        session.provider = provider
        session.api_key = SecretStr(api_key)
        session.key_mode = key_mode
        session.fid = fid
        session.plan = plan
        session.model_role = model_role
        session.last_activity = self._clock()
        return session

    def touch(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_activity = self._clock()
        return session

    def add_message(self, session_id: str, message: Message) -> bool:
        """
        Append a message, truncating the oldest beyond `max_messages`.
        Returns False when the session no longer exists.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.messages.append(message)
        overflow = len(session.messages) - self.max_messages
        if overflow > 0:
            del session.messages[:overflow]
        return True

    def history(self, session_id: str) -> List[Message]:
        session = self._sessions.get(session_id)
        if session is None:
            return []
        return list(session.messages)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def sweep_expired(self) -> List[str]:
        """
        Remove sessions idle longer than `idle_timeout`; returns their ids.
        """
        cutoff = self._clock() - self.idle_timeout
        snapshot = [(sid, s.last_activity) for sid, s in list(self._sessions.items())]
        expired = [sid for sid, last_activity in snapshot if last_activity < cutoff]
        for sid in expired:
            if self._sessions.pop(sid, None) is not None:
                logger.info("session %s expired after idle timeout", sid)
        if expired:
            logger.info(
                "session sweep removed %d session(s), %d active",
                len(expired),
                len(self._sessions),
            )
        return expired


__all__ = ["SessionStore"]
