"""
WebSocket session protocol.

One ProxyConnection per socket. Frames are JSON objects dispatched on
their `action` (`config`, `send`, `history`); every failure of a single
action becomes exactly one `error` event and the connection stays open.
Actions of one connection are handled strictly in arrival order.

When the client goes away the session is deleted at once. A stream that
is still running notices on its next emit and is abandoned.
"""

from __future__ import annotations

import json
from contextlib import aclosing
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from clawproxy.billing import BudgetGateway
from clawproxy.errors import ProtocolError, ProxyError, SubscriptionError
from clawproxy.logging_config import bind_run, bind_session, logger, mask_secret
from clawproxy.models import (
    ConfigAction,
    ConnectedEvent,
    DeltaEvent,
    ErrorEvent,
    FinalEvent,
    HistoryEvent,
    KeyMode,
    Message,
    SendAction,
    Session,
)
from clawproxy.models.protocol import WireModel
from clawproxy.models.session import new_id
from clawproxy.provider import ProviderRegistry, stream_completion
from clawproxy.routing import default_managed_model, estimate_tokens, resolve_model
from clawproxy.session import SessionStore
from clawproxy.settings import settings

ORIGIN_REJECTED_CODE = 4003

router = APIRouter(tags=["session"])


def origin_allowed(origin: str) -> bool:
    """
    Empty origins (non-browser clients) are always trusted.
    """
    if not origin:
        return True
    allowed = settings.get_allowed_origins()
    return not allowed or origin in allowed


class ProxyConnection:
    def __init__(
        self,
        websocket: WebSocket,
        *,
        store: SessionStore,
        gateway: BudgetGateway,
        registry: ProviderRegistry,
        session_id: Optional[str] = None,
    ) -> None:
        self.websocket = websocket
        self.store = store
        self.gateway = gateway
        self.registry = registry
        self.session_id = session_id or new_id()
        self.ready = False
        self.closed = False
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[None]]] = {
            "config": self.handle_config,
            "send": self.handle_send,
            "history": self.handle_history,
        }

    async def run(self) -> None:
        with bind_session(self.session_id):
            logger.info("client connected")
            try:
                while True:
                    raw = await self.websocket.receive_text()
                    await self.dispatch(raw)
                    if self.closed:
                        break
            except WebSocketDisconnect as exc:
                logger.info("client disconnected code=%s", exc.code)
            finally:
                self.closed = True
                self.store.delete(self.session_id)

    async def emit(self, event: WireModel) -> bool:
        """
        Send one event; False once the socket is gone (later emits are no-ops).
        """
        if self.closed:
            return False
        try:
            await self.websocket.send_json(event.to_wire())
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.info("emit to closed socket: %s", exc)
            self.closed = True
            return False
        return True

    async def dispatch(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            await self.emit(ErrorEvent(message="Invalid JSON"))
            return

        try:
            if not isinstance(data, dict):
                raise ProtocolError("Invalid JSON")
            action = data.get("action")
            handler = self._handlers.get(action) if isinstance(action, str) else None
            if handler is None:
                raise ProtocolError(f"Unknown action: {action}")
            await handler(data)
        except ProxyError as exc:
            logger.info("action failed: %s", exc.message)
            await self.emit(ErrorEvent(message=exc.message))
        except Exception:
            logger.exception("message handling error")
            await self.emit(ErrorEvent(message="Internal server error"))

    # config

    async def handle_config(self, data: Dict[str, Any]) -> None:
        try:
            action = ConfigAction.model_validate(data)
        except ValidationError as exc:
            raise ProtocolError("Invalid config payload") from exc

        if action.key_mode == KeyMode.MANAGED:
            await self._configure_managed(action)
        else:
            await self._configure_byok(action)

    async def _configure_byok(self, action: ConfigAction) -> None:
        if not (action.api_key and action.model and action.provider):
            raise ProtocolError("Missing config fields (apiKey, model, provider)")

        self.store.update_config(
            self.session_id,
            model=action.model,
            provider=action.provider,
            api_key=action.api_key,
            key_mode=KeyMode.BYOK,
        )
        self.ready = True
        logger.info(
            "session configured mode=byok target=%s/%s key=%s",
            action.provider,
            action.model,
            mask_secret(action.api_key),
        )
        await self.emit(ConnectedEvent(session_id=self.session_id))

    async def _configure_managed(self, action: ConfigAction) -> None:
        if action.fid is None:
            raise ProtocolError("Missing config field (fid)")

        status = await self.gateway.check_subscription(action.fid)
        if not status.valid:
            raise SubscriptionError(status.error or "Subscription check failed")

        default = default_managed_model()
        api_key = self.gateway.get_managed_key(default.provider) if default else None
        if default is None or not api_key:
            logger.error(
                "managed config for fid=%s refused: no managed provider key configured",
                action.fid,
            )
            raise SubscriptionError("AI service temporarily unavailable")

        self.store.update_config(
            self.session_id,
            model=default.model,
            provider=default.provider,
            api_key=api_key,
            key_mode=KeyMode.MANAGED,
            fid=action.fid,
            plan=status.plan.value,
            model_role=default.role.value,
        )
        self.ready = True
        logger.info(
            "session configured mode=managed fid=%s plan=%s default=%s/%s",
            action.fid,
            status.plan.value,
            default.provider,
            default.model,
        )
        await self.emit(
            ConnectedEvent(
                session_id=self.session_id,
                plan=status.plan.value,
                budget_remaining=status.budget_remaining,
                cost_usd=status.cost_usd,
            )
        )

    # send

    async def handle_send(self, data: Dict[str, Any]) -> None:
        if not self.ready:
            raise ProtocolError("Session not configured. Send config first.")
        session = self.store.get(self.session_id)
        if session is None:
            raise ProtocolError("Session not found")

        try:
            action = SendAction.model_validate(data)
        except ValidationError as exc:
            raise ProtocolError("Empty message") from exc
        text = (action.message or "").strip()
        if not text:
            raise ProtocolError("Empty message")

        self.store.add_message(self.session_id, Message(role="user", content=text))
        self.store.touch(self.session_id)

        model = session.model
        provider = session.provider
        api_key = session.api_key.get_secret_value()
        model_role = session.model_role

        if session.is_managed:
            status = await self.gateway.check_subscription(session.fid)
            if not status.valid:
                raise SubscriptionError(status.error or "Subscription check failed")

            resolved = resolve_model(text, status.plan, status.cost_usd, status.extra_budget)
            managed_key = self.gateway.get_managed_key(resolved.provider)
            if managed_key:
                model, provider, api_key = resolved.model, resolved.provider, managed_key
                model_role = resolved.role.value
            else:
                logger.warning(
                    "no managed key for provider=%s; falling back to session default %s/%s",
                    resolved.provider,
                    session.provider,
                    session.model,
                )
            logger.info(
                "routed tier=%s role=%s model=%s budget_exceeded=%s",
                resolved.tier.value,
                model_role,
                model,
                resolved.budget_exceeded,
            )

        await self._relay(session, provider=provider, model=model, api_key=api_key, model_role=model_role)

    async def _relay(
        self,
        session: Session,
        *,
        provider: str,
        model: str,
        api_key: str,
        model_role: Optional[str],
    ) -> None:
        run_id = new_id()
        with bind_run(run_id):
            await self._stream_run(
                session, run_id, provider=provider, model=model, api_key=api_key, model_role=model_role
            )

    async def _stream_run(
        self,
        session: Session,
        run_id: str,
        *,
        provider: str,
        model: str,
        api_key: str,
        model_role: Optional[str],
    ) -> None:
        history = session.upstream_messages()
        parts = []

        async with aclosing(
            stream_completion(
                provider,
                model,
                api_key,
                history,
                registry=self.registry,
                search_key=settings.brave_api_key or None,
            )
        ) as chunks:
            async for chunk in chunks:
                parts.append(chunk)
                delivered = await self.emit(
                    DeltaEvent(run_id=run_id, text=chunk, model_role=model_role)
                )
                if not delivered:
                    logger.info("abandoning stream: client gone")
                    return

        full_text = "".join(parts)
        self.store.add_message(
            self.session_id, Message(id=run_id, role="assistant", content=full_text)
        )
        await self.emit(
            FinalEvent(run_id=run_id, message=full_text, model=model, model_role=model_role)
        )

        if session.is_managed and session.fid is not None:
            prompt_text = "".join(m["content"] for m in history)
            self.gateway.track_usage_in_background(
                session.fid, estimate_tokens(prompt_text), estimate_tokens(full_text), model
            )

    # history

    async def handle_history(self, data: Dict[str, Any]) -> None:
        self.store.touch(self.session_id)
        await self.emit(HistoryEvent(messages=self.store.history(self.session_id)))


@router.websocket("/")
async def session_socket(websocket: WebSocket) -> None:
    origin = websocket.headers.get("origin", "")
    await websocket.accept()
    if not origin_allowed(origin):
        logger.warning("rejected connection from origin %r", origin)
        await websocket.close(code=ORIGIN_REJECTED_CODE, reason="Origin not allowed")
        return

    state = websocket.app.state
    connection = ProxyConnection(
        websocket,
        store=state.session_store,
        gateway=state.budget_gateway,
        registry=state.provider_registry,
    )
    await connection.run()


__all__ = ["ORIGIN_REJECTED_CODE", "ProxyConnection", "origin_allowed", "router"]
