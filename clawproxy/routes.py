from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from pydantic import BaseModel
from redis.asyncio import Redis

from clawproxy.api.websocket import router as session_router
from clawproxy.billing import BudgetGateway
from clawproxy.logging_config import logger
from clawproxy.provider import ProviderRegistry, build_default_registry
from clawproxy.redis_client import close_redis_client, get_redis_client
from clawproxy.session import SessionStore
from clawproxy.settings import settings


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str


def create_app(
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    redis: Optional[Redis] = None,
    budget_gateway: Optional[BudgetGateway] = None,
    registry: Optional[ProviderRegistry] = None,
    session_store: Optional[SessionStore] = None,
) -> FastAPI:
    """
    Build the proxy application. Collaborators not passed in are created
    from settings and owned (closed on shutdown) by the app.
    """
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=settings.upstream_timeout)
    owns_redis = redis is None and budget_gateway is None
    gateway = budget_gateway or BudgetGateway(redis if redis is not None else get_redis_client())
    store = session_store or SessionStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.init()
        if not gateway.configured:
            logger.warning("REDIS_URL is empty; managed mode is disabled")
        logger.info(
            "%s started; providers=%s",
            settings.service_name,
            ",".join(app.state.provider_registry.providers),
        )
        try:
            yield
        finally:
            await store.shutdown()
            await gateway.drain()
            if owns_client:
                await client.aclose()
            if owns_redis:
                await close_redis_client()
            logger.info("%s stopped", settings.service_name)

    app = FastAPI(title="Clawdbot Proxy", version="0.1.0", lifespan=lifespan)
    app.state.http_client = client
    app.state.budget_gateway = gateway
    app.state.provider_registry = registry or build_default_registry(client)
    app.state.session_store = store

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client_host = request.client.host if request.client else "-"
        logger.info("HTTP %s %s from %s", request.method, request.url.path, client_host)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error while processing %s %s",
                request.method,
                request.url.path,
            )
            raise
        logger.info(
            "HTTP %s %s -> %s", request.method, request.url.path, response.status_code
        )
        return response

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(service=settings.service_name)

    @app.get("/", response_model=HealthResponse, include_in_schema=False)
    async def root() -> HealthResponse:
        return HealthResponse(service=settings.service_name)

    app.include_router(session_router)
    return app


__all__ = ["HealthResponse", "create_app"]
