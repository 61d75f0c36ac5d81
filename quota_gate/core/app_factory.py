"""Application factory for the FastAPI app.

Builds the counter store and the quota engines explicitly and attaches them
to ``app.state``; routes resolve them through dependencies, so nothing in the
request path reads module-level engine state.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from quota_gate.adapters.chat.base import AbstractChatBackend
from quota_gate.adapters.counter_store.base import AbstractCounterStore
from quota_gate.adapters.counter_store.in_memory import InMemoryCounterStore
from quota_gate.adapters.search.base import AbstractSearchClient
from quota_gate.api.routes import health_router, messages_router, quota_router
from quota_gate.core.config import Settings, settings as default_settings
from quota_gate.core.exception_handlers import setup_exception_handlers
from quota_gate.core.logging import configure_logging
from quota_gate.core.middleware import request_id_middleware
from quota_gate.core.openapi import apply_openapi_customizations
from quota_gate.services.rate_limit_service import RateLimitEngine
from quota_gate.services.reply_service import ReplyService
from quota_gate.services.search_quota_service import SearchQuotaGate


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    await app.state.rate_limit_engine.initialize()
    yield


def create_app(
    app_settings: Settings | None = None,
    store: AbstractCounterStore | None = None,
    *,
    chat_backend: AbstractChatBackend | None = None,
    search_client: AbstractSearchClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings snapshot; defaults to the environment-loaded settings.
        store: Counter store shared by the engines; defaults to an in-memory store.
        chat_backend: Generation adapter; when given, a ReplyService is built
            on ``app.state.reply_service`` (otherwise it is None).
        search_client: Optional web search adapter for the ReplyService.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Quota Gate API",
        description=(
            "Quota-aware admission control for generative-AI backends: capacity "
            "per backend (rpm/tpm/rpd), deterministic backend selection, monthly "
            "web-search quota, and splitting of long answers into platform-sized "
            "messages. Requires X-API-Key."
        ),
        version="0.1.0",
        lifespan=_lifespan,
    )

    counter_store = store or InMemoryCounterStore()
    app.state.settings = cfg
    app.state.counter_store = counter_store
    app.state.rate_limit_engine = RateLimitEngine(counter_store, cfg.quota)
    app.state.search_quota_gate = SearchQuotaGate(
        counter_store, cfg.quota.search_monthly_quota
    )
    app.state.reply_service = (
        ReplyService(
            app.state.rate_limit_engine,
            app.state.search_quota_gate,
            chat_backend,
            search_client=search_client,
            max_message_length=cfg.messaging.max_message_length,
        )
        if chat_backend is not None
        else None
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(quota_router, prefix="/v1")
    app.include_router(messages_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
