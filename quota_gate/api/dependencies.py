"""FastAPI dependencies resolving the engines built by the app factory.

Engines live on ``app.state`` rather than in module globals so each app (and
each test) owns its own counter store and configuration.
"""

from __future__ import annotations

from fastapi import Request

from quota_gate.core.config import Settings
from quota_gate.services.rate_limit_service import RateLimitEngine
from quota_gate.services.search_quota_service import SearchQuotaGate


def get_rate_limit_engine(request: Request) -> RateLimitEngine:
    return request.app.state.rate_limit_engine


def get_search_quota_gate(request: Request) -> SearchQuotaGate:
    return request.app.state.search_quota_gate


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
