"""Quota status and operator endpoints.

Read-only views (capacity per backend, search quota) feed status displays;
the mutating endpoints record usage reported by an external orchestrator or
reset counters for testing and operations.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from quota_gate.api.dependencies import get_rate_limit_engine, get_search_quota_gate
from quota_gate.core.auth import verify_api_key
from quota_gate.schemas.quota import (
    CapacitySnapshot,
    SearchQuotaStatus,
    SelectionRequest,
    SelectionResult,
    UsageAmount,
)
from quota_gate.services.rate_limit_service import RateLimitEngine
from quota_gate.services.search_quota_service import SearchQuotaGate

router = APIRouter(
    prefix="/quota",
    tags=["Quota"],
    dependencies=[Depends(verify_api_key)],
)

EngineDep = Annotated[RateLimitEngine, Depends(get_rate_limit_engine)]
SearchGateDep = Annotated[SearchQuotaGate, Depends(get_search_quota_gate)]


@router.get("/backends", response_model=list[CapacitySnapshot])
async def list_backend_capacity(engine: EngineDep) -> list[CapacitySnapshot]:
    """Capacity snapshot of every configured backend, in configuration order."""
    return await engine.status_of_all()


@router.get("/backends/{backend}", response_model=CapacitySnapshot)
async def get_backend_capacity(backend: str, engine: EngineDep) -> CapacitySnapshot:
    """Capacity snapshot of one backend.

    Raises:
        UnknownBackendError: 404 when the backend is not configured.
        CounterStoreError: 503 when the counters cannot be read.
    """
    return await engine.capacity_of(backend)


@router.post("/select", response_model=SelectionResult)
async def select_backend(
    engine: EngineDep,
    body: SelectionRequest | None = None,
) -> SelectionResult:
    """Admission decision: first admissible backend in priority order."""
    body = body or SelectionRequest()
    return await engine.select_backend(body.preferred, estimated_tokens=body.estimated_tokens)


@router.post("/backends/{backend}/usage", response_model=CapacitySnapshot)
async def record_backend_usage(
    backend: str,
    usage: UsageAmount,
    engine: EngineDep,
) -> CapacitySnapshot:
    """Record consumption of a successful backend call and return the new capacity."""
    await engine.record_usage(backend, requests=usage.requests, tokens=usage.tokens)
    return await engine.capacity_of(backend)


@router.post("/reset")
async def reset_backend_counters(
    engine: EngineDep,
    backend: Annotated[str | None, Query(description="Reset only this backend")] = None,
) -> dict:
    """Delete rate limit counters for one backend or all backends."""
    await engine.reset(backend)
    return {"reset": [backend] if backend else engine.backends}


@router.get("/search", response_model=SearchQuotaStatus)
async def get_search_quota(gate: SearchGateDep) -> SearchQuotaStatus:
    """Current month's search usage against the free quota."""
    return await gate.status()


@router.post("/search/usage", response_model=SearchQuotaStatus)
async def record_search_usage(gate: SearchGateDep) -> SearchQuotaStatus:
    """Count one search against the current month."""
    await gate.record_usage()
    return await gate.status()


@router.post("/search/reset", response_model=SearchQuotaStatus)
async def reset_search_quota(gate: SearchGateDep) -> SearchQuotaStatus:
    """Delete the current month's search counter."""
    await gate.reset()
    return await gate.status()
