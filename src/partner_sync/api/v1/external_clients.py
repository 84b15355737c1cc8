"""REST endpoints for browsing partner organizations and their clients.

Read-only: results come straight from the partner API (through the token
cache) and are never persisted here.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from src.partner_sync.api.deps import get_sync_service, to_response
from src.partner_sync.sync.service import PartnerSyncService

router = APIRouter(prefix="/external-clients", tags=["external-clients"])


@router.get("/organizations")
async def list_organizations(
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    return to_response(await service.get_organizations())


@router.get("/organizations/{code}")
async def get_organization(
    code: str,
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    return to_response(await service.get_organization_by_code(code))


@router.get("/organizations/{code}/clients")
async def list_clients(
    code: str,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    search: str | None = Query(default=None),
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    """One page of the organization's partner clients, optionally filtered."""
    return to_response(await service.fetch_clients(code, page=page, limit=limit, search=search))


@router.get("/organizations/{code}/stats")
async def client_stats(
    code: str,
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    return to_response(await service.fetch_stats(code))


@router.post("/refresh-token")
async def refresh_token(
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    """Drop the cached partner token and acquire a new one."""
    return to_response(await service.refresh_token())
