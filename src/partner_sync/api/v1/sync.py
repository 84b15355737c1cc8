"""REST endpoints for running and inspecting partner synchronization.

POST /sync/all answers 207 when some organizations failed; the body still
carries the per-organization results.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from src.partner_sync.api.deps import get_sync_service, to_response
from src.partner_sync.sync.service import PartnerSyncService

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/initialize")
async def initialize(
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    """Register every catalog organization as pending (idempotent)."""
    return to_response(await service.initialize_catalog())


@router.post("/organizations/{code}")
async def sync_organization(
    code: str,
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    return to_response(await service.sync_organization(code))


@router.post("/all")
async def sync_all(
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    return to_response(await service.sync_all())


@router.get("/status")
async def sync_status(
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    return to_response(await service.get_sync_status())


@router.delete("/organizations/{code}")
async def reset_organization(
    code: str,
    service: PartnerSyncService = Depends(get_sync_service),
) -> JSONResponse:
    """Delete synced client rows and return the organization to pending."""
    return to_response(await service.reset_organization(code))
