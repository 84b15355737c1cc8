"""FastAPI dependency injection and ServiceResult -> HTTP response mapping."""

from __future__ import annotations

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from src.partner_sync.schemas.results import ServiceResult
from src.partner_sync.sync.service import PartnerSyncService

# Error code -> HTTP status; anything not listed maps to 500
ERROR_STATUS: dict[str, int] = {
    "UNKNOWN_ORGANIZATION": status.HTTP_404_NOT_FOUND,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_REQUEST": status.HTTP_400_BAD_REQUEST,
    "SYNC_IN_PROGRESS": status.HTTP_409_CONFLICT,
    "AUTH_ERROR": status.HTTP_502_BAD_GATEWAY,
    "EXTERNAL_API_ERROR": status.HTTP_502_BAD_GATEWAY,
    "MALFORMED_RESPONSE": status.HTTP_502_BAD_GATEWAY,
    "SYNC_ERROR": status.HTTP_502_BAD_GATEWAY,
    "PARTIAL_SYNC": status.HTTP_207_MULTI_STATUS,
}


def get_sync_service(request: Request) -> PartnerSyncService:
    """Retrieve PartnerSyncService from app.state, 503 if not available."""
    service = getattr(request.app.state, "sync_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Partner sync not initialized",
        )
    return service


def status_for(result: ServiceResult) -> int:
    if result.success:
        return status.HTTP_200_OK
    code = result.error.code if result.error else ""
    return ERROR_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def to_response(result: ServiceResult) -> JSONResponse:
    """Render a ServiceResult as ``{success, data}`` / ``{success, error}``."""
    return JSONResponse(
        status_code=status_for(result),
        content=result.model_dump(mode="json", exclude_none=True),
    )
