"""Error hierarchy for the partner synchronization engine.

Every error carries a stable machine ``code`` and keyword context. Public
service operations convert them to ``ServiceError`` via ``to_error()`` so
nothing in this hierarchy escapes the top-level operation boundary.
"""

from __future__ import annotations

from typing import Any

from src.partner_sync.schemas.results import ServiceError


class PartnerSyncError(Exception):
    """Base class for all sync engine errors."""

    code = "PARTNER_SYNC_ERROR"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_error(self) -> ServiceError:
        details = {k: v for k, v in self.context.items() if v is not None}
        return ServiceError(code=self.code, message=self.message, details=details)


class ConfigError(PartnerSyncError):
    """Missing or invalid configuration. Fatal at startup."""

    code = "CONFIG_ERROR"


class AuthError(PartnerSyncError):
    """Token acquisition against the partner token endpoint failed."""

    code = "AUTH_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, body=body)
        self.status_code = status_code
        self.body = body


class UnknownOrganizationError(PartnerSyncError):
    """Organization code is not part of the external catalog."""

    code = "UNKNOWN_ORGANIZATION"

    def __init__(self, organization_code: str) -> None:
        super().__init__(
            f"Invalid organization code: {organization_code}",
            organization_code=organization_code,
        )
        self.organization_code = organization_code


class ExternalApiError(PartnerSyncError):
    """Non-auth failure talking to the partner data API."""

    code = "EXTERNAL_API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        organization_code: str | None = None,
    ) -> None:
        super().__init__(
            message, status_code=status_code, organization_code=organization_code
        )
        self.status_code = status_code
        self.organization_code = organization_code


class MalformedResponseError(ExternalApiError):
    """Partner response did not match the ``{success, data: [...]}`` envelope."""

    code = "MALFORMED_RESPONSE"


class NotFoundError(PartnerSyncError):
    """External organization is missing or inactive in the local store."""

    code = "NOT_FOUND"


class PerRecordError(PartnerSyncError):
    """A single external client could not be reconciled."""

    code = "RECORD_ERROR"

    def __init__(self, external_id: Any, cause: BaseException) -> None:
        super().__init__(
            f"Failed to sync client {external_id}: {cause}",
            external_id=external_id,
        )
        self.external_id = external_id
        self.__cause__ = cause


class SyncRunError(PartnerSyncError):
    """Run-level failure recorded on the external organization."""

    code = "SYNC_ERROR"

    def __init__(self, organization_code: str, cause: BaseException) -> None:
        cause_code = getattr(cause, "code", type(cause).__name__)
        super().__init__(
            str(cause),
            organization_code=organization_code,
            cause=cause_code,
        )
        self.organization_code = organization_code
        self.__cause__ = cause


class SyncInProgressError(PartnerSyncError):
    """Another sync or reset already holds the organization's lock."""

    code = "SYNC_IN_PROGRESS"

    def __init__(self, organization_code: str) -> None:
        super().__init__(
            f"A sync for organization {organization_code} is already running",
            organization_code=organization_code,
        )
        self.organization_code = organization_code


class InvalidTransitionError(PartnerSyncError):
    """Sync status transition violates the state machine."""

    code = "INVALID_TRANSITION"


class InvalidRequestError(PartnerSyncError):
    """Caller supplied invalid arguments (e.g. page < 1)."""

    code = "INVALID_REQUEST"
