"""Reconciliation engine -- pulls partner clients into local records.

For each external organization the engine:
1. Moves the organization to ``syncing`` (clearing any prior error)
2. Resolves or creates the linked local Organization
3. Fetches the full partner client list
4. Upserts one ExternalClient shadow row per client, keyed by
   (external_organization_id, external_id), and derives or refreshes the
   linked Customer
5. Moves the organization to ``completed`` with ``clients_count``

Per-client failures are logged and counted; they never abort the run.
Run-level failures move the organization to ``failed`` with the message.
Partner data always wins: there is no local -> partner direction.

Sync status transitions are validated against VALID_TRANSITIONS. Runs and
resets for the same organization are mutually exclusive via OrganizationLocks.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any

import structlog

from src.partner_sync.errors import (
    InvalidTransitionError,
    NotFoundError,
    PartnerSyncError,
    PerRecordError,
    SyncRunError,
)
from src.partner_sync.partner.catalog import ExternalCatalog
from src.partner_sync.partner.fetcher import ExternalFetcher
from src.partner_sync.partner.schemas import ClientPayload
from src.partner_sync.schemas.results import ServiceError, ServiceResult
from src.partner_sync.sync.locks import OrganizationLocks
from src.partner_sync.sync.mapping import (
    LOCAL_ORGANIZATION_WORK_LOCATION,
    customer_fields,
    local_organization_address,
    local_organization_name,
    project_client_fields,
)
from src.partner_sync.sync.repository import SyncRepository
from src.partner_sync.sync.schemas import (
    ExternalClientRead,
    ExternalOrganizationRead,
    ExternalOrganizationUpdate,
    OrganizationRead,
    OrganizationSyncState,
    ResetReport,
    SyncAllEntry,
    SyncAllReport,
    SyncStatus,
    SyncStatusReport,
    SyncSummary,
)

logger = structlog.get_logger(__name__)


# ── Sync Status State Machine ──────────────────────────────────────────────

VALID_TRANSITIONS: dict[SyncStatus, set[SyncStatus]] = {
    SyncStatus.PENDING: {SyncStatus.SYNCING},
    SyncStatus.SYNCING: {SyncStatus.COMPLETED, SyncStatus.FAILED},
    SyncStatus.COMPLETED: {SyncStatus.SYNCING},
    SyncStatus.FAILED: {SyncStatus.SYNCING},
}


def validate_status_transition(from_status: SyncStatus, to_status: SyncStatus) -> None:
    """Validate an organization sync status transition.

    ``* -> syncing`` is always allowed so a run interrupted mid-flight (status
    left at ``syncing``) can be re-entered. Resets bypass this table.

    Raises:
        InvalidTransitionError: If the transition is not allowed.
    """
    if to_status == SyncStatus.SYNCING:
        return
    if to_status not in VALID_TRANSITIONS.get(from_status, set()):
        raise InvalidTransitionError(
            f"Invalid sync status transition: {from_status.value} -> {to_status.value}",
            from_status=from_status.value,
            to_status=to_status.value,
        )


# ── Engine ──────────────────────────────────────────────────────────────────


class ReconciliationEngine:
    """Idempotent partner -> local reconciliation, one organization at a time.

    Args:
        repository: Persistence for sync bookkeeping and derived records.
        fetcher: Partner client list source.
        catalog: Registry of partner organizations to track.
        locks: Per-organization lock registry. A private one is created if
            not provided.
    """

    def __init__(
        self,
        repository: SyncRepository,
        fetcher: ExternalFetcher,
        catalog: ExternalCatalog,
        locks: OrganizationLocks | None = None,
    ) -> None:
        self._repository = repository
        self._fetcher = fetcher
        self._catalog = catalog
        self._locks = locks or OrganizationLocks()

    # ── Catalog ─────────────────────────────────────────────────────────────

    async def initialize_catalog(self) -> ServiceResult:
        """Find-or-create one pending ExternalOrganization per catalog entry."""
        logger.info("sync.catalog_initializing", organizations=len(self._catalog))
        created_codes: list[str] = []
        try:
            for entry in self._catalog:
                _, created = await self._repository.find_or_create_external_organization(
                    entry.code, entry.name
                )
                if created:
                    created_codes.append(entry.code)
                    logger.info(
                        "sync.external_organization_created",
                        organization_code=entry.code,
                        name=entry.name,
                    )
        except Exception as exc:
            return _failure(exc, "sync.catalog_initialize_failed")

        return ServiceResult.ok(
            {
                "message": "External organizations initialized",
                "total": len(self._catalog),
                "created": created_codes,
            }
        )

    # ── Single Organization ─────────────────────────────────────────────────

    async def sync_organization(self, organization_code: str) -> ServiceResult:
        """Run one full reconciliation pass for an organization.

        Returns:
            ServiceResult with a SyncSummary on success. On failure the error
            code is UNKNOWN_ORGANIZATION, NOT_FOUND or SYNC_IN_PROGRESS when
            the run never started, and SYNC_ERROR once it had.
        """
        try:
            self._catalog.require(organization_code)
            async with self._locks.hold(organization_code):
                summary = await self._run(organization_code)
        except Exception as exc:
            return _failure(exc, "sync.organization_failed", organization_code=organization_code)
        return ServiceResult.ok(summary)

    async def _run(self, organization_code: str) -> SyncSummary:
        external_org = await self._repository.get_external_organization(organization_code)
        if external_org is None or not external_org.is_active:
            raise NotFoundError(
                f"External organization with code {organization_code} not found",
                organization_code=organization_code,
            )

        validate_status_transition(external_org.sync_status, SyncStatus.SYNCING)
        external_org = await self._repository.update_external_organization(
            external_org.id,
            ExternalOrganizationUpdate(sync_status=SyncStatus.SYNCING, sync_error=None),
        )
        logger.info(
            "sync.organization_started",
            organization_code=organization_code,
            name=external_org.external_name,
        )

        try:
            local_org = await self._resolve_local_organization(external_org)
            clients = await self._fetcher.fetch_all_clients(organization_code)
            summary = await self._reconcile_clients(external_org, local_org, clients)

            validate_status_transition(SyncStatus.SYNCING, SyncStatus.COMPLETED)
            await self._repository.update_external_organization(
                external_org.id,
                ExternalOrganizationUpdate(
                    sync_status=SyncStatus.COMPLETED,
                    last_sync_at=datetime.now(timezone.utc),
                    clients_count=summary.synced + summary.updated,
                    local_organization_id=local_org.id,
                ),
            )
        except Exception as exc:
            run_error = SyncRunError(organization_code, exc)
            await self._record_failure(external_org, run_error)
            raise run_error from exc

        logger.info(
            "sync.organization_completed",
            organization_code=organization_code,
            synced=summary.synced,
            updated=summary.updated,
            errors=summary.errors,
            total=summary.total,
        )
        return summary

    async def _resolve_local_organization(
        self, external_org: ExternalOrganizationRead
    ) -> OrganizationRead:
        if external_org.local_organization_id is not None:
            existing = await self._repository.get_organization(
                external_org.local_organization_id
            )
            if existing is not None:
                return existing

        local_org = await self._repository.create_organization(
            name=local_organization_name(external_org.external_name),
            address=local_organization_address(external_org.external_code),
            work_location=LOCAL_ORGANIZATION_WORK_LOCATION,
        )
        await self._repository.update_external_organization(
            external_org.id,
            ExternalOrganizationUpdate(local_organization_id=local_org.id),
        )
        logger.info(
            "sync.local_organization_created",
            organization_code=external_org.external_code,
            local_organization=local_org.name,
        )
        return local_org

    async def _reconcile_clients(
        self,
        external_org: ExternalOrganizationRead,
        local_org: OrganizationRead,
        clients: list[dict[str, Any]],
    ) -> SyncSummary:
        clients, duplicate_ids = _dedupe_by_id(clients)
        if duplicate_ids:
            logger.warning(
                "sync.duplicate_client_ids",
                organization_code=external_org.external_code,
                duplicate_ids=duplicate_ids,
            )

        summary = SyncSummary(
            total=len(clients),
            organization=external_org.external_name,
            local_organization=local_org.name,
        )
        for raw in clients:
            try:
                created = await self._reconcile_client(external_org, local_org, raw)
            except Exception as exc:
                record_error = PerRecordError(raw.get("id"), exc)
                summary.errors += 1
                summary.failed_client_ids.append(record_error.external_id)
                logger.error(
                    "sync.client_failed",
                    organization_code=external_org.external_code,
                    external_id=record_error.external_id,
                    error=str(exc),
                )
                continue

            if created:
                summary.synced += 1
            else:
                summary.updated += 1
        return summary

    async def _reconcile_client(
        self,
        external_org: ExternalOrganizationRead,
        local_org: OrganizationRead,
        raw: dict[str, Any],
    ) -> bool:
        """Upsert one shadow row and its Customer. Returns True if newly created."""
        payload = ClientPayload.model_validate(raw)
        record, created = await self._repository.upsert_external_client(
            external_org.id,
            payload.id,
            raw,
            project_client_fields(payload),
        )
        await self._derive_customer(record, local_org, payload)
        return created

    async def _derive_customer(
        self,
        record: ExternalClientRead,
        local_org: OrganizationRead,
        payload: ClientPayload,
    ) -> None:
        data = customer_fields(payload, local_org.id)

        if record.local_customer_id is not None:
            updated = await self._repository.update_customer(record.local_customer_id, data)
            if updated is not None:
                return
            logger.warning(
                "sync.customer_link_dangling",
                external_id=record.external_id,
                customer_id=str(record.local_customer_id),
            )

        await self._repository.create_linked_customer(record.id, data)

    async def _record_failure(
        self, external_org: ExternalOrganizationRead, error: SyncRunError
    ) -> None:
        try:
            await self._repository.update_external_organization(
                external_org.id,
                ExternalOrganizationUpdate(
                    sync_status=SyncStatus.FAILED, sync_error=error.message
                ),
            )
        except Exception as exc:
            logger.error(
                "sync.failure_record_failed",
                organization_code=external_org.external_code,
                error=str(exc),
            )

    # ── Bulk ────────────────────────────────────────────────────────────────

    async def sync_all(self) -> ServiceResult:
        """Initialize the catalog, then sync every organization sequentially.

        One organization's failure never prevents the others from running.
        Any failure yields ``success=False`` with error code PARTIAL_SYNC and
        the full per-code report in ``data``.
        """
        init = await self.initialize_catalog()
        if not init.success:
            return init

        report = SyncAllReport(total=len(self._catalog))
        for code in self._catalog.codes():
            result = await self.sync_organization(code)
            report.results.append(
                SyncAllEntry(
                    organization_code=code,
                    success=result.success,
                    data=result.data if result.success else None,
                    error=result.error,
                )
            )
            if result.success:
                report.successful += 1
            else:
                report.failed += 1

        logger.info(
            "sync.all_completed",
            total=report.total,
            successful=report.successful,
            failed=report.failed,
        )
        if report.failed:
            return ServiceResult(
                success=False,
                data=report,
                error=ServiceError(
                    code="PARTIAL_SYNC",
                    message=f"{report.failed} of {report.total} organizations failed to sync",
                    details={"failed": report.failed, "total": report.total},
                ),
            )
        return ServiceResult.ok(report)

    # ── Status / Reset ──────────────────────────────────────────────────────

    async def get_sync_status(self) -> ServiceResult:
        """Sync state of every tracked organization, with counts per status."""
        try:
            organizations = await self._repository.list_external_organizations(
                active_only=False
            )
        except Exception as exc:
            return _failure(exc, "sync.status_failed")

        states = [
            OrganizationSyncState(
                code=org.external_code,
                name=org.external_name,
                status=org.sync_status,
                last_sync_at=org.last_sync_at,
                clients_count=org.clients_count,
                local_organization=org.local_organization_name,
                error=org.sync_error,
            )
            for org in organizations
        ]
        counts = Counter(state.status for state in states)
        summary = {status.value: counts.get(status, 0) for status in SyncStatus}
        summary["total"] = len(states)
        return ServiceResult.ok(SyncStatusReport(organizations=states, summary=summary))

    async def reset_organization(self, organization_code: str) -> ServiceResult:
        """Delete the organization's shadow rows and return it to ``pending``.

        Derived Customer rows and the local Organization are left in place.
        """
        try:
            async with self._locks.hold(organization_code):
                external_org = await self._repository.get_external_organization(
                    organization_code
                )
                if external_org is None:
                    raise NotFoundError(
                        f"External organization with code {organization_code} not found",
                        organization_code=organization_code,
                    )

                deleted = await self._repository.delete_external_clients(external_org.id)
                await self._repository.update_external_organization(
                    external_org.id,
                    ExternalOrganizationUpdate(
                        sync_status=SyncStatus.PENDING,
                        last_sync_at=None,
                        clients_count=0,
                        sync_error=None,
                        local_organization_id=None,
                    ),
                )
        except Exception as exc:
            return _failure(exc, "sync.reset_failed", organization_code=organization_code)

        logger.info(
            "sync.organization_reset",
            organization_code=organization_code,
            deleted_clients=deleted,
        )
        return ServiceResult.ok(
            ResetReport(organization_code=organization_code, deleted_clients=deleted)
        )


def _failure(exc: Exception, event: str, **context: Any) -> ServiceResult:
    """Convert an exception into a failed ServiceResult, logging it."""
    if isinstance(exc, PartnerSyncError):
        logger.error(event, code=exc.code, error=exc.message, **context)
        return ServiceResult(success=False, error=exc.to_error())

    logger.error(event, error=str(exc), exc_info=True, **context)
    return ServiceResult.fail("INTERNAL_ERROR", str(exc) or type(exc).__name__, **context)


def _dedupe_by_id(
    clients: list[dict[str, Any]],
) -> tuple[list[dict[str, Any]], list[Any]]:
    """Collapse records sharing a partner id; the last copy wins.

    Records without an id pass through untouched and fail validation later.

    Returns:
        Tuple of (unique records in first-seen order, duplicated ids).
    """
    positions: dict[str, int] = {}
    unique: list[dict[str, Any]] = []
    duplicates: list[Any] = []
    for raw in clients:
        external_id = raw.get("id")
        if external_id is None:
            unique.append(raw)
            continue
        key = str(external_id)
        if key in positions:
            unique[positions[key]] = raw
            duplicates.append(external_id)
            continue
        positions[key] = len(unique)
        unique.append(raw)
    return unique, duplicates
