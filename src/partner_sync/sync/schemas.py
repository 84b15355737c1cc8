"""Pydantic schemas for sync bookkeeping and reconciliation results.

Defines:
- Enums: SyncStatus (organization-level state machine states)
- Read models returned by SyncRepository: ExternalOrganizationRead,
  ExternalClientRead, OrganizationRead, CustomerRead
- Write payloads: ExternalOrganizationUpdate, ExternalClientFields, CustomerData
- Results: SyncSummary, SyncAllEntry, SyncAllReport, OrganizationSyncState,
  SyncStatusReport, ResetReport
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.partner_sync.schemas.results import ServiceError


# ── Enums ───────────────────────────────────────────────────────────────────


class SyncStatus(str, Enum):
    """Sync state of one external organization."""

    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


# Per-record status strings stored on ExternalClient.sync_status
CLIENT_STATUS_SYNCED = "synced"
CLIENT_STATUS_TRANSFORMED = "transformed"


# ── Read Models ─────────────────────────────────────────────────────────────


class OrganizationRead(BaseModel):
    id: uuid.UUID
    name: str
    address: str | None = None
    work_location: str | None = None
    is_active: bool = True


class CustomerRead(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    description: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    address: str | None = None
    work_location: str | None = None
    is_active: bool = True


class ExternalOrganizationRead(BaseModel):
    """External organization with its sync bookkeeping."""

    id: uuid.UUID
    external_code: str
    external_name: str
    local_organization_id: uuid.UUID | None = None
    local_organization_name: str | None = None
    last_sync_at: datetime | None = None
    sync_status: SyncStatus = SyncStatus.PENDING
    sync_error: str | None = None
    clients_count: int = 0
    is_active: bool = True


class ExternalClientFields(BaseModel):
    """Normalized projection of one partner client record."""

    company_name: str | None = None
    accounting_code: str | None = None
    vat_number: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    province: str | None = None
    phone: str | None = None
    institutional_email: str | None = None
    administrative_email: str | None = None
    is_client: bool | None = None
    is_supplier: bool | None = None
    is_prospect: bool | None = None


class ExternalClientRead(ExternalClientFields):
    id: uuid.UUID
    external_organization_id: uuid.UUID
    external_id: int
    raw_data: dict[str, Any] = Field(default_factory=dict)
    local_customer_id: uuid.UUID | None = None
    last_sync_at: datetime | None = None
    sync_status: str = CLIENT_STATUS_SYNCED


# ── Write Payloads ──────────────────────────────────────────────────────────


class ExternalOrganizationUpdate(BaseModel):
    """Partial update; only explicitly set fields are applied."""

    local_organization_id: uuid.UUID | None = None
    last_sync_at: datetime | None = None
    sync_status: SyncStatus | None = None
    sync_error: str | None = None
    clients_count: int | None = Field(default=None, ge=0)


class CustomerData(BaseModel):
    """Projected Customer fields derived from an external client."""

    organization_id: uuid.UUID
    name: str
    description: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    address: str | None = None
    work_location: str | None = None
    is_active: bool = False


# ── Results ─────────────────────────────────────────────────────────────────


class SyncSummary(BaseModel):
    """Outcome of one organization sync run."""

    synced: int = 0
    updated: int = 0
    errors: int = 0
    total: int = 0
    organization: str
    local_organization: str | None = None
    failed_client_ids: list[Any] = Field(default_factory=list)


class SyncAllEntry(BaseModel):
    organization_code: str
    success: bool
    data: SyncSummary | None = None
    error: ServiceError | None = None


class SyncAllReport(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    results: list[SyncAllEntry] = Field(default_factory=list)


class OrganizationSyncState(BaseModel):
    code: str
    name: str
    status: SyncStatus
    last_sync_at: datetime | None = None
    clients_count: int = 0
    local_organization: str | None = None
    error: str | None = None


class SyncStatusReport(BaseModel):
    """All tracked organizations plus counts per sync status."""

    organizations: list[OrganizationSyncState] = Field(default_factory=list)
    summary: dict[str, int] = Field(default_factory=dict)


class ResetReport(BaseModel):
    organization_code: str
    deleted_clients: int = 0
