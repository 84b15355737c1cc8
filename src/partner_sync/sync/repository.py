"""Sync repository -- async persistence for sync bookkeeping and derived records.

Provides SyncRepository with the session_factory callable pattern. Handles
conversion between SQLAlchemy models and the pydantic Read schemas for
external organizations, external clients, local organizations and customers.

Every method opens its own session and commits before returning, so one
failing record never rolls back the writes of the records before it.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.partner_sync.models.local import Customer, Organization
from src.partner_sync.sync.models import ExternalClient, ExternalOrganization
from src.partner_sync.sync.schemas import (
    CLIENT_STATUS_SYNCED,
    CLIENT_STATUS_TRANSFORMED,
    CustomerData,
    CustomerRead,
    ExternalClientFields,
    ExternalClientRead,
    ExternalOrganizationRead,
    ExternalOrganizationUpdate,
    OrganizationRead,
    SyncStatus,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_external_organization(
    model: ExternalOrganization, local_organization_name: str | None = None
) -> ExternalOrganizationRead:
    return ExternalOrganizationRead(
        id=model.id,
        external_code=model.external_code,
        external_name=model.external_name,
        local_organization_id=model.local_organization_id,
        local_organization_name=local_organization_name,
        last_sync_at=model.last_sync_at,
        sync_status=SyncStatus(model.sync_status or SyncStatus.PENDING.value),
        sync_error=model.sync_error,
        clients_count=model.clients_count or 0,
        is_active=model.is_active,
    )


def _model_to_external_client(model: ExternalClient) -> ExternalClientRead:
    return ExternalClientRead(
        id=model.id,
        external_organization_id=model.external_organization_id,
        external_id=model.external_id,
        raw_data=model.raw_data or {},
        company_name=model.company_name,
        accounting_code=model.accounting_code,
        vat_number=model.vat_number,
        address=model.address,
        postal_code=model.postal_code,
        city=model.city,
        province=model.province,
        phone=model.phone,
        institutional_email=model.institutional_email,
        administrative_email=model.administrative_email,
        is_client=model.is_client,
        is_supplier=model.is_supplier,
        is_prospect=model.is_prospect,
        local_customer_id=model.local_customer_id,
        last_sync_at=model.last_sync_at,
        sync_status=model.sync_status or CLIENT_STATUS_SYNCED,
    )


def _model_to_organization(model: Organization) -> OrganizationRead:
    return OrganizationRead(
        id=model.id,
        name=model.name,
        address=model.address,
        work_location=model.work_location,
        is_active=model.is_active,
    )


def _model_to_customer(model: Customer) -> CustomerRead:
    return CustomerRead(
        id=model.id,
        organization_id=model.organization_id,
        name=model.name,
        description=model.description,
        contact_email=model.contact_email,
        contact_phone=model.contact_phone,
        address=model.address,
        work_location=model.work_location,
        is_active=model.is_active,
    )


def _external_organizations_stmt() -> Any:
    return select(ExternalOrganization, Organization.name).outerjoin(
        Organization, ExternalOrganization.local_organization_id == Organization.id
    )


# ── Repository ──────────────────────────────────────────────────────────────


class SyncRepository:
    """Async reads and writes used by the reconciliation engine.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── External Organizations ──────────────────────────────────────────────

    async def get_external_organization(
        self, external_code: str
    ) -> ExternalOrganizationRead | None:
        """Get an external organization by its partner code.

        Returns:
            ExternalOrganizationRead (with the linked local organization's
            name) if found, None otherwise.
        """
        async for session in self._session_factory():
            stmt = _external_organizations_stmt().where(
                ExternalOrganization.external_code == external_code
            )
            result = await session.execute(stmt)
            row = result.one_or_none()
            if row is None:
                return None
            model, local_name = row
            return _model_to_external_organization(model, local_name)

    async def list_external_organizations(
        self, active_only: bool = True
    ) -> list[ExternalOrganizationRead]:
        """List external organizations ordered by code."""
        async for session in self._session_factory():
            stmt = _external_organizations_stmt().order_by(
                ExternalOrganization.external_code.asc()
            )
            if active_only:
                stmt = stmt.where(ExternalOrganization.is_active.is_(True))
            result = await session.execute(stmt)
            return [
                _model_to_external_organization(model, local_name)
                for model, local_name in result.all()
            ]

    async def find_or_create_external_organization(
        self, external_code: str, external_name: str
    ) -> tuple[ExternalOrganizationRead, bool]:
        """Find an external organization by code, creating it as pending.

        Returns:
            Tuple of (record, created).
        """
        async for session in self._session_factory():
            stmt = select(ExternalOrganization).where(
                ExternalOrganization.external_code == external_code
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is not None:
                return _model_to_external_organization(model), False

            model = ExternalOrganization(
                external_code=external_code,
                external_name=external_name,
                sync_status=SyncStatus.PENDING.value,
                clients_count=0,
                is_active=True,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_external_organization(model), True

    async def update_external_organization(
        self, external_organization_id: uuid.UUID, data: ExternalOrganizationUpdate
    ) -> ExternalOrganizationRead:
        """Apply the explicitly set fields of ``data``.

        Raises:
            ValueError: If the external organization does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(ExternalOrganization, external_organization_id)
            if model is None:
                raise ValueError(
                    f"External organization not found: id={external_organization_id}"
                )

            for field, value in data.model_dump(exclude_unset=True).items():
                if isinstance(value, SyncStatus):
                    value = value.value
                setattr(model, field, value)

            await session.commit()
            await session.refresh(model)
            return _model_to_external_organization(model)

    # ── Local Organizations ─────────────────────────────────────────────────

    async def get_organization(
        self, organization_id: uuid.UUID
    ) -> OrganizationRead | None:
        async for session in self._session_factory():
            model = await session.get(Organization, organization_id)
            if model is None:
                return None
            return _model_to_organization(model)

    async def create_organization(
        self,
        name: str,
        address: str | None = None,
        work_location: str | None = None,
    ) -> OrganizationRead:
        async for session in self._session_factory():
            model = Organization(
                name=name,
                address=address,
                work_location=work_location,
                is_active=True,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_organization(model)

    # ── External Clients ────────────────────────────────────────────────────

    async def upsert_external_client(
        self,
        external_organization_id: uuid.UUID,
        external_id: int,
        raw_data: dict[str, Any],
        fields: ExternalClientFields,
    ) -> tuple[ExternalClientRead, bool]:
        """Create or update the shadow row keyed by (organization, external id).

        On update the raw payload and normalized fields are overwritten and
        ``last_sync_at`` is stamped; ``local_customer_id`` is never touched.

        Returns:
            Tuple of (record, created).
        """
        async for session in self._session_factory():
            stmt = select(ExternalClient).where(
                ExternalClient.external_organization_id == external_organization_id,
                ExternalClient.external_id == external_id,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            values = fields.model_dump()

            if model is not None:
                model.raw_data = raw_data
                for field, value in values.items():
                    setattr(model, field, value)
                model.last_sync_at = datetime.now(timezone.utc)
                model.sync_status = (
                    CLIENT_STATUS_TRANSFORMED
                    if model.local_customer_id is not None
                    else CLIENT_STATUS_SYNCED
                )
                await session.commit()
                await session.refresh(model)
                return _model_to_external_client(model), False

            model = ExternalClient(
                external_organization_id=external_organization_id,
                external_id=external_id,
                raw_data=raw_data,
                sync_status=CLIENT_STATUS_SYNCED,
                **values,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_external_client(model), True

    async def delete_external_clients(self, external_organization_id: uuid.UUID) -> int:
        """Delete every shadow row of an organization. Returns the row count."""
        async for session in self._session_factory():
            stmt = delete(ExternalClient).where(
                ExternalClient.external_organization_id == external_organization_id
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    # ── Customers ───────────────────────────────────────────────────────────

    async def create_linked_customer(
        self, external_client_id: uuid.UUID, data: CustomerData
    ) -> CustomerRead:
        """Insert a Customer and point the external client at it.

        Both writes share one transaction, so a failed link never leaves an
        orphaned Customer behind.

        Raises:
            ValueError: If the external client does not exist.
        """
        async for session in self._session_factory():
            record = await session.get(ExternalClient, external_client_id)
            if record is None:
                raise ValueError(f"External client not found: id={external_client_id}")

            model = Customer(**data.model_dump())
            session.add(model)
            await session.flush()

            record.local_customer_id = model.id
            record.sync_status = CLIENT_STATUS_TRANSFORMED
            await session.commit()
            await session.refresh(model)
            return _model_to_customer(model)

    async def update_customer(
        self, customer_id: uuid.UUID, data: CustomerData
    ) -> CustomerRead | None:
        """Overwrite a Customer's projected fields in place.

        Returns:
            Updated CustomerRead, or None if the customer no longer exists.
        """
        async for session in self._session_factory():
            model = await session.get(Customer, customer_id)
            if model is None:
                return None
            for field, value in data.model_dump().items():
                setattr(model, field, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_customer(model)
