"""Sync bookkeeping tables -- external organizations and shadow client rows.

Two SQLAlchemy models:
- ExternalOrganization: one partner-side tenant, its sync status and counters
- ExternalClient: verbatim partner payload plus normalized display fields,
  unique per (external_organization_id, external_id)

Deleting an ExternalOrganization cascades to its ExternalClient rows. The
link from ExternalClient to Customer is non-owning: deleting the Customer
nulls the link and the engine re-derives it on the next sync.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.partner_sync.core.database import Base


class ExternalOrganization(Base):
    """Partner-side tenant tracked for sync purposes.

    ``external_code`` is unique and never changes after creation.
    ``sync_status`` follows pending -> syncing -> completed | failed.
    """

    __tablename__ = "external_organizations"
    __table_args__ = (
        CheckConstraint(
            "sync_status IN ('pending', 'syncing', 'completed', 'failed')",
            name="ck_external_organizations_sync_status",
        ),
        CheckConstraint(
            "clients_count >= 0", name="ck_external_organizations_clients_count"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    external_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    external_name: Mapped[str] = mapped_column(String(300), nullable=False)
    local_organization_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
    )
    last_sync_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sync_status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default=text("'pending'"), nullable=False
    )
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    clients_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )


class ExternalClient(Base):
    """Shadow row mirroring one partner client for one external organization."""

    __tablename__ = "external_clients"
    __table_args__ = (
        UniqueConstraint(
            "external_organization_id",
            "external_id",
            name="uq_external_client_org_external_id",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    external_organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("external_organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    raw_data: Mapped[dict] = mapped_column(
        JSONB, default=dict, server_default=text("'{}'::jsonb"), nullable=False
    )

    company_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    accounting_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vat_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    city: Mapped[str | None] = mapped_column(String(200), nullable=True)
    province: Mapped[str | None] = mapped_column(String(50), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    institutional_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    administrative_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    is_client: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_supplier: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_prospect: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    local_customer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
    )
    last_sync_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sync_status: Mapped[str] = mapped_column(
        String(20), default="synced", server_default=text("'synced'"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )
