"""Create local organization/customer tables and partner sync bookkeeping.

Revision ID: 001_partner_sync
Revises:
Create Date: 2026-10-19

Creates four tables:
- organizations: local organizations (only the columns the sync engine writes)
- customers: local customers, derived from partner clients on sync
- external_organizations: partner-side tenants with sync status and counters
- external_clients: verbatim partner payload plus normalized fields, unique
  per (external_organization_id, external_id)

external_clients rows cascade with their external organization. The
customer link is nulled when the customer is deleted.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = "001_partner_sync"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # ── organizations ───────────────────────────────────────────────────

    op.create_table(
        "organizations",
        _id_column(),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("work_location", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
    )

    # ── customers ───────────────────────────────────────────────────────

    op.create_table(
        "customers",
        _id_column(),
        sa.Column(
            "organization_id",
            UUID(as_uuid=True),
            sa.ForeignKey(
                "organizations.id",
                ondelete="CASCADE",
                name="fk_customers_organization_id_organizations",
            ),
            nullable=False,
        ),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("contact_email", sa.String(320), nullable=True),
        sa.Column("contact_phone", sa.String(50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("work_location", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_customers_organization_id", "customers", ["organization_id"]
    )

    # ── external_organizations ──────────────────────────────────────────

    op.create_table(
        "external_organizations",
        _id_column(),
        sa.Column("external_code", sa.String(50), nullable=False),
        sa.Column("external_name", sa.String(300), nullable=False),
        sa.Column(
            "local_organization_id",
            UUID(as_uuid=True),
            sa.ForeignKey(
                "organizations.id",
                ondelete="SET NULL",
                name="fk_external_organizations_local_organization_id_organizations",
            ),
            nullable=True,
        ),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "sync_status",
            sa.String(20),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        sa.Column("sync_error", sa.Text(), nullable=True),
        sa.Column("clients_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "external_code", name="uq_external_organizations_external_code"
        ),
        sa.CheckConstraint(
            "sync_status IN ('pending', 'syncing', 'completed', 'failed')",
            name="ck_external_organizations_sync_status",
        ),
        sa.CheckConstraint(
            "clients_count >= 0", name="ck_external_organizations_clients_count"
        ),
    )

    # ── external_clients ────────────────────────────────────────────────

    op.create_table(
        "external_clients",
        _id_column(),
        sa.Column(
            "external_organization_id",
            UUID(as_uuid=True),
            sa.ForeignKey(
                "external_organizations.id",
                ondelete="CASCADE",
                name="fk_external_clients_external_organization_id_external_organizations",
            ),
            nullable=False,
        ),
        sa.Column("external_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "raw_data",
            JSONB(),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("company_name", sa.String(300), nullable=True),
        sa.Column("accounting_code", sa.String(100), nullable=True),
        sa.Column("vat_number", sa.String(50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        sa.Column("city", sa.String(200), nullable=True),
        sa.Column("province", sa.String(50), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("institutional_email", sa.String(320), nullable=True),
        sa.Column("administrative_email", sa.String(320), nullable=True),
        sa.Column("is_client", sa.Boolean(), nullable=True),
        sa.Column("is_supplier", sa.Boolean(), nullable=True),
        sa.Column("is_prospect", sa.Boolean(), nullable=True),
        sa.Column(
            "local_customer_id",
            UUID(as_uuid=True),
            sa.ForeignKey(
                "customers.id",
                ondelete="SET NULL",
                name="fk_external_clients_local_customer_id_customers",
            ),
            nullable=True,
        ),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "sync_status",
            sa.String(20),
            server_default=sa.text("'synced'"),
            nullable=False,
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "external_organization_id",
            "external_id",
            name="uq_external_client_org_external_id",
        ),
    )
    op.create_index(
        "ix_external_clients_external_organization_id",
        "external_clients",
        ["external_organization_id"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_external_clients_external_organization_id", table_name="external_clients"
    )
    op.drop_table("external_clients")
    op.drop_table("external_organizations")
    op.drop_index("ix_customers_organization_id", table_name="customers")
    op.drop_table("customers")
    op.drop_table("organizations")
