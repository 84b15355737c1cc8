"""Deterministic projections from partner client payloads to local records.

Defines:
- project_client_fields(): ClientPayload -> normalized ExternalClient columns
- build_full_address(): street, postal code, city, "(province)" joined by commas
- customer_fields(): ClientPayload -> CustomerData for the derived Customer
- local_organization_name() / local_organization_address(): provenance-marked
  values for the local Organization created on first sync
"""

from __future__ import annotations

import uuid

from src.partner_sync.partner.schemas import ClientPayload
from src.partner_sync.sync.schemas import CustomerData, ExternalClientFields

LOCAL_ORGANIZATION_SUFFIX = " (Synced)"
LOCAL_ORGANIZATION_WORK_LOCATION = "External API"


def project_client_fields(payload: ClientPayload) -> ExternalClientFields:
    """Copy the normalized display fields of a partner client."""
    return ExternalClientFields(
        company_name=payload.company_name,
        accounting_code=payload.accounting_code,
        vat_number=payload.vat_number,
        address=payload.address,
        postal_code=payload.postal_code,
        city=payload.city,
        province=payload.province,
        phone=payload.phone,
        institutional_email=payload.institutional_email,
        administrative_email=payload.administrative_email,
        is_client=payload.is_client,
        is_supplier=payload.is_supplier,
        is_prospect=payload.is_prospect,
    )


def build_full_address(
    street: str | None,
    postal_code: str | None,
    city: str | None,
    province: str | None,
) -> str | None:
    """Join the non-empty address parts, or return None if all are empty.

    >>> build_full_address("Via Roma 1", "20100", "Milano", "MI")
    'Via Roma 1, 20100, Milano, (MI)'
    """
    parts = [part for part in (street, postal_code, city) if part]
    if province:
        parts.append(f"({province})")
    return ", ".join(parts) if parts else None


def customer_fields(
    payload: ClientPayload, organization_id: uuid.UUID
) -> CustomerData:
    """Project a partner client onto the fields of its derived Customer."""
    return CustomerData(
        organization_id=organization_id,
        name=payload.company_name or f"Client {payload.id}",
        description=f"Synced from external API - ID: {payload.id}",
        contact_email=payload.institutional_email or payload.administrative_email,
        contact_phone=payload.phone,
        address=build_full_address(
            payload.address, payload.postal_code, payload.city, payload.province
        ),
        work_location=payload.city,
        is_active=payload.is_client is True,
    )


def local_organization_name(external_name: str) -> str:
    return f"{external_name}{LOCAL_ORGANIZATION_SUFFIX}"


def local_organization_address(external_code: str) -> str:
    return f"External Organization - Code: {external_code}"
