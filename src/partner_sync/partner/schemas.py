"""Pydantic schemas for partner API payloads and the client listing views.

Defines:
- ClientPayload: typed view over one raw partner client record (partner field
  names are kept as aliases; the raw dict itself is stored verbatim elsewhere)
- Pagination, ClientPage: paginated/filtered listing returned by fetch_clients
- ClientStatistics, ClientStatsReport: aggregate counts returned by fetch_stats
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.partner_sync.config import CatalogEntry


class ClientPayload(BaseModel):
    """One partner client record, decoded from its raw field names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    company_name: str | None = Field(default=None, alias="ragsoc")
    accounting_code: str | None = Field(default=None, alias="coD_CONTABILE")
    vat_number: str | None = Field(default=None, alias="piva")
    address: str | None = Field(default=None, alias="indirizzo")
    postal_code: str | None = Field(default=None, alias="cap")
    city: str | None = Field(default=None, alias="comune")
    province: str | None = Field(default=None, alias="provincia")
    phone: str | None = Field(default=None, alias="tel")
    institutional_email: str | None = Field(default=None, alias="emaiL_ISTITUZIONALE")
    administrative_email: str | None = Field(default=None, alias="emaiL_AMMINISTRATIVA")
    is_client: bool | None = Field(default=None, alias="flG_CLIENTE")
    is_supplier: bool | None = Field(default=None, alias="flG_FORNITORE")
    is_prospect: bool | None = Field(default=None, alias="flG_PROSPECT")

    @field_validator(
        "company_name",
        "accounting_code",
        "vat_number",
        "address",
        "postal_code",
        "city",
        "province",
        "phone",
        "institutional_email",
        "administrative_email",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class Pagination(BaseModel):
    """Page metadata. ``total_pages`` is ``ceil(total_items / page_size)``."""

    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class ClientPage(BaseModel):
    """One page of partner clients for an organization."""

    organization: CatalogEntry
    clients: list[dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination
    search_term: str | None = None


class ClientStatistics(BaseModel):
    """Counts over the full, unfiltered client list."""

    total_clients: int = 0
    with_vat_number: int = 0
    with_email: int = 0
    with_phone: int = 0
    clients: int = 0
    suppliers: int = 0
    prospects: int = 0


class ClientStatsReport(BaseModel):
    organization: CatalogEntry
    statistics: ClientStatistics
