"""Partner API client fetcher with local search, pagination and statistics.

The partner endpoint is not paginated: one GET returns the full client list
for an organization. Filtering, paging and statistics are computed locally
over that list by the pure helpers at the bottom of this module.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from src.partner_sync.errors import (
    ConfigError,
    ExternalApiError,
    InvalidRequestError,
    MalformedResponseError,
)
from src.partner_sync.partner.catalog import ExternalCatalog
from src.partner_sync.partner.schemas import (
    ClientPage,
    ClientPayload,
    ClientStatistics,
    ClientStatsReport,
    Pagination,
)
from src.partner_sync.partner.token_provider import TokenProvider

if TYPE_CHECKING:
    from src.partner_sync.config import Settings

logger = structlog.get_logger(__name__)


class _UnauthorizedResponse(Exception):
    """Partner data endpoint answered 401; the token cache has been cleared."""


class ExternalFetcher:
    """Authenticated reader of partner client lists.

    Args:
        token_provider: Source of bearer tokens.
        catalog: Registry used to validate organization codes.
        api_base_url: Partner API base URL (no trailing slash needed).
        timeout: Data request timeout in seconds.
        strict_envelope: Surface MalformedResponseError instead of
            degrading to an empty client list.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        catalog: ExternalCatalog,
        api_base_url: str,
        *,
        timeout: float = 15.0,
        strict_envelope: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_base_url:
            raise ConfigError(
                "Missing partner OAuth2 configuration: api_base_url",
                missing=["api_base_url"],
            )
        self._tokens = token_provider
        self._catalog = catalog
        self._base_url = api_base_url.rstrip("/")
        self._timeout = timeout
        self._strict = strict_envelope
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        token_provider: TokenProvider,
        catalog: ExternalCatalog,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ExternalFetcher:
        return cls(
            token_provider,
            catalog,
            settings.PARTNER_API_BASE_URL,
            timeout=settings.PARTNER_API_TIMEOUT,
            strict_envelope=settings.PARTNER_STRICT_ENVELOPE,
            transport=transport,
        )

    @property
    def catalog(self) -> ExternalCatalog:
        return self._catalog

    # ── Public API ───────────────────────────────────────────────────────────

    async def fetch_all_clients(self, organization_code: str) -> list[dict[str, Any]]:
        """Fetch the full, unfiltered client list for an organization.

        Raises:
            UnknownOrganizationError: Code is not in the catalog.
            AuthError: Token acquisition failed.
            ExternalApiError: Non-2xx response, transport failure, or a
                second 401 after the token was refreshed.
            MalformedResponseError: Unexpected envelope and strict mode is on.
        """
        self._catalog.require(organization_code)
        url = f"{self._base_url}/clientifornitori/getallclienti/{organization_code}/cli/0"

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(2),
                retry=retry_if_exception_type(_UnauthorizedResponse),
                reraise=True,
            ):
                with attempt:
                    payload = await self._get(url, organization_code)
        except _UnauthorizedResponse as exc:
            logger.error(
                "partner.clients_fetch_failed",
                organization_code=organization_code,
                status_code=401,
            )
            raise ExternalApiError(
                "Partner API rejected the refreshed access token",
                status_code=401,
                organization_code=organization_code,
            ) from exc

        try:
            clients = decode_client_envelope(payload, organization_code)
        except MalformedResponseError as exc:
            if self._strict:
                logger.error(
                    "partner.malformed_response",
                    organization_code=organization_code,
                    error=exc.message,
                )
                raise
            logger.warning(
                "partner.malformed_response_degraded",
                organization_code=organization_code,
                error=exc.message,
            )
            clients = []

        logger.info(
            "partner.clients_fetched",
            organization_code=organization_code,
            count=len(clients),
        )
        return clients

    async def fetch_clients(
        self,
        organization_code: str,
        page: int = 1,
        page_size: int = 50,
        search: str | None = None,
    ) -> ClientPage:
        """Fetch, filter and paginate the client list of one organization."""
        if page < 1 or page_size < 1:
            raise InvalidRequestError(
                "page and page_size must be positive integers",
                page=page,
                page_size=page_size,
            )
        organization = self._catalog.require(organization_code)
        clients = await self.fetch_all_clients(organization_code)
        filtered = filter_clients(clients, search)
        page_items, pagination = paginate(filtered, page, page_size)
        return ClientPage(
            organization=organization,
            clients=page_items,
            pagination=pagination,
            search_term=search or None,
        )

    async def fetch_stats(self, organization_code: str) -> ClientStatsReport:
        """Compute statistics over the full, unfiltered client list."""
        organization = self._catalog.require(organization_code)
        clients = await self.fetch_all_clients(organization_code)
        return ClientStatsReport(
            organization=organization,
            statistics=compute_statistics(clients),
        )

    # ── HTTP ─────────────────────────────────────────────────────────────────

    async def _get(self, url: str, organization_code: str) -> Any:
        token = await self._tokens.get_access_token()
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.get(
                    url,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            logger.error(
                "partner.clients_fetch_failed",
                organization_code=organization_code,
                error=str(exc),
            )
            raise ExternalApiError(
                f"Failed to fetch clients: {exc}",
                organization_code=organization_code,
            ) from exc

        if response.status_code == 401:
            logger.warning(
                "partner.unauthorized_retry",
                organization_code=organization_code,
            )
            self._tokens.clear_token_cache()
            raise _UnauthorizedResponse()

        if not response.is_success:
            logger.error(
                "partner.clients_fetch_failed",
                organization_code=organization_code,
                status_code=response.status_code,
            )
            raise ExternalApiError(
                f"Failed to fetch clients: HTTP {response.status_code}",
                status_code=response.status_code,
                organization_code=organization_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                "Partner response is not valid JSON",
                status_code=response.status_code,
                organization_code=organization_code,
            ) from exc


# ── Pure helpers ─────────────────────────────────────────────────────────────


def decode_client_envelope(
    payload: Any, organization_code: str | None = None
) -> list[dict[str, Any]]:
    """Unwrap ``{success, data: [...]}`` (or a bare list) into client dicts.

    Non-dict items are dropped with a warning. Any other shape raises
    MalformedResponseError; the caller decides whether to degrade.
    """
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict) and isinstance(payload.get("data"), list):
        if payload.get("success") is False:
            raise MalformedResponseError(
                "Partner response reported success=false",
                organization_code=organization_code,
            )
        items = payload["data"]
    else:
        raise MalformedResponseError(
            f"Unexpected partner response shape: {type(payload).__name__}",
            organization_code=organization_code,
        )

    clients = [item for item in items if isinstance(item, dict)]
    dropped = len(items) - len(clients)
    if dropped:
        logger.warning(
            "partner.non_object_items_dropped",
            organization_code=organization_code,
            dropped=dropped,
        )
    return clients


def filter_clients(
    clients: list[dict[str, Any]], search: str | None
) -> list[dict[str, Any]]:
    """Case-insensitive substring match on company name and external id."""
    if not search or not search.strip():
        return list(clients)
    needle = search.strip().lower()
    return [
        client
        for client in clients
        if needle in str(client.get("ragsoc") or "").lower()
        or needle in str(client.get("id", "")).lower()
    ]


def paginate(
    items: list[dict[str, Any]], page: int, page_size: int
) -> tuple[list[dict[str, Any]], Pagination]:
    """Slice ``items`` for ``page`` (1-based) and build the page metadata."""
    if page < 1 or page_size < 1:
        raise InvalidRequestError(
            "page and page_size must be positive integers",
            page=page,
            page_size=page_size,
        )
    total_items = len(items)
    total_pages = math.ceil(total_items / page_size)
    start = (page - 1) * page_size
    return items[start : start + page_size], Pagination(
        current_page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1 and total_items > 0,
    )


def compute_statistics(clients: list[dict[str, Any]]) -> ClientStatistics:
    stats = ClientStatistics(total_clients=len(clients))
    for raw in clients:
        try:
            client = ClientPayload.model_validate(raw)
        except ValueError:
            # Records without a usable id still count toward the total
            continue
        stats.with_vat_number += client.vat_number is not None
        stats.with_email += bool(
            client.institutional_email or client.administrative_email
        )
        stats.with_phone += client.phone is not None
        stats.clients += client.is_client is True
        stats.suppliers += client.is_supplier is True
        stats.prospects += client.is_prospect is True
    return stats
