"""Public facade over the catalog, fetcher and reconciliation engine.

Every operation returns a ServiceResult; nothing in the PartnerSyncError
hierarchy escapes. ``build_service()`` wires the production dependencies
from Settings.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.partner_sync.config import Settings
from src.partner_sync.core.database import get_session
from src.partner_sync.errors import PartnerSyncError
from src.partner_sync.partner.catalog import ExternalCatalog
from src.partner_sync.partner.fetcher import ExternalFetcher
from src.partner_sync.partner.token_provider import TokenProvider
from src.partner_sync.schemas.results import ServiceResult
from src.partner_sync.sync.engine import ReconciliationEngine
from src.partner_sync.sync.locks import OrganizationLocks
from src.partner_sync.sync.repository import SyncRepository

logger = structlog.get_logger(__name__)


class PartnerSyncService:
    """Operations exposed to the HTTP layer and the operator script.

    Args:
        catalog: Registry of partner organizations.
        token_provider: Partner access token cache.
        fetcher: Partner client list reader.
        engine: Reconciliation engine.
        default_page_size: Page size used when the caller passes none.
        max_page_size: Upper bound applied to caller-supplied page sizes.
    """

    def __init__(
        self,
        catalog: ExternalCatalog,
        token_provider: TokenProvider,
        fetcher: ExternalFetcher,
        engine: ReconciliationEngine,
        *,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ) -> None:
        self._catalog = catalog
        self._tokens = token_provider
        self._fetcher = fetcher
        self._engine = engine
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    # ── Catalog ─────────────────────────────────────────────────────────────

    async def get_organizations(self) -> ServiceResult:
        return ServiceResult.ok(self._catalog.list_organizations())

    async def get_organization_by_code(self, code: str) -> ServiceResult:
        try:
            return ServiceResult.ok(self._catalog.require(code))
        except PartnerSyncError as exc:
            return ServiceResult(success=False, error=exc.to_error())

    # ── Partner Reads ───────────────────────────────────────────────────────

    async def fetch_clients(
        self,
        code: str,
        page: int = 1,
        limit: int | None = None,
        search: str | None = None,
    ) -> ServiceResult:
        """One page of partner clients, optionally filtered by ``search``.

        ``limit`` defaults to the configured page size and is capped at the
        configured maximum.
        """
        page_size = self._default_page_size if limit is None else min(limit, self._max_page_size)
        return await self._call(
            "partner.fetch_clients_failed",
            self._fetcher.fetch_clients(code, page=page, page_size=page_size, search=search),
            organization_code=code,
        )

    async def fetch_stats(self, code: str) -> ServiceResult:
        return await self._call(
            "partner.fetch_stats_failed",
            self._fetcher.fetch_stats(code),
            organization_code=code,
        )

    async def refresh_token(self) -> ServiceResult:
        """Force a new partner access token."""
        result = await self._call("partner.token_refresh_failed", self._tokens.refresh())
        if not result.success:
            return result
        return ServiceResult.ok(
            {
                "message": "Token refreshed successfully",
                "expires_at": self._tokens.expires_at,
            }
        )

    # ── Sync ────────────────────────────────────────────────────────────────

    async def initialize_catalog(self) -> ServiceResult:
        return await self._engine.initialize_catalog()

    async def sync_organization(self, code: str) -> ServiceResult:
        return await self._engine.sync_organization(code)

    async def sync_all(self) -> ServiceResult:
        return await self._engine.sync_all()

    async def get_sync_status(self) -> ServiceResult:
        return await self._engine.get_sync_status()

    async def reset_organization(self, code: str) -> ServiceResult:
        return await self._engine.reset_organization(code)

    async def _call(self, event: str, operation: Any, **context: Any) -> ServiceResult:
        try:
            return ServiceResult.ok(await operation)
        except PartnerSyncError as exc:
            logger.error(event, code=exc.code, error=exc.message, **context)
            return ServiceResult(success=False, error=exc.to_error())
        except Exception as exc:
            logger.error(event, error=str(exc), exc_info=True, **context)
            return ServiceResult.fail("INTERNAL_ERROR", str(exc) or type(exc).__name__, **context)


def build_service(
    settings: Settings,
    session_factory: Any = get_session,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PartnerSyncService:
    """Wire the production service graph.

    Raises:
        ConfigError: Partner credentials or the API base URL are missing, or
            the catalog contains duplicate codes.
    """
    catalog = ExternalCatalog.from_settings(settings)
    token_provider = TokenProvider.from_settings(settings, transport=transport)
    fetcher = ExternalFetcher.from_settings(
        settings, token_provider, catalog, transport=transport
    )
    engine = ReconciliationEngine(
        SyncRepository(session_factory),
        fetcher,
        catalog,
        OrganizationLocks(),
    )
    logger.info("sync.service_built", organizations=catalog.codes())
    return PartnerSyncService(
        catalog,
        token_provider,
        fetcher,
        engine,
        default_page_size=settings.CLIENTS_DEFAULT_PAGE_SIZE,
        max_page_size=settings.CLIENTS_MAX_PAGE_SIZE,
    )
