"""Unit tests for PartnerSyncService and build_service wiring."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.partner_sync.config import Settings
from src.partner_sync.errors import ConfigError
from src.partner_sync.sync.service import PartnerSyncService, build_service
from tests.conftest import API_BASE_URL, TOKEN_URL, FakePartner, make_client


class TestCatalogOperations:
    async def test_get_organizations(self, service: PartnerSyncService) -> None:
        result = await service.get_organizations()

        assert result.success
        assert [o.code for o in result.data] == ["41", "410", "411", "412"]

    async def test_get_organization_by_code(self, service: PartnerSyncService) -> None:
        result = await service.get_organization_by_code("412")
        assert result.data.name == "Deep Reality"

    async def test_get_unknown_organization(self, service: PartnerSyncService) -> None:
        result = await service.get_organization_by_code("nope")

        assert not result.success
        assert result.error.code == "UNKNOWN_ORGANIZATION"


class TestPartnerReads:
    async def test_fetch_clients_uses_default_page_size(
        self, service: PartnerSyncService, partner: FakePartner
    ) -> None:
        partner.set_clients("41", [make_client(i) for i in range(1, 26)])

        result = await service.fetch_clients("41")

        assert result.success
        assert len(result.data.clients) == 10
        assert result.data.pagination.total_pages == 3

    async def test_fetch_clients_caps_page_size(
        self, service: PartnerSyncService, partner: FakePartner
    ) -> None:
        partner.set_clients("41", [make_client(i) for i in range(1, 151)])

        result = await service.fetch_clients("41", limit=500)

        assert result.data.pagination.page_size == 100
        assert len(result.data.clients) == 100

    async def test_fetch_clients_unknown_code_is_structured_failure(
        self, service: PartnerSyncService
    ) -> None:
        result = await service.fetch_clients("999")

        assert not result.success
        assert result.error.code == "UNKNOWN_ORGANIZATION"
        assert result.error.message == "Invalid organization code: 999"

    async def test_fetch_clients_invalid_page(self, service: PartnerSyncService) -> None:
        result = await service.fetch_clients("41", page=0)
        assert result.error.code == "INVALID_REQUEST"

    async def test_fetch_stats_upstream_failure(
        self, service: PartnerSyncService, partner: FakePartner
    ) -> None:
        partner.data_statuses = [502]

        result = await service.fetch_stats("41")

        assert result.error.code == "EXTERNAL_API_ERROR"
        assert result.error.details["status_code"] == 502

    async def test_unexpected_exception_becomes_internal_error(
        self, service: PartnerSyncService, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            service._fetcher, "fetch_stats", AsyncMock(side_effect=RuntimeError("boom"))
        )

        result = await service.fetch_stats("41")

        assert result.error.code == "INTERNAL_ERROR"
        assert result.error.message == "boom"

    async def test_refresh_token(
        self, service: PartnerSyncService, partner: FakePartner
    ) -> None:
        first = await service.refresh_token()
        second = await service.refresh_token()

        assert first.success and second.success
        assert first.data["message"] == "Token refreshed successfully"
        assert len(partner.token_requests) == 2

    async def test_refresh_token_failure(
        self, service: PartnerSyncService, partner: FakePartner
    ) -> None:
        partner.token_status = 400

        result = await service.refresh_token()

        assert result.error.code == "AUTH_ERROR"
        assert result.error.details["status_code"] == 400


class TestSyncDelegation:
    async def test_sync_then_status(
        self, service: PartnerSyncService, partner: FakePartner
    ) -> None:
        partner.set_clients("41", [make_client(1), make_client(2), make_client(3)])

        assert (await service.initialize_catalog()).success
        sync = await service.sync_organization("41")
        status = await service.get_sync_status()
        reset = await service.reset_organization("41")

        assert sync.data.synced == 3
        assert status.data.summary["completed"] == 1
        assert reset.data.deleted_clients == 3


class TestBuildService:
    def test_missing_credentials_raise_config_error(self) -> None:
        with pytest.raises(ConfigError):
            build_service(Settings(PARTNER_CLIENT_ID="", PARTNER_API_BASE_URL=API_BASE_URL))

    async def test_wires_configured_catalog_and_page_sizes(self) -> None:
        partner = FakePartner()
        partner.set_clients("7", [make_client(i) for i in range(1, 10)])
        settings = Settings(
            PARTNER_CLIENT_ID="id",
            PARTNER_CLIENT_SECRET="secret",
            PARTNER_TOKEN_URL=TOKEN_URL,
            PARTNER_API_BASE_URL=API_BASE_URL,
            EXTERNAL_ORGANIZATIONS=[{"code": "7", "name": "Seven"}],
            CLIENTS_DEFAULT_PAGE_SIZE=4,
        )

        service = build_service(settings, session_factory=AsyncMock(), transport=partner.transport)
        organizations = await service.get_organizations()
        page = await service.fetch_clients("7")

        assert [o.code for o in organizations.data] == ["7"]
        assert len(page.data.clients) == 4
