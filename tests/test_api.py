"""Integration tests for the HTTP layer.

Builds a minimal FastAPI app with the v1 routers and a PartnerSyncService
backed by InMemorySyncRepository and FakePartner on app.state, then checks
the ServiceResult -> HTTP status mapping and response envelopes.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.partner_sync.api.deps import status_for
from src.partner_sync.api.middleware.logging import LoggingMiddleware
from src.partner_sync.api.v1.router import router
from src.partner_sync.schemas.results import ServiceResult
from src.partner_sync.sync.service import PartnerSyncService
from tests.conftest import FakePartner, make_client


def _make_app(service: PartnerSyncService | None) -> FastAPI:
    app = FastAPI()
    app.add_middleware(LoggingMiddleware)
    app.include_router(router)
    app.state.sync_service = service
    return app


@pytest_asyncio.fixture
async def client(service: PartnerSyncService):
    transport = ASGITransport(app=_make_app(service))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("UNKNOWN_ORGANIZATION", 404),
            ("NOT_FOUND", 404),
            ("INVALID_REQUEST", 400),
            ("SYNC_IN_PROGRESS", 409),
            ("AUTH_ERROR", 502),
            ("EXTERNAL_API_ERROR", 502),
            ("MALFORMED_RESPONSE", 502),
            ("SYNC_ERROR", 502),
            ("PARTIAL_SYNC", 207),
            ("INTERNAL_ERROR", 500),
            ("SOMETHING_NEW", 500),
        ],
    )
    def test_error_codes(self, code: str, expected: int) -> None:
        assert status_for(ServiceResult.fail(code, "x")) == expected

    def test_success_is_200(self) -> None:
        assert status_for(ServiceResult.ok()) == 200


class TestExternalClientsEndpoints:
    async def test_list_organizations(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/external-clients/organizations")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"][0] == {"code": "41", "name": "Sinergia Consulenze"}
        assert "X-Request-ID" in response.headers

    async def test_unknown_organization_is_404(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/external-clients/organizations/999")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "UNKNOWN_ORGANIZATION"

    async def test_list_clients_with_search(
        self, client: AsyncClient, partner: FakePartner
    ) -> None:
        partner.set_clients(
            "41", [make_client(1, ragsoc="Alfa"), make_client(2, ragsoc="Beta")]
        )

        response = await client.get(
            "/api/v1/external-clients/organizations/41/clients",
            params={"search": "BETA", "limit": 5},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [c["id"] for c in data["clients"]] == [2]
        assert data["pagination"]["total_items"] == 1
        assert data["search_term"] == "BETA"

    async def test_page_zero_rejected(self, client: AsyncClient) -> None:
        response = await client.get(
            "/api/v1/external-clients/organizations/41/clients", params={"page": 0}
        )
        assert response.status_code == 422

    async def test_upstream_failure_is_502(
        self, client: AsyncClient, partner: FakePartner
    ) -> None:
        partner.data_statuses = [500]

        response = await client.get("/api/v1/external-clients/organizations/41/stats")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "EXTERNAL_API_ERROR"

    async def test_refresh_token(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/external-clients/refresh-token")

        assert response.status_code == 200
        assert response.json()["data"]["message"] == "Token refreshed successfully"


class TestSyncEndpoints:
    async def test_initialize_sync_status_reset(
        self, client: AsyncClient, partner: FakePartner
    ) -> None:
        partner.set_clients("41", [make_client(1), make_client(2), make_client(3)])

        init = await client.post("/api/v1/sync/initialize")
        sync = await client.post("/api/v1/sync/organizations/41")
        status = await client.get("/api/v1/sync/status")
        reset = await client.delete("/api/v1/sync/organizations/41")

        assert init.status_code == 200
        assert sync.status_code == 200
        assert sync.json()["data"]["synced"] == 3
        assert status.json()["data"]["summary"]["completed"] == 1
        assert reset.status_code == 200
        assert reset.json()["data"]["deleted_clients"] == 3

    async def test_sync_uninitialized_is_404(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/sync/organizations/41")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_sync_all_partial_is_207(
        self, client: AsyncClient, partner: FakePartner
    ) -> None:
        partner.data_statuses = [500]

        response = await client.post("/api/v1/sync/all")

        assert response.status_code == 207
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "PARTIAL_SYNC"
        assert body["data"]["failed"] == 1
        assert body["data"]["successful"] == 3
        assert len(body["data"]["results"]) == 4


class TestNotInitialized:
    async def test_503_without_service(self) -> None:
        transport = ASGITransport(app=_make_app(None))
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/api/v1/sync/status")

        assert response.status_code == 503

    async def test_liveness_without_service(self) -> None:
        transport = ASGITransport(app=_make_app(None))
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
