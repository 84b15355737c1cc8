"""Shared test fixtures for partner sync tests.

Provides:
- FakeClock: settable POSIX clock for token expiry tests
- FakePartner: httpx.MockTransport-backed partner API (token + client list)
- InMemorySyncRepository: SyncRepository test double without a database
- make_client(): raw partner client payload builder
- Wired catalog / token provider / fetcher / engine / service fixtures
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest

from src.partner_sync.config import DEFAULT_EXTERNAL_ORGANIZATIONS
from src.partner_sync.partner.catalog import ExternalCatalog
from src.partner_sync.partner.fetcher import ExternalFetcher
from src.partner_sync.partner.token_provider import TokenProvider
from src.partner_sync.sync.engine import ReconciliationEngine
from src.partner_sync.sync.locks import OrganizationLocks
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
from src.partner_sync.sync.service import PartnerSyncService

TOKEN_URL = "https://auth.partner.test/oauth/token"
API_BASE_URL = "https://api.partner.test/api"

_CLIENTS_PATH = re.compile(r"^/api/clientifornitori/getallclienti/(?P<code>[^/]+)/cli/0$")


# ── Helpers ─────────────────────────────────────────────────────────────────


class FakeClock:
    """Callable returning a settable POSIX time."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_client(client_id: int, **overrides: Any) -> dict[str, Any]:
    """Raw partner client payload with realistic field names."""
    payload: dict[str, Any] = {
        "id": client_id,
        "ragsoc": f"Azienda {client_id} S.r.l.",
        "coD_CONTABILE": f"C{client_id:04d}",
        "piva": f"IT{client_id:011d}",
        "indirizzo": f"Via Roma {client_id}",
        "cap": "20100",
        "comune": "Milano",
        "provincia": "MI",
        "tel": "+39 02 1234567",
        "emaiL_ISTITUZIONALE": f"info{client_id}@example.it",
        "emaiL_AMMINISTRATIVA": f"amm{client_id}@example.it",
        "flG_CLIENTE": True,
        "flG_FORNITORE": False,
        "flG_PROSPECT": False,
    }
    payload.update(overrides)
    return payload


class FakePartner:
    """In-process partner API: token endpoint plus per-organization client lists.

    ``responses`` maps organization code to the JSON body returned by the
    client list endpoint. ``data_statuses`` is a queue of status codes served
    (with an empty body) before falling back to 200.
    """

    def __init__(self) -> None:
        self.responses: dict[str, Any] = {}
        self.data_statuses: list[int] = []
        self.token_status = 200
        self.token_body: Any = None
        self.expires_in = 3600
        self.token_requests: list[dict[str, list[str]]] = []
        self.data_requests: list[httpx.Request] = []
        self._issued = 0

    def set_clients(self, code: str, clients: list[dict[str, Any]]) -> None:
        self.responses[code] = {"success": True, "data": clients}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            return self._token(request)

        match = _CLIENTS_PATH.match(request.url.path)
        if match is None:
            return httpx.Response(404, json={"message": "not found"})

        self.data_requests.append(request)
        if self.data_statuses:
            return httpx.Response(self.data_statuses.pop(0), json={"message": "error"})
        body = self.responses.get(match.group("code"), {"success": True, "data": []})
        return httpx.Response(200, json=body)

    def _token(self, request: httpx.Request) -> httpx.Response:
        self.token_requests.append(parse_qs(request.content.decode()))
        if self.token_status != 200:
            return httpx.Response(self.token_status, text="invalid_client")
        if self.token_body is not None:
            return httpx.Response(200, json=self.token_body)
        self._issued += 1
        return httpx.Response(
            200,
            json={
                "access_token": f"token-{self._issued}",
                "expires_in": self.expires_in,
                "token_type": "Bearer",
            },
        )


# ── In-Memory Test Double ────────────────────────────────────────────────────


class InMemorySyncRepository:
    """In-memory SyncRepository for testing without database.

    ``fail_on_upsert`` holds external ids whose upsert raises, to exercise
    per-record failure handling. ``fail_on_link`` holds external ids whose
    next customer creation fails before anything is written.
    """

    def __init__(self) -> None:
        self.external_organizations: dict[uuid.UUID, ExternalOrganizationRead] = {}
        self.organizations: dict[uuid.UUID, OrganizationRead] = {}
        self.external_clients: dict[uuid.UUID, ExternalClientRead] = {}
        self.customers: dict[uuid.UUID, CustomerRead] = {}
        self.fail_on_upsert: set[int] = set()
        self.fail_on_link: set[int] = set()

    def _with_local_name(self, org: ExternalOrganizationRead) -> ExternalOrganizationRead:
        local = self.organizations.get(org.local_organization_id) if org.local_organization_id else None
        return org.model_copy(update={"local_organization_name": local.name if local else None})

    async def get_external_organization(self, external_code: str) -> ExternalOrganizationRead | None:
        for org in self.external_organizations.values():
            if org.external_code == external_code:
                return self._with_local_name(org)
        return None

    async def list_external_organizations(self, active_only: bool = True) -> list[ExternalOrganizationRead]:
        orgs = sorted(self.external_organizations.values(), key=lambda o: o.external_code)
        if active_only:
            orgs = [o for o in orgs if o.is_active]
        return [self._with_local_name(o) for o in orgs]

    async def find_or_create_external_organization(
        self, external_code: str, external_name: str
    ) -> tuple[ExternalOrganizationRead, bool]:
        existing = await self.get_external_organization(external_code)
        if existing is not None:
            return existing, False
        org = ExternalOrganizationRead(
            id=uuid.uuid4(), external_code=external_code, external_name=external_name
        )
        self.external_organizations[org.id] = org
        return org, True

    async def update_external_organization(
        self, external_organization_id: uuid.UUID, data: ExternalOrganizationUpdate
    ) -> ExternalOrganizationRead:
        org = self.external_organizations.get(external_organization_id)
        if org is None:
            raise ValueError(f"External organization not found: id={external_organization_id}")
        org = org.model_copy(update=data.model_dump(exclude_unset=True))
        self.external_organizations[org.id] = org
        return self._with_local_name(org)

    async def get_organization(self, organization_id: uuid.UUID) -> OrganizationRead | None:
        return self.organizations.get(organization_id)

    async def create_organization(
        self, name: str, address: str | None = None, work_location: str | None = None
    ) -> OrganizationRead:
        org = OrganizationRead(id=uuid.uuid4(), name=name, address=address, work_location=work_location)
        self.organizations[org.id] = org
        return org

    async def upsert_external_client(
        self,
        external_organization_id: uuid.UUID,
        external_id: int,
        raw_data: dict[str, Any],
        fields: ExternalClientFields,
    ) -> tuple[ExternalClientRead, bool]:
        if external_id in self.fail_on_upsert:
            raise RuntimeError(f"write failed for {external_id}")
        for record in self.external_clients.values():
            if (
                record.external_organization_id == external_organization_id
                and record.external_id == external_id
            ):
                updated = record.model_copy(
                    update={
                        **fields.model_dump(),
                        "raw_data": raw_data,
                        "last_sync_at": datetime.now(timezone.utc),
                        "sync_status": (
                            CLIENT_STATUS_TRANSFORMED
                            if record.local_customer_id
                            else CLIENT_STATUS_SYNCED
                        ),
                    }
                )
                self.external_clients[record.id] = updated
                return updated, False

        record = ExternalClientRead(
            id=uuid.uuid4(),
            external_organization_id=external_organization_id,
            external_id=external_id,
            raw_data=raw_data,
            **fields.model_dump(),
        )
        self.external_clients[record.id] = record
        return record, True

    async def delete_external_clients(self, external_organization_id: uuid.UUID) -> int:
        doomed = [
            cid for cid, c in self.external_clients.items()
            if c.external_organization_id == external_organization_id
        ]
        for cid in doomed:
            del self.external_clients[cid]
        return len(doomed)

    async def create_linked_customer(
        self, external_client_id: uuid.UUID, data: CustomerData
    ) -> CustomerRead:
        record = self.external_clients.get(external_client_id)
        if record is None:
            raise ValueError(f"External client not found: id={external_client_id}")
        if record.external_id in self.fail_on_link:
            self.fail_on_link.discard(record.external_id)
            raise RuntimeError(f"link failed for {record.external_id}")
        customer = CustomerRead(id=uuid.uuid4(), **data.model_dump())
        self.customers[customer.id] = customer
        self.external_clients[record.id] = record.model_copy(
            update={"local_customer_id": customer.id, "sync_status": CLIENT_STATUS_TRANSFORMED}
        )
        return customer

    async def update_customer(self, customer_id: uuid.UUID, data: CustomerData) -> CustomerRead | None:
        if customer_id not in self.customers:
            return None
        customer = CustomerRead(id=customer_id, **data.model_dump())
        self.customers[customer_id] = customer
        return customer

    def organization_by_code(self, code: str) -> ExternalOrganizationRead:
        return next(o for o in self.external_organizations.values() if o.external_code == code)

    def clients_for(self, code: str) -> list[ExternalClientRead]:
        org = self.organization_by_code(code)
        return [c for c in self.external_clients.values() if c.external_organization_id == org.id]


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def partner() -> FakePartner:
    return FakePartner()


@pytest.fixture
def catalog() -> ExternalCatalog:
    return ExternalCatalog(DEFAULT_EXTERNAL_ORGANIZATIONS)


@pytest.fixture
def token_provider(partner: FakePartner, clock: FakeClock) -> TokenProvider:
    return TokenProvider(
        "client-id",
        "client-secret",
        TOKEN_URL,
        clock=clock,
        transport=partner.transport,
    )


@pytest.fixture
def fetcher(
    token_provider: TokenProvider, catalog: ExternalCatalog, partner: FakePartner
) -> ExternalFetcher:
    return ExternalFetcher(token_provider, catalog, API_BASE_URL, transport=partner.transport)


@pytest.fixture
def repository() -> InMemorySyncRepository:
    return InMemorySyncRepository()


@pytest.fixture
def engine(
    repository: InMemorySyncRepository,
    fetcher: ExternalFetcher,
    catalog: ExternalCatalog,
) -> ReconciliationEngine:
    return ReconciliationEngine(repository, fetcher, catalog, OrganizationLocks())


@pytest.fixture
def service(
    catalog: ExternalCatalog,
    token_provider: TokenProvider,
    fetcher: ExternalFetcher,
    engine: ReconciliationEngine,
) -> PartnerSyncService:
    return PartnerSyncService(catalog, token_provider, fetcher, engine)
