"""
pytest configuration and fixtures for halopsa_sync tests.
"""
import json
import sys
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from halopsa_sync.audit import AuditLogger
from halopsa_sync.db import SQLiteEntityStore
from halopsa_sync.sync_engine import SyncEngine
from halopsa_sync.token_manager import TokenCache

HALO_HOST = "https://halo.example.com"

TEST_ENV = {
    "HALOPSA_CLIENT_ID": "client-abc",
    "HALOPSA_CLIENT_SECRET": "s3cret",
    "HALOPSA_TENANT": "acme",
}


class FakeHalo:
    """In-memory HaloPSA behind an httpx.MockTransport.

    Records every request; `fail` maps (method, path) to (status, body) to
    force error responses.
    """

    def __init__(self):
        self.tickets: dict[int, dict] = {}
        self.actions: list[dict] = []
        self.clients: list[dict] = []
        self.requests: list[dict] = []
        self.fail: dict[tuple, tuple] = {}
        self.token_count = 0
        self.next_ticket_id = 100

    def add_ticket(self, ticket_id: int, **fields) -> dict:
        ticket = {"id": ticket_id, "summary": "", "details": "", "status_id": 1}
        ticket.update(fields)
        self.tickets[ticket_id] = ticket
        return ticket

    def calls(self, method: str, path: str) -> list[dict]:
        return [r for r in self.requests if r["method"] == method and r["path"] == path]

    @property
    def api_calls(self) -> list[dict]:
        return [r for r in self.requests if r["path"].startswith("/api/")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        method = request.method
        body = None
        if request.content:
            if path == "/auth/token":
                body = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            else:
                body = json.loads(request.content)

        self.requests.append({
            "method": method,
            "path": path,
            "params": dict(request.url.params),
            "json": body,
            "headers": dict(request.headers),
        })

        if (method, path) in self.fail:
            status, text = self.fail[(method, path)]
            return httpx.Response(status, text=text)

        if path == "/auth/token" and method == "POST":
            self.token_count += 1
            return httpx.Response(200, json={
                "access_token": f"token-{self.token_count}",
                "token_type": "Bearer",
                "expires_in": 3600,
            })

        if path == "/api/Tickets" and method == "POST":
            saved = []
            for item in body:
                if "id" in item:
                    ticket = self.tickets.setdefault(item["id"], {"id": item["id"]})
                    ticket.update(item)
                else:
                    ticket = dict(item, id=self.next_ticket_id)
                    self.tickets[self.next_ticket_id] = ticket
                    self.next_ticket_id += 1
                saved.append(ticket)
            return httpx.Response(201, json=saved)

        if path.startswith("/api/Tickets/") and method == "GET":
            ticket_id = int(path.rsplit("/", 1)[1])
            if ticket_id not in self.tickets:
                return httpx.Response(404, text="Ticket not found")
            return httpx.Response(200, json=self.tickets[ticket_id])

        if path == "/api/Actions" and method == "POST":
            self.actions.extend(body)
            return httpx.Response(201, json=body)

        if path == "/api/Actions" and method == "GET":
            ticket_id = int(request.url.params["ticket_id"])
            found = [a for a in self.actions if a["ticket_id"] == ticket_id]
            return httpx.Response(200, json={"record_count": len(found), "actions": found})

        if path == "/api/Client" and method == "GET":
            clients = self.clients
            search = request.url.params.get("search")
            if search:
                clients = [c for c in clients if search.lower() in c["name"].lower()]
            count = int(request.url.params.get("count", len(clients)))
            return httpx.Response(200, json={"clients": clients[:count]})

        return httpx.Response(404, text=f"No route for {method} {path}")


@pytest.fixture
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


@pytest.fixture
def test_db_path(tmp_path):
    """Create a temporary database path for testing."""
    return tmp_path / "test_halopsa_sync.db"


@pytest.fixture
def store(test_db_path):
    """Entity store with the 'main' integration settings record."""
    store = SQLiteEntityStore(test_db_path)
    store.create("IntegrationSettings", {
        "setting_key": "main",
        "halopsa_auth_url": f"{HALO_HOST}/auth/",
        "halopsa_api_url": f"{HALO_HOST}/api",
    })
    return store


@pytest.fixture
def fake_halo():
    return FakeHalo()


@pytest.fixture
def transport(fake_halo):
    return httpx.MockTransport(fake_halo.handler)


@pytest.fixture
def engine(store, transport):
    """Sync engine writing audit entries inline."""
    return SyncEngine(
        store,
        audit=AuditLogger(store, synchronous=True),
        token_cache=TokenCache(),
        environ=dict(TEST_ENV),
        transport=transport,
    )


@pytest.fixture
def sample_project(store):
    """Linked project in the on_hold state."""
    return store.create("Project", {
        "id": "p1",
        "name": "Network refresh",
        "description": "Replace core switches",
        "status": "on_hold",
        "halopsa_ticket_id": "42",
        "halopsa_ticket_url": f"{HALO_HOST}/Ticket?id=42",
    })


@pytest.fixture
def unlinked_project(store):
    return store.create("Project", {
        "id": "p2",
        "name": "Office move",
        "description": "",
        "status": "planning",
        "halopsa_ticket_id": "",
    })


@pytest.fixture
def sample_task(store, sample_project):
    return store.create("Task", {
        "id": "t1",
        "project_id": sample_project["id"],
        "title": "Rack new switches",
        "status": "in_progress",
        "assigned_name": "Sam Lee",
        "description": "Two 48-port units",
    })


@pytest.fixture
def audit_entries(store):
    """Callable returning audit entries oldest first."""
    def _entries() -> list[dict]:
        return list(reversed(store.list("AuditLog")))
    return _entries


@pytest.fixture
def test_env():
    """Environment with HaloPSA client credentials."""
    return dict(TEST_ENV)


@pytest.fixture
def halo_host():
    return HALO_HOST
