"""
Shared test fixtures.

The application reads its settings at import time, so the test database,
admin password and rate-limit switch are put into the environment before
anything from visitor_tracker is imported.
"""

import asyncio
import os
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, List

_TEST_DIR = Path(tempfile.mkdtemp(prefix="visitor-tracker-tests-"))
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{_TEST_DIR / 'app.db'}"
ADMIN_PASSWORD = "secret"

os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["ADMIN_PASSWORD"] = ADMIN_PASSWORD
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from visitor_tracker.db.models import Visitor, utcnow  # noqa: E402
from visitor_tracker.db.session import build_engine, build_session_factory  # noqa: E402
from visitor_tracker.services.geo_resolver import (  # noqa: E402
    GeoResolver,
    IpApiProvider,
    IpWhoIsProvider,
)


class FakeSubscriber:
    """Stands in for a WebSocket: records every message sent to it."""

    def __init__(self, fail: bool = False):
        self.messages: List[dict] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("connection lost")
        self.messages.append(data)

    def events(self, name: str) -> List[dict]:
        return [message["data"] for message in self.messages if message["event"] == name]


def snapshot_of(items=()) -> Callable:
    """Snapshot loader for Broadcaster.join_admin returning a fixed list."""

    async def load() -> List[dict]:
        return list(items)

    return load


def mock_http_client(handler: Callable) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler(request)."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def ipwhois_body(ip: str = "8.8.8.8", **overrides) -> dict:
    body = {
        "ip": ip,
        "success": True,
        "country": "United States",
        "country_code": "US",
        "region": "California",
        "city": "Mountain View",
        "postal": "94043",
        "latitude": 37.422,
        "longitude": -122.084,
        "connection": {"isp": "Google LLC", "org": "Google Public DNS"},
        "timezone": {"id": "America/Los_Angeles"},
    }
    body.update(overrides)
    return body


def failing_resolver(timeout: float = 1.0) -> GeoResolver:
    """Resolver whose providers all answer 503; never touches the network."""
    client = mock_http_client(lambda request: httpx.Response(503))
    return GeoResolver([IpApiProvider(), IpWhoIsProvider()], client, timeout=timeout)


def fallback_resolver(timeout: float = 1.0) -> GeoResolver:
    """ip-api.com times out, ipwho.is answers with Mountain View."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "ip-api.com":
            raise httpx.ConnectTimeout("timed out", request=request)
        return httpx.Response(200, json=ipwhois_body(request.url.path.strip("/")))

    return GeoResolver(
        [IpApiProvider(), IpWhoIsProvider()], mock_http_client(handler), timeout=timeout
    )


def visitor_rows(count: int, ip: str = "203.0.113.7", **fields) -> List[Visitor]:
    """Visitors one minute apart, oldest first; city is 'City <n>'."""
    start = utcnow() - timedelta(minutes=count)
    return [
        Visitor(ip=ip, city=f"City {n}", timestamp=start + timedelta(minutes=n), **fields)
        for n in range(count)
    ]


async def _insert(database_url: str, rows: Iterable[Visitor]) -> None:
    engine = build_engine(database_url)
    try:
        async with build_session_factory(engine)() as session:
            session.add_all(list(rows))
            await session.commit()
    finally:
        await engine.dispose()


async def _reset(database_url: str) -> None:
    engine = build_engine(database_url)
    try:
        async with engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.drop_all)
            await connection.run_sync(SQLModel.metadata.create_all)
    finally:
        await engine.dispose()


def seed_app_database(rows: Iterable[Visitor]) -> None:
    """Insert rows into the database the application under test uses."""
    asyncio.run(_insert(TEST_DATABASE_URL, rows))


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh SQLite file with the schema created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'visitors.db'}")
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def app_client():
    """
    TestClient over the real application with an empty database.

    The startup resolver is replaced with one that never reaches the
    network; tests that need provider answers swap in their own.
    """
    asyncio.run(_reset(TEST_DATABASE_URL))

    from visitor_tracker.main import app

    with TestClient(app) as client:
        app.state.resolver = failing_resolver()
        yield client
