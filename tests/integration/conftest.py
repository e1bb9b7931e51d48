"""Integration-test fixtures.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool (created at import time) remains valid across
the entire test session.

Requires a live Postgres at DATABASE_URL with `alembic upgrade head` applied.
"""

import uuid
from dataclasses import dataclass

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.ng_gateway.auth.jwt_handler import create_access_token


@dataclass(frozen=True)
class ApiUser:
    id: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(self.id)}"}


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client — keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(scope="session")
def users() -> dict[str, ApiUser]:
    """Fresh ids per run so reruns never collide with leftover rows."""
    suffix = uuid.uuid4().hex[:8]
    return {role: ApiUser(f"{role}_{suffix}") for role in ("buyer", "seller", "stranger")}
