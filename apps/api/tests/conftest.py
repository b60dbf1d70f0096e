from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tasktrack_api.db.models import Base
from tasktrack_api.db.session import create_sessionmaker
from tasktrack_api.main import create_app
from tasktrack_api.settings import get_settings

TEST_JWT_SECRET = "test-secret-for-tasktrack"
DEFAULT_PASSWORD = "Passw0rdOK"


@pytest.fixture(autouse=True)
def test_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'tasktrack.db'}")
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("PASSWORD_BCRYPT_ROUNDS", "4")
    get_settings.cache_clear()
    create_sessionmaker.cache_clear()
    yield get_settings()
    get_settings.cache_clear()
    create_sessionmaker.cache_clear()


@pytest_asyncio.fixture
async def db_sessionmaker(test_settings):
    sessionmaker = create_sessionmaker(test_settings.database_url)
    engine = sessionmaker.kw["bind"]
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield sessionmaker
    await engine.dispose()


@pytest.fixture
def app(db_sessionmaker):
    return create_app()


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def register_user(
    client: AsyncClient,
    username: str = "alice",
    email: str | None = None,
    password: str = DEFAULT_PASSWORD,
) -> tuple[int, str]:
    """Register through the API and return ``(user_id, token)`` with the cookie jar left empty."""
    response = await client.post(
        "/auth/register",
        json={
            "username": username,
            "email": email or f"{username}@example.com",
            "password": password,
        },
    )
    assert response.status_code == 201, response.text
    token = response.cookies.get(get_settings().auth_cookie_name)
    assert token
    client.cookies.clear()
    return response.json()["user"]["id"], token


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
