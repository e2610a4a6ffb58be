"""Pytest fixtures."""

from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from adagent.config import get_settings
from adagent.database import Base, get_session
from adagent.main import app
from adagent.models.organization import Organization
from adagent.services.api_keys import _encryptor, create_api_key
from adagent.services.audit import get_audit_writer
from adagent.services.budget import get_budget_locks
from adagent.services.ratelimit import get_rate_limiter

AGENT = "/api/v1/agent"


def _clear_caches() -> None:
    get_settings.cache_clear()
    _encryptor.cache_clear()
    get_rate_limiter.cache_clear()
    get_audit_writer.cache_clear()
    get_budget_locks.cache_clear()


@pytest.fixture(autouse=True)
def _isolated_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    """Reset cached singletons and point file settings at the test directory.

    Parameters
    ----------
    tmp_path : Path
        Temporary path fixture.
    monkeypatch : pytest.MonkeyPatch
        Environment monkeypatch helper.

    Yields
    ------
    None
        Applies environment overrides for each test.
    """
    _clear_caches()
    monkeypatch.setenv("ADAGENT_MASTER_KEY_PATH", str(tmp_path / "master.key"))
    monkeypatch.setenv(
        "ADAGENT_AUDIT_DEAD_LETTER_PATH", str(tmp_path / "audit_dead_letter.jsonl")
    )
    monkeypatch.setenv("ADAGENT_AUDIT_RETRY_BACKOFF_SECONDS", "0")
    yield
    _clear_caches()


@pytest.fixture()
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Create a per-test SQLite database.

    Parameters
    ----------
    tmp_path : Path
        Temporary directory for the database file.

    Yields
    ------
    async_sessionmaker[AsyncSession]
        Session factory bound to the test database.
    """
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(database_url, future=True)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield factory
    await engine.dispose()


@pytest.fixture()
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncClient]:
    """Create a test HTTP client whose requests and audit writes hit SQLite.

    Parameters
    ----------
    session_factory : async_sessionmaker[AsyncSession]
        Test database session factory.

    Yields
    ------
    AsyncClient
        Configured test client.
    """

    async def _override_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_session
    writer = get_audit_writer()
    writer.session_factory = session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://testserver",
    ) as test_client:
        yield test_client

    await writer.close()
    app.dependency_overrides.clear()


@pytest.fixture()
async def admin_headers(client: AsyncClient) -> dict[str, str]:
    """Bootstrap the first organization and return its admin auth header."""
    response = await client.post(
        "/v1/bootstrap",
        json={"organization_name": "Acme", "admin_token_name": "root"},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['admin_token']['token']}"}


async def issue_key(
    client: AsyncClient, admin_headers: dict[str, str], **fields: Any
) -> dict[str, Any]:
    """Issue an agent API key through the admin API.

    Parameters
    ----------
    client : AsyncClient
        Test HTTP client.
    admin_headers : dict[str, str]
        Admin authorization header.
    **fields : Any
        Extra request fields such as ``permissions`` or ``metadata``.

    Returns
    -------
    dict[str, Any]
        Created key payload including the plaintext ``api_key``.
    """
    response = await client.post(
        "/v1/admin/api-keys",
        headers=admin_headers,
        json={"name": fields.pop("name", "agent"), **fields},
    )
    assert response.status_code == 201, response.text
    return response.json()


def bearer(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"}


@pytest.fixture()
async def agent_key(client: AsyncClient, admin_headers: dict[str, str]) -> dict[str, Any]:
    """Issue a key with the default permissions."""
    return await issue_key(client, admin_headers)


@pytest.fixture()
async def agent_headers(agent_key: dict[str, Any]) -> dict[str, str]:
    return bearer(agent_key["api_key"])


@pytest.fixture()
async def other_org_headers(
    session_factory: async_sessionmaker[AsyncSession],
) -> dict[str, str]:
    """Create a second organization with its own agent key.

    Bootstrap only runs once, so the organization is inserted directly.
    """
    async with session_factory() as session:
        organization = Organization(name="Globex")
        session.add(organization)
        await session.flush()
        _, plaintext = await create_api_key(
            session,
            org_id=organization.id,
            name="globex-agent",
            prefix=get_settings().api_key_prefix,
        )
        await session.commit()
    return bearer(plaintext)


async def create_campaign(
    client: AsyncClient, headers: dict[str, str], **fields: Any
) -> dict[str, Any]:
    """Create a campaign through the Agent API and return the response JSON."""
    payload = {
        "name": "Spring launch",
        "platforms": ["google"],
        "budget": 1000,
        "start_date": "2025-09-01",
        "end_date": "2025-09-30",
        **fields,
    }
    response = await client.post(f"{AGENT}/campaigns/create", headers=headers, json=payload)
    return response.json() | {"status_code": response.status_code}
