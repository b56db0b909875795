"""Pytest configuration and fixtures.

Provides common fixtures for all tests including:
- Database engine and sessions (file-backed SQLite per test)
- Workflow and credential factories
- Authentication headers and an API client
- A node context builder for executor tests
"""

import os
import tempfile
from typing import Any, AsyncGenerator, Awaitable, Callable

# Settings are read at import time, so the environment must be ready first.
TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4
os.environ.setdefault("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("WORKER_ENABLED", "false")
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{tempfile.mkdtemp(prefix='nodeflow-tests-')}/default.db",
)

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel  # noqa: E402

import nodeflow.models  # noqa: E402,F401
from nodeflow.api.deps import create_access_token, get_db_session  # noqa: E402
from nodeflow.config import Settings, get_settings  # noqa: E402
from nodeflow.core.context import ExecutionContext  # noqa: E402
from nodeflow.core.encryption import CredentialEncryption  # noqa: E402
from nodeflow.core.retry import RetryPolicy  # noqa: E402
from nodeflow.models.credential import (  # noqa: E402
    CredentialCreate,
    CredentialDecrypted,
    CredentialType,
)
from nodeflow.models.node import NodeType  # noqa: E402
from nodeflow.models.workflow import WorkflowCreate  # noqa: E402
from nodeflow.nodes.base import NodeContext  # noqa: E402
from nodeflow.services.credential_service import CredentialService  # noqa: E402
from nodeflow.services.workflow_service import WorkflowService  # noqa: E402

TEST_USER_ID = "user-123"
OTHER_USER_ID = "user-456"

# Zero-delay retries keep failure paths fast
FAST_RETRY = RetryPolicy(max_retries=2, delay=0.0, backoff=2.0)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Settings the application was loaded with."""
    return get_settings()


@pytest.fixture(scope="session")
def encryption() -> CredentialEncryption:
    """Create encryption instance."""
    return CredentialEncryption(TEST_ENCRYPTION_KEY)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a fresh file-backed database for one test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session."""
    async with session_maker() as session:
        yield session


WorkflowFactory = Callable[..., Awaitable[str]]


@pytest.fixture
def make_workflow(session_maker) -> WorkflowFactory:
    """Persist a workflow and return its id.

    Usage:
        workflow_id = await make_workflow(nodes, connections)
    """

    async def factory(
        nodes: list[dict[str, Any]],
        connections: list[dict[str, Any]] | None = None,
        user_id: str = TEST_USER_ID,
        name: str = "Test Workflow",
    ) -> str:
        async with session_maker() as session:
            workflow = await WorkflowService(session).create(
                user_id,
                WorkflowCreate(name=name, nodes=nodes, connections=connections or []),
            )
        return workflow.id

    return factory


@pytest.fixture
def make_credential(session_maker, encryption) -> Callable[..., Awaitable[str]]:
    """Persist an encrypted credential and return its id."""

    async def factory(
        credential_type: CredentialType,
        data: dict[str, Any] | str,
        user_id: str = TEST_USER_ID,
        name: str = "Test Credential",
    ) -> str:
        async with session_maker() as session:
            credential = await CredentialService(session, encryption).create(
                user_id,
                CredentialCreate(name=name, type=credential_type, data=data),
            )
        return credential.id

    return factory


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Create authentication headers."""
    return {"Authorization": f"Bearer {create_access_token(TEST_USER_ID)}"}


@pytest_asyncio.fixture
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    from nodeflow.main import app

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def make_node_context(
    node_type: NodeType,
    *,
    node_id: str = "node-1",
    state: ExecutionContext | None = None,
    input: Any = None,
    inputs: dict[str, Any] | None = None,
    credentials: dict[str, CredentialDecrypted] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    settings: Settings | None = None,
) -> NodeContext:
    """Build a NodeContext for calling an executor directly."""
    store = credentials or {}

    async def load(credential_id: str) -> CredentialDecrypted | None:
        return store.get(credential_id)

    return NodeContext(
        execution_id="exec-1",
        workflow_id="wf-1",
        user_id=TEST_USER_ID,
        node_id=node_id,
        node_type=node_type,
        state=state or ExecutionContext(execution_id="exec-1", workflow_id="wf-1"),
        input=input,
        inputs=inputs or {},
        credential_loader=load,
        retry_policy=FAST_RETRY,
        http_transport=transport,
        settings=settings,
    )


def decrypted_credential(
    credential_type: CredentialType,
    data: dict[str, Any] | str,
    credential_id: str = "cred-1",
) -> CredentialDecrypted:
    return CredentialDecrypted(
        id=credential_id,
        name="Test Credential",
        type=credential_type,
        owner_id=TEST_USER_ID,
        data=data,
    )
