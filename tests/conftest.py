"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, schema rebuilt for each test
- Organization/user fixtures and JWT cookie minting
- HTTPX AsyncClient with proper headers
"""
import os
import tempfile
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

# Settings are read at import time, so the environment must be set first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "dev"
os.environ["AI_API_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["STORAGE_BACKEND"] = "local"
os.environ["LOCAL_STORAGE_PATH"] = tempfile.mkdtemp(prefix="astralis-test-docs-")
os.environ["DEV_SECRET"] = "test-dev-secret"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from astralis.core.deps import COOKIE_NAME, get_db
from astralis.core.security import create_session_token
from astralis.db.base import Base
from astralis.db.enums import Role
from astralis.db.models import Membership, Organization, User
from astralis.db.session import SessionLocal, engine
from astralis.main import app
from astralis.services import ai_provider
from astralis.services.ai_provider import ChatResponse, ToolCall


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    Services commit freely; dropping the tables afterwards isolates tests.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def make_user(
    db: Session,
    org: Organization,
    role: Role = Role.DEVELOPER,
    email: str | None = None,
    display_name: str = "Test User",
    timezone: str = "UTC",
) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email or f"test-{uuid.uuid4().hex[:8]}@test.com",
        display_name=display_name,
        timezone=timezone,
    )
    db.add(user)
    db.flush()
    db.add(
        Membership(
            id=uuid.uuid4(),
            user_id=user.id,
            organization_id=org.id,
            role=role.value,
        )
    )
    db.commit()
    return user


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    org = Organization(
        id=uuid.uuid4(),
        name="Test Organization",
        slug=f"test-org-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def other_org(db: Session) -> Organization:
    org = Organization(
        id=uuid.uuid4(),
        name="Other Organization",
        slug=f"other-org-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def user_factory(db: Session):
    """Build extra members: user_factory(org, role=..., email=...)."""
    def _make(org: Organization, **kwargs) -> User:
        return make_user(db, org, **kwargs)

    return _make


@pytest.fixture(scope="function")
def test_user(db: Session, test_org: Organization) -> User:
    """Create a test user with developer membership in test_org."""
    return make_user(db, test_org)


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    org: Organization
    token: str
    cookie_name: str = COOKIE_NAME


def mint_token(user: User, org: Organization, role: Role = Role.DEVELOPER) -> str:
    return create_session_token(
        user_id=user.id,
        org_id=org.id,
        role=role.value,
        token_version=user.token_version,
    )


@pytest.fixture(scope="function")
def client_for(db: Session):
    """
    Open an authenticated client for any user and role.

    Usage: async with client_for(user, org, Role.MEMBER) as c: ...
    """
    def _open(user: User, org: Organization, role: Role = Role.DEVELOPER) -> AsyncClient:
        def override_get_db():
            yield db

        app.dependency_overrides[get_db] = override_get_db
        return AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies={COOKIE_NAME: mint_token(user, org, role)},
            headers={"X-Requested-With": "XMLHttpRequest"},
        )

    yield _open
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_auth(test_user: User, test_org: Organization) -> TestAuth:
    """Create JWT token for test user."""
    return TestAuth(user=test_user, org=test_org, token=mint_token(test_user, test_org))


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client (CSRF header included)."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Requested-With": "XMLHttpRequest"},
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth,
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated client with JWT cookie and CSRF header."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# AI Fixtures
# =============================================================================

class FakeProvider:
    """Scripted stand-in for a configured AI provider."""

    def __init__(self):
        self.responses: list = []
        self.calls: list[dict] = []

    def reply(self, content: str = "", tool_calls: list[ToolCall] | None = None) -> None:
        self.responses.append(
            ChatResponse(
                content=content,
                prompt_tokens=10,
                completion_tokens=10,
                total_tokens=20,
                model="fake-model",
                tool_calls=tool_calls or [],
            )
        )

    def fail(self, exc: Exception) -> None:
        self.responses.append(exc)

    async def chat(self, messages, model=None, temperature=0.7, max_tokens=2000, tools=None):
        self.calls.append({"messages": messages, "tools": tools})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def validate_key(self) -> bool:
        return True


@pytest.fixture(scope="function")
def fake_ai(monkeypatch) -> FakeProvider:
    """Make get_configured_provider() return a scripted provider."""
    provider = FakeProvider()
    monkeypatch.setattr(ai_provider, "get_configured_provider", lambda: provider)
    return provider
