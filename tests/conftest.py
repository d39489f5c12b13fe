"""
tests/conftest.py -- Shared test fixtures for School Records tests.

This module provides:
  - store / service: an AccountService over a fresh in-memory SQLite store
  - seeded_service: the same, with one teacher identity and one student pre-created
  - api_client: TestClient over the real FastAPI app with an isolated store

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment overrides are set before any api/ import because the limiter and
the login rate limit are read from Settings at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import date

os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import SingletonThreadPool

from accounts.models import Gender, Identity, Role, StudentProfile
from accounts.service import AccountService
from accounts.store import AccountStore

TEACHER_PASSWORD = "teach123"
STUDENT_PASSWORD = "learn456"


def make_student(number: str = "S2024001", **overrides) -> StudentProfile:
    """Build an unsaved StudentProfile with sensible defaults."""
    fields = dict(
        student_number=number,
        first_name="Ada",
        last_name="Lovelace",
        date_of_birth=date(2010, 12, 10),
        gender=Gender.FEMALE,
        address="12 St James's Square",
        phone_number="555-0101",
        parent_contact="Anne Isabella Milbanke",
        enrollment_date=date(2024, 9, 1),
    )
    fields.update(overrides)
    return StudentProfile(**fields)


# ---------------------------------------------------------------------------
# Store / service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def service(store: AccountStore) -> AccountService:
    return AccountService(store)


@pytest.fixture
def seeded_service(service: AccountService) -> AccountService:
    """Service with a TEACHER identity 'mcurie' and a student 'stu01' (S2024001)."""
    service.create_identity(
        Identity(
            username="mcurie",
            role=Role.TEACHER,
            email="m.curie@school.test",
            first_name="Marie",
            last_name="Curie",
        ),
        TEACHER_PASSWORD,
    ).unwrap()
    service.create_profile(make_student(), "stu01", STUDENT_PASSWORD, "ada@school.test").unwrap()
    return service


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AccountService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test service into app.state so routes see an
    isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, AccountService], None, None]:
    """Yield (client, service) for API integration tests.

    One isolated shared-memory database per test module. base_url uses
    localhost so TrustedHostMiddleware accepts the requests.
    """
    from api.main import app

    db_name = request.module.__name__.rsplit(".", 1)[-1]
    store = AccountStore(
        f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true",
        poolclass=SingletonThreadPool,
    )
    service = AccountService(store)
    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, service

    store.close()
