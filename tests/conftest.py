# tests/conftest.py
import os

# Settings are read at import time; configure before importing the service.
os.environ.setdefault("ENV", "local")
os.environ.setdefault("DATABASE_URL_LOCAL", "sqlite://")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_earnings")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_earnings")
os.environ.setdefault("INTERNAL_API_KEY", "internal-test-key")
os.environ.setdefault("JWT_SECRET", "jwt-test-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest

import earnings_engine.models  # noqa: F401
from earnings_engine.db.base_class import Base
from earnings_engine.services.audit_logger import AuditLogger
from earnings_engine.services.failover_queue import FailoverQueue

from tests.utils.database import TestingSessionLocal, engine
from tests.utils.provider import FakeProvider


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def provider():
    return FakeProvider()


@pytest.fixture(scope="function")
def audit():
    return AuditLogger(capacity=1000)


@pytest.fixture(scope="function")
def failover(audit):
    return FailoverQueue(audit=audit, capacity=100, max_retries=3)


# --- Test Client Fixture ---
@pytest.fixture(scope="function")
def client(db, provider):
    """
    TestClient backed by the in-memory database with the fake provider in
    place of Stripe. Authentication is real: use tests.utils.auth headers.
    """
    from starlette.testclient import TestClient

    from earnings_engine.api import deps
    from earnings_engine.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_provider] = lambda: provider

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
