import pytest
import os
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("IDENTITY_PROVIDER", "static")
os.environ.setdefault("INGESTION_MODE", "direct")

import app.models  # noqa: F401
from app.core.deps import get_db
from app.core.identity import StaticIdentityProvider, get_identity_provider
from app.core.rate_limit import ai_suggest_rate_limiter
from app.db.base import Base
from app.main import app
from app.services.receipt_service import receipt_buffer

TEST_IDENTITY_EMAIL = "marketer@pulse.test"


@pytest.fixture()
def test_context():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: StaticIdentityProvider(TEST_IDENTITY_EMAIL)
    receipt_buffer.clear()

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
    receipt_buffer.clear()
    ai_suggest_rate_limiter.clear()


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    return {"Authorization": "Bearer test-token"}


@pytest.fixture()
def db_session(test_context):
    _, session_local = test_context
    db = session_local()
    try:
        yield db
    finally:
        db.close()
