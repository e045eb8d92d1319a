"""Pytest configuration and shared fixtures.

Unit tests run against a fresh in-memory SQLite database per test. API
tests drive the FastAPI app through TestClient; every request gets its own
tenant-requiring session on the same database, exactly as in production.
Commit fixture data before issuing requests: a request session rolls back
whatever the shared connection has not committed when it closes.
"""

import pytest
import redis
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from workshop.core.rbac.cache import PermissionCache
from workshop.db.seed import seed_permission_catalog
from workshop.db.tenant import require_tenant
from tests.factories import make_sqlite_engine, mint_token


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    engine = make_sqlite_engine()
    session = sessionmaker(bind=engine)()
    seed_permission_catalog(session)
    session.commit()
    session.close()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    """Unbound session for arranging data; bind it to a tenant to act as one."""
    session = session_factory()
    yield session
    session.close()


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class FakeRedis:
    """In-memory stand-in for the handful of redis-py calls the cache makes."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis unavailable")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value.encode() if isinstance(value, str) else value
        self.ttls[key] = ttl

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def incr(self, key):
        self._check()
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value).encode()
        return value

    def ping(self):
        self._check()
        return True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def permission_cache(fake_redis):
    return PermissionCache(fake_redis, ttl_seconds=60)


@pytest.fixture
def auth_headers():
    """Return Authorization headers for a user (or any object with ``id``)."""

    def _headers(user, **kwargs) -> dict:
        user_id = getattr(user, "id", user)
        return {"Authorization": f"Bearer {mint_token(user_id, **kwargs)}"}

    return _headers


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
def api_cache():
    """Cache handed to the app; ``None`` resolves from the database every time."""
    return None


@pytest.fixture
def client(session_factory, api_cache):
    from workshop.api import deps
    from workshop.api.main import app

    def override_get_db():
        db = require_tenant(session_factory())
        try:
            yield db
        finally:
            db.close()

    def override_get_system_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_system_db] = override_get_system_db
    app.dependency_overrides[deps.get_permission_cache] = lambda: api_cache

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
