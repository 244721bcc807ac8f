import os
import time

# app.main builds a module-level app from the environment on import
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RUN_MIGRATIONS", "false")

import jwt
import pytest
from fastapi.testclient import TestClient

from app.core.config import ENV_TEST, Settings
from app.db.base import Base
from app.core.rate_limit import limiter
from app.main import create_app
from app.services import entitlement_store
from app.services.entitlement_cache import EntitlementCache
from app.services.signature import compute_signature

WEBHOOK_SECRET = "rc-webhook-secret-for-tests-0123456789"
JWT_SECRET = "supabase-jwt-secret-for-tests-0123456789"


def make_token(user_id, secret=JWT_SECRET, expires_in=3600, audience="authenticated"):
    now = int(time.time())
    claims = {"sub": user_id, "aud": audience, "iat": now, "exp": now + expires_in}
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture(autouse=True)
def reset_rate_limits():
    # Every TestClient request comes from the same address
    limiter.reset()
    yield


@pytest.fixture
def settings(tmp_path):
    return Settings(
        app_env=ENV_TEST,
        database_url=f"sqlite:///{tmp_path / 'starlight.db'}",
        revenuecat_webhook_secret=WEBHOOK_SECRET,
        supabase_jwt_secret=JWT_SECRET,
        run_migrations=False,
    )


@pytest.fixture
def app(settings):
    application = create_app(settings)
    Base.metadata.create_all(bind=application.state.engine)
    yield application
    application.state.engine.dispose()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session_factory(app):
    return app.state.session_factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class DictCache(EntitlementCache):
    """Single-process stand-in for the Redis cache."""

    def __init__(self):
        self.entries = {}

    def get(self, key):
        return self.entries.get(key)

    def set(self, key, value, ttl_seconds=None):
        self.entries[key] = value

    def delete(self, key):
        self.entries.pop(key, None)


@pytest.fixture
def cache():
    return DictCache()


@pytest.fixture
def auth_headers():
    def _headers(user_id="user-1"):
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers


@pytest.fixture
def make_payload():
    def _payload(event_id="evt-1", event_type="INITIAL_PURCHASE", app_user_id="rc-1", **fields):
        event = {"id": event_id, "type": event_type, "app_user_id": app_user_id}
        event.update(fields)
        return {"api_version": "1.0", "event": event}

    return _payload


@pytest.fixture
def sign():
    def _sign(payload, secret=WEBHOOK_SECRET):
        return compute_signature(payload, secret)

    return _sign


@pytest.fixture
def linked_user(db):
    """A free-tier user linked to RevenueCat subscriber rc-1."""
    entitlement_store.link_subscriber(db, "user-1", "rc-1")
    return "user-1"
