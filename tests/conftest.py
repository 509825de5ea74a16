import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from gymscore import db, services
from gymscore.cache import cache
from gymscore.settings import settings


@pytest.fixture
def session():
    """Fresh in-memory database per test, shared by every session and request."""
    db.dispose_db()
    cache.clear()
    db.init_db("sqlite://", poolclass=StaticPool)
    s = db.new_session()
    try:
        yield s
    finally:
        s.close()
        db.dispose_db()
        cache.clear()


@pytest.fixture
def seeded(session):
    services.ensure_default_events(session)
    return session


@pytest.fixture
def client(session):
    from gymscore.main import app

    with TestClient(app) as c:
        yield c


def login(client, email=None, password=None):
    return client.post(
        "/login",
        data={
            "email": email or settings.GYM_ADMIN_EMAIL,
            "password": password or settings.GYM_ADMIN_PASSWORD,
        },
    )


@pytest.fixture
def admin_client(client):
    r = login(client)
    assert r.status_code == 200
    return client
