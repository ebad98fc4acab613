"""Shared fixtures for the nametag test suite."""
import os

# Set env vars BEFORE any app imports
os.environ.setdefault("COOKIE_SECRET", "test-secret-key-for-testing")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

import pytest
import kuzu
from fastapi.testclient import TestClient

from nametag.db import init_schema, get_conn
from nametag import auth, crud, relationships, store


# Ensure auth module uses test cookie secret
auth.COOKIE_SECRET = os.environ["COOKIE_SECRET"]


# ── Database fixtures ──

@pytest.fixture
def db_path(tmp_path):
    """Temp location for a fresh KuzuDB."""
    return tmp_path / "test_db"


@pytest.fixture
def db(db_path):
    """Initialized KuzuDB with the full schema."""
    database = kuzu.Database(str(db_path))
    init_schema(database)
    yield database
    database.close()


@pytest.fixture
def conn(db):
    """KuzuDB connection for unit tests."""
    return kuzu.Connection(db)


# ── User fixtures ──

@pytest.fixture
def user_alice(conn):
    return auth.create_user(conn, "alice@example.com", "Alice", "password123")


@pytest.fixture
def user_bob(conn):
    return auth.create_user(conn, "bob@example.com", "Bob", "password456")


@pytest.fixture
def types(conn, user_alice):
    """Alice's seeded relationship types keyed by name (PARENT, FRIEND, ...)."""
    return {t["name"]: t for t in store.list_relationship_types(conn, user_alice["id"])}


# ── People & relationship factories (owned by Alice) ──

@pytest.fixture
def make_person(conn, user_alice):
    def _make(name, surname=None, **kwargs):
        return crud.create_person(conn, user_alice["id"], name, surname=surname, **kwargs)
    return _make


@pytest.fixture
def relate(conn, user_alice, types):
    def _relate(a, b, type_name="FRIEND", notes=None):
        return relationships.create_relationship(
            conn, user_alice["id"], a["id"], b["id"], types[type_name]["id"], notes)
    return _relate


# ── FastAPI app fixtures ──

@pytest.fixture
def app_with_db(db):
    """FastAPI app with dependency override pointing at test DB."""
    from nametag.main import app

    def override_get_conn():
        c = kuzu.Connection(db)
        try:
            yield c
        finally:
            pass

    app.dependency_overrides[get_conn] = override_get_conn
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_with_db):
    """Unauthenticated TestClient."""
    return TestClient(app_with_db, raise_server_exceptions=False)


def _make_authenticated_client(app, db, email, display_name, password):
    """Helper: create a user and return an authenticated TestClient."""
    c = kuzu.Connection(db)
    try:
        user = auth.create_user(c, email, display_name, password)
    except ValueError:
        user = auth.get_user_by_email(c, email)
    token = auth.create_session_token(user["id"])
    tc = TestClient(app, raise_server_exceptions=False, cookies={"session": token})
    tc._test_user = user
    return tc


@pytest.fixture
def auth_client(app_with_db, db):
    """TestClient logged in as Carol."""
    return _make_authenticated_client(app_with_db, db, "carol@test.com", "Carol", "password123")


@pytest.fixture
def other_client(app_with_db, db):
    """TestClient logged in as Dave, a second unrelated account."""
    return _make_authenticated_client(app_with_db, db, "dave@test.com", "Dave", "password000")


@pytest.fixture
def api_types(auth_client):
    """Carol's relationship types keyed by name."""
    return {t["name"]: t for t in auth_client.get("/api/relationship-types").json()}
