import sys
from pathlib import Path

import bcrypt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings
from database import init_db, make_engine
from formguard.app import create_app
from formguard.utils.csrf import CsrfGuard
from formguard.utils.session_store import MemorySessionStore, SqlSessionStore

ADMIN_PASSWORD = "s3cret-pass"
ADMIN_PASSWORD_HASH = bcrypt.hashpw(ADMIN_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()


def make_settings(**overrides) -> Settings:
    values = {
        "secret_key": "test-secret-key",
        "admin_username": "admin",
        "admin_password_hash": ADMIN_PASSWORD_HASH,
        "debug": True,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture()
def memory_store():
    return MemorySessionStore(max_age=3600)


@pytest.fixture()
def sql_store():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield SqlSessionStore(sessionmaker(engine, expire_on_commit=False), max_age=3600)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    """Run a test against every store backend."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture()
def guard(memory_store):
    return CsrfGuard(memory_store)


@pytest.fixture()
def rotating_guard(memory_store):
    return CsrfGuard(memory_store, rotate_on_verify=True)


@pytest.fixture(params=["memory", "sql"])
def make_client(request):
    """Build a TestClient for an app with the given settings overrides, once per store backend."""
    clients = []
    backend = request.param

    def _make(**overrides):
        if backend == "sql":
            overrides.setdefault("session_store", "sql")
            overrides.setdefault("database_url", "sqlite://")
        app = create_app(make_settings(**overrides))
        client = TestClient(app)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture()
def client(make_client):
    return make_client()
