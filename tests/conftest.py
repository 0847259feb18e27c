from __future__ import annotations

import os
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure `import tenant_identity.*` works under pytest
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tenant_identity.config import reset_settings  # noqa: E402
from tenant_identity.core.sessions import SessionStore  # noqa: E402
from tenant_identity.db.models import Base  # noqa: E402
from tenant_identity.db.store import (  # noqa: E402
    FileBackend,
    IdentityStore,
    create_sql_store,
    reset_identity_store,
)
from tenant_identity.main import create_app  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.setenv("API_KEY_SECRET", "test-secret")
    monkeypatch.delenv("API_KEY_HASH_SECRET", raising=False)
    monkeypatch.setenv("IDENTITY_FILE_PATH", str(tmp_path / "data" / "identity.json"))
    monkeypatch.setenv("IDENTITY_BACKEND", "file")
    monkeypatch.delenv("INTERNAL_ORG_IDS", raising=False)
    monkeypatch.delenv("INTERNAL_ORG_ID", raising=False)
    reset_settings()
    reset_identity_store()
    yield
    reset_settings()
    reset_identity_store()


@pytest.fixture()
def identity_path(tmp_path):
    return tmp_path / "data" / "identity.json"


@pytest.fixture()
def store(identity_path) -> IdentityStore:
    return IdentityStore(FileBackend(identity_path))


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def sql_store(engine) -> IdentityStore:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    return create_sql_store(factory)


@pytest.fixture()
def default_org(store):
    doc = store.load()
    return next(iter(doc.organizations.values()))


@pytest.fixture()
def owner(store, default_org):
    return store.load().users[default_org.created_by]


@pytest.fixture()
def sessions() -> SessionStore:
    return SessionStore()


@pytest.fixture()
def client(store, sessions):
    app = create_app(store=store, sessions=sessions)
    with TestClient(app) as c:
        yield c
