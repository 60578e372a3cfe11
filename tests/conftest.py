"""
tests/conftest.py -- Shared fixtures for duneauth tests.

This module provides:
  - authd_db: session-scoped path to a seeded AUTHD database (see authd_data.py)
  - store / backend: read-only CredentialStore and DuneAuthBackend over it
  - api_client: TestClient for the HTTP bridge with a patched lifespan

Environment variables must be set before any api/ import: api/main.py reads
settings at import time to configure middleware. DUNEAUTH_DB_PATH is forced
empty so a developer's real store is never picked up by a test.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

from authd_data import API_KEY, build_authd_db

os.environ["DUNEAUTH_DB_PATH"] = ""
os.environ["DUNEAUTH_API_KEY"] = API_KEY
os.environ["DUNEAUTH_CHECK_RATE_LIMIT"] = "1000/minute"

import pytest
from fastapi.testclient import TestClient

from auth.backend import DuneAuthBackend
from auth.store import CredentialStore
from core.config import get_settings


@pytest.fixture(scope="session")
def authd_db(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Path to the seeded AUTHD database, shared by the whole session (never written after creation)."""
    return build_authd_db(tmp_path_factory.mktemp("authd") / "authd.db")


@pytest.fixture
def store(authd_db: Path) -> Generator[CredentialStore, None, None]:
    s = CredentialStore.from_path(authd_db)
    yield s
    s.close()


@pytest.fixture
def backend(authd_db: Path) -> Generator[DuneAuthBackend, None, None]:
    b = DuneAuthBackend(authd_db)
    yield b
    b.close()


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    """Drop the cached Settings after each test so monkeypatched env vars never leak."""
    yield
    get_settings.cache_clear()


def _patch_lifespan(backend: DuneAuthBackend):
    """Return a lifespan that wires a pre-built backend into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.backend = backend
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(authd_db: Path) -> Generator[TestClient, None, None]:
    """Yield a TestClient bound to the real app with a backend over authd_db.

    base_url uses localhost so TrustedHostMiddleware accepts the requests.
    """
    from api.main import app

    backend = DuneAuthBackend(authd_db)
    app.router.lifespan_context = _patch_lifespan(backend)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client

    backend.close()
