"""Shared fixtures for the MindVault test suite."""

import pytest

from mindvault.core.notifications import ErrorChannel
from mindvault.core.storage import MemoryBlobStore
from mindvault.security import kdf
from mindvault.security.session import VaultSession


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Keep PBKDF2 cheap in tests; production uses 100k iterations."""
    monkeypatch.setattr(kdf, "KDF_ITERATIONS", 1000)


@pytest.fixture
def store():
    return MemoryBlobStore()


@pytest.fixture
def session(store):
    """Anonymous session over an in-memory store with a loaded (empty) index."""
    s = VaultSession(store=store, errors=ErrorChannel(ttl=5.0))
    s.load_index()
    return s


@pytest.fixture
def admin_session(session, store):
    """Session that already holds a valid admin credential."""
    session.grant_admin(store, "token")
    return session
