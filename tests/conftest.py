"""Shared fixtures for taskboard tests."""

import pytest

from taskboard.client import ClientContext, open_memory_services
from taskboard.config import Config
from taskboard.storage import MemoryBackend


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("TASKBOARD_DB", raising=False)
    monkeypatch.delenv("TASKBOARD_TOKEN_SECRET", raising=False)


@pytest.fixture
def backend():
    return MemoryBackend(origin="tab-1")


@pytest.fixture
def services(backend):
    return open_memory_services(Config(), backend=backend, origin="tab-1")


@pytest.fixture
def sibling(backend):
    """A second context sharing the same storage under another origin."""
    return open_memory_services(Config(), backend=backend, origin="tab-2")


@pytest.fixture
def client(services):
    ctx = ClientContext(services)
    yield ctx
    ctx.close()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "board.db")


@pytest.fixture
def alice(services):
    """Registered user 'alice' with password 'pw'."""
    return services.identity.register("alice", "a@x.com", "pw")
