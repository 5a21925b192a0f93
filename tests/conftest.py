"""Shared fixtures for the registry tests."""

from datetime import datetime, timedelta, timezone

import pytest

from zepplin.domain.models import Package, Release
from zepplin.storage.json_store import JsonRegistryStore
from zepplin.storage.memory_store import InMemoryRegistryStore


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    """An open store of each backend."""
    if request.param == "memory":
        engine = InMemoryRegistryStore()
    else:
        engine = JsonRegistryStore(tmp_path / "data")
    engine.open()
    yield engine
    engine.close()


@pytest.fixture
def json_dir(tmp_path):
    return tmp_path / "registry"


@pytest.fixture
def clap():
    """The zig-clap package at 0.6.0."""
    return Package(
        owner="Hejsil",
        repo="zig-clap",
        version="0.6.0",
        description="Simple command line argument parsing library",
        topics=["cli", "parser"],
        license="MIT",
        homepage="https://github.com/Hejsil/zig-clap",
        repository_url="https://github.com/Hejsil/zig-clap",
        stars=1200,
    )


@pytest.fixture
def xev():
    return Package(
        owner="mitchellh",
        repo="xev",
        version="0.2.0",
        description="Cross-platform event loop",
        license="MIT",
    )


@pytest.fixture
def make_release():
    """Build a Release published ``published_days_ago`` days ago (None = unpublished)."""

    def _make(owner, repo, tag, published_days_ago=None, **kwargs):
        published_at = None
        if published_days_ago is not None:
            published_at = datetime.now(timezone.utc) - timedelta(days=published_days_ago)
        return Release(owner=owner, repo=repo, tag_name=tag, published_at=published_at, **kwargs)

    return _make
