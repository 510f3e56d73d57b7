"""Pytest configuration and fixtures."""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from noteforge.config import Settings
from noteforge.database import create_db_engine
from noteforge.main import app
from noteforge.runtime import NoteForgeRuntime
from noteforge.services.persistence import SnapshotStore

from fakes import FakeClassifier, FakeEmbedder

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture(name="test_settings")
def test_settings_fixture() -> Settings:
    """Settings tuned for fast tests."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        search_debounce_ms=50,
        embedding_preload=False,
    )


@pytest.fixture(name="persistence")
def persistence_fixture() -> SnapshotStore:
    """Snapshot store backed by an in-memory database."""
    return SnapshotStore(create_db_engine(TEST_DATABASE_URL))


@pytest.fixture(name="classifier")
def classifier_fixture() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture(name="embedder")
def embedder_fixture() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture(name="runtime")
def runtime_fixture(test_settings, persistence, classifier, embedder) -> NoteForgeRuntime:
    """A runtime wired to fakes. Async tests call ``start`` themselves."""
    return NoteForgeRuntime(
        test_settings,
        persistence=persistence,
        classifier=classifier,
        embedder=embedder,
    )


@pytest.fixture(name="client")
def client_fixture(runtime: NoteForgeRuntime) -> Generator[TestClient, None, None]:
    """Create a test client running the lifespan against the fake runtime."""
    app.state.runtime = runtime
    with TestClient(app) as client:
        yield client
    del app.state.runtime
