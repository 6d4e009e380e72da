import os
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

# Keep tests away from real providers regardless of the developer's .env
os.environ["COGNITO_ENABLED"] = "false"
os.environ.setdefault("LOG_FORMAT", "console")

import sample_data
import suggestions
from identity import LocalAccountDirectory, LocalIdentitySource, Principal
from main import app, get_registry
from sessions import SessionRegistry
from store import MarketplaceStore

FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0)

NEW_PRINCIPAL = Principal(
    uid="firebase-uid-new",
    email="new@x.com",
    display_name="New Person",
)


@pytest.fixture(scope="function")
def directory() -> LocalAccountDirectory:
    """Fresh local account table seeded with the sample users."""
    accounts = LocalAccountDirectory()
    sample_data.seed_accounts(accounts)
    return accounts


@pytest.fixture(scope="function")
def identity(directory) -> LocalIdentitySource:
    return LocalIdentitySource(directory)


@pytest.fixture(scope="function")
def store(identity) -> MarketplaceStore:
    """Seeded store attached to the local identity source, still loading."""
    marketplace = MarketplaceStore(
        users=sample_data.USERS,
        profiles=sample_data.PROFILES,
        portfolios=sample_data.PORTFOLIOS,
        clock=lambda: FIXED_NOW,
    )
    marketplace.attach(identity)
    return marketplace


@pytest.fixture(scope="function")
def ready_store(store) -> MarketplaceStore:
    """Store whose first session event (signed out) has arrived."""
    store.resolve_session(None)
    return store


@pytest.fixture(scope="function")
def signed_in_store(ready_store) -> MarketplaceStore:
    """Store with a brand-new user signed in."""
    ready_store.resolve_session(NEW_PRINCIPAL)
    return ready_store


@pytest.fixture(autouse=True)
def clear_suggestion_cache():
    suggestions._SUGGESTION_CACHE.clear()
    yield
    suggestions._SUGGESTION_CACHE.clear()


@pytest.fixture(scope="function")
def test_client(directory):
    """Client against an isolated session registry using the local identity source."""
    registry = SessionRegistry(lambda: LocalIdentitySource(directory), seed_sample_data=True)
    app.dependency_overrides[get_registry] = lambda: registry

    with TestClient(app) as client:
        yield client

    del app.dependency_overrides[get_registry]
