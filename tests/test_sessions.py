import httpx
import pytest

import sample_data
from auth import CognitoIdentitySource
from identity import LocalIdentitySource
from sessions import SessionRegistry, build_identity_factory
from settings import Settings
from store import StoreStatus


@pytest.mark.asyncio
async def test_new_session_is_seeded_and_ready(directory):
    registry = SessionRegistry(lambda: LocalIdentitySource(directory))
    session = await registry.get_or_create(None)

    assert session.store.status is StoreStatus.READY
    assert session.store.identity is session.identity
    assert session.store.portfolios == sample_data.PORTFOLIOS
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_known_cookie_returns_same_session(directory):
    registry = SessionRegistry(lambda: LocalIdentitySource(directory))
    first = await registry.get_or_create(None)
    again = await registry.get_or_create(first.id)
    assert again is first

    stale = await registry.get_or_create("not-a-known-session")
    assert stale.id != "not-a-known-session"
    assert len(registry) == 2


@pytest.mark.asyncio
async def test_unseeded_registry_starts_empty(directory):
    registry = SessionRegistry(lambda: LocalIdentitySource(directory), seed_sample_data=False)
    session = await registry.get_or_create(None)
    assert session.store.users == ()
    assert session.store.portfolios == ()


@pytest.mark.asyncio
async def test_discard_detaches_store(directory):
    registry = SessionRegistry(lambda: LocalIdentitySource(directory))
    session = await registry.get_or_create(None)

    registry.discard(session.id)
    await session.identity.sign_in_with_password("aung.myat@gmail.com", "password123")

    assert registry.get(session.id) is None
    assert session.store.user is None
    assert session.store.identity is None


def test_factory_uses_local_directory_when_cognito_disabled():
    factory = build_identity_factory(Settings(cognito_enabled=False, seed_sample_data=False))
    assert isinstance(factory(), LocalIdentitySource)


def test_factory_uses_cognito_when_enabled():
    settings = Settings(
        cognito_enabled=True,
        cognito_user_pool_id="us-east-1_pool",
        cognito_app_client_id="client-123",
    )
    factory = build_identity_factory(settings, http=httpx.AsyncClient())
    source = factory()
    assert isinstance(source, CognitoIdentitySource)
    assert source.config.client_id == "client-123"


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_idle_sessions_are_evicted(directory):
    clock = FakeClock()
    registry = SessionRegistry(lambda: LocalIdentitySource(directory), idle_ttl=60, clock=clock)
    stale = await registry.get_or_create(None)
    clock.now += 30
    active = await registry.get_or_create(None)

    clock.now += 45
    assert await registry.get_or_create(active.id) is active
    assert registry.get(stale.id) is None
    assert stale.store.identity is None
    assert len(registry) == 1

    clock.now += 61
    assert registry.evict_expired() == 1
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_registry_is_bounded_least_recently_used_first(directory):
    clock = FakeClock()
    registry = SessionRegistry(lambda: LocalIdentitySource(directory), max_sessions=3, clock=clock)
    first = await registry.get_or_create(None)
    second = await registry.get_or_create(None)
    await registry.get_or_create(None)
    await registry.get_or_create(first.id)

    for _ in range(50):
        await registry.get_or_create(None)

    assert len(registry) == 3
    assert registry.get(second.id) is None


@pytest.mark.asyncio
async def test_evicted_cookie_gets_a_fresh_session(directory):
    clock = FakeClock()
    registry = SessionRegistry(lambda: LocalIdentitySource(directory), idle_ttl=60, clock=clock)
    old = await registry.get_or_create(None)
    clock.now += 120

    fresh = await registry.get_or_create(old.id)

    assert fresh is not old
    assert fresh.id != old.id
    assert len(registry) == 1
