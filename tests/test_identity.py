import pytest

from errors import AuthError
from identity import LocalIdentitySource, Principal


@pytest.fixture
def events(identity):
    received = []
    identity.on_session_changed(received.append)
    return received


@pytest.mark.asyncio
async def test_start_emits_signed_out_session(identity, events):
    await identity.start()
    assert events == [None]
    assert identity.current_principal is None


@pytest.mark.asyncio
async def test_sign_in_with_seeded_account(identity, events):
    principal = await identity.sign_in_with_password("Aung.Myat@gmail.com", "password123")
    assert principal.uid == "sample-user-2"
    assert principal.display_name == "Aung Myat"
    assert events == [principal]
    assert identity.current_principal == principal


@pytest.mark.asyncio
async def test_sign_in_with_wrong_password(identity, events):
    with pytest.raises(AuthError) as exc_info:
        await identity.sign_in_with_password("aung.myat@gmail.com", "nope")
    assert exc_info.value.message == "Incorrect email or password."
    assert exc_info.value.provider_code == "auth/invalid-credential"
    assert events == []


@pytest.mark.asyncio
async def test_passwordless_accounts_cannot_sign_in(identity):
    with pytest.raises(AuthError):
        await identity.sign_in_with_password("guest@example.com", "")


@pytest.mark.asyncio
async def test_sign_up_registers_account(identity, directory, events):
    before = len(directory)
    principal = await identity.sign_up_with_password("thiri@example.com", "secret1", "Thiri")
    assert principal.display_name == "Thiri"
    assert principal.uid.startswith("local-")
    assert len(directory) == before + 1
    assert events == [principal]


@pytest.mark.asyncio
async def test_sign_up_rejects_existing_email(identity):
    with pytest.raises(AuthError) as exc_info:
        await identity.sign_up_with_password("aung.myat@gmail.com", "secret1", "Copy")
    assert exc_info.value.provider_code == "auth/email-already-in-use"


@pytest.mark.asyncio
async def test_sign_up_rejects_weak_password(identity):
    with pytest.raises(AuthError) as exc_info:
        await identity.sign_up_with_password("weak@example.com", "123", "Weak")
    assert exc_info.value.provider_code == "auth/weak-password"


@pytest.mark.asyncio
async def test_federated_sign_in_reuses_the_same_account(identity, directory):
    first = await identity.sign_in_with_federated_provider("Google", code="local-Google")
    second = await identity.sign_in_with_federated_provider("google")
    assert first.uid == second.uid == "local-dev-google"
    assert first.email == "local+google@example.com"
    assert directory.get_by_uid("local-dev-google") is not None


def test_authorize_url_points_at_callback(identity):
    url = identity.authorize_url("google", "http://localhost:8000/auth/federated/google/callback")
    assert url == "http://localhost:8000/auth/federated/google/callback?code=local-google"


@pytest.mark.asyncio
async def test_update_profile_does_not_emit(identity, directory, events):
    await identity.sign_in_with_password("aung.myat@gmail.com", "password123")
    updated = await identity.update_profile(display_name="Aung M.", photo_url=None)
    assert updated.display_name == "Aung M."
    assert identity.current_principal.display_name == "Aung M."
    assert directory.get("aung.myat@gmail.com").display_name == "Aung M."
    assert len(events) == 1


@pytest.mark.asyncio
async def test_update_profile_requires_session(identity):
    with pytest.raises(AuthError):
        await identity.update_profile(display_name="Nobody", photo_url=None)


@pytest.mark.asyncio
async def test_sign_out_emits_none(identity, events):
    await identity.sign_in_with_password("aung.myat@gmail.com", "password123")
    await identity.sign_out()
    assert events[-1] is None
    assert identity.current_principal is None


def test_unsubscribe_stops_events(directory):
    source = LocalIdentitySource(directory)
    received = []
    unsubscribe = source.on_session_changed(received.append)
    unsubscribe()
    unsubscribe()
    source._emit(Principal(uid="x", email="x@example.com"))
    assert received == []


def test_principal_picture_prefers_photo_url():
    principal = Principal(uid="u", email="u@example.com", avatar_url="a", photo_url="p")
    assert principal.picture == "p"
    assert Principal(uid="u", email="u@example.com", avatar_url="a").picture == "a"
