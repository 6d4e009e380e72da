"""Identity delegate contract plus the local-development implementation.

The domain store never talks to an identity provider directly. It is handed an
``IdentitySessionSource`` and subscribes once to ``on_session_changed``; every
sign-in, sign-up, federated login or sign-out ends with the source emitting the
new principal (or ``None``). ``auth.CognitoIdentitySource`` is the production
adapter; ``LocalIdentitySource`` below backs local runs and the test-suite.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Protocol
from urllib.parse import urlencode

import structlog
from pydantic import BaseModel, ConfigDict

from errors import AuthError

logger = structlog.get_logger(__name__)


class Principal(BaseModel):
    """Authenticated identity as reported by the delegate."""

    model_config = ConfigDict(frozen=True)

    uid: str
    email: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    photo_url: Optional[str] = None

    @property
    def picture(self) -> Optional[str]:
        return self.photo_url or self.avatar_url


SessionListener = Callable[[Optional[Principal]], None]


class IdentitySessionSource(Protocol):
    """Operations and event stream the domain store consumes from the delegate."""

    @property
    def current_principal(self) -> Optional[Principal]: ...

    def on_session_changed(self, listener: SessionListener) -> Callable[[], None]: ...

    async def start(self) -> None: ...

    async def sign_in_with_password(self, email: str, password: str) -> Principal: ...

    async def sign_up_with_password(self, email: str, password: str, display_name: str) -> Principal: ...

    def authorize_url(self, provider_id: str, redirect_uri: str) -> str: ...

    async def sign_in_with_federated_provider(
        self, provider_id: str, code: Optional[str] = None, redirect_uri: Optional[str] = None
    ) -> Principal: ...

    async def update_profile(self, display_name: Optional[str], photo_url: Optional[str]) -> Principal: ...

    async def sign_out(self) -> None: ...


class SessionEventSource:
    """Listener bookkeeping shared by the concrete identity sources."""

    def __init__(self) -> None:
        self._listeners: list[SessionListener] = []
        self._principal: Optional[Principal] = None

    @property
    def current_principal(self) -> Optional[Principal]:
        return self._principal

    def on_session_changed(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, principal: Optional[Principal]) -> None:
        self._principal = principal
        for listener in list(self._listeners):
            listener(principal)


# --- Local development delegate ---
@dataclass
class LocalAccount:
    uid: str
    email: str
    password: Optional[str]
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    def to_principal(self) -> Principal:
        return Principal(
            uid=self.uid,
            email=self.email,
            display_name=self.display_name,
            photo_url=self.photo_url,
        )


class LocalAccountDirectory:
    """Process-wide account table for local mode, keyed by lower-cased email."""

    def __init__(self) -> None:
        self._accounts: dict[str, LocalAccount] = {}

    def get(self, email: str) -> Optional[LocalAccount]:
        return self._accounts.get(email.strip().lower())

    def get_by_uid(self, uid: str) -> Optional[LocalAccount]:
        return next((a for a in self._accounts.values() if a.uid == uid), None)

    def add(self, account: LocalAccount) -> LocalAccount:
        self._accounts[account.email.strip().lower()] = account
        return account

    def __len__(self) -> int:
        return len(self._accounts)


default_directory = LocalAccountDirectory()


class LocalIdentitySource(SessionEventSource):
    """In-process identity delegate used when Cognito is disabled."""

    def __init__(self, directory: Optional[LocalAccountDirectory] = None) -> None:
        super().__init__()
        self.directory = directory if directory is not None else default_directory

    async def start(self) -> None:
        # Nothing is persisted between server-side sessions, so every client starts signed out
        self._emit(self._principal)

    async def sign_in_with_password(self, email: str, password: str) -> Principal:
        account = self.directory.get(email)
        if account is None or account.password is None or account.password != password:
            raise AuthError("Incorrect email or password.", "auth/invalid-credential")
        principal = account.to_principal()
        logger.info("Local sign-in", uid=principal.uid)
        self._emit(principal)
        return principal

    async def sign_up_with_password(self, email: str, password: str, display_name: str) -> Principal:
        if self.directory.get(email) is not None:
            raise AuthError("An account with this email already exists.", "auth/email-already-in-use")
        if len(password) < 6:
            raise AuthError("Password should be at least 6 characters", "auth/weak-password")
        account = self.directory.add(
            LocalAccount(
                uid=f"local-{uuid.uuid4().hex}",
                email=email.strip(),
                password=password,
                display_name=display_name,
            )
        )
        principal = account.to_principal()
        logger.info("Local sign-up", uid=principal.uid)
        self._emit(principal)
        return principal

    def authorize_url(self, provider_id: str, redirect_uri: str) -> str:
        # No hosted UI locally: go straight to the callback with a dummy code
        return f"{redirect_uri}?{urlencode({'code': f'local-{provider_id}'})}"

    async def sign_in_with_federated_provider(
        self, provider_id: str, code: Optional[str] = None, redirect_uri: Optional[str] = None
    ) -> Principal:
        uid = f"local-dev-{provider_id.lower()}"
        account = self.directory.get_by_uid(uid)
        if account is None:
            account = self.directory.add(
                LocalAccount(
                    uid=uid,
                    email=f"local+{provider_id.lower()}@example.com",
                    password=None,
                    display_name="Local Developer",
                )
            )
        principal = account.to_principal()
        logger.info("Local federated sign-in", provider_id=provider_id, uid=uid)
        self._emit(principal)
        return principal

    async def update_profile(self, display_name: Optional[str], photo_url: Optional[str]) -> Principal:
        if self._principal is None:
            raise AuthError("No user is currently signed in.", "auth/no-current-user")
        account = self.directory.get_by_uid(self._principal.uid)
        if account is not None:
            account.display_name = display_name
            account.photo_url = photo_url
        # Profile edits do not count as a session change, so listeners are not notified
        self._principal = self._principal.model_copy(
            update={"display_name": display_name, "photo_url": photo_url}
        )
        return self._principal

    async def sign_out(self) -> None:
        self._emit(None)
