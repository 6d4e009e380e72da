"""Per-client session registry.

Each browser client (identified by an opaque cookie) gets its own
``MarketplaceStore`` wired to its own identity source. The wiring happens once,
when the pair is created, and the store leaves ``loading`` as soon as the
source's ``start()`` emits the first session event.

Sessions idle for longer than ``idle_ttl`` seconds are dropped, and the
registry never holds more than ``max_sessions``; the least recently used
session goes first.
"""
from __future__ import annotations

import secrets
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx
import structlog

import sample_data
from auth import CognitoConfig, CognitoIdentitySource
from identity import IdentitySessionSource, LocalIdentitySource, default_directory
from settings import Settings
from store import MarketplaceStore

logger = structlog.get_logger(__name__)

IdentityFactory = Callable[[], IdentitySessionSource]


@dataclass
class ClientSession:
    id: str
    store: MarketplaceStore
    identity: IdentitySessionSource
    last_seen: float = field(default=0.0)


def build_identity_factory(settings: Settings, http: Optional[httpx.AsyncClient] = None) -> IdentityFactory:
    """Pick the Cognito delegate when enabled, the local account directory otherwise."""
    if settings.cognito_enabled:
        config = CognitoConfig.from_settings(settings)
        client = http or httpx.AsyncClient(timeout=15)
        return lambda: CognitoIdentitySource(config, client)

    if settings.seed_sample_data:
        sample_data.seed_accounts(default_directory)
    return lambda: LocalIdentitySource(default_directory)


class SessionRegistry:
    def __init__(
        self,
        identity_factory: IdentityFactory,
        seed_sample_data: bool = True,
        idle_ttl: float = 3600.0,
        max_sessions: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._identity_factory = identity_factory
        self._seed = seed_sample_data
        self._idle_ttl = idle_ttl
        self._max_sessions = max_sessions
        self._clock = clock
        # least recently used first
        self._sessions: OrderedDict[str, ClientSession] = OrderedDict()

    def _new_store(self) -> MarketplaceStore:
        if not self._seed:
            return MarketplaceStore()
        return MarketplaceStore(
            users=sample_data.USERS,
            profiles=sample_data.PROFILES,
            portfolios=sample_data.PORTFOLIOS,
        )

    def evict_expired(self) -> int:
        """Drop every session idle for longer than the TTL; returns how many went."""
        cutoff = self._clock() - self._idle_ttl
        expired = [sid for sid, s in self._sessions.items() if s.last_seen < cutoff]
        for sid in expired:
            self.discard(sid)
        if expired:
            logger.info("Idle client sessions evicted", evicted=len(expired), sessions=len(self._sessions))
        return len(expired)

    async def get_or_create(self, session_id: Optional[str]) -> ClientSession:
        self.evict_expired()
        now = self._clock()
        if session_id and session_id in self._sessions:
            session = self._sessions[session_id]
            session.last_seen = now
            self._sessions.move_to_end(session_id)
            return session

        while self._sessions and len(self._sessions) >= self._max_sessions:
            oldest = next(iter(self._sessions))
            logger.info("Client session limit reached, evicting oldest", max_sessions=self._max_sessions)
            self.discard(oldest)

        identity = self._identity_factory()
        store = self._new_store()
        store.attach(identity)
        session = ClientSession(id=secrets.token_urlsafe(24), store=store, identity=identity, last_seen=now)
        self._sessions[session.id] = session
        logger.info("Client session created", sessions=len(self._sessions))
        await identity.start()
        return session

    def get(self, session_id: str) -> Optional[ClientSession]:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.store.detach()

    def __len__(self) -> int:
        return len(self._sessions)
