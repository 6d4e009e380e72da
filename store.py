"""MarketplaceStore: the single source of truth for one client session.

Holds the signed-in user, and the users/profiles/portfolios/jobs collections,
and mediates every mutation so ids and counters stay consistent.

Invariants:
    - Collections are tuples of frozen models; each mutation swaps in a whole
      new tuple, so a snapshot taken earlier never changes underneath a reader.
    - A mutation either commits completely or raises and leaves every
      collection untouched.
    - While the first identity event is pending the store is ``loading`` and all
      mutations raise ``NotReadyError``; after it, the store is ``ready`` for good.
    - Portfolio likes/views never go negative; only public portfolios are
      listed in the showcase.
"""
from __future__ import annotations

import hashlib
import itertools
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import structlog

import schemas
from errors import ForbiddenError, NotAuthenticatedError, NotFoundError, NotReadyError, UpstreamError
from identity import IdentitySessionSource, Principal
from models import (
    DeadlineRange,
    Job,
    JobDetail,
    Portfolio,
    PortfolioDetail,
    Profile,
    ProfileStats,
    SessionSnapshot,
    User,
)

logger = structlog.get_logger(__name__)

_MAX_USER_ID = 0x7FFFFFFF
_CURRENT_VIEWER: Any = object()


class StoreStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class StoreEvent:
    kind: str
    payload: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ProfileUpdate:
    profile: Profile
    upstream_warning: Optional[str] = None


StoreListener = Callable[[StoreEvent], None]


def user_id_for_principal(uid: str) -> int:
    """Stable positive 31-bit id derived from the principal's identifier."""
    digest = hashlib.sha256(uid.encode("utf-8")).digest()
    return (int.from_bytes(digest[:4], "big") & _MAX_USER_ID) or 1


def _matches(query: str, *values: str) -> bool:
    return any(query in value.lower() for value in values)


class MarketplaceStore:
    def __init__(
        self,
        users: Iterable[User] = (),
        profiles: Iterable[Profile] = (),
        portfolios: Iterable[Portfolio] = (),
        jobs: Iterable[Job] = (),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._users: tuple[User, ...] = tuple(users)
        self._profiles: tuple[Profile, ...] = tuple(profiles)
        self._portfolios: tuple[Portfolio, ...] = tuple(portfolios)
        self._jobs: tuple[Job, ...] = tuple(jobs)
        self._status = StoreStatus.LOADING
        self._user_id: Optional[int] = None
        # (viewer user id or None for anonymous, portfolio id)
        self._liked: frozenset[tuple[Optional[int], int]] = frozenset()
        # (applicant user id, job id)
        self._applications: frozenset[tuple[int, int]] = frozenset()
        self._listeners: list[StoreListener] = []
        self._identity: Optional[IdentitySessionSource] = None
        self._unsubscribe_identity: Optional[Callable[[], None]] = None
        self._clock = clock
        start = max((e.id for e in itertools.chain(self._portfolios, self._jobs)), default=0) + 1
        self._ids = itertools.count(start)

    # --- State ---
    @property
    def status(self) -> StoreStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status is StoreStatus.READY

    @property
    def users(self) -> tuple[User, ...]:
        return self._users

    @property
    def profiles(self) -> tuple[Profile, ...]:
        return self._profiles

    @property
    def portfolios(self) -> tuple[Portfolio, ...]:
        return self._portfolios

    @property
    def jobs(self) -> tuple[Job, ...]:
        return self._jobs

    @property
    def user(self) -> Optional[User]:
        if self._user_id is None:
            return None
        return self._find_user(self._user_id)

    @property
    def profile(self) -> Optional[Profile]:
        if self._user_id is None:
            return None
        return self._find_profile(self._user_id)

    @property
    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(user=self.user, profile=self.profile)

    @property
    def identity(self) -> Optional[IdentitySessionSource]:
        return self._identity

    # --- Subscriptions ---
    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: str, **payload: Any) -> None:
        event = StoreEvent(kind=kind, payload=payload)
        for listener in list(self._listeners):
            listener(event)

    def attach(self, identity: IdentitySessionSource) -> None:
        """Subscribe to the identity delegate for the lifetime of the session."""
        if self._identity is not None:
            raise RuntimeError("Store is already attached to an identity source")
        self._identity = identity
        self._unsubscribe_identity = identity.on_session_changed(self.resolve_session)

    def detach(self) -> None:
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
        self._unsubscribe_identity = None
        self._identity = None

    # --- Lookups ---
    def _find_user(self, user_id: int) -> Optional[User]:
        return next((u for u in self._users if u.id == user_id), None)

    def _find_profile(self, user_id: int) -> Optional[Profile]:
        return next((p for p in self._profiles if p.user_id == user_id), None)

    def get_portfolio(self, portfolio_id: int) -> Portfolio:
        portfolio = next((p for p in self._portfolios if p.id == portfolio_id), None)
        if portfolio is None:
            raise NotFoundError("Portfolio", portfolio_id)
        return portfolio

    def get_job(self, job_id: int) -> Job:
        job = next((j for j in self._jobs if j.id == job_id), None)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    def get_profile(self, user_id: int) -> Profile:
        profile = self._find_profile(user_id)
        if profile is None:
            raise NotFoundError("Profile", user_id)
        return profile

    # --- Guards ---
    def _require_ready(self) -> None:
        if self._status is StoreStatus.LOADING:
            raise NotReadyError()

    def _require_session_user(self, user_id: Optional[int]) -> User:
        """The caller must be the signed-in user."""
        self._require_ready()
        user = self.user
        if user is None or user_id is None:
            raise NotAuthenticatedError()
        if user.id != user_id:
            raise ForbiddenError()
        return user

    # --- Identity reconciliation ---
    def resolve_session(self, principal: Optional[Principal]) -> SessionSnapshot:
        """Map an identity event onto a local user and profile, creating them if absent."""
        was_loading = self._status is StoreStatus.LOADING
        self._status = StoreStatus.READY

        if principal is None:
            signed_out = self._user_id is not None
            self._user_id = None
            if signed_out or was_loading:
                logger.info("Session resolved", user_id=None)
                self._notify("session", user_id=None)
            return SessionSnapshot()

        profile = next((p for p in self._profiles if p.email == principal.email), None)
        if profile is not None:
            changed = self._sync_from_principal(profile, principal)
            user_id = profile.user_id
        else:
            user_id = self._create_account(principal)
            changed = True

        if changed or was_loading or self._user_id != user_id:
            self._user_id = user_id
            logger.info("Session resolved", user_id=user_id)
            self._notify("session", user_id=user_id)
        return self.snapshot

    def _sync_from_principal(self, profile: Profile, principal: Principal) -> bool:
        name = principal.display_name or profile.name
        avatar = principal.picture or profile.avatar
        changed = False
        if (profile.name, profile.avatar) != (name, avatar):
            updated = profile.model_copy(update={"name": name, "avatar": avatar})
            self._profiles = tuple(updated if p.user_id == profile.user_id else p for p in self._profiles)
            changed = True

        user = self._find_user(profile.user_id)
        if user is None:
            self._users = self._users + (User(id=profile.user_id, name=name, email=profile.email, avatar=avatar),)
            changed = True
        elif (user.name, user.avatar) != (name, avatar):
            updated_user = user.model_copy(update={"name": name, "avatar": avatar})
            self._users = tuple(updated_user if u.id == user.id else u for u in self._users)
            changed = True
        return changed

    def _allocate_user_id(self, uid: str) -> int:
        taken = {u.id for u in self._users} | {p.user_id for p in self._profiles}
        candidate = user_id_for_principal(uid)
        while candidate in taken:
            candidate = candidate % _MAX_USER_ID + 1
        return candidate

    def _create_account(self, principal: Principal) -> int:
        user_id = self._allocate_user_id(principal.uid)
        name = principal.display_name or "New User"
        user = User(id=user_id, name=name, email=principal.email, avatar=principal.picture)
        profile = Profile(
            user_id=user_id,
            name=name,
            email=principal.email,
            avatar=principal.picture,
            title="Creative Professional",
            bio=f"Welcome to my creative hub! I'm {name}.",
            skills=(),
            member_since=self._clock().strftime("%B %Y"),
        )
        self._users = self._users + (user,)
        self._profiles = self._profiles + (profile,)
        logger.info("Account created from identity", user_id=user_id)
        return user_id

    # --- Auth actions (delegated) ---
    def _require_identity(self) -> IdentitySessionSource:
        if self._identity is None:
            raise UpstreamError("No identity provider is configured for this session")
        return self._identity

    async def login(self, email: str, password: str) -> SessionSnapshot:
        form = schemas.validate_form(schemas.LoginForm, {"email": email, "password": password})
        await self._require_identity().sign_in_with_password(form.email, form.password)
        return self.snapshot

    async def signup(self, data: Any) -> SessionSnapshot:
        form = schemas.validate_form(schemas.SignupForm, data)
        await self._require_identity().sign_up_with_password(form.email, form.password, form.name)
        return self.snapshot

    async def federated_login(
        self, provider_id: str, code: Optional[str] = None, redirect_uri: Optional[str] = None
    ) -> SessionSnapshot:
        await self._require_identity().sign_in_with_federated_provider(provider_id, code=code, redirect_uri=redirect_uri)
        return self.snapshot

    async def logout(self) -> SessionSnapshot:
        await self._require_identity().sign_out()
        return self.snapshot

    # --- Portfolios ---
    def create_portfolio(self, owner_id: Optional[int], data: Any) -> Portfolio:
        owner = self._require_session_user(owner_id)
        form = schemas.validate_form(schemas.PortfolioForm, data)
        portfolio = Portfolio(id=next(self._ids), user_id=owner.id, likes=0, views=0, **form.model_dump())
        self._portfolios = (portfolio,) + self._portfolios
        logger.info("Portfolio created", portfolio_id=portfolio.id, user_id=owner.id)
        self._notify("portfolio_created", portfolio_id=portfolio.id)
        return portfolio

    def update_portfolio(self, portfolio_id: int, patch: Any) -> Portfolio:
        self._require_ready()
        current = self.get_portfolio(portfolio_id)
        changes = schemas.validate_form(schemas.PortfolioPatch, patch).model_dump(exclude_unset=True, exclude_none=True)
        merged = {**current.model_dump(exclude={"id", "user_id"}), **changes}
        record = schemas.validate_form(schemas.PortfolioRecord, merged)
        updated = Portfolio(id=current.id, user_id=current.user_id, **record.model_dump())
        if updated != current:
            self._portfolios = tuple(updated if p.id == current.id else p for p in self._portfolios)
            logger.info("Portfolio updated", portfolio_id=current.id, fields=sorted(changes))
            self._notify("portfolio_updated", portfolio_id=current.id)
        return updated

    def delete_portfolio(self, portfolio_id: int, requester_id: Optional[int]) -> None:
        self._require_ready()
        portfolio = self.get_portfolio(portfolio_id)
        if requester_id is None:
            raise NotAuthenticatedError()
        if portfolio.user_id != requester_id:
            logger.warning("Portfolio delete denied", portfolio_id=portfolio_id, requester_id=requester_id)
            raise ForbiddenError()
        self._portfolios = tuple(p for p in self._portfolios if p.id != portfolio_id)
        self._liked = frozenset(key for key in self._liked if key[1] != portfolio_id)
        logger.info("Portfolio deleted", portfolio_id=portfolio_id, user_id=requester_id)
        self._notify("portfolio_deleted", portfolio_id=portfolio_id)

    def is_liked(self, portfolio_id: int, viewer_id: Optional[int] = _CURRENT_VIEWER) -> bool:
        viewer = self._user_id if viewer_id is _CURRENT_VIEWER else viewer_id
        return (viewer, portfolio_id) in self._liked

    def set_like(self, portfolio_id: int, liked: bool, viewer_id: Optional[int] = _CURRENT_VIEWER) -> Portfolio:
        """Move the viewer's like state to ``liked``; repeating the same state is a no-op."""
        self._require_ready()
        portfolio = self.get_portfolio(portfolio_id)
        viewer = self._user_id if viewer_id is _CURRENT_VIEWER else viewer_id
        key = (viewer, portfolio_id)
        if (key in self._liked) == liked:
            return portfolio

        likes = portfolio.likes + 1 if liked else max(0, portfolio.likes - 1)
        updated = portfolio.model_copy(update={"likes": likes})
        self._portfolios = tuple(updated if p.id == portfolio_id else p for p in self._portfolios)
        self._liked = self._liked | {key} if liked else self._liked - {key}
        self._notify("portfolio_liked" if liked else "portfolio_unliked", portfolio_id=portfolio_id, likes=likes)
        return updated

    def showcase(self) -> tuple[Portfolio, ...]:
        return tuple(p for p in self._portfolios if p.is_public)

    def portfolios_for_user(self, user_id: int) -> tuple[Portfolio, ...]:
        return tuple(p for p in self._portfolios if p.user_id == user_id)

    def portfolio_detail(self, portfolio_id: int) -> PortfolioDetail:
        portfolio = self.get_portfolio(portfolio_id)
        return PortfolioDetail(
            portfolio=portfolio,
            author=self._find_user(portfolio.user_id),
            author_profile=self._find_profile(portfolio.user_id),
        )

    # --- Jobs ---
    def create_job(self, client_id: Optional[int], data: Any) -> Job:
        client = self._require_session_user(client_id)
        form = schemas.validate_form(schemas.JobForm, data)
        deadline = None
        if form.deadline is not None:
            deadline = DeadlineRange(start=form.deadline.start, end=form.deadline.end)
        job = Job(
            id=next(self._ids),
            client_id=client.id,
            title=form.title,
            description=form.description,
            category=form.category,
            skills=tuple(form.skills),
            budget=form.budget,
            location=form.location,
            notes=form.notes,
            deadline=deadline,
        )
        self._jobs = (job,) + self._jobs
        logger.info("Job created", job_id=job.id, client_id=client.id)
        self._notify("job_created", job_id=job.id)
        return job

    def list_jobs(self, category: Optional[str] = None, search: Optional[str] = None) -> tuple[Job, ...]:
        query = (search or "").strip().lower()
        return tuple(
            j
            for j in self._jobs
            if (not category or j.category == category)
            and (not query or _matches(query, j.title, j.description, *j.skills))
        )

    def apply_to_job(self, job_id: int, applicant_id: Optional[int]) -> Job:
        """Record that the applicant applied to the job; applying again is a no-op."""
        applicant = self._require_session_user(applicant_id)
        job = self.get_job(job_id)
        if job.client_id == applicant.id:
            raise ForbiddenError("You cannot apply to your own job.")
        key = (applicant.id, job_id)
        if key not in self._applications:
            self._applications = self._applications | {key}
            logger.info("Job application sent", job_id=job_id, applicant_id=applicant.id)
            self._notify("job_applied", job_id=job_id)
        return job

    def has_applied(self, job_id: int, applicant_id: Optional[int] = _CURRENT_VIEWER) -> bool:
        applicant = self._user_id if applicant_id is _CURRENT_VIEWER else applicant_id
        return (applicant, job_id) in self._applications

    def job_detail(self, job_id: int) -> JobDetail:
        job = self.get_job(job_id)
        return JobDetail(
            job=job,
            client=self._find_user(job.client_id),
            client_profile=self._find_profile(job.client_id),
        )

    # --- Profiles ---
    def freelancers(self, search: Optional[str] = None) -> tuple[Profile, ...]:
        query = (search or "").strip().lower()
        return tuple(p for p in self._profiles if not query or _matches(query, p.name, p.title, *p.skills))

    def profile_stats(self, user_id: int) -> ProfileStats:
        owned = self.portfolios_for_user(user_id)
        return ProfileStats(
            total_projects=len(owned),
            public_projects=sum(1 for p in owned if p.is_public),
            total_likes=sum(p.likes for p in owned),
            total_views=sum(p.views for p in owned),
        )

    def _commit_profile(self, profile: Profile) -> Profile:
        user = self._require_session_user(profile.user_id)
        form = schemas.validate_form(schemas.ProfileForm, profile.model_dump())
        updated = Profile(
            user_id=user.id,
            email=user.email,
            member_since=profile.member_since,
            **form.model_dump(),
        )
        existing = self._find_profile(user.id)
        if existing is None:
            self._profiles = self._profiles + (updated,)
        else:
            self._profiles = tuple(updated if p.user_id == user.id else p for p in self._profiles)

        avatar = updated.avatar or user.avatar
        if (user.name, user.avatar) != (updated.name, avatar):
            synced = user.model_copy(update={"name": updated.name, "avatar": avatar})
            self._users = tuple(synced if u.id == user.id else u for u in self._users)

        if updated != existing:
            logger.info("Profile updated", user_id=user.id)
            self._notify("profile_updated", user_id=user.id)
        return updated

    async def update_profile(self, profile: Profile) -> ProfileUpdate:
        """Replace the caller's profile, then best-effort sync name/avatar to the identity delegate."""
        updated = self._commit_profile(profile)

        principal = self._identity.current_principal if self._identity is not None else None
        if principal is None:
            return ProfileUpdate(profile=updated)
        name_differs = principal.display_name != updated.name
        avatar_differs = updated.avatar is not None and principal.picture != updated.avatar
        if not (name_differs or avatar_differs):
            return ProfileUpdate(profile=updated)

        try:
            await self._identity.update_profile(display_name=updated.name, photo_url=updated.avatar)
        except UpstreamError as exc:
            logger.warning("Identity profile sync failed", user_id=updated.user_id, exc=exc.message)
            return ProfileUpdate(profile=updated, upstream_warning=exc.message)
        return ProfileUpdate(profile=updated)

    def add_skill(self, skill: str) -> Profile:
        profile = self._current_profile()
        trimmed = (skill or "").strip()
        if not trimmed or trimmed in profile.skills:
            return profile
        return self._commit_profile(profile.model_copy(update={"skills": profile.skills + (trimmed,)}))

    def remove_skill(self, skill: str) -> Profile:
        profile = self._current_profile()
        if skill not in profile.skills:
            return profile
        remaining = tuple(s for s in profile.skills if s != skill)
        return self._commit_profile(profile.model_copy(update={"skills": remaining}))

    def _current_profile(self) -> Profile:
        self._require_ready()
        profile = self.profile
        if profile is None:
            raise NotAuthenticatedError()
        return profile
