import asyncio
import json
from typing import Any, List, Optional

import structlog
from fastapi import Body, Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

import schemas
import suggestions
from errors import CreativeHubError, ForbiddenError, NotAuthenticatedError
from models import Job, JobDetail, Portfolio, PortfolioDetail, Profile, ProfileStats, User
from observability import init_observability
from request_id_middleware import RequestIdMiddleware
from sessions import ClientSession, SessionRegistry, build_identity_factory
from settings import Settings, get_settings
from store import MarketplaceStore, StoreEvent, StoreStatus

# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Creative Hub",
    description="Backend API for the Creative Hub freelancer marketplace",
    version="0.1.0",
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)

registry = SessionRegistry(
    build_identity_factory(get_settings()),
    seed_sample_data=get_settings().seed_sample_data,
    idle_ttl=get_settings().session_idle_ttl_seconds,
    max_sessions=get_settings().max_sessions,
)


def get_registry() -> SessionRegistry:
    return registry


@app.exception_handler(CreativeHubError)
async def creative_hub_error_handler(request: Request, exc: CreativeHubError) -> JSONResponse:
    logger.info("Request failed", code=exc.code, path=request.url.path)
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


def _set_session_cookie(response: Response, session_id: str, settings: Settings) -> None:
    response.set_cookie(settings.session_cookie_name, session_id, httponly=True, samesite="lax")


async def get_client_session(
    request: Request,
    response: Response,
    registry: SessionRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
) -> ClientSession:
    cookie = request.cookies.get(settings.session_cookie_name)
    client = await registry.get_or_create(cookie)
    if client.id != cookie:
        _set_session_cookie(response, client.id, settings)
    structlog.contextvars.bind_contextvars(user_id=client.store.user.id if client.store.user else None)
    return client


async def get_store(client: ClientSession = Depends(get_client_session)) -> MarketplaceStore:
    return client.store


def _session_user_id(store: MarketplaceStore) -> Optional[int]:
    return store.user.id if store.user else None


def _federated_redirect_uri(settings: Settings, provider_id: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/auth/federated/{provider_id}/callback"


class SessionResponse(BaseModel):
    status: StoreStatus
    user: Optional[User] = None
    profile: Optional[Profile] = None


class ProfileUpdateResponse(BaseModel):
    profile: Profile
    warning: Optional[str] = None


class PortfolioView(PortfolioDetail):
    liked: bool = False


class JobApplicationResponse(BaseModel):
    job_id: int
    applied: bool = True
    message: str = "Your application has been submitted to the client."


class CoverImageResponse(BaseModel):
    image_urls: List[str]


def _session_response(store: MarketplaceStore) -> SessionResponse:
    return SessionResponse(status=store.status, user=store.user, profile=store.profile)


@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok"}


# --- Auth Endpoints ---
@app.get("/session", response_model=SessionResponse, tags=["Auth"])
async def get_session(store: MarketplaceStore = Depends(get_store)):
    return _session_response(store)


@app.post("/auth/signup", response_model=SessionResponse, tags=["Auth"])
async def signup_endpoint(payload: dict[str, Any] = Body(...), store: MarketplaceStore = Depends(get_store)):
    await store.signup(payload)
    return _session_response(store)


@app.post("/auth/login", response_model=SessionResponse, tags=["Auth"])
async def login_endpoint(payload: dict[str, Any] = Body(...), store: MarketplaceStore = Depends(get_store)):
    await store.login(payload.get("email"), payload.get("password"))
    return _session_response(store)


@app.post("/auth/logout", response_model=SessionResponse, tags=["Auth"])
async def logout_endpoint(store: MarketplaceStore = Depends(get_store)):
    await store.logout()
    return _session_response(store)


@app.get("/auth/federated/{provider_id}/authorize", tags=["Auth"])
async def federated_authorize(
    provider_id: str,
    client: ClientSession = Depends(get_client_session),
    settings: Settings = Depends(get_settings),
):
    url = client.identity.authorize_url(provider_id, _federated_redirect_uri(settings, provider_id))
    redirect = RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
    # Returned responses bypass the dependency's cookie, so set it here too
    _set_session_cookie(redirect, client.id, settings)
    return redirect


@app.get("/auth/federated/{provider_id}/callback", response_model=SessionResponse, tags=["Auth"])
async def federated_callback(
    provider_id: str,
    code: Optional[str] = None,
    store: MarketplaceStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    await store.federated_login(provider_id, code=code, redirect_uri=_federated_redirect_uri(settings, provider_id))
    return _session_response(store)


# --- Profile Endpoints ---
def _require_profile(store: MarketplaceStore) -> Profile:
    profile = store.profile
    if profile is None:
        raise NotAuthenticatedError()
    return profile


@app.get("/profile", response_model=Profile, tags=["Profile"])
async def get_profile_endpoint(store: MarketplaceStore = Depends(get_store)):
    return _require_profile(store)


@app.put("/profile", response_model=ProfileUpdateResponse, tags=["Profile"])
async def update_profile_endpoint(payload: dict[str, Any] = Body(...), store: MarketplaceStore = Depends(get_store)):
    current = _require_profile(store)
    form = schemas.validate_form(schemas.ProfileForm, {**current.model_dump(), **payload})
    profile = Profile(
        user_id=current.user_id,
        email=current.email,
        member_since=current.member_since,
        **form.model_dump(),
    )
    result = await store.update_profile(profile)
    return ProfileUpdateResponse(profile=result.profile, warning=result.upstream_warning)


@app.get("/profile/stats", response_model=ProfileStats, tags=["Profile"])
async def profile_stats_endpoint(store: MarketplaceStore = Depends(get_store)):
    profile = _require_profile(store)
    return store.profile_stats(profile.user_id)


@app.post("/profile/skills", response_model=Profile, tags=["Profile"])
async def add_skill_endpoint(payload: dict[str, Any] = Body(...), store: MarketplaceStore = Depends(get_store)):
    form = schemas.validate_form(schemas.SkillForm, payload)
    return store.add_skill(form.skill)


@app.delete("/profile/skills/{skill}", response_model=Profile, tags=["Profile"])
async def remove_skill_endpoint(skill: str, store: MarketplaceStore = Depends(get_store)):
    return store.remove_skill(skill)


@app.get("/freelancers", response_model=List[Profile], tags=["Profile"])
async def freelancers_endpoint(search: Optional[str] = None, store: MarketplaceStore = Depends(get_store)):
    return list(store.freelancers(search))


# --- Portfolio Endpoints ---
@app.get("/portfolios", response_model=List[Portfolio], tags=["Portfolios"])
async def showcase_endpoint(store: MarketplaceStore = Depends(get_store)):
    return list(store.showcase())


@app.post("/portfolios", response_model=Portfolio, status_code=status.HTTP_201_CREATED, tags=["Portfolios"])
async def create_portfolio_endpoint(payload: dict[str, Any] = Body(...), store: MarketplaceStore = Depends(get_store)):
    return store.create_portfolio(_session_user_id(store), payload)


@app.get("/portfolios/{portfolio_id}", response_model=PortfolioView, tags=["Portfolios"])
async def get_portfolio_endpoint(portfolio_id: int, store: MarketplaceStore = Depends(get_store)):
    detail = store.portfolio_detail(portfolio_id)
    return PortfolioView(**detail.model_dump(), liked=store.is_liked(portfolio_id))


@app.patch("/portfolios/{portfolio_id}", response_model=Portfolio, tags=["Portfolios"])
async def update_portfolio_endpoint(
    portfolio_id: int,
    payload: dict[str, Any] = Body(...),
    store: MarketplaceStore = Depends(get_store),
):
    user_id = _session_user_id(store)
    if user_id is None:
        raise NotAuthenticatedError()
    if store.get_portfolio(portfolio_id).user_id != user_id:
        raise ForbiddenError()
    return store.update_portfolio(portfolio_id, payload)


@app.delete("/portfolios/{portfolio_id}", tags=["Portfolios"])
async def delete_portfolio_endpoint(portfolio_id: int, store: MarketplaceStore = Depends(get_store)):
    store.delete_portfolio(portfolio_id, _session_user_id(store))
    return {"status": "deleted", "portfolio_id": portfolio_id}


@app.put("/portfolios/{portfolio_id}/like", response_model=Portfolio, tags=["Portfolios"])
async def like_portfolio_endpoint(portfolio_id: int, store: MarketplaceStore = Depends(get_store)):
    return store.set_like(portfolio_id, True)


@app.delete("/portfolios/{portfolio_id}/like", response_model=Portfolio, tags=["Portfolios"])
async def unlike_portfolio_endpoint(portfolio_id: int, store: MarketplaceStore = Depends(get_store)):
    return store.set_like(portfolio_id, False)


@app.get("/users/{user_id}/portfolios", response_model=List[Portfolio], tags=["Portfolios"])
async def user_portfolios_endpoint(user_id: int, store: MarketplaceStore = Depends(get_store)):
    owned = store.portfolios_for_user(user_id)
    if user_id != _session_user_id(store):
        # Visitors only see what the owner published
        owned = tuple(p for p in owned if p.is_public)
    return list(owned)


# --- Job Endpoints ---
@app.get("/jobs", response_model=List[Job], tags=["Jobs"])
async def list_jobs_endpoint(
    category: Optional[str] = None,
    search: Optional[str] = None,
    store: MarketplaceStore = Depends(get_store),
):
    return list(store.list_jobs(category=category, search=search))


@app.post("/jobs", response_model=Job, status_code=status.HTTP_201_CREATED, tags=["Jobs"])
async def create_job_endpoint(payload: dict[str, Any] = Body(...), store: MarketplaceStore = Depends(get_store)):
    return store.create_job(_session_user_id(store), payload)


@app.get("/jobs/{job_id}", response_model=JobDetail, tags=["Jobs"])
async def get_job_endpoint(job_id: int, store: MarketplaceStore = Depends(get_store)):
    return store.job_detail(job_id)


@app.post("/jobs/{job_id}/apply", response_model=JobApplicationResponse, tags=["Jobs"])
async def apply_to_job_endpoint(job_id: int, store: MarketplaceStore = Depends(get_store)):
    job = store.apply_to_job(job_id, _session_user_id(store))
    return JobApplicationResponse(job_id=job.id)


# --- Suggestions ---
@app.post("/suggestions/cover-images", response_model=CoverImageResponse, tags=["Suggestions"])
async def cover_image_suggestions_endpoint(payload: dict[str, Any] = Body(...)):
    image_urls = await suggestions.suggest_cover_images(payload.get("description", ""))
    return CoverImageResponse(image_urls=image_urls)


# --- SSE Endpoint --- #
@app.get("/stream", tags=["Session"])
async def stream_store_events(request: Request, client: ClientSession = Depends(get_client_session)):
    """Server-Sent Events mirror of the client's store notifications."""
    queue: asyncio.Queue = asyncio.Queue()

    def forward(event: StoreEvent) -> None:
        queue.put_nowait({"event": event.kind, "data": json.dumps(event.payload)})

    unsubscribe = client.store.subscribe(forward)
    logger.info("SSE connection established", session_id=client.id[:8])

    async def event_generator():
        try:
            while True:
                message = await queue.get()
                if await request.is_disconnected():
                    break
                yield message
        except asyncio.CancelledError:
            logger.info("SSE connection cancelled", session_id=client.id[:8])
            raise
        finally:
            unsubscribe()

    return EventSourceResponse(event_generator())


# --- Main execution --- (for running with uvicorn)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
