"""AWS Cognito identity delegate.

``CognitoIdentitySource`` implements ``identity.IdentitySessionSource`` on top of
a Cognito user pool:

1. Password sign-in / sign-up go through the user-pool JSON API
   (``InitiateAuth`` with ``USER_PASSWORD_AUTH`` and ``SignUp``).
2. Federated providers (Google etc.) go through the hosted UI; the callback's
   authorization code is exchanged at ``/oauth2/token``.
3. Every ID token is verified against the pool's JSON Web Key Set (JWKS):
   signature, expiry, audience and issuer.

Environment variables expected at runtime (see ``settings.Settings``):
    COGNITO_USER_POOL_ID     - e.g. "us-east-1_abcd1234"
    COGNITO_APP_CLIENT_ID    - the user-pool client facing ID (audience)
    COGNITO_DOMAIN           - hosted UI domain, only needed for federated login
    AWS_REGION               - pool region (falls back to us-east-1)

Cognito error payloads are surfaced to the user verbatim through ``AuthError``.
"""
from __future__ import annotations

import json
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
import structlog
from jose import JWTError, jwt
from pydantic import BaseModel, Field

from errors import AuthError, UpstreamError
from identity import Principal, SessionEventSource
from settings import Settings

logger = structlog.get_logger(__name__)


class TokenPayload(BaseModel):
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    username: Optional[str] = Field(default=None, alias="cognito:username")
    exp: int
    aud: str


class CognitoConfig(BaseModel):
    region: str
    user_pool_id: str
    client_id: str
    domain: Optional[str] = None

    @property
    def issuer(self) -> str:  # cognito issuer URL
        return f"https://cognito-idp.{self.region}.amazonaws.com/{self.user_pool_id}"

    @property
    def jwks_url(self) -> str:
        return f"{self.issuer}/.well-known/jwks.json"

    @property
    def api_url(self) -> str:
        return f"https://cognito-idp.{self.region}.amazonaws.com/"

    @property
    def hosted_ui_url(self) -> str:
        if not self.domain:
            raise UpstreamError("Federated sign-in is not configured (COGNITO_DOMAIN missing)")
        domain = self.domain if self.domain.startswith("http") else f"https://{self.domain}"
        return domain.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CognitoConfig":
        if not settings.cognito_user_pool_id or not settings.cognito_app_client_id:
            raise RuntimeError("COGNITO_USER_POOL_ID and COGNITO_APP_CLIENT_ID are required when Cognito is enabled")
        return cls(
            region=settings.aws_region,
            user_pool_id=settings.cognito_user_pool_id,
            client_id=settings.cognito_app_client_id,
            domain=settings.cognito_domain,
        )


# JWKS per pool URL; keys rotate rarely so one fetch per process is enough
_JWKS_CACHE: dict[str, dict] = {}


async def get_jwks(http: httpx.AsyncClient, config: CognitoConfig) -> dict:
    cached = _JWKS_CACHE.get(config.jwks_url)
    if cached is not None:
        return cached
    logger.info("Fetching JWKS", jwks_url=config.jwks_url)
    try:
        resp = await http.get(config.jwks_url, timeout=10)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise UpstreamError(f"Could not load identity signing keys: {exc}") from exc
    try:
        _JWKS_CACHE[config.jwks_url] = resp.json()
    except ValueError as exc:
        raise UpstreamError("Identity signing keys were not valid JSON") from exc
    return _JWKS_CACHE[config.jwks_url]


def _json_body(resp: httpx.Response) -> Optional[dict[str, Any]]:
    """JSON object of a reply; {} for an empty body, None when it is not JSON (e.g. a proxy error page)."""
    if not resp.content:
        return {}
    try:
        body = resp.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _provider_code(error_type: Optional[str]) -> str:
    # "__type" is either "NotAuthorizedException" or "<namespace>#NotAuthorizedException"
    name = (error_type or "UnknownError").split("#")[-1]
    return f"cognito/{name}"


class CognitoIdentitySource(SessionEventSource):
    """One client's Cognito session: tokens plus the current principal."""

    def __init__(self, config: CognitoConfig, http: httpx.AsyncClient) -> None:
        super().__init__()
        self.config = config
        self._http = http
        self._tokens: dict[str, str] = {}

    async def start(self) -> None:
        # Sessions live only as long as the server-side client session
        self._emit(self._principal)

    # --- Cognito plumbing ---
    async def _call(self, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Content-Type": "application/x-amz-json-1.1",
            "X-Amz-Target": f"AWSCognitoIdentityProviderService.{action}",
        }
        try:
            resp = await self._http.post(self.config.api_url, content=json.dumps(payload), headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Cognito request failed", action=action, exc=str(exc))
            raise UpstreamError(f"Identity service unreachable: {exc}") from exc

        body = _json_body(resp)
        if body is None or (resp.status_code >= 400 and not body):
            logger.warning("Cognito reply was not JSON", action=action, status_code=resp.status_code)
            raise UpstreamError(f"Identity service returned HTTP {resp.status_code}")
        if resp.status_code >= 400:
            message = body.get("message") or body.get("Message") or f"Cognito {action} failed"
            logger.info("Cognito rejected request", action=action, error_type=body.get("__type"))
            raise AuthError(message, _provider_code(body.get("__type")))
        return body

    async def verify_id_token(self, token: str) -> TokenPayload:
        """Verify a Cognito ID token and return its payload."""
        jwks = await get_jwks(self._http, self.config)
        try:
            payload = jwt.decode(
                token,
                jwks,
                algorithms=["RS256"],
                audience=self.config.client_id,
                issuer=self.config.issuer,
                options={"verify_at_hash": False},
            )
            return TokenPayload.model_validate(payload)
        except JWTError as exc:
            logger.warning("JWT verification failed", exc=str(exc))
            raise AuthError("The identity token could not be verified.", "auth/invalid-token") from exc

    async def _establish(self, tokens: dict[str, str]) -> Principal:
        if not tokens.get("id_token") or not tokens.get("access_token"):
            raise UpstreamError("Identity service did not return session tokens")
        payload = await self.verify_id_token(tokens["id_token"])
        principal = Principal(
            uid=payload.sub,
            email=payload.email or payload.username or payload.sub,
            display_name=payload.name,
            photo_url=payload.picture,
        )
        self._tokens = tokens
        self._emit(principal)
        return principal

    # --- IdentitySessionSource ---
    async def sign_in_with_password(self, email: str, password: str) -> Principal:
        body = await self._call(
            "InitiateAuth",
            {
                "AuthFlow": "USER_PASSWORD_AUTH",
                "ClientId": self.config.client_id,
                "AuthParameters": {"USERNAME": email, "PASSWORD": password},
            },
        )
        result = body.get("AuthenticationResult")
        if not result:
            # e.g. NEW_PASSWORD_REQUIRED / MFA challenges, which this app does not drive
            challenge = body.get("ChallengeName", "unknown")
            raise AuthError(f"Additional sign-in step required: {challenge}", "cognito/ChallengeRequired")
        return await self._establish(
            {
                "id_token": result.get("IdToken", ""),
                "access_token": result.get("AccessToken", ""),
                "refresh_token": result.get("RefreshToken", ""),
            }
        )

    async def sign_up_with_password(self, email: str, password: str, display_name: str) -> Principal:
        await self._call(
            "SignUp",
            {
                "ClientId": self.config.client_id,
                "Username": email,
                "Password": password,
                "UserAttributes": [
                    {"Name": "email", "Value": email},
                    {"Name": "name", "Value": display_name},
                ],
            },
        )
        logger.info("Cognito sign-up accepted", email=email)
        return await self.sign_in_with_password(email, password)

    def authorize_url(self, provider_id: str, redirect_uri: str) -> str:
        query = urlencode(
            {
                "identity_provider": provider_id,
                "response_type": "code",
                "client_id": self.config.client_id,
                "redirect_uri": redirect_uri,
                "scope": "openid email profile",
            }
        )
        return f"{self.config.hosted_ui_url}/oauth2/authorize?{query}"

    async def sign_in_with_federated_provider(
        self, provider_id: str, code: Optional[str] = None, redirect_uri: Optional[str] = None
    ) -> Principal:
        if not code or not redirect_uri:
            raise AuthError(
                f"Sign-in with {provider_id} must be completed through the hosted login page.",
                "auth/missing-authorization-code",
            )
        try:
            resp = await self._http.post(
                f"{self.config.hosted_ui_url}/oauth2/token",
                data={
                    "grant_type": "authorization_code",
                    "client_id": self.config.client_id,
                    "code": code,
                    "redirect_uri": redirect_uri,
                },
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Identity service unreachable: {exc}") from exc
        body = _json_body(resp)
        if body is None or (resp.status_code >= 400 and not body):
            logger.warning("Token endpoint reply was not JSON", status_code=resp.status_code)
            raise UpstreamError(f"Identity service returned HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise AuthError(
                body.get("error_description") or body.get("error") or "Federated sign-in failed",
                f"oauth/{body.get('error', 'unknown')}",
            )
        return await self._establish(
            {
                "id_token": body.get("id_token", ""),
                "access_token": body.get("access_token", ""),
                "refresh_token": body.get("refresh_token", ""),
            }
        )

    async def update_profile(self, display_name: Optional[str], photo_url: Optional[str]) -> Principal:
        if self._principal is None or "access_token" not in self._tokens:
            raise AuthError("No user is currently signed in.", "auth/no-current-user")
        attributes = [{"Name": "name", "Value": display_name or ""}]
        if photo_url:
            attributes.append({"Name": "picture", "Value": photo_url})
        await self._call(
            "UpdateUserAttributes",
            {"AccessToken": self._tokens["access_token"], "UserAttributes": attributes},
        )
        self._principal = self._principal.model_copy(
            update={"display_name": display_name, "photo_url": photo_url or self._principal.photo_url}
        )
        return self._principal

    async def sign_out(self) -> None:
        access_token = self._tokens.get("access_token")
        self._tokens = {}
        self._emit(None)
        if access_token:
            try:
                await self._call("GlobalSignOut", {"AccessToken": access_token})
            except UpstreamError as exc:
                # Local session is already gone; remote revocation is best-effort
                logger.warning("Cognito GlobalSignOut failed", exc=exc.message)
