"""Sign-in providers, identity linking and session tokens.

Providers form a closed set sharing one capability, `resolve`, which turns an
incoming sign-in request into an `ExternalIdentity` (email, name, image) or
None. `link_identity` then maps that identity onto an internal `User`, creating
one on first sign-in, and the session token is always keyed to the internal
user id.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlencode

import httpx
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from . import models, utils
from .ports import Store
from .settings import settings

logger = logging.getLogger(__name__)

COOKIE_NAME = "access_token"
OAUTH_STATE_KEY = "oauth_state"


@dataclass(frozen=True)
class ExternalIdentity:
    email: str
    name: Optional[str] = None
    image: Optional[str] = None


@dataclass(frozen=True)
class SessionIdentity:
    """Authenticated identity attached to a request."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None


# -----------------------------------------------------------------------------
# Providers
# -----------------------------------------------------------------------------
class IdentityProvider:
    id: str = ""
    name: str = ""
    type: str = ""

    async def resolve(self, request: Request, store: Store) -> Optional[ExternalIdentity]:
        raise NotImplementedError


class CredentialsProvider(IdentityProvider):
    """Email + password from a form post.

    The optional demo account is accepted before any matching user exists;
    everybody else must have registered with a password.
    """

    id = "credentials"
    name = "Credentials"
    type = "credentials"

    def __init__(self, demo_email: Optional[str] = None, demo_password: Optional[str] = None):
        self.demo_email = (demo_email or "").strip().lower() or None
        self.demo_password = demo_password

    def _is_demo(self, email: str, password: str) -> bool:
        if not self.demo_email or not self.demo_password:
            return False
        return email == self.demo_email and secrets.compare_digest(password, self.demo_password)

    def _verify(self, store: Store, email: str, password: str) -> Optional[ExternalIdentity]:
        user = store.get_user_by_email(email)
        if not user or not user.password_hash:
            return None
        if not utils.verify_password(password, user.password_hash):
            return None
        return ExternalIdentity(email=user.email, name=user.name, image=user.image)

    async def resolve(self, request: Request, store: Store) -> Optional[ExternalIdentity]:
        form = await request.form()
        email = str(form.get("email") or form.get("username") or "").strip().lower()
        password = str(form.get("password") or "")
        if not email or not password:
            return None

        if self._is_demo(email, password):
            return ExternalIdentity(email=email, name="Test User")

        # blocking lookup and bcrypt check stay off the event loop
        return await run_in_threadpool(self._verify, store, email, password)


class GoogleProvider(IdentityProvider):
    """OAuth 2.0 authorization-code flow against Google."""

    id = "google"
    name = "Google"
    type = "oauth"

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.transport = transport

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    def begin(self, request: Request) -> str:
        """Store a fresh state value in the session and return the consent URL."""
        state = secrets.token_urlsafe(24)
        request.session[OAUTH_STATE_KEY] = state
        return self.authorization_url(state)

    async def resolve(self, request: Request, store: Store) -> Optional[ExternalIdentity]:
        code = request.query_params.get("code")
        expected_state = request.session.pop(OAUTH_STATE_KEY, None)
        if not code or not expected_state:
            return None
        if not secrets.compare_digest(request.query_params.get("state") or "", expected_state):
            logger.warning("google callback with mismatched state")
            return None

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=10.0) as client:
                token_resp = await client.post(
                    self.TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
                token_resp.raise_for_status()
                access_token = token_resp.json().get("access_token")
                if not access_token:
                    return None
                info_resp = await client.get(
                    self.USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                info_resp.raise_for_status()
                profile = info_resp.json()
        except httpx.HTTPError as exc:
            logger.warning("google sign-in failed: %s", exc)
            return None

        email = (profile.get("email") or "").strip().lower()
        if not email:
            return None
        return ExternalIdentity(
            email=email,
            name=profile.get("name"),
            image=profile.get("picture") or profile.get("image"),
        )


def _build_providers() -> Dict[str, IdentityProvider]:
    providers: Dict[str, IdentityProvider] = {}
    if settings.google_enabled:
        providers[GoogleProvider.id] = GoogleProvider(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
        )
    providers[CredentialsProvider.id] = CredentialsProvider(
        demo_email=settings.DEMO_USER_EMAIL,
        demo_password=settings.DEMO_USER_PASSWORD,
    )
    return providers


PROVIDERS: Dict[str, IdentityProvider] = _build_providers()


def get_provider(provider_id: str) -> Optional[IdentityProvider]:
    return PROVIDERS.get(provider_id)


# -----------------------------------------------------------------------------
# Linking and sessions
# -----------------------------------------------------------------------------
def link_identity(store: Store, identity: ExternalIdentity) -> models.User:
    """Return the internal user for `identity`, creating it on first sign-in."""
    user = store.get_user_by_email(identity.email)
    if user is None:
        user = store.create_user(email=identity.email, name=identity.name, image=identity.image)
        logger.info("user created on first sign-in", extra={"user": user.id})
    return user


def issue_session_token(user: models.User) -> str:
    return utils.create_access_token({"sub": user.id, "email": user.email, "name": user.name})


def _extract_token(request: Request) -> Optional[str]:
    """Extract a bearer token from the Authorization header or the auth cookie."""
    authorization = request.headers.get("authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    cookie_val = request.cookies.get(COOKIE_NAME)
    if cookie_val:
        if cookie_val.startswith("Bearer "):
            return cookie_val.split(" ", 1)[1].strip()
        return cookie_val.strip()
    return None


def read_session(request: Request) -> Optional[SessionIdentity]:
    """Return the session carried by the request, or None if absent/invalid."""
    token = _extract_token(request)
    if not token:
        return None
    claims = utils.decode_access_token(token)
    if not claims or not claims.get("sub"):
        return None
    return SessionIdentity(
        user_id=str(claims["sub"]),
        email=claims.get("email"),
        name=claims.get("name"),
    )
