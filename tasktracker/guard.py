"""Route guard: redirects unauthenticated page requests to the sign-in page.

Public paths (auth endpoints, sign-in/registration pages, static and docs
assets, well-known files) always pass. API paths always pass as well; their
handlers answer 401 themselves. Everything else needs a valid session token.
"""

from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse

from . import auth
from .settings import settings

PUBLIC = "public"
API = "api"
PAGE = "page"

PUBLIC_PREFIXES = ("/api/auth/", "/static/", "/favicon")
PUBLIC_PATHS = {
    "/api/auth",
    "/auth/register",
    "/robots.txt",
    "/sitemap.xml",
    "/health",
    "/docs",
    "/docs/oauth2-redirect",
    "/redoc",
    "/openapi.json",
}


def classify_path(path: str) -> str:
    if path == settings.SIGNIN_PATH or path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
        return PUBLIC
    if path == "/api" or path.startswith("/api/"):
        return API
    return PAGE


def redirect_for(path: str, has_session: bool) -> Optional[str]:
    """Return the sign-in location when the request must be redirected."""
    if classify_path(path) != PAGE or has_session:
        return None
    return settings.SIGNIN_PATH


class RouteGuardMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        location = redirect_for(request.url.path, auth.read_session(request) is not None)
        if location:
            return RedirectResponse(url=location, status_code=302)
        return await call_next(request)
