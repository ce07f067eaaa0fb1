from contextlib import asynccontextmanager
from typing import List, Optional
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlencode
import logging

from fastapi import FastAPI, Depends, Query, Request, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, HTMLResponse
from fastapi.templating import Jinja2Templates
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool
from starlette.middleware.sessions import SessionMiddleware
from sqlalchemy.exc import SQLAlchemyError

from .settings import settings
from . import auth, deps, errors, schemas, services, utils
from .database import init_db
from .guard import RouteGuardMiddleware
from .logging_config import configure_logging
from .ports import Store

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

# -----------------------------------------------------------------------------
# App & middleware
# -----------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Task Tracker", lifespan=lifespan)

app.add_middleware(RouteGuardMiddleware)
# Signed cookie session; only carries the OAuth state between redirects
app.add_middleware(SessionMiddleware, secret_key=settings.SECRET_KEY, same_site="lax")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


# -----------------------------------------------------------------------------
# Error translation
# -----------------------------------------------------------------------------
@app.exception_handler(errors.TaskTrackerError)
async def task_tracker_error_handler(request: Request, exc: errors.TaskTrackerError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": errors.Internal().message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": errors.Internal().message})


# -----------------------------------------------------------------------------
# Cookie helpers (JWT)
# -----------------------------------------------------------------------------
def set_auth_cookie(response: RedirectResponse | JSONResponse, token: str):
    response.set_cookie(
        key=auth.COOKIE_NAME,
        value=f"Bearer {token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=int(timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES).total_seconds()),
        path="/",
    )


def clear_auth_cookie(response: RedirectResponse | JSONResponse):
    response.delete_cookie(auth.COOKIE_NAME, path="/")


def signed_in_redirect(user) -> RedirectResponse:
    resp = RedirectResponse(url="/", status_code=302)
    set_auth_cookie(resp, auth.issue_session_token(user))
    return resp


def signin_error_redirect(code: str) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.SIGNIN_PATH}?{urlencode({'error': code})}", status_code=302)


async def _json_body(request: Request):
    try:
        return await request.json()
    except ValueError:
        raise errors.InvalidInput("Invalid JSON body")


# -----------------------------------------------------------------------------
# AUTH routes (API)
# -----------------------------------------------------------------------------
@app.get("/api/auth/providers", response_model=List[schemas.ProviderOut])
def list_providers():
    return [
        schemas.ProviderOut(id=p.id, name=p.name, type=p.type)
        for p in auth.PROVIDERS.values()
    ]


@app.get("/api/auth/signin/{provider_id}", include_in_schema=False)
def provider_signin(provider_id: str, request: Request):
    provider = auth.get_provider(provider_id)
    if provider is None:
        raise errors.NotFound("Unknown provider")
    if not isinstance(provider, auth.GoogleProvider):
        return RedirectResponse(url=settings.SIGNIN_PATH, status_code=302)
    return RedirectResponse(url=provider.begin(request), status_code=302)


@app.api_route("/api/auth/callback/{provider_id}", methods=["GET", "POST"], include_in_schema=False)
async def provider_callback(
    provider_id: str,
    request: Request,
    store: Store = Depends(deps.get_store),
):
    provider = auth.get_provider(provider_id)
    if provider is None:
        raise errors.NotFound("Unknown provider")
    identity = await provider.resolve(request, store)
    if identity is None:
        logger.info("sign-in rejected by provider %s", provider_id)
        return signin_error_redirect("CredentialsSignin" if provider_id == "credentials" else "OAuthSignin")
    user = await run_in_threadpool(auth.link_identity, store, identity)
    logger.info("signed in via %s", provider_id, extra={"user": user.id})
    return signed_in_redirect(user)


@app.post("/api/auth/token", response_model=schemas.Token)
async def issue_token(request: Request, store: Store = Depends(deps.get_store)):
    identity = await auth.get_provider("credentials").resolve(request, store)
    if identity is None:
        raise errors.InvalidInput("Incorrect username or password")
    user = await run_in_threadpool(auth.link_identity, store, identity)
    return {"access_token": auth.issue_session_token(user), "token_type": "bearer"}


@app.post("/api/auth/register", response_model=schemas.UserOut, status_code=201)
def register(user_in: schemas.UserCreate, store: Store = Depends(deps.get_store)):
    if store.get_user_by_email(user_in.email):
        raise errors.InvalidInput("Email already registered")
    return store.create_user(
        email=user_in.email,
        name=user_in.name,
        password_hash=utils.hash_password(user_in.password),
    )


@app.get("/api/auth/session", response_model=schemas.SessionOut)
def current_session(session: Optional[auth.SessionIdentity] = Depends(deps.get_session)):
    if session is None:
        return schemas.SessionOut()
    return schemas.SessionOut(
        user=schemas.SessionUser(id=session.user_id, email=session.email, name=session.name)
    )


@app.api_route("/api/auth/signout", methods=["GET", "POST"], include_in_schema=False)
def signout():
    resp = RedirectResponse(url=settings.SIGNIN_PATH, status_code=302)
    clear_auth_cookie(resp)
    return resp


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------
@app.get("/health")
def health():
    return {"status": "ok"}


# -----------------------------------------------------------------------------
# TASKS routes (API)
# -----------------------------------------------------------------------------
@app.get("/api/tasks", response_model=schemas.TaskPage)
def list_tasks(
    q: Optional[str] = Query(None, description="case-insensitive title substring"),
    page: Optional[str] = Query(None, description="1-based page number"),
    page_size: Optional[str] = Query(None, alias="pageSize", description="1..100, default 10"),
    store: Store = Depends(deps.get_store),
    session: Optional[auth.SessionIdentity] = Depends(deps.get_session),
):
    return services.list_tasks(
        store,
        deps.session_user_id(session),
        q=q,
        page=utils.parse_int(page),
        page_size=utils.parse_int(page_size),
    )


@app.post("/api/tasks", response_model=schemas.TaskOut, status_code=201)
async def create_task(
    request: Request,
    store: Store = Depends(deps.get_store),
    session: Optional[auth.SessionIdentity] = Depends(deps.get_session),
):
    title = None
    if session is not None:
        payload = await _json_body(request)
        title = payload.get("title") if isinstance(payload, dict) else None
    return await run_in_threadpool(services.create_task, store, deps.session_user_id(session), title)


@app.patch("/api/tasks/{task_id}/toggle", response_model=schemas.TaskOut)
def toggle_task(
    task_id: str,
    store: Store = Depends(deps.get_store),
    session: Optional[auth.SessionIdentity] = Depends(deps.get_session),
):
    return services.toggle_task(store, deps.session_user_id(session), task_id)


# -----------------------------------------------------------------------------
# HTML routes (pages)
# -----------------------------------------------------------------------------
def _home_url(q: Optional[str] = None, page: Optional[str] = None, error: Optional[str] = None) -> str:
    params = {k: v for k, v in (("q", q), ("page", page), ("error", error)) if v}
    return f"/?{urlencode(params)}" if params else "/"


@app.get("/", response_class=HTMLResponse, include_in_schema=False)
def home(
    request: Request,
    q: Optional[str] = None,
    page: Optional[str] = None,
    error: Optional[str] = None,
    store: Store = Depends(deps.get_store),
    session: Optional[auth.SessionIdentity] = Depends(deps.get_session),
):
    if session is None:
        return RedirectResponse(url=settings.SIGNIN_PATH, status_code=302)
    result = services.list_tasks(store, session.user_id, q=q, page=utils.parse_int(page))
    return templates.TemplateResponse(
        request,
        "home.html",
        {"session": session, "result": result, "q": q or "", "error": error},
    )


@app.post("/tasks", include_in_schema=False)
def create_task_form(
    title: str = Form(""),
    store: Store = Depends(deps.get_store),
    session: Optional[auth.SessionIdentity] = Depends(deps.get_session),
):
    try:
        services.create_task(store, deps.session_user_id(session), title)
    except errors.InvalidInput as exc:
        return RedirectResponse(url=_home_url(error=exc.message), status_code=303)
    return RedirectResponse(url="/", status_code=303)


@app.post("/tasks/{task_id}/toggle", include_in_schema=False)
def toggle_task_form(
    task_id: str,
    q: str = Form(""),
    page: str = Form(""),
    store: Store = Depends(deps.get_store),
    session: Optional[auth.SessionIdentity] = Depends(deps.get_session),
):
    services.toggle_task(store, deps.session_user_id(session), task_id)
    return RedirectResponse(url=_home_url(q=q, page=page), status_code=303)


@app.get(settings.SIGNIN_PATH, response_class=HTMLResponse, include_in_schema=False)
def signin_page(
    request: Request,
    error: Optional[str] = None,
    session: Optional[auth.SessionIdentity] = Depends(deps.get_session),
):
    if session is not None:
        return RedirectResponse(url="/", status_code=302)
    oauth_providers = [p for p in auth.PROVIDERS.values() if p.type == "oauth"]
    return templates.TemplateResponse(
        request,
        "signin.html",
        {"error": error, "oauth_providers": oauth_providers},
    )


@app.get("/auth/register", response_class=HTMLResponse, include_in_schema=False)
def register_page(request: Request):
    return templates.TemplateResponse(request, "register.html", {})


@app.post("/auth/register", response_class=HTMLResponse, include_in_schema=False)
def register_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    password_confirm: str = Form(...),
    name: str = Form(""),
    store: Store = Depends(deps.get_store),
):
    email_norm = (email or "").strip().lower()

    def _fail(message: str):
        return templates.TemplateResponse(
            request,
            "register.html",
            {"error": message, "email_prefill": email, "name_prefill": name},
            status_code=400,
        )

    if not email_norm:
        return _fail("Email is required.")
    if len(password or "") < 8:
        return _fail("Password must be at least 8 characters.")
    if password != password_confirm:
        return _fail("Passwords do not match.")
    if store.get_user_by_email(email_norm):
        return _fail("That email is already registered.")

    user = store.create_user(
        email=email_norm,
        name=name.strip() or None,
        password_hash=utils.hash_password(password),
    )
    return signed_in_redirect(user)
