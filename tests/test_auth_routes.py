# test_auth_routes.py
import uuid
from urllib.parse import parse_qs, urlparse

import httpx

from tasktracker import auth
from tasktracker.crud import SqlStore


def _email(prefix="user"):
    return f"{prefix}_{uuid.uuid4().hex[:8]}@example.com"


def test_register_rejects_short_password(web):
    r = web.post("/api/auth/register", json={"email": _email(), "password": "short"})
    assert r.status_code == 422, r.text


def test_register_then_token_login(web):
    email = _email()
    rr = web.post("/api/auth/register", json={"email": email, "password": "longpass", "name": "Ada"})
    assert rr.status_code == 201, rr.text
    user = rr.json()
    assert user["email"] == email
    assert user["name"] == "Ada"
    assert "createdAt" in user
    assert "password" not in user and "passwordHash" not in user

    dup = web.post("/api/auth/register", json={"email": email, "password": "longpass"})
    assert dup.status_code == 400
    assert dup.json()["detail"] == "Email already registered"

    lr = web.post("/api/auth/token", data={"username": email, "password": "longpass"})
    assert lr.status_code == 200, lr.text
    token = lr.json()["access_token"]
    assert lr.json()["token_type"] == "bearer"

    headers = {"Authorization": f"Bearer {token}"}
    session = web.get("/api/auth/session", headers=headers).json()
    assert session["user"]["id"] == user["id"]
    assert session["user"]["email"] == email

    created = web.post("/api/tasks", json={"title": "via bearer"}, headers=headers)
    assert created.status_code == 201
    assert created.json()["userId"] == user["id"]


def test_token_login_rejects_bad_password(web):
    email = _email()
    web.post("/api/auth/register", json={"email": email, "password": "longpass"})
    r = web.post("/api/auth/token", data={"username": email, "password": "nope-nope"})
    assert r.status_code == 400


def test_credentials_callback_sets_cookie_and_redirects(web):
    email = _email("web")
    web.post("/api/auth/register", json={"email": email, "password": "12345678"})

    r = web.post(
        "/api/auth/callback/credentials",
        data={"email": email, "password": "12345678"},
        follow_redirects=False,
    )
    assert r.status_code == 302, r.text
    assert r.headers["location"] == "/"
    assert "access_token=" in r.headers.get("set-cookie", "")

    # the cookie now authenticates API calls
    assert web.get("/api/tasks").status_code == 200
    assert web.get("/api/auth/session").json()["user"]["email"] == email


def test_credentials_callback_failure_redirects_to_signin(web):
    r = web.post(
        "/api/auth/callback/credentials",
        data={"email": _email(), "password": "whatever1"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"] == "/auth/signin?error=CredentialsSignin"
    assert "access_token=" not in r.headers.get("set-cookie", "")


def test_demo_account_creates_user_once(web, db):
    store = SqlStore(db)

    def sign_in():
        r = web.post(
            "/api/auth/token",
            data={"username": "test@example.com", "password": "123"},
        )
        assert r.status_code == 200, r.text
        return web.get(
            "/api/auth/session",
            headers={"Authorization": f"Bearer {r.json()['access_token']}"},
        ).json()["user"]

    first = sign_in()
    second = sign_in()
    assert first["id"] == second["id"]

    db.expire_all()
    user = store.get_user_by_email("test@example.com")
    assert user is not None
    assert user.id == first["id"]
    assert user.name == "Test User"


def test_unknown_provider_is_404(web):
    assert web.get("/api/auth/callback/github").status_code == 404
    assert web.get("/api/auth/signin/github").status_code == 404


def test_providers_listing(web):
    ids = [p["id"] for p in web.get("/api/auth/providers").json()]
    assert "credentials" in ids


def _google_transport(profile):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            assert b"code=good-code" in request.content
            return httpx.Response(200, json={"access_token": "google-token"})
        if request.url.path == "/v1/userinfo":
            assert request.headers["authorization"] == "Bearer google-token"
            return httpx.Response(200, json=profile)
        return httpx.Response(404)
    return httpx.MockTransport(handler)


def test_google_sign_in_links_user(web, db, monkeypatch):
    email = _email("ada")
    provider = auth.GoogleProvider(
        client_id="cid",
        client_secret="secret",
        redirect_uri="http://testserver/api/auth/callback/google",
        transport=_google_transport({"email": email, "name": "Ada", "picture": "https://img.example.com/ada.png"}),
    )
    monkeypatch.setitem(auth.PROVIDERS, "google", provider)

    start = web.get("/api/auth/signin/google", follow_redirects=False)
    assert start.status_code == 302
    location = urlparse(start.headers["location"])
    assert location.netloc == "accounts.google.com"
    state = parse_qs(location.query)["state"][0]

    r = web.get(
        "/api/auth/callback/google",
        params={"code": "good-code", "state": state},
        follow_redirects=False,
    )
    assert r.status_code == 302, r.text
    assert r.headers["location"] == "/"

    session = web.get("/api/auth/session").json()["user"]
    user = SqlStore(db).get_user_by_email(email)
    assert user is not None
    assert session["id"] == user.id
    assert user.image == "https://img.example.com/ada.png"
    assert user.password_hash is None


def test_google_callback_rejects_wrong_state(web, monkeypatch):
    provider = auth.GoogleProvider(
        client_id="cid",
        client_secret="secret",
        redirect_uri="http://testserver/api/auth/callback/google",
        transport=_google_transport({"email": _email()}),
    )
    monkeypatch.setitem(auth.PROVIDERS, "google", provider)

    web.get("/api/auth/signin/google", follow_redirects=False)
    r = web.get(
        "/api/auth/callback/google",
        params={"code": "good-code", "state": "forged"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"] == "/auth/signin?error=OAuthSignin"


def test_signout_clears_cookie(web):
    email = _email()
    web.post("/api/auth/register", json={"email": email, "password": "12345678"})
    web.post("/api/auth/callback/credentials", data={"email": email, "password": "12345678"}, follow_redirects=False)

    r = web.get("/api/auth/signout", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/auth/signin"
    assert web.get("/api/auth/session").json() == {"user": None}
    assert web.get("/api/tasks").status_code == 401


def test_invalid_token_is_anonymous(web):
    headers = {"Authorization": "Bearer not-a-jwt"}
    assert web.get("/api/tasks", headers=headers).status_code == 401
    assert web.get("/api/auth/session", headers=headers).json() == {"user": None}
