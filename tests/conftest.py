import os
import sys
import uuid
import pathlib
import tempfile
import pytest

# --- Make the project importable before importing the app ---
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# SQLite on a temp file (stable across TestClient threads)
TEST_DIR = tempfile.mkdtemp(prefix="tasktracker_tests_")
DB_PATH = pathlib.Path(TEST_DIR) / "test.db"
os.environ["DATABASE_URL"] = f"sqlite:///{DB_PATH}"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DEMO_USER_EMAIL"] = "test@example.com"
os.environ["DEMO_USER_PASSWORD"] = "123"
os.environ.pop("GOOGLE_CLIENT_ID", None)
os.environ.pop("GOOGLE_CLIENT_SECRET", None)

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tasktracker.database import Base, SessionLocal, engine
from tasktracker import auth, deps, models
from tasktracker.main import app


@pytest.fixture(scope="session", autouse=True)
def _schema():
    """Create the schema for the test session and drop it at the end."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db() -> Session:
    """One DB session per test."""
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def make_user(db: Session):
    """Factory persisting a user with a unique email."""
    def _make(prefix: str = "tester", **fields) -> models.User:
        u = models.User(email=f"{prefix}_{uuid.uuid4().hex[:8]}@example.com", **fields)
        db.add(u)
        db.commit()
        db.refresh(u)
        return u
    return _make


@pytest.fixture()
def test_user(make_user) -> models.User:
    return make_user("tester", name="Tester")


@pytest.fixture()
def other_user(make_user) -> models.User:
    return make_user("other", name="Other")


def identity_for(user: models.User) -> auth.SessionIdentity:
    return auth.SessionIdentity(user_id=user.id, email=user.email, name=user.name)


@pytest.fixture()
def act_as(test_user: models.User):
    """Switch the identity the `client` fixture authenticates as (None = anonymous)."""
    state = {"session": identity_for(test_user)}

    def _act(user):
        state["session"] = identity_for(user) if user is not None else None

    _act.state = state
    return _act


@pytest.fixture()
def client(db: Session, act_as):
    """
    TestClient with overrides:
      - get_db -> the test session
      - get_session -> whoever `act_as` selected (test_user by default)
    """
    def _get_db():
        yield db

    def _get_session():
        return act_as.state["session"]

    app.dependency_overrides[deps.get_db] = _get_db
    app.dependency_overrides[deps.get_session] = _get_session

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def web():
    """TestClient without overrides: real cookies, real route guard."""
    app.dependency_overrides.clear()
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def api_create(client):
    """Helper creating tasks as the current identity."""
    def _make(title: str):
        r = client.post("/api/tasks", json={"title": title})
        assert r.status_code == 201, r.text
        return r.json()
    return _make
