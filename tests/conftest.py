"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from social_analytics import config as app_config
from social_analytics.auth import create_access_token
from social_analytics.database import Database
from social_analytics.models import Base, ContentRow, OverviewRow, Upload

TEST_JWT_SECRET = "test-secret-for-pytest"

# Fixed clock for window tests: t(10) is ten seconds after BASE_TIME
BASE_TIME = datetime(2026, 1, 15, 12, 0, 0)


def t(seconds: float) -> datetime:
    return BASE_TIME + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _test_settings(tmp_path, monkeypatch):
    """Point data_dir at tmp_path and configure a JWT secret for every test.

    The settings singleton is shared by every module, so its field values
    are patched in place rather than replaced.
    """
    monkeypatch.setitem(app_config.settings.__dict__, "data_dir", tmp_path)
    monkeypatch.setitem(app_config.settings.__dict__, "jwt_secret", TEST_JWT_SECRET)
    monkeypatch.setitem(app_config.settings.__dict__, "export_schema_path", None)
    yield


# ---------------------------------------------------------------------------
# In-memory database fixtures
#
# StaticPool keeps a single SQLite connection for the whole test so data
# written by fixtures and data read by route handlers see the same state.
# SQLite :memory: databases are per-connection.
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def test_engine():
    """Create a fresh in-memory SQLite engine per test function."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_fk(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_session(test_engine):
    """Yield a SQLAlchemy session backed by the in-memory database."""
    TestSession = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# FastAPI test client
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def client(test_engine):
    """Return a TestClient whose app stores everything in test_engine."""
    from social_analytics.main import create_app

    app = create_app(database=Database(engine=test_engine))
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


def make_auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Bearer headers for user 1."""
    return make_auth_headers(1)


@pytest.fixture
def other_auth_headers() -> dict[str, str]:
    """Bearer headers for user 2."""
    return make_auth_headers(2)


# ---------------------------------------------------------------------------
# CSV files
# ---------------------------------------------------------------------------


@pytest.fixture
def write_csv(tmp_path):
    """Return a helper writing text to tmp_path/<name> and returning the path."""

    def _write(name: str, text: str, encoding: str = "utf-8") -> Path:
        path = tmp_path / name
        path.write_bytes(text.encode(encoding))
        return path

    return _write


OVERVIEW_CSV = (
    "Fecha;Impresiones;Me gusta;Nuevos seguidores;Dejar de seguir\n"
    "2026-01-01;1.234;10;3;1\n"
    "2026-01-02;2.500;20;5;0\n"
    "2026-01-03;980;7;1;2\n"
)

CONTENT_CSV = (
    "ID del post,Fecha,Texto del post,Postear enlace,Impresiones,Me gusta,Respuestas\n"
    "1001,2026-01-01,Primer post,https://x.com/u/status/1001,500,12,3\n"
    "1002,2026-01-02,Segundo post,https://x.com/u/status/1002,750,30,4\n"
)


# ---------------------------------------------------------------------------
# Sample database state
# ---------------------------------------------------------------------------


@pytest.fixture
def windowed_uploads(test_session) -> dict[str, object]:
    """Two uploads of user 1 at t=10 and t=20 with rows at t=12 and t=22.

    User 2 owns a row at t=12 too, which no user-1 operation may touch.
    """
    u1 = Upload(owner_id=1, file_name="first.csv", kind="overview", rows_imported=1, uploaded_at=t(10))
    u2 = Upload(owner_id=1, file_name="second.csv", kind="overview", rows_imported=1, uploaded_at=t(20))
    row_a = OverviewRow(owner_id=1, date=datetime(2026, 1, 1), impressions=100, created_at=t(12))
    row_b = OverviewRow(owner_id=1, date=datetime(2026, 1, 2), impressions=200, created_at=t(22))
    foreign = OverviewRow(owner_id=2, date=datetime(2026, 1, 1), impressions=300, created_at=t(12))
    post = ContentRow(owner_id=1, post_id=555, impressions=50, created_at=t(12))
    test_session.add_all([u1, u2, row_a, row_b, foreign, post])
    test_session.commit()
    return {"u1": u1, "u2": u2, "row_a": row_a, "row_b": row_b, "foreign": foreign, "post": post}
