"""Tests for configuration and the Database lifecycle."""

import pytest
from pydantic import ValidationError
from sqlalchemy import inspect

from social_analytics import config as app_config
from social_analytics.config import Settings
from social_analytics.database import Database
from social_analytics.models import Upload


class TestSettings:
    def test_default_database_lives_under_data_dir(self, tmp_path):
        s = Settings(data_dir=tmp_path, database_url="")
        assert s.db_path == tmp_path / "analytics.db"
        assert s.resolved_database_url == f"sqlite:///{tmp_path / 'analytics.db'}"
        assert s.uploads_dir == tmp_path / "uploads"

    def test_explicit_database_url(self):
        s = Settings(database_url="sqlite:///elsewhere.db")
        assert s.resolved_database_url == "sqlite:///elsewhere.db"

    def test_auth_enabled(self):
        assert Settings(jwt_secret="x").auth_enabled
        assert not Settings(jwt_secret="").auth_enabled

    def test_only_hmac_algorithms(self):
        assert Settings(jwt_algorithm="HS512").jwt_algorithm == "HS512"
        with pytest.raises(ValidationError):
            Settings(jwt_algorithm="RS256")


class TestDatabase:
    def test_open_creates_file_and_tables(self, tmp_path, monkeypatch):
        data_dir = tmp_path / "nested" / "data"
        monkeypatch.setitem(app_config.settings.__dict__, "data_dir", data_dir)
        monkeypatch.setitem(app_config.settings.__dict__, "database_url", "")

        database = Database()
        database.open()
        try:
            assert database.is_open
            assert (data_dir / "analytics.db").exists()
            tables = set(inspect(database.engine).get_table_names())
            assert {"account_overview", "posts", "csv_uploads", "ai_analyses"} <= tables
        finally:
            database.close()
        assert not database.is_open

    def test_session_before_open_raises(self):
        with pytest.raises(RuntimeError, match="not open"):
            Database(database_url="sqlite://").session()

    def test_session_scope_commits(self, tmp_path):
        database = Database(database_url=f"sqlite:///{tmp_path / 'scope.db'}")
        database.open()
        try:
            with database.session_scope() as db:
                db.add(Upload(owner_id=1, file_name="a.csv", kind="overview"))
            with database.session_scope() as db:
                assert db.query(Upload).count() == 1
        finally:
            database.close()

    def test_session_scope_rolls_back_on_error(self, tmp_path):
        database = Database(database_url=f"sqlite:///{tmp_path / 'scope.db'}")
        database.open()
        try:
            with pytest.raises(ValueError):
                with database.session_scope() as db:
                    db.add(Upload(owner_id=1, file_name="a.csv", kind="overview"))
                    db.flush()
                    raise ValueError("boom")
            with database.session_scope() as db:
                assert db.query(Upload).count() == 0
        finally:
            database.close()

    def test_borrowed_engine_survives_close(self, test_engine):
        database = Database(engine=test_engine)
        database.open()
        database.close()
        assert not database.is_open
        with test_engine.connect() as conn:
            assert conn.exec_driver_sql("SELECT 1").scalar() == 1
