from unittest.mock import Mock, patch

import pytest

from core import db as core_db


class TestEngine:
    def test_sqlite_enforces_foreign_keys(self):
        with core_db.engine.connect() as conn:
            assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1

    def test_constraint_naming(self):
        users = core_db.Base.metadata.tables["users"]
        assert users.primary_key.name == "pk_users"


class TestSessions:
    def test_get_db_rolls_back_on_error(self):
        session = Mock()
        with patch.object(core_db, "SessionLocal", return_value=session):
            gen = core_db.get_db()
            assert next(gen) is session
            with pytest.raises(ValueError):
                gen.throw(ValueError("boom"))
        session.rollback.assert_called_once()
        session.close.assert_called_once()
        session.commit.assert_not_called()

    def test_db_session_commits(self):
        session = Mock()
        with patch.object(core_db, "SessionLocal", return_value=session):
            with core_db.db_session() as db:
                assert db is session
        session.commit.assert_called_once()
        session.close.assert_called_once()

    def test_db_session_rolls_back(self):
        session = Mock()
        with patch.object(core_db, "SessionLocal", return_value=session):
            with pytest.raises(RuntimeError):
                with core_db.db_session():
                    raise RuntimeError("task failed")
        session.rollback.assert_called_once()
        session.commit.assert_not_called()
