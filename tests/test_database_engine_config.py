import pytest
from unittest.mock import MagicMock
from sqlalchemy.exc import IntegrityError, OperationalError

from birthdayclub.errors import StoreUnavailableError


def test_get_engine_kwargs_sqlite_has_check_same_thread():
    from birthdayclub.database import database as db

    kwargs = db.get_engine_kwargs("sqlite:///./birthdayclub.db")
    assert kwargs["connect_args"]["check_same_thread"] is False
    assert "pool_size" not in kwargs
    assert kwargs["pool_pre_ping"] is True


def test_get_engine_kwargs_postgres_reads_pool_settings(monkeypatch):
    from birthdayclub.database import database as db

    monkeypatch.setenv("DB_POOL_SIZE", "7")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "3")
    monkeypatch.setenv("DB_POOL_TIMEOUT_SEC", "15")

    kwargs = db.get_engine_kwargs("postgresql+psycopg://u:p@localhost:5432/birthdays")
    assert "connect_args" not in kwargs
    assert kwargs["pool_size"] == 7
    assert kwargs["max_overflow"] == 3
    assert kwargs["pool_timeout"] == 15


def test_is_sqlite_url():
    from birthdayclub.database import database as db

    assert db._is_sqlite_url("sqlite:///./birthdayclub_archive.db") is True
    assert db._is_sqlite_url("postgresql+psycopg://u:p@localhost/db") is False


def test_translate_store_errors_maps_connectivity_failures():
    from birthdayclub.database.database import translate_store_errors

    session = MagicMock()
    with pytest.raises(StoreUnavailableError) as exc_info:
        with translate_store_errors(session, "load user"):
            raise OperationalError("SELECT 1", {}, Exception("could not connect"))

    session.rollback.assert_called_once()
    assert exc_info.value.status_code == 503
    assert "load user" in str(exc_info.value)


def test_translate_store_errors_passes_other_errors_through():
    from birthdayclub.database.database import translate_store_errors

    session = MagicMock()
    with pytest.raises(IntegrityError):
        with translate_store_errors(session, "create user"):
            raise IntegrityError("INSERT", {}, Exception("unique"))

    session.rollback.assert_called_once()
