"""Tests for server/db/session.py -- the validator store engine and unit of work."""

import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import inspect

from server.config import Settings
from server.db.models import ValidatorRuntime
from server.db.session import get_db, get_engine, init_db, reset_engine


def _settings(tmp, name="nested/store.db"):
    reset_engine()
    return Settings(
        database_url=f"sqlite:///{Path(tmp) / name}",
        result_log_path=Path(tmp) / "results.jsonl",
    )


def test_init_db_creates_directory_and_tables():
    with tempfile.TemporaryDirectory() as tmp:
        settings = _settings(tmp)
        try:
            init_db(settings)
            assert (Path(tmp) / "nested" / "store.db").exists()
            tables = set(inspect(get_engine(settings)).get_table_names())
            assert {
                "validator_runtimes", "play_sessions", "learning_events",
                "proof_records", "stress_test_records",
            } <= tables
        finally:
            reset_engine()


def test_get_db_commits_on_clean_exit():
    with tempfile.TemporaryDirectory() as tmp:
        settings = _settings(tmp)
        try:
            init_db(settings)
            with get_db(settings) as db:
                db.add(ValidatorRuntime(id="rt-1", name="Budget Crisis", competency="Crisis Management"))
            with get_db(settings) as db:
                assert db.get(ValidatorRuntime, "rt-1") is not None
        finally:
            reset_engine()


def test_get_db_rolls_back_when_block_raises():
    with tempfile.TemporaryDirectory() as tmp:
        settings = _settings(tmp)
        try:
            init_db(settings)
            with pytest.raises(RuntimeError):
                with get_db(settings) as db:
                    db.add(ValidatorRuntime(id="rt-2", name="Draft", competency="Ops"))
                    db.flush()
                    raise RuntimeError("publish failed")
            with get_db(settings) as db:
                assert db.get(ValidatorRuntime, "rt-2") is None
        finally:
            reset_engine()


def test_reset_engine_switches_database():
    with tempfile.TemporaryDirectory() as tmp:
        first = _settings(tmp, "a.db")
        try:
            assert str(get_engine(first).url).endswith("a.db")
            second = _settings(tmp, "b.db")
            assert str(get_engine(second).url).endswith("b.db")
        finally:
            reset_engine()
