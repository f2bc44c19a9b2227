"""Tests for the database-backed single-flight loop lock."""

import logging
from datetime import datetime, timedelta, timezone

from sqlmodel import Session

from tradecore.engine.loop_lock import LOCK_ROW_ID, DatabaseLoopLock
from tradecore.models import LoopLock


def _age_lock(db_engine, seconds: int):
    with Session(db_engine) as session:
        row = session.get(LoopLock, LOCK_ROW_ID)
        row.locked_at = datetime.now(timezone.utc) - timedelta(seconds=seconds)
        session.add(row)
        session.commit()


def test_second_holder_is_refused(db_engine):
    lock = DatabaseLoopLock(bind=db_engine, ttl_seconds=120)
    assert lock.acquire("loop-a")
    assert not lock.acquire("loop-b")
    assert lock.status()["locked_by"] == "loop-a"


def test_release_frees_the_lock(db_engine):
    lock = DatabaseLoopLock(bind=db_engine, ttl_seconds=120)
    assert lock.acquire("loop-a")
    lock.release("loop-a")
    assert lock.status()["locked_by"] is None
    assert lock.acquire("loop-b")


def test_stale_lock_is_reclaimed(db_engine):
    lock = DatabaseLoopLock(bind=db_engine, ttl_seconds=120)
    assert lock.acquire("loop-a")
    _age_lock(db_engine, 121)
    assert lock.acquire("loop-b")
    assert lock.status()["locked_by"] == "loop-b"


def test_fresh_lock_is_not_reclaimed(db_engine):
    lock = DatabaseLoopLock(bind=db_engine, ttl_seconds=120)
    assert lock.acquire("loop-a")
    _age_lock(db_engine, 60)
    assert not lock.acquire("loop-b")


def test_release_by_non_holder_keeps_lock(db_engine, caplog):
    lock = DatabaseLoopLock(bind=db_engine, ttl_seconds=120)
    assert lock.acquire("loop-a")
    with caplog.at_level(logging.WARNING):
        lock.release("loop-b")
    assert lock.status()["locked_by"] == "loop-a"
    assert "no longer held" in caplog.text


def test_missing_row_is_created(db_engine):
    with Session(db_engine) as session:
        session.delete(session.get(LoopLock, LOCK_ROW_ID))
        session.commit()
    lock = DatabaseLoopLock(bind=db_engine, ttl_seconds=120)
    assert lock.acquire("loop-a")
    assert lock.status()["locked_by"] == "loop-a"
