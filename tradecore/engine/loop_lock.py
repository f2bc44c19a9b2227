"""Single-flight lock for the trading loop.

The lock is one durable row ``{locked_at, locked_by}``. Acquiring is a single
conditional UPDATE that only succeeds when the row is free or its holder has
been silent for longer than the TTL, so two triggers can never both win.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy import or_, update
from sqlmodel import Session

from tradecore.config import settings
from tradecore.database import engine as default_engine
from tradecore.models import LoopLock

logger = logging.getLogger(__name__)

LOCK_ROW_ID = 1


class LoopLockPort(Protocol):
    def acquire(self, holder: str) -> bool: ...

    def release(self, holder: str) -> None: ...


class DatabaseLoopLock:

    def __init__(self, bind=None, ttl_seconds: int | None = None):
        self.engine = bind or default_engine
        self.ttl = timedelta(seconds=ttl_seconds or settings.lock_timeout_seconds)

    def acquire(self, holder: str) -> bool:
        now = datetime.now(timezone.utc)
        stale_before = now - self.ttl
        with Session(self.engine) as session:
            result = session.execute(
                update(LoopLock)
                .where(
                    LoopLock.id == LOCK_ROW_ID,
                    or_(LoopLock.locked_at.is_(None), LoopLock.locked_at < stale_before),
                )
                .values(locked_at=now, locked_by=holder)
            )
            if result.rowcount == 1:
                session.commit()
                return True

            row = session.get(LoopLock, LOCK_ROW_ID)
            if row is None:
                session.add(LoopLock(id=LOCK_ROW_ID, locked_at=now, locked_by=holder))
                session.commit()
                return True

            logger.info(f"Loop lock held by {row.locked_by} since {row.locked_at}")
            return False

    def release(self, holder: str) -> None:
        with Session(self.engine) as session:
            result = session.execute(
                update(LoopLock)
                .where(LoopLock.id == LOCK_ROW_ID, LoopLock.locked_by == holder)
                .values(locked_at=None, locked_by=None)
            )
            session.commit()
        if result.rowcount != 1:
            logger.warning(f"Loop lock release by {holder}: lock was no longer held")

    def status(self) -> dict:
        with Session(self.engine) as session:
            row = session.get(LoopLock, LOCK_ROW_ID)
        return {
            "locked_by": row.locked_by if row else None,
            "locked_at": str(row.locked_at) if row and row.locked_at else None,
        }
