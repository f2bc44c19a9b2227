"""SQLModel database engine and session management."""

import logging

from sqlmodel import SQLModel, create_engine, Session, select

from tradecore.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)


def _seed_singletons(bind):
    """Make sure the lock row and a settings row exist."""
    from tradecore.models.bot_settings import BotSettings
    from tradecore.models.loop_lock import LoopLock

    with Session(bind) as session:
        if session.get(LoopLock, 1) is None:
            logger.info("Creating trading loop lock row")
            session.add(LoopLock(id=1))
        if session.exec(select(BotSettings)).first() is None:
            logger.info("Creating default bot settings")
            session.add(BotSettings())
        session.commit()


def create_db_and_tables(bind=None):
    """Create all tables. Called on startup."""
    import tradecore.models  # noqa: F401  register tables

    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    _seed_singletons(bind)


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
