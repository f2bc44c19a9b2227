"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tradecore.config import settings
from tradecore.database import create_db_and_tables
from tradecore.utils.logging import setup_logging
from tradecore.api import engine, positions, trades, system

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()
    # Flag drift left by a restart before any cycle runs
    from tradecore.engine.reconciliation import reconcile_on_startup
    await reconcile_on_startup()

    from tradecore.engine.scheduler import start_scheduler, stop_scheduler
    if settings.enable_scheduler:
        start_scheduler()
    else:
        logger.info("Scheduler disabled; cycles run only on demand")

    yield

    stop_scheduler()


app = FastAPI(
    title="Trade Core",
    description="Multi-venue trade execution and position reconciliation engine",
    version="0.1.0",
    lifespan=lifespan,
)

# Mount routers
app.include_router(engine.router)
app.include_router(positions.router)
app.include_router(trades.router)
app.include_router(system.router)
