"""APScheduler integration for FastAPI.

Two interval jobs: the trading cycle and an independent reconciliation pass.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tradecore.config import settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

CYCLE_JOB_ID = "trading_cycle"
RECONCILE_JOB_ID = "reconciliation"

_trading_loop = None


def get_trading_loop():
    """Process-wide TradingLoop wired to the real store, venues and signal source."""
    global _trading_loop
    if _trading_loop is None:
        from tradecore.engine.loop_lock import DatabaseLoopLock
        from tradecore.engine.reconciliation import Reconciler
        from tradecore.engine.trading_loop import TradingLoop
        from tradecore.services.execution import OrderExecutionService
        from tradecore.services.market_data import PublicTickerPriceSource
        from tradecore.services.position_store import PositionStore
        from tradecore.services.signal_source import HTTPSignalSource

        store = PositionStore()
        _trading_loop = TradingLoop(
            store=store,
            lock=DatabaseLoopLock(),
            executor=OrderExecutionService(store, PublicTickerPriceSource()),
            reconciler=Reconciler(store),
            signal_source=HTTPSignalSource(settings.signal_source_url),
        )
    return _trading_loop


async def run_trading_cycle():
    await get_trading_loop().run_cycle(triggered_by="scheduler")


async def run_reconciliation():
    from tradecore.engine.reconciliation import Reconciler
    from tradecore.services.position_store import PositionStore

    await Reconciler(PositionStore()).reconcile(auto_fix=True)


def start_scheduler():
    """Register both jobs and start the scheduler."""
    scheduler.add_job(
        run_trading_cycle,
        trigger=IntervalTrigger(seconds=settings.cycle_interval_seconds),
        id=CYCLE_JOB_ID,
        name="Trading cycle",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=settings.cycle_interval_seconds,
    )
    scheduler.add_job(
        run_reconciliation,
        trigger=IntervalTrigger(seconds=settings.reconcile_interval_seconds),
        id=RECONCILE_JOB_ID,
        name="Reconciliation",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started: cycle every {settings.cycle_interval_seconds}s, "
        f"reconcile every {settings.reconcile_interval_seconds}s"
    )


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
