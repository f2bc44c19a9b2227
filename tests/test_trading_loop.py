"""Tests for the trading loop cycle: single-flight, policy gates, monitoring and per-venue fan-out."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlmodel import Session

from conftest import (
    FakeGateway,
    FakePriceSource,
    FakeSignalSource,
    InMemoryLoopLock,
    add_venue,
    configure,
    seed_position,
)
from tradecore.engine.reconciliation import Reconciler
from tradecore.engine.trading_loop import TradingLoop
from tradecore.models import DailyStats, PositionStatus, TakeProfitStatus
from tradecore.schemas.results import CycleStatus, ErrorType, ReconcileResult
from tradecore.schemas.signal import Signal
from tradecore.services.execution import OrderExecutionService
from tradecore.services.gateway import GatewayNetworkError


def _signal(venue="binance", symbol="BTC/USDT", price=50_000.0, **overrides) -> Signal:
    fields = dict(
        exchange=venue,
        symbol=symbol,
        direction="long",
        score=70,
        confidence=0.8,
        entryPrice=price,
        tradeType="spot",
        reasoning="momentum",
    )
    fields.update(overrides)
    return Signal.model_validate(fields)


def _loop(store, gateways=None, signals=None, lock=None, prices=None, paper_balance=10_000.0, reconciler=None):
    gateways = gateways or {"binance": FakeGateway()}

    def factory(venue):
        return gateways[venue.name]

    executor = OrderExecutionService(store, prices or FakePriceSource(), gateway_factory=factory)
    signal_source = signals if isinstance(signals, FakeSignalSource) else FakeSignalSource(signals)
    return TradingLoop(
        store,
        lock or InMemoryLoopLock(),
        executor,
        reconciler or Reconciler(store, gateway_factory=factory),
        signal_source,
        paper_balance=paper_balance,
    )


@pytest.fixture
def running(db_engine):
    """Bot running in paper mode with $400 orders and room for 10 positions."""
    return configure(
        db_engine,
        is_bot_running=True,
        is_paper_trading=True,
        min_order_size=400.0,
        max_order_size=450.0,
        max_open_positions=10,
    )


# ---------------------------------------------------------------------------
# 1. Single-flight
# ---------------------------------------------------------------------------

class TestSingleFlight:

    @pytest.mark.asyncio
    async def test_skips_when_lock_held(self, store):
        lock = InMemoryLoopLock(held_by="loop-other")
        signals = FakeSignalSource([_signal()])
        result = await _loop(store, signals=signals, lock=lock).run_cycle()

        assert result.success
        assert result.status == CycleStatus.SKIPPED_CONCURRENT
        assert result.outcome.error_type == ErrorType.CONCURRENT_SKIP
        assert result.errors == []
        assert signals.calls == []
        assert lock.held_by == "loop-other"
        assert store.list_cycle_logs() == []

    @pytest.mark.asyncio
    async def test_lock_released_and_cycle_logged(self, store):
        lock = InMemoryLoopLock()
        result = await _loop(store, lock=lock).run_cycle(triggered_by="manual")

        assert lock.acquired == [result.cycle_id]
        assert lock.released == [result.cycle_id]
        assert lock.held_by is None
        (log,) = store.list_cycle_logs()
        assert log.cycle_id == result.cycle_id
        assert log.status == result.status.value

    @pytest.mark.asyncio
    async def test_lock_released_on_unexpected_error(self, store, monkeypatch):
        lock = InMemoryLoopLock()
        monkeypatch.setattr(store, "get_settings", MagicMock(side_effect=RuntimeError("db gone")))
        result = await _loop(store, lock=lock).run_cycle()

        assert not result.success
        assert result.status == CycleStatus.ERROR
        assert result.errors[0].message == "db gone"
        assert lock.held_by is None


# ---------------------------------------------------------------------------
# 2. Policy gates
# ---------------------------------------------------------------------------

class TestPolicyGates:

    @pytest.mark.asyncio
    async def test_bot_stopped(self, store, db_engine):
        add_venue(db_engine)
        signals = FakeSignalSource([_signal()])
        result = await _loop(store, signals=signals).run_cycle()

        assert result.status == CycleStatus.BOT_STOPPED
        assert result.success
        assert result.outcome.error_type == ErrorType.BOT_STOPPED
        assert signals.calls == []

    @pytest.mark.asyncio
    async def test_daily_loss_limit(self, store, db_engine, running):
        configure(db_engine, daily_loss_limit=50.0)
        add_venue(db_engine)
        with Session(db_engine) as session:
            session.add(DailyStats(date=datetime.now(timezone.utc).strftime("%Y-%m-%d"), net_profit=-60.0))
            session.commit()

        result = await _loop(store, signals=[_signal()]).run_cycle()
        assert result.status == CycleStatus.DAILY_LIMIT_REACHED

    @pytest.mark.asyncio
    async def test_live_mode_needs_credentials(self, store, db_engine, running):
        configure(db_engine, is_paper_trading=False)
        add_venue(db_engine, credentials=False)

        result = await _loop(store, signals=[_signal()]).run_cycle()
        assert result.status == CycleStatus.NO_EXCHANGES

    @pytest.mark.asyncio
    async def test_max_positions(self, store, db_engine, running):
        configure(db_engine, max_open_positions=1)
        venue = add_venue(db_engine)
        seed_position(store, venue, is_paper_trade=True)
        signals = FakeSignalSource([_signal(symbol="ETH/USDT", price=3_000.0)])

        result = await _loop(store, signals=signals).run_cycle()
        assert result.status == CycleStatus.MAX_POSITIONS
        assert result.outcome.error_type == ErrorType.MAX_POSITIONS
        assert result.errors == []
        assert signals.calls == []

    @pytest.mark.asyncio
    async def test_no_signals(self, store, db_engine, running):
        add_venue(db_engine)
        signals = FakeSignalSource([])
        result = await _loop(store, signals=signals).run_cycle()

        assert result.status == CycleStatus.NO_SIGNALS
        assert signals.calls == [(["binance"], "paper", "balanced")]

    @pytest.mark.asyncio
    async def test_signal_source_failure_is_reported(self, store, db_engine, running):
        add_venue(db_engine)
        signals = FakeSignalSource(error=GatewayNetworkError("analysis down"))
        result = await _loop(store, signals=signals).run_cycle()

        assert result.errors[0].error_type == ErrorType.GATEWAY_ERROR
        assert result.trades_executed == 0


# ---------------------------------------------------------------------------
# 3. Execution
# ---------------------------------------------------------------------------

class TestExecution:

    @pytest.mark.asyncio
    async def test_fans_out_per_venue_and_debits_balance(self, store, db_engine, running):
        binance = add_venue(db_engine, "binance")
        okx = add_venue(db_engine, "okx")
        gateways = {"binance": FakeGateway("binance"), "okx": FakeGateway("okx")}
        signals = [
            _signal("binance", "BTC/USDT", 50_000.0),
            _signal("binance", "ETH/USDT", 3_000.0),
            _signal("okx", "SOL/USDT", 150.0),
        ]

        result = await _loop(store, gateways=gateways, signals=signals, paper_balance=700.0).run_cycle()

        assert result.status == CycleStatus.COMPLETED
        assert result.signals_generated == 3
        assert result.trades_executed == 2
        assert [e.error_type for e in result.errors] == [ErrorType.INSUFFICIENT_BALANCE]
        assert result.errors[0].symbol == "ETH/USDT"
        assert [p.symbol for p in store.list_positions(venue_id=binance.id)] == ["BTC/USDT"]
        assert [p.symbol for p in store.list_positions(venue_id=okx.id)] == ["SOL/USDT"]
        assert all(p.is_paper_trade for p in store.list_positions())

    @pytest.mark.asyncio
    async def test_live_balance_read_once_per_market(self, store, db_engine, running):
        configure(db_engine, is_paper_trading=False)
        add_venue(db_engine)
        gateway = FakeGateway()
        gateway.balances = {"USDT": 2_000.0}
        signals = [_signal(symbol="BTC/USDT"), _signal(symbol="ETH/USDT", price=3_000.0)]

        result = await _loop(store, gateways={"binance": gateway}, signals=signals).run_cycle()

        assert result.trades_executed == 2
        reads = [c for c in gateway.called("balance") if c["asset"] == "USDT"]
        assert len(reads) == 1

    @pytest.mark.asyncio
    async def test_prefilter_and_gate(self, store, db_engine, running):
        add_venue(db_engine, futures_enabled=False)
        signals = [
            _signal(symbol="BTC/USDT", tradeType="futures"),
            _signal(symbol="ETH/USDT", price=3_000.0, confidence=0.1),
            _signal(symbol="SOL/USDT", price=150.0, direction="short"),
            _signal(venue="kraken", symbol="XRP/USDT", price=0.5),
        ]

        result = await _loop(store, signals=signals).run_cycle()

        assert result.trades_executed == 0
        assert [e.error_type for e in result.errors] == [ErrorType.UNSUPPORTED_DIRECTION]

    @pytest.mark.asyncio
    async def test_candidates_trimmed_to_free_slots(self, store, db_engine, running):
        configure(db_engine, max_open_positions=2)
        add_venue(db_engine)
        signals = [
            _signal(symbol="BTC/USDT"),
            _signal(symbol="ETH/USDT", price=3_000.0),
            _signal(symbol="SOL/USDT", price=150.0),
        ]

        result = await _loop(store, signals=signals).run_cycle()
        assert result.trades_executed == 2
        assert store.count_active_positions() == 2

    @pytest.mark.asyncio
    async def test_monitor_closes_filled_paper_tp(self, store, db_engine, running):
        venue = add_venue(db_engine)
        position = seed_position(store, venue, is_paper_trade=True)

        result = await _loop(store, signals=[], prices=FakePriceSource(50_300.0)).run_cycle()

        assert result.positions_closed == 1
        assert store.get_position(position.id).status == PositionStatus.CLOSED

    @pytest.mark.asyncio
    async def test_live_tp_fill_closes_after_reconcile(self, store, db_engine, running):
        configure(db_engine, is_paper_trading=False)
        venue = add_venue(db_engine)
        position = seed_position(store, venue)
        gateway = FakeGateway()
        gateway.balances = {"BTC": 0.0, "USDT": 1_000.0}
        gateway.cancel_status = "not_found"

        result = await _loop(
            store, gateways={"binance": gateway}, signals=[], prices=FakePriceSource(50_300.0)
        ).run_cycle()

        assert result.positions_closed == 1
        stored = store.get_position(position.id)
        assert stored.status == PositionStatus.CLOSED
        assert stored.take_profit_status == TakeProfitStatus.FILLED
        assert stored.exit_order_id == "tp-seed"
        trade = store.get_trade(position.trade_id)
        assert trade.status == "closed"
        assert trade.exit_price == pytest.approx(50_225.0)
        assert store.get_today_net_profit() == pytest.approx(1.0)
        assert gateway.called("market") == []

    @pytest.mark.asyncio
    async def test_reconciles_with_auto_fix_each_cycle(self, store, db_engine, running):
        add_venue(db_engine)
        reconciler = MagicMock()
        reconciler.reconcile = AsyncMock(return_value=ReconcileResult())

        await _loop(store, signals=[], reconciler=reconciler).run_cycle()
        reconciler.reconcile.assert_awaited_once_with(auto_fix=True)

    @pytest.mark.asyncio
    async def test_reconcile_failure_does_not_stop_cycle(self, store, db_engine, running):
        add_venue(db_engine)
        reconciler = MagicMock()
        reconciler.reconcile = AsyncMock(side_effect=RuntimeError("venue down"))

        result = await _loop(store, signals=[_signal()], reconciler=reconciler).run_cycle()
        assert "Reconciliation failed" in result.actions
        assert result.trades_executed == 1
