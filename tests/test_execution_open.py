"""Tests for opening positions: entry + take-profit pairing and persistence."""

import logging

import pytest
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from conftest import FakePriceSource, add_venue, seed_position
from tradecore.models import PositionStatus, TakeProfitStatus
from tradecore.schemas.results import ErrorType
from tradecore.services.encryption import CredentialDecryptionError
from tradecore.services.execution import OrderExecutionService


def _service(store, gateway, price=None):
    return OrderExecutionService(store, FakePriceSource(price), gateway_factory=lambda venue: gateway)


async def _open(service, venue, **overrides):
    kwargs = dict(
        symbol="BTC/USDT",
        direction="long",
        trade_type="spot",
        order_size_usd=400.0,
        entry_price=50_000.0,
        profit_target=1.0,
    )
    kwargs.update(overrides)
    return await service.open_position(venue, **kwargs)


# ---------------------------------------------------------------------------
# 1. Happy path
# ---------------------------------------------------------------------------

class TestOpenPosition:

    @pytest.mark.asyncio
    async def test_places_entry_then_take_profit(self, store, db_engine, gateway):
        venue = add_venue(db_engine)
        result = await _open(_service(store, gateway), venue)

        assert result.success
        assert result.trade.quantity == pytest.approx(0.008)
        assert result.trade.entry_fee == pytest.approx(0.4)
        assert result.position.take_profit_price == pytest.approx(50_225.0)
        assert result.position.take_profit_status == TakeProfitStatus.PENDING

        (entry,) = gateway.called("market")
        assert entry["side"] == "buy"
        assert entry["reference_price"] == 50_000.0
        (tp,) = gateway.called("limit")
        assert tp["side"] == "sell"
        assert tp["reduce_only"] is True
        assert tp["price"] == pytest.approx(50_225.0)

    @pytest.mark.asyncio
    async def test_persists_trade_and_position_together(self, store, db_engine, gateway):
        venue = add_venue(db_engine)
        result = await _open(_service(store, gateway), venue, score=72.0, reasoning="breakout")

        position = store.get_position(result.position.id)
        trade = store.get_trade(result.trade.id)
        assert position.trade_id == trade.id
        assert position.status == PositionStatus.OPEN
        assert position.take_profit_order_id == result.position.take_profit_order_id
        assert trade.status == "open"
        assert trade.signal_score == 72.0
        assert trade.tp_price == pytest.approx(50_225.0)

    @pytest.mark.asyncio
    async def test_tp_uses_executed_price(self, store, db_engine, gateway):
        venue = add_venue(db_engine)
        gateway.market_fill_price = 50_010.0
        result = await _open(_service(store, gateway), venue)
        assert result.trade.entry_price == 50_010.0
        assert result.position.take_profit_price == pytest.approx(50_235.0)

    @pytest.mark.asyncio
    async def test_futures_short_with_leverage(self, store, db_engine, gateway):
        venue = add_venue(db_engine, futures_enabled=True)
        result = await _open(
            _service(store, gateway), venue, direction="short", trade_type="futures", profit_target=3.0, leverage=10.0
        )
        assert result.success
        (entry,) = gateway.called("market")
        assert entry["side"] == "sell"
        (tp,) = gateway.called("limit")
        assert tp["side"] == "buy"
        assert tp["price"] < 50_000.0
        assert store.get_position(result.position.id).leverage == 10.0

    @pytest.mark.asyncio
    async def test_paper_flag_forwarded(self, store, db_engine, gateway):
        venue = add_venue(db_engine, credentials=False)
        result = await _open(_service(store, gateway), venue, is_paper=True)
        assert result.success
        assert result.trade.is_paper_trade
        assert all(call["paper"] for call in gateway.called("market") + gateway.called("limit"))


# ---------------------------------------------------------------------------
# 2. Rejections (nothing placed, nothing written)
# ---------------------------------------------------------------------------

class TestOpenRejections:

    @pytest.mark.asyncio
    async def test_spot_short(self, store, db_engine, gateway):
        venue = add_venue(db_engine)
        result = await _open(_service(store, gateway), venue, direction="short")
        assert not result.success
        assert result.errors[0].error_type == ErrorType.UNSUPPORTED_DIRECTION
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_futures_disabled(self, store, db_engine, gateway):
        venue = add_venue(db_engine, futures_enabled=False)
        result = await _open(_service(store, gateway), venue, trade_type="futures")
        assert result.errors[0].error_type == ErrorType.UNSUPPORTED_DIRECTION

    @pytest.mark.asyncio
    async def test_size_outside_policy_bounds(self, store, db_engine, gateway):
        venue = add_venue(db_engine)
        result = await _open(_service(store, gateway), venue, order_size_usd=1_000.0)
        assert result.errors[0].error_type == ErrorType.MIN_SIZE_VIOLATION
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_duplicate(self, store, db_engine, gateway):
        venue = add_venue(db_engine)
        seed_position(store, venue)
        result = await _open(_service(store, gateway), venue)
        assert result.errors[0].error_type == ErrorType.DUPLICATE_POSITION
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_live_without_credentials(self, store, db_engine, gateway):
        venue = add_venue(db_engine, credentials=False)
        result = await _open(_service(store, gateway), venue)
        assert result.errors[0].error_type == ErrorType.NO_CREDENTIALS

    @pytest.mark.asyncio
    async def test_undecryptable_credentials(self, store, db_engine):
        venue = add_venue(db_engine)

        def factory(venue):
            raise CredentialDecryptionError(venue.name)

        service = OrderExecutionService(store, FakePriceSource(None), gateway_factory=factory)
        result = await _open(service, venue)

        assert result.errors[0].error_type == ErrorType.NO_CREDENTIALS
        assert store.list_positions() == []

    @pytest.mark.asyncio
    async def test_entry_rejected_writes_nothing(self, store, db_engine, gateway):
        venue = add_venue(db_engine)
        gateway.fail_market = True
        result = await _open(_service(store, gateway), venue)
        assert not result.success
        assert result.errors[0].error_type == ErrorType.GATEWAY_ERROR
        assert gateway.called("limit") == []
        assert store.list_positions(statuses=None) == []
        assert store.list_trades() == []


# ---------------------------------------------------------------------------
# 3. Degraded paths
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_tp_failure_still_records_position(store, db_engine, gateway):
    venue = add_venue(db_engine)
    gateway.fail_limit = True
    result = await _open(_service(store, gateway), venue)

    assert result.success
    assert result.position.take_profit_status == TakeProfitStatus.ERROR
    assert result.position.take_profit_order_id is None
    assert result.errors[0].error_type == ErrorType.GATEWAY_ERROR
    position = store.get_position(result.position.id)
    assert position.take_profit_status == TakeProfitStatus.ERROR
    assert position.take_profit_price == pytest.approx(50_225.0)


@pytest.mark.asyncio
async def test_db_failure_cancels_take_profit(store, db_engine, gateway, caplog):
    venue = add_venue(db_engine)
    store.create_trade_and_position = MagicMock(side_effect=OperationalError("INSERT", {}, Exception("disk full")))

    with caplog.at_level(logging.CRITICAL):
        result = await _open(_service(store, gateway), venue)

    assert not result.success
    (cancel,) = gateway.called("cancel")
    assert cancel["order_id"].startswith("tp-")
    assert any("Manual intervention required" in r.message for r in caplog.records)
