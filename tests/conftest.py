"""Shared fixtures and fakes: in-memory SQLite store, scripted gateway, price and signal sources."""

import itertools

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from tradecore.database import create_db_and_tables
from tradecore.models import BotSettings, Position, PositionStatus, TakeProfitStatus, Trade, Venue
from tradecore.services.gateway import GatewayNetworkError, OrderResult, VenuePosition, precision
from tradecore.services.position_store import PositionStore


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(db_engine) -> PositionStore:
    return PositionStore(db_engine)


def configure(db_engine, **fields) -> BotSettings:
    """Update the bot_settings row with ``fields``."""
    with Session(db_engine, expire_on_commit=False) as session:
        row = session.exec(select(BotSettings)).first()
        for key, value in fields.items():
            setattr(row, key, value)
        session.add(row)
        session.commit()
        return row


def add_venue(db_engine, name: str = "binance", credentials: bool = True, **fields) -> Venue:
    venue = Venue(
        name=name,
        api_key_encrypted="enc-key" if credentials else "",
        api_secret_encrypted="enc-secret" if credentials else "",
        **fields,
    )
    with Session(db_engine, expire_on_commit=False) as session:
        session.add(venue)
        session.commit()
        session.refresh(venue)
        return venue


def seed_position(store: PositionStore, venue: Venue, **overrides) -> Position:
    """Open BTC/USDT long spot: $400 at 50,000, qty 0.008, target $1, TP 50,225 resting."""
    fields = dict(
        venue_id=venue.id,
        symbol="BTC/USDT",
        direction="long",
        trade_type="spot",
        entry_price=50_000.0,
        current_price=50_000.0,
        quantity=0.008,
        order_size_usd=400.0,
        leverage=1.0,
        profit_target=1.0,
        is_paper_trade=False,
        take_profit_order_id="tp-seed",
        take_profit_price=50_225.0,
        take_profit_status=TakeProfitStatus.PENDING,
        status=PositionStatus.OPEN,
    )
    fields.update(overrides)
    trade = Trade(
        venue_id=venue.id,
        symbol=fields["symbol"],
        direction=fields["direction"],
        trade_type=fields["trade_type"],
        entry_price=fields["entry_price"],
        quantity=fields["quantity"],
        order_size_usd=fields["order_size_usd"],
        leverage=fields["leverage"],
        entry_fee=fields["order_size_usd"] * (0.0005 if fields["trade_type"] == "futures" else 0.001),
        is_paper_trade=fields["is_paper_trade"],
        entry_order_id="entry-seed",
        tp_price=fields["take_profit_price"],
    )
    _, position = store.create_trade_and_position(trade, Position(**fields))
    return position


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeGateway:
    """Scripted ExchangeGateway. Fills market orders at the reference price unless told otherwise."""

    def __init__(self, venue: str = "binance"):
        self.name = venue
        self.balances: dict[str, float] = {}
        self.positions: list[VenuePosition] = []
        self.market_fill_price: float | None = None
        self.fail_market = False
        self.fail_limit = False
        self.fail_cancel = False
        self.fail_reads = False
        self.cancel_status = "cancelled"
        self.calls: list[tuple[str, dict]] = []
        self._ids = itertools.count(1)

    def called(self, method: str) -> list[dict]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def round_quantity(self, symbol, quantity, trade_type="spot"):
        if self.name == "okx" and trade_type == "futures":
            return precision.okx_contracts_to_quantity(symbol, precision.okx_contracts(symbol, quantity))
        return precision.round_quantity(symbol, quantity)

    def round_price(self, price, rounding=None):
        return precision.round_price(price, rounding)

    async def place_limit_order(self, symbol, side, quantity, price, trade_type="spot", reduce_only=False, paper=False):
        self.calls.append(("limit", dict(symbol=symbol, side=side, quantity=quantity, price=price,
                                         trade_type=trade_type, reduce_only=reduce_only, paper=paper)))
        if self.fail_limit:
            return OrderResult(success=False, error="limit rejected", error_type="GATEWAY_ERROR")
        return OrderResult(success=True, order_id=f"tp-{next(self._ids)}", order_status="new")

    async def place_market_order(self, symbol, side, quantity, trade_type="spot", reduce_only=False,
                                 reference_price=None, paper=False):
        self.calls.append(("market", dict(symbol=symbol, side=side, quantity=quantity, trade_type=trade_type,
                                          reduce_only=reduce_only, reference_price=reference_price, paper=paper)))
        if self.fail_market:
            return OrderResult(success=False, error="market rejected", error_type="GATEWAY_ERROR")
        return OrderResult(
            success=True,
            order_id=f"mkt-{next(self._ids)}",
            filled_price=self.market_fill_price or reference_price,
            filled_amount=quantity,
            order_status="filled",
        )

    async def cancel_order(self, symbol, order_id, trade_type="spot", paper=False):
        self.calls.append(("cancel", dict(symbol=symbol, order_id=order_id, trade_type=trade_type, paper=paper)))
        if self.fail_cancel:
            return OrderResult(success=False, error="cancel failed", error_type="GATEWAY_ERROR")
        return OrderResult(success=True, order_id=order_id, order_status=self.cancel_status)

    async def get_balance(self, asset, trade_type="spot", paper=False):
        self.calls.append(("balance", dict(asset=asset, trade_type=trade_type)))
        if self.fail_reads:
            raise GatewayNetworkError("venue unreachable")
        return self.balances.get(asset, 0.0)

    async def get_open_positions(self, paper=False):
        self.calls.append(("positions", {}))
        if self.fail_reads:
            raise GatewayNetworkError("venue unreachable")
        return list(self.positions)

    async def close(self):
        pass


class FakePriceSource:
    def __init__(self, price: float | None = None):
        self.price = price
        self.prices: dict[str, float | None] = {}

    async def get_price(self, venue, symbol, trade_type="spot"):
        return self.prices.get(symbol, self.price)


class FakeSignalSource:
    def __init__(self, signals=None, error: Exception | None = None):
        self.signals = signals or []
        self.error = error
        self.calls: list[tuple] = []

    async def analyze(self, venues, mode, aggressiveness):
        self.calls.append((venues, mode, aggressiveness))
        if self.error:
            raise self.error
        return list(self.signals)


class InMemoryLoopLock:
    def __init__(self, held_by: str | None = None):
        self.held_by = held_by
        self.acquired: list[str] = []
        self.released: list[str] = []

    def acquire(self, holder):
        if self.held_by is not None:
            return False
        self.held_by = holder
        self.acquired.append(holder)
        return True

    def release(self, holder):
        if self.held_by == holder:
            self.held_by = None
        self.released.append(holder)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def prices() -> FakePriceSource:
    return FakePriceSource()
