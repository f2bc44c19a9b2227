"""Typed access to positions, trades and the daily aggregate.

Every multi-row write happens in one session/transaction. Status changes go
through ``transition``, a conditional ``UPDATE ... WHERE status = :from`` whose
row count tells the caller whether it won the race.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from tradecore.database import engine as default_engine
from tradecore.models import BotSettings, CycleLog, DailyStats, Position, PositionStatus, Trade, Venue

logger = logging.getLogger(__name__)


class DuplicatePositionError(Exception):
    """An open/closing position already exists for this (venue, symbol)."""

    def __init__(self, venue_id: int, symbol: str):
        self.venue_id = venue_id
        self.symbol = symbol
        super().__init__(f"Active position already exists for venue {venue_id} {symbol}")


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class PositionStore:

    def __init__(self, bind=None):
        self.engine = bind or default_engine

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    # ── settings & venues ───────────────────────────

    def get_settings(self) -> BotSettings | None:
        with self._session() as session:
            return session.exec(select(BotSettings).order_by(BotSettings.id)).first()

    def get_venue(self, venue_id: int) -> Venue | None:
        with self._session() as session:
            return session.get(Venue, venue_id)

    def list_venues(self, connected_only: bool = True) -> list[Venue]:
        with self._session() as session:
            query = select(Venue).order_by(Venue.id)
            if connected_only:
                query = query.where(Venue.is_enabled == True, Venue.is_connected == True)  # noqa: E712
            return list(session.exec(query).all())

    # ── positions ───────────────────────────────────

    def get_position(self, position_id: int) -> Position | None:
        with self._session() as session:
            return session.get(Position, position_id)

    def list_positions(
        self,
        statuses: tuple[str, ...] | None = (PositionStatus.OPEN,),
        venue_id: int | None = None,
        limit: int | None = None,
    ) -> list[Position]:
        with self._session() as session:
            query = select(Position).order_by(Position.id)
            if statuses:
                query = query.where(Position.status.in_(statuses))
            if venue_id is not None:
                query = query.where(Position.venue_id == venue_id)
            if limit:
                query = query.limit(limit)
            return list(session.exec(query).all())

    def count_active_positions(self) -> int:
        with self._session() as session:
            return session.exec(
                select(func.count()).select_from(Position).where(Position.status.in_(PositionStatus.ACTIVE))
            ).one()

    def has_active_position(self, venue_id: int, symbol: str) -> bool:
        with self._session() as session:
            return session.exec(
                select(Position.id).where(
                    Position.venue_id == venue_id,
                    Position.symbol == symbol,
                    Position.status.in_(PositionStatus.ACTIVE),
                )
            ).first() is not None

    def transition(self, position_id: int, from_status: str | tuple[str, ...], to_status: str, **fields) -> bool:
        """Move a position to ``to_status`` only if it is currently in ``from_status``.

        Returns False when another writer got there first.
        """
        allowed = (from_status,) if isinstance(from_status, str) else tuple(from_status)
        values = {"status": to_status, "updated_at": datetime.now(timezone.utc), **fields}
        with self._session() as session:
            result = session.execute(
                update(Position)
                .where(Position.id == position_id, Position.status.in_(allowed))
                .values(**values)
            )
            session.commit()
            won = result.rowcount == 1
        if won:
            logger.debug(f"Position {position_id}: {'/'.join(allowed)} -> {to_status}")
        return won

    def update_position(self, position_id: int, **fields) -> None:
        values = {"updated_at": datetime.now(timezone.utc), **fields}
        with self._session() as session:
            session.execute(update(Position).where(Position.id == position_id).values(**values))
            session.commit()

    def create_trade_and_position(self, trade: Trade, position: Position) -> tuple[Trade, Position]:
        """Insert the Trade and its Position together, or neither.

        Raises:
            DuplicatePositionError: the (venue, symbol) already has an active position.
        """
        with self._session() as session:
            try:
                session.add(trade)
                session.flush()
                position.trade_id = trade.id
                session.add(position)
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicatePositionError(position.venue_id, position.symbol) from e
            session.refresh(trade)
            session.refresh(position)
            return trade, position

    def finalize_close(
        self,
        position_id: int,
        exit_price: float,
        exit_fee: float,
        funding_fee: float,
        gross_profit: float,
        net_profit: float,
        exit_order_id: str | None = None,
        take_profit_status: str | None = None,
        tp_filled: bool = False,
        quantity: float | None = None,
        from_status: str | tuple[str, ...] = PositionStatus.CLOSING,
    ) -> Trade | None:
        """Close Position + Trade and fold the result into today's stats atomically.

        Returns the closed Trade, or None if the position was not in ``from_status``.
        """
        now = datetime.now(timezone.utc)
        allowed = (from_status,) if isinstance(from_status, str) else tuple(from_status)

        position_values = {
            "status": PositionStatus.CLOSED,
            "current_price": exit_price,
            "unrealized_pnl": 0.0,
            "exit_order_id": exit_order_id,
            "closed_at": now,
            "updated_at": now,
        }
        if take_profit_status:
            position_values["take_profit_status"] = take_profit_status
        if tp_filled:
            position_values["take_profit_filled_at"] = now

        with self._session() as session:
            result = session.execute(
                update(Position)
                .where(Position.id == position_id, Position.status.in_(allowed))
                .values(**position_values)
            )
            if result.rowcount != 1:
                session.rollback()
                logger.warning(f"Position {position_id}: finalize skipped, not in {allowed}")
                return None

            position = session.get(Position, position_id)
            trade = session.get(Trade, position.trade_id) if position.trade_id else None
            if trade is not None:
                trade.exit_price = exit_price
                trade.exit_fee = exit_fee
                trade.funding_fee = funding_fee
                trade.gross_profit = gross_profit
                trade.net_profit = net_profit
                trade.exit_order_id = exit_order_id
                trade.status = "closed"
                trade.closed_at = now
                if quantity is not None:
                    trade.quantity = quantity
                if tp_filled:
                    trade.tp_filled_at = now
                session.add(trade)

            entry_fee = trade.entry_fee if trade is not None else 0.0
            self._add_to_daily_stats(session, gross_profit, entry_fee + exit_fee + funding_fee, net_profit)
            session.commit()
            if trade is not None:
                session.refresh(trade)
            return trade

    def _add_to_daily_stats(self, session: Session, gross: float, fees: float, net: float) -> None:
        day = _today()
        stats = session.exec(select(DailyStats).where(DailyStats.date == day)).first()
        if stats is None:
            stats = DailyStats(date=day)
        stats.total_trades += 1
        if net > 0:
            stats.winning_trades += 1
        else:
            stats.losing_trades += 1
        stats.gross_profit += gross
        stats.total_fees += fees
        stats.net_profit += net
        session.add(stats)

    # ── trades & stats ──────────────────────────────

    def get_trade(self, trade_id: int) -> Trade | None:
        with self._session() as session:
            return session.get(Trade, trade_id)

    def list_trades(self, limit: int = 100, status: str | None = None) -> list[Trade]:
        with self._session() as session:
            query = select(Trade).order_by(Trade.id.desc()).limit(limit)
            if status:
                query = query.where(Trade.status == status)
            return list(session.exec(query).all())

    def list_orphaned_trades(self) -> list[Trade]:
        """Live trades marked closed that were never sold and never hit their TP."""
        with self._session() as session:
            return list(
                session.exec(
                    select(Trade).where(
                        Trade.status == "closed",
                        Trade.is_paper_trade == False,  # noqa: E712
                        Trade.exit_order_id == None,  # noqa: E711
                        Trade.tp_filled_at == None,  # noqa: E711
                    )
                ).all()
            )

    def get_today_net_profit(self) -> float:
        with self._session() as session:
            stats = session.exec(select(DailyStats).where(DailyStats.date == _today())).first()
            return stats.net_profit if stats else 0.0

    # ── cycle log ───────────────────────────────────

    def log_cycle(
        self,
        cycle_id: str,
        status: str,
        signals_generated: int,
        trades_executed: int,
        positions_closed: int,
        duration_ms: int,
        actions: list[str],
        errors: list[dict],
    ) -> None:
        with self._session() as session:
            session.add(
                CycleLog(
                    cycle_id=cycle_id,
                    status=status,
                    signals_generated=signals_generated,
                    trades_executed=trades_executed,
                    positions_closed=positions_closed,
                    duration_ms=duration_ms,
                    actions=actions,
                    errors=errors,
                )
            )
            session.commit()

    def list_cycle_logs(self, limit: int = 50) -> list[CycleLog]:
        with self._session() as session:
            return list(session.exec(select(CycleLog).order_by(CycleLog.id.desc()).limit(limit)).all())
