"""Order execution: open a position (entry + take-profit pair) and close it safely.

A live position is only ever closed at or above its profit target. The close
path claims the position with a conditional ``open -> closing`` update, so
concurrent close attempts resolve to one winner and idempotent
``already_closed`` results for everybody else.
"""

import logging
import random
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from tradecore.config import settings
from tradecore.models import Position, PositionStatus, TakeProfitStatus, Trade, Venue
from tradecore.schemas.results import (
    CloseResult,
    ErrorType,
    OpenedPosition,
    OpenedTrade,
    OpenResult,
    RetryResult,
    TradeError,
)
from tradecore.services import fees
from tradecore.services.encryption import CredentialDecryptionError, decrypt_credentials
from tradecore.services.gateway import AsyncHTTPClient, ExchangeGateway, GatewayError, get_gateway
from tradecore.services.gateway.precision import base_asset
from tradecore.services.market_data import PriceSource
from tradecore.services.position_store import DuplicatePositionError, PositionStore
from tradecore.utils.constants import TP_FILLED_BALANCE_RATIO

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[Venue], ExchangeGateway]

# Net PnL within this of the target counts as meeting it (float noise)
PROFIT_TOLERANCE = 1e-9

_paper_rng = random.Random(settings.paper_slippage_seed)


def default_gateway_factory(venue: Venue) -> ExchangeGateway:
    """Decrypt the venue's credentials and build its gateway."""
    credentials = decrypt_credentials(venue)
    http = AsyncHTTPClient(timeout=settings.http_timeout_seconds, max_retries=settings.http_max_retries)
    return get_gateway(
        venue.name,
        credentials,
        rng=_paper_rng,
        paper_balance=settings.paper_balance_usd,
        http=http,
    )


def entry_side(direction: str) -> str:
    return "buy" if direction == "long" else "sell"


def exit_side(direction: str) -> str:
    return "sell" if direction == "long" else "buy"


def already_closed(position_id: int) -> CloseResult:
    return CloseResult(
        success=True,
        status="already_closed",
        position_id=position_id,
        already_closed=True,
        errors=[TradeError(error_type=ErrorType.ALREADY_CLOSED, message=f"Position {position_id} already claimed or closed")],
    )


class OrderExecutionService:

    def __init__(
        self,
        store: PositionStore,
        price_source: PriceSource,
        gateway_factory: GatewayFactory = default_gateway_factory,
    ):
        self.store = store
        self.price_source = price_source
        self.gateway_factory = gateway_factory
        self._gateways: dict[int, ExchangeGateway] = {}

    def gateway_for(self, venue: Venue) -> ExchangeGateway:
        """One gateway per venue for the lifetime of this service."""
        gateway = self._gateways.get(venue.id)
        if gateway is None:
            gateway = self.gateway_factory(venue)
            self._gateways[venue.id] = gateway
        return gateway

    async def close(self) -> None:
        for gateway in self._gateways.values():
            await gateway.close()
        self._gateways.clear()

    # ── open ────────────────────────────────────────

    async def open_position(
        self,
        venue: Venue,
        symbol: str,
        direction: str,
        trade_type: str,
        order_size_usd: float,
        entry_price: float,
        profit_target: float,
        leverage: float = 1.0,
        is_paper: bool = False,
        score: float | None = None,
        reasoning: str | None = None,
    ) -> OpenResult:
        """Place the entry and its take-profit, then persist Trade + Position together.

        Nothing is written if the entry is rejected. A failed take-profit still
        creates the position, with TP status ``error``, so the fallback monitor
        and the TP retry pick it up.
        """
        tag = f"[{venue.name}]"

        def fail(error_type: ErrorType, message: str, suggestion: str | None = None) -> OpenResult:
            logger.warning(f"{tag} Open {direction} {symbol} rejected: {message}")
            return OpenResult(
                success=False,
                errors=[
                    TradeError(
                        symbol=symbol,
                        venue=venue.name,
                        error_type=error_type,
                        message=message,
                        suggestion=suggestion,
                    )
                ],
            )

        if trade_type == "spot" and direction == "short":
            return fail(ErrorType.UNSUPPORTED_DIRECTION, "Spot shorts are not supported")
        if trade_type == "futures" and not venue.futures_enabled:
            return fail(ErrorType.UNSUPPORTED_DIRECTION, "Futures are not enabled on this venue")

        policy = self.store.get_settings()
        if policy and not (policy.min_order_size <= order_size_usd <= policy.max_order_size):
            return fail(
                ErrorType.MIN_SIZE_VIOLATION,
                f"Order size ${order_size_usd:.2f} outside "
                f"[${policy.min_order_size:.2f}, ${policy.max_order_size:.2f}]",
            )
        if self.store.has_active_position(venue.id, symbol):
            return fail(ErrorType.DUPLICATE_POSITION, f"Already holding {symbol} on {venue.name}")
        if not is_paper and not venue.has_credentials:
            return fail(ErrorType.NO_CREDENTIALS, "Venue has no API credentials", "Add API keys for this venue")

        try:
            gateway = self.gateway_for(venue)
        except CredentialDecryptionError as e:
            return fail(ErrorType.NO_CREDENTIALS, str(e), "Re-enter the API keys with the current encryption key")
        leverage = leverage if trade_type == "futures" else 1.0
        quantity = gateway.round_quantity(symbol, order_size_usd / entry_price, trade_type)
        if quantity <= 0:
            return fail(ErrorType.MIN_SIZE_VIOLATION, f"${order_size_usd:.2f} is below one tradable unit of {symbol}")

        entry = await gateway.place_market_order(
            symbol,
            entry_side(direction),
            quantity,
            trade_type=trade_type,
            reference_price=entry_price,
            paper=is_paper,
        )
        if not entry.success:
            return fail(ErrorType.GATEWAY_ERROR, f"Entry order failed: {entry.error}")

        executed_price = entry.filled_price or entry_price
        quantity = entry.filled_amount or quantity
        entry_fee = fees.estimate_fees(order_size_usd, trade_type).entry_fee

        tp_price = fees.take_profit_price(
            executed_price, direction, profit_target, order_size_usd, quantity, leverage, trade_type
        )
        tp_price = gateway.round_price(tp_price, "up" if direction == "long" else "down")

        tp = await gateway.place_limit_order(
            symbol,
            exit_side(direction),
            quantity,
            tp_price,
            trade_type=trade_type,
            reduce_only=True,
            paper=is_paper,
        )
        now = datetime.now(timezone.utc)
        if tp.success:
            tp_status = TakeProfitStatus.PENDING
            logger.info(f"{tag} TP for {symbol} resting @ {tp_price} ({tp.order_id})")
        else:
            tp_status = TakeProfitStatus.ERROR
            logger.error(f"{tag} TP placement failed for {symbol}: {tp.error}; fallback monitor will watch it")

        trade = Trade(
            venue_id=venue.id,
            symbol=symbol,
            direction=direction,
            trade_type=trade_type,
            entry_price=executed_price,
            quantity=quantity,
            order_size_usd=order_size_usd,
            leverage=leverage,
            entry_fee=entry_fee,
            is_paper_trade=is_paper,
            signal_score=score,
            signal_reasoning=reasoning,
            entry_order_id=entry.order_id,
            tp_price=tp_price,
            opened_at=now,
        )
        position = Position(
            venue_id=venue.id,
            symbol=symbol,
            direction=direction,
            trade_type=trade_type,
            entry_price=executed_price,
            current_price=executed_price,
            quantity=quantity,
            order_size_usd=order_size_usd,
            leverage=leverage,
            profit_target=profit_target,
            unrealized_pnl=-entry_fee,
            is_paper_trade=is_paper,
            entry_order_id=entry.order_id,
            take_profit_order_id=tp.order_id if tp.success else None,
            take_profit_price=tp_price,
            take_profit_status=tp_status,
            take_profit_placed_at=now if tp.success else None,
            opened_at=now,
        )

        try:
            trade, position = self.store.create_trade_and_position(trade, position)
        except (DuplicatePositionError, SQLAlchemyError) as e:
            await self._rollback_take_profit(gateway, symbol, trade_type, tp.order_id if tp.success else None, is_paper)
            logger.critical(
                f"{tag} Entry {entry.order_id} for {symbol} was placed but could not be recorded: {e}. "
                f"Manual intervention required."
            )
            error_type = ErrorType.DUPLICATE_POSITION if isinstance(e, DuplicatePositionError) else ErrorType.GATEWAY_ERROR
            return fail(error_type, f"Entry placed but not recorded: {e}", "Check the venue for an untracked position")

        logger.info(
            f"{tag} Opened {direction} {symbol} qty={quantity} @ {executed_price:.6f} "
            f"TP={tp_price} ({tp_status}) paper={is_paper}"
        )
        errors = []
        if not tp.success:
            errors.append(
                TradeError(
                    symbol=symbol,
                    venue=venue.name,
                    error_type=ErrorType.GATEWAY_ERROR,
                    message=f"Take-profit placement failed: {tp.error}",
                    suggestion="Will be retried; fallback monitor closes at target meanwhile",
                )
            )
        return OpenResult(
            success=True,
            trade=OpenedTrade(
                id=trade.id,
                symbol=symbol,
                direction=direction,
                entry_price=executed_price,
                quantity=quantity,
                order_size_usd=order_size_usd,
                entry_fee=entry_fee,
                entry_order_id=entry.order_id,
                is_paper_trade=is_paper,
            ),
            position=OpenedPosition(
                id=position.id,
                profit_target=profit_target,
                take_profit_order_id=position.take_profit_order_id,
                take_profit_price=tp_price,
                take_profit_status=tp_status,
            ),
            errors=errors,
        )

    async def _rollback_take_profit(
        self, gateway: ExchangeGateway, symbol: str, trade_type: str, order_id: str | None, paper: bool
    ) -> None:
        if not order_id:
            return
        result = await gateway.cancel_order(symbol, order_id, trade_type=trade_type, paper=paper)
        if result.success:
            logger.info(f"Rolled back TP order {order_id} for {symbol}")
        else:
            logger.error(f"Failed to roll back TP order {order_id} for {symbol}: {result.error}")

    # ── close ───────────────────────────────────────

    async def close_position(
        self,
        position_id: int,
        exit_price_hint: float | None = None,
        require_profit: bool = True,
    ) -> CloseResult:
        """Close a position through the claim / profit-gate / cancel-TP / exit sequence.

        Live positions are never closed below their profit target, whatever
        ``require_profit`` says; paper positions honour the flag.
        """
        position = self.store.get_position(position_id)
        if position is None:
            return CloseResult(
                success=False,
                status="error",
                position_id=position_id,
                errors=[TradeError(error_type=ErrorType.NOT_FOUND, message=f"Position {position_id} not found")],
            )

        if not self.store.transition(position_id, PositionStatus.OPEN, PositionStatus.CLOSING):
            logger.info(f"Position {position_id} already claimed or closed")
            return already_closed(position_id)

        try:
            return await self._close_claimed(position, exit_price_hint, require_profit)
        except Exception:
            logger.exception(f"Position {position_id}: unexpected error while closing, releasing claim")
            self.store.transition(position_id, PositionStatus.CLOSING, PositionStatus.OPEN)
            raise

    async def _close_claimed(self, position: Position, exit_price_hint: float | None, require_profit: bool) -> CloseResult:
        venue = self.store.get_venue(position.venue_id)
        tag = f"[{venue.name if venue else position.venue_id}]"
        paper = position.is_paper_trade

        def revert(error_type: ErrorType, message: str, **fields) -> CloseResult:
            self.store.transition(position.id, PositionStatus.CLOSING, PositionStatus.OPEN, **fields)
            logger.warning(f"{tag} Close of {position.symbol} (#{position.id}) reverted: {message}")
            return CloseResult(
                success=False,
                status="error",
                position_id=position.id,
                errors=[
                    TradeError(
                        symbol=position.symbol,
                        venue=venue.name if venue else None,
                        error_type=error_type,
                        message=message,
                    )
                ],
            )

        if venue is None:
            return revert(ErrorType.NOT_FOUND, f"Venue {position.venue_id} not found")

        trade = self.store.get_trade(position.trade_id) if position.trade_id else None
        entry_fee = trade.entry_fee if trade else None

        ticker = await self.price_source.get_price(venue.name, position.symbol, position.trade_type)
        exit_price = next((p for p in (ticker, exit_price_hint, position.current_price) if p and p > 0), None)
        if exit_price is None:
            return revert(ErrorType.PRICE_UNAVAILABLE, "No usable exit price")

        enforce_target = not paper or require_profit
        tp_gone = {"take_profit_status": TakeProfitStatus.ERROR, "take_profit_order_id": None}

        def blocked(pnl: fees.PnL, **fields) -> CloseResult:
            shortfall = position.profit_target - pnl.net
            self.store.transition(
                position.id,
                PositionStatus.CLOSING,
                PositionStatus.OPEN,
                current_price=exit_price,
                unrealized_pnl=pnl.net,
                **fields,
            )
            logger.info(
                f"{tag} Close of {position.symbol} blocked: net {pnl.net:.2f} < target "
                f"{position.profit_target:.2f} (short {shortfall:.2f})"
            )
            return CloseResult(
                success=False,
                status="blocked",
                position_id=position.id,
                exit_price=exit_price,
                gross_profit=pnl.gross,
                net_profit=pnl.net,
                shortfall=shortfall,
                errors=[
                    TradeError(
                        symbol=position.symbol,
                        venue=venue.name,
                        error_type=ErrorType.PROFIT_NOT_MET,
                        message=f"Net {pnl.net:.2f} below profit target {position.profit_target:.2f}",
                        suggestion="Take-profit order stays in charge" if not fields else "Fallback monitor takes over",
                    )
                ],
            )

        def short_of_target(quantity: float) -> fees.PnL | None:
            pnl = self._pnl(position, exit_price, quantity, entry_fee)
            if enforce_target and pnl.net + PROFIT_TOLERANCE < position.profit_target:
                return pnl
            return None

        short = short_of_target(position.quantity)
        if short is not None:
            return blocked(short)

        gateway = self.gateway_for(venue)

        # Live exits are sized from what the venue holds, never more than recorded
        exit_quantity = position.quantity
        if not paper:
            try:
                exit_quantity = await self._sellable_quantity(gateway, position, exit_quantity, tag)
            except GatewayError as e:
                return revert(ErrorType.GATEWAY_ERROR, f"Could not read venue balance: {e}")
            if 0 < exit_quantity < position.quantity:
                short = short_of_target(exit_quantity)
                if short is not None:
                    return blocked(short)

        tp_status = position.take_profit_status
        tp_already_filled = tp_status == TakeProfitStatus.FILLED
        if position.take_profit_order_id and tp_status == TakeProfitStatus.PENDING:
            cancel = await gateway.cancel_order(
                position.symbol, position.take_profit_order_id, trade_type=position.trade_type, paper=paper
            )
            if not cancel.success:
                return revert(ErrorType.GATEWAY_ERROR, f"Could not cancel take-profit: {cancel.error}")
            if cancel.order_status == "not_found":
                tp_already_filled = True
                logger.info(f"{tag} TP {position.take_profit_order_id} not found on venue, likely filled")
            else:
                tp_status = TakeProfitStatus.CANCELLED
        # No take-profit rests on the venue past this point

        if tp_already_filled and not paper and exit_quantity > 0:
            # The TP may have filled between the balance read and the cancel
            before = exit_quantity
            try:
                exit_quantity = await self._sellable_quantity(gateway, position, exit_quantity, tag)
            except GatewayError as e:
                return revert(ErrorType.GATEWAY_ERROR, f"Could not read venue balance: {e}", **tp_gone)
            if 0 < exit_quantity < before:
                short = short_of_target(exit_quantity)
                if short is not None:
                    return blocked(short, **tp_gone)
            if exit_quantity > 0:
                tp_status = TakeProfitStatus.CANCELLED

        if not paper and exit_quantity <= 0:
            if tp_already_filled and position.take_profit_price:
                return self._finalize_at_take_profit(position, entry_fee, venue.name, from_status=PositionStatus.CLOSING)
            self.store.transition(
                position.id,
                PositionStatus.CLOSING,
                PositionStatus.STUCK,
                take_profit_status=TakeProfitStatus.ERROR,
                status_reason="Exit attempted but venue reports no sellable balance and no fill evidence",
            )
            logger.error(f"{tag} Position #{position.id} {position.symbol} is stuck: nothing to sell")
            return CloseResult(
                success=False,
                status="stuck",
                position_id=position.id,
                errors=[
                    TradeError(
                        symbol=position.symbol,
                        venue=venue.name,
                        error_type=ErrorType.NO_BALANCE,
                        message="Venue reports no sellable balance",
                        suggestion="Check the venue's trade history and resolve manually",
                    )
                ],
            )

        pnl = self._pnl(position, exit_price, exit_quantity, entry_fee)
        result = await gateway.place_market_order(
            position.symbol,
            exit_side(position.direction),
            exit_quantity,
            trade_type=position.trade_type,
            reduce_only=True,
            reference_price=exit_price,
            paper=paper,
        )
        if not result.success:
            return revert(
                ErrorType.GATEWAY_ERROR,
                f"Exit order failed: {result.error}",
                **tp_gone,
                current_price=exit_price,
                unrealized_pnl=pnl.net,
            )

        fill_price = result.filled_price or exit_price
        filled_quantity = result.filled_amount or exit_quantity
        pnl = self._pnl(position, fill_price, filled_quantity, entry_fee)
        closed = self.store.finalize_close(
            position.id,
            exit_price=fill_price,
            exit_fee=pnl.fees.exit_fee,
            funding_fee=pnl.fees.funding_fee,
            gross_profit=pnl.gross,
            net_profit=pnl.net,
            exit_order_id=result.order_id,
            take_profit_status=tp_status if position.take_profit_order_id else None,
            quantity=filled_quantity,
        )
        if closed is None:
            logger.critical(f"{tag} Exit {result.order_id} for #{position.id} placed but position no longer claimed")
        logger.info(
            f"{tag} Closed {position.direction} {position.symbol} #{position.id} @ {fill_price:.6f} "
            f"net={pnl.net:.2f} paper={paper}"
        )
        return CloseResult(
            success=True,
            status="closed",
            position_id=position.id,
            exit_price=fill_price,
            gross_profit=pnl.gross,
            net_profit=pnl.net,
            entry_fee=pnl.fees.entry_fee,
            exit_fee=pnl.fees.exit_fee,
            funding_fee=pnl.fees.funding_fee,
            take_profit_status=tp_status if position.take_profit_order_id else None,
        )

    def _finalize_at_take_profit(
        self, position: Position, entry_fee: float | None, venue_name: str, from_status: str
    ) -> CloseResult:
        """Record the position as closed by its own take-profit order."""
        tp_price = position.take_profit_price
        pnl = self._pnl(position, tp_price, position.quantity, entry_fee)
        closed = self.store.finalize_close(
            position.id,
            exit_price=tp_price,
            exit_fee=pnl.fees.exit_fee,
            funding_fee=pnl.fees.funding_fee,
            gross_profit=pnl.gross,
            net_profit=pnl.net,
            exit_order_id=position.take_profit_order_id,
            take_profit_status=TakeProfitStatus.FILLED,
            tp_filled=True,
            from_status=from_status,
        )
        if closed is None:
            return already_closed(position.id)
        logger.info(f"[{venue_name}] {position.symbol} #{position.id} closed by take-profit @ {tp_price} net={pnl.net:.2f}")
        return CloseResult(
            success=True,
            status="closed",
            position_id=position.id,
            exit_price=tp_price,
            gross_profit=pnl.gross,
            net_profit=pnl.net,
            entry_fee=pnl.fees.entry_fee,
            exit_fee=pnl.fees.exit_fee,
            funding_fee=pnl.fees.funding_fee,
            take_profit_status=TakeProfitStatus.FILLED,
        )

    @staticmethod
    def _pnl(position: Position, exit_price: float, quantity: float, entry_fee: float | None) -> fees.PnL:
        return fees.compute_pnl(
            position.direction,
            position.trade_type,
            position.entry_price,
            exit_price,
            quantity,
            position.order_size_usd,
            position.leverage,
            entry_fee=entry_fee,
        )

    async def venue_quantity(self, gateway: ExchangeGateway, position: Position) -> float:
        """What the venue actually holds for this position, in base units.

        Raises:
            GatewayError: the venue could not be read.
        """
        if position.trade_type == "futures":
            for held in await gateway.get_open_positions():
                if held.symbol == position.symbol and held.side == position.direction:
                    return held.quantity
            return 0.0
        return await gateway.get_balance(base_asset(position.symbol), trade_type="spot")

    async def _sellable_quantity(self, gateway: ExchangeGateway, position: Position, ceiling: float, tag: str) -> float:
        """Venue holding capped at ``ceiling`` and rounded to the venue step."""
        held = await self.venue_quantity(gateway, position)
        if held < ceiling:
            logger.warning(f"{tag} {position.symbol}: venue holds {held}, recorded {ceiling}; exiting the smaller")
            ceiling = held
        return gateway.round_quantity(position.symbol, ceiling, position.trade_type)

    # ── monitoring ──────────────────────────────────

    async def check_take_profit(self, position: Position) -> CloseResult | None:
        """Finalise a position whose take-profit has filled; otherwise refresh its PnL.

        Returns the close result when the TP filled, else None.
        """
        venue = self.store.get_venue(position.venue_id)
        if venue is None:
            return None
        price = await self.price_source.get_price(venue.name, position.symbol, position.trade_type)

        if position.take_profit_status == TakeProfitStatus.FILLED:
            # Reconciliation already saw the TP leave the book with the holding gone
            filled = True
        elif position.is_paper_trade:
            tp = position.take_profit_price
            filled = bool(price and tp) and (price >= tp if position.direction == "long" else price <= tp)
        else:
            try:
                actual = await self.venue_quantity(self.gateway_for(venue), position)
            except GatewayError as e:
                logger.warning(f"[{venue.name}] TP check for {position.symbol} skipped: {e}")
                return None
            if position.trade_type == "futures":
                filled = actual <= 0
            else:
                filled = actual < position.quantity * TP_FILLED_BALANCE_RATIO

        if filled and position.take_profit_price:
            return self._finalize_at_take_profit(position, None, venue.name, from_status=PositionStatus.OPEN)

        if price:
            pnl = self._pnl(position, price, position.quantity, None)
            self.store.update_position(position.id, current_price=price, unrealized_pnl=pnl.net)
        return None

    async def run_fallback(self, position: Position) -> CloseResult | None:
        """Close at market when the public price already meets the profit target.

        Used for positions without a working take-profit order.
        """
        venue = self.store.get_venue(position.venue_id)
        if venue is None:
            return None
        price = await self.price_source.get_price(venue.name, position.symbol, position.trade_type)
        if not price:
            logger.warning(f"[{venue.name}] Fallback for {position.symbol}: no price")
            return None

        pnl = self._pnl(position, price, position.quantity, None)
        self.store.update_position(position.id, current_price=price, unrealized_pnl=pnl.net)
        if pnl.net + PROFIT_TOLERANCE < position.profit_target:
            return None

        logger.info(f"[{venue.name}] Fallback: {position.symbol} net {pnl.net:.2f} >= target, closing")
        return await self.close_position(position.id, exit_price_hint=price, require_profit=True)

    async def retry_failed_take_profits(self) -> RetryResult:
        """Re-place take-profit orders for live positions that lost theirs."""
        result = RetryResult()
        for position in self.store.list_positions((PositionStatus.OPEN,)):
            if position.is_paper_trade or not position.take_profit_price:
                continue
            needs_retry = position.take_profit_status == TakeProfitStatus.ERROR or (
                not position.take_profit_order_id and position.take_profit_status != TakeProfitStatus.FILLED
            )
            if not needs_retry:
                continue

            venue = self.store.get_venue(position.venue_id)
            if venue is None or not venue.has_credentials:
                continue
            result.retried += 1
            order = await self.gateway_for(venue).place_limit_order(
                position.symbol,
                exit_side(position.direction),
                position.quantity,
                position.take_profit_price,
                trade_type=position.trade_type,
                reduce_only=True,
            )
            if order.success:
                self.store.update_position(
                    position.id,
                    take_profit_order_id=order.order_id,
                    take_profit_status=TakeProfitStatus.PENDING,
                    take_profit_placed_at=datetime.now(timezone.utc),
                )
                result.succeeded += 1
                logger.info(f"[{venue.name}] TP re-placed for {position.symbol} ({order.order_id})")
            else:
                self.store.update_position(position.id, take_profit_status=TakeProfitStatus.ERROR)
                result.failed += 1
                result.errors.append(
                    TradeError(
                        symbol=position.symbol,
                        venue=venue.name,
                        error_type=ErrorType.GATEWAY_ERROR,
                        message=f"TP retry failed: {order.error}",
                    )
                )
        result.success = result.failed == 0
        return result
