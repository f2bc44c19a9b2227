"""Reconciliation: diff stored open positions against what the venues report.

Scenarios handled per live position:
1. Venue holds roughly what we recorded (within tolerance) -> MATCHED
2. Venue holds a different amount -> QUANTITY_MISMATCH; auto-fix shrinks spot
   quantities and aligns futures quantities
3. Venue holds (almost) nothing -> MISSING; auto-fix flags the position
   ``orphaned`` and cancels its resting take-profit. It is never closed here,
   so no loss is ever realised by reconciliation. When the take-profit turns
   out to be off the book, it filled: the TP is marked ``filled`` and the
   position stays open for the monitor to close at the TP price.

Paper positions are always matched. A venue that cannot be read is skipped
entirely rather than having its positions misclassified as missing.
"""

import logging
from collections import defaultdict

from tradecore.models import Position, PositionStatus, TakeProfitStatus, Venue
from tradecore.schemas.results import ErrorType, Mismatch, ReconcileResult, TradeError
from tradecore.services.encryption import CredentialDecryptionError
from tradecore.services.execution import GatewayFactory, default_gateway_factory
from tradecore.services.gateway import ExchangeGateway, GatewayError
from tradecore.services.gateway.precision import base_asset
from tradecore.services.position_store import PositionStore
from tradecore.utils.constants import FUTURES_TOLERANCE, SPOT_TOLERANCE

logger = logging.getLogger(__name__)

MATCHED = "MATCHED"
MISSING = "MISSING"
QUANTITY_MISMATCH = "QUANTITY_MISMATCH"

# Auto-fix actions after which nothing is left for an operator to review
RESOLVED = ("quantity_updated", "tp_filled", "none")


def classify(position: Position, venue_quantity: float) -> str:
    tolerance = FUTURES_TOLERANCE if position.trade_type == "futures" else SPOT_TOLERANCE
    band = position.quantity * tolerance
    if venue_quantity < band:
        return MISSING
    if abs(venue_quantity - position.quantity) > band:
        return QUANTITY_MISMATCH
    return MATCHED


class Reconciler:

    def __init__(self, store: PositionStore, gateway_factory: GatewayFactory = default_gateway_factory):
        self.store = store
        self.gateway_factory = gateway_factory

    async def reconcile(self, auto_fix: bool = False) -> ReconcileResult:
        positions = self.store.list_positions((PositionStatus.OPEN,))
        result = ReconcileResult(total_positions=len(positions))

        by_venue: dict[int, list[Position]] = defaultdict(list)
        for position in positions:
            if position.is_paper_trade:
                result.matched += 1
            else:
                by_venue[position.venue_id].append(position)

        for venue_id, group in by_venue.items():
            venue = self.store.get_venue(venue_id)
            if venue is None or not venue.has_credentials:
                name = venue.name if venue else str(venue_id)
                logger.warning(f"[reconcile] {name}: no credentials, {len(group)} live position(s) unchecked")
                result.errors.append(
                    TradeError(
                        venue=name,
                        error_type=ErrorType.NO_CREDENTIALS,
                        message=f"{len(group)} live position(s) cannot be checked without API credentials",
                    )
                )
                continue

            try:
                gateway = self.gateway_factory(venue)
            except CredentialDecryptionError as e:
                logger.error(f"[reconcile] {venue.name}: {e}")
                result.errors.append(TradeError(venue=venue.name, error_type=ErrorType.NO_CREDENTIALS, message=str(e)))
                continue

            try:
                await self._reconcile_venue(venue, gateway, group, auto_fix, result)
            finally:
                await gateway.close()

        result.orphaned_trades = [trade.id for trade in self.store.list_orphaned_trades()]
        if result.orphaned_trades:
            logger.error(f"[reconcile] Trades closed without an exit order: {result.orphaned_trades}")

        # Flagged mismatches are reported, not failures of the run
        result.success = all(e.error_type == ErrorType.RECONCILE_MISMATCH for e in result.errors)
        logger.info(
            f"[reconcile] {result.total_positions} positions: {result.matched} matched, "
            f"{result.mismatched} mismatched, {result.fixed} fixed (auto_fix={auto_fix})"
        )
        return result

    async def _reconcile_venue(
        self,
        venue: Venue,
        gateway: ExchangeGateway,
        group: list[Position],
        auto_fix: bool,
        result: ReconcileResult,
    ) -> None:
        try:
            held = await self._fetch_holdings(gateway, group)
        except GatewayError as e:
            logger.error(f"[reconcile] {venue.name}: fetch failed, skipping venue: {e}")
            result.errors.append(
                TradeError(
                    venue=venue.name,
                    error_type=ErrorType.GATEWAY_ERROR,
                    message=f"Could not read balances/positions: {e}",
                    suggestion="Venue skipped; positions left untouched",
                )
            )
            return

        for position in group:
            venue_quantity = held.get(self._holding_key(position), 0.0)
            kind = classify(position, venue_quantity)
            if kind == MATCHED:
                result.matched += 1
                continue

            result.mismatched += 1
            mismatch = Mismatch(
                position_id=position.id,
                symbol=position.symbol,
                venue=venue.name,
                kind=kind,
                db_quantity=position.quantity,
                venue_quantity=venue_quantity,
            )
            logger.warning(
                f"[reconcile] {venue.name} {position.symbol} #{position.id}: {kind} "
                f"(db={position.quantity}, venue={venue_quantity})"
            )
            if auto_fix:
                if kind == MISSING:
                    mismatch.action_taken = await self._flag_orphaned(gateway, position)
                else:
                    mismatch.action_taken = self._fix_quantity(position, venue_quantity)
                if mismatch.action_taken not in (None, "none"):
                    result.fixed += 1
            if mismatch.action_taken not in RESOLVED:
                result.errors.append(
                    TradeError(
                        symbol=position.symbol,
                        venue=venue.name,
                        error_type=ErrorType.RECONCILE_MISMATCH,
                        message=f"#{position.id} {kind}: db={position.quantity}, venue={venue_quantity}",
                        suggestion="Review on the venue; nothing is sold to resolve it",
                    )
                )
            result.mismatches.append(mismatch)

    @staticmethod
    def _holding_key(position: Position) -> tuple[str, str]:
        if position.trade_type == "futures":
            return ("futures", f"{position.symbol}:{position.direction}")
        return ("spot", base_asset(position.symbol))

    async def _fetch_holdings(self, gateway: ExchangeGateway, group: list[Position]) -> dict[tuple[str, str], float]:
        """Everything the venue reports for this group, fetched before anything is classified."""
        held: dict[tuple[str, str], float] = {}
        if any(p.trade_type == "futures" for p in group):
            for venue_position in await gateway.get_open_positions():
                key = ("futures", f"{venue_position.symbol}:{venue_position.side}")
                held[key] = held.get(key, 0.0) + venue_position.quantity
        for asset in {base_asset(p.symbol) for p in group if p.trade_type != "futures"}:
            held[("spot", asset)] = await gateway.get_balance(asset, trade_type="spot")
        return held

    async def _flag_orphaned(self, gateway: ExchangeGateway, position: Position) -> str | None:
        if position.take_profit_status == TakeProfitStatus.FILLED:
            # Already known to have filled; monitoring finalises it
            return "tp_filled"
        if not self.store.transition(
            position.id,
            PositionStatus.OPEN,
            PositionStatus.ORPHANED,
            status_reason="No matching balance/position on venue during reconciliation",
        ):
            return None

        if position.take_profit_order_id and position.take_profit_status == TakeProfitStatus.PENDING:
            cancel = await gateway.cancel_order(
                position.symbol, position.take_profit_order_id, trade_type=position.trade_type
            )
            if cancel.success and cancel.order_status == "not_found":
                # Holding gone and the TP is off the book: the TP filled
                self.store.transition(
                    position.id,
                    PositionStatus.ORPHANED,
                    PositionStatus.OPEN,
                    take_profit_status=TakeProfitStatus.FILLED,
                    status_reason=None,
                )
                logger.info(
                    f"[reconcile] #{position.id} {position.symbol}: TP {position.take_profit_order_id} filled, "
                    f"left open for the monitor to close at {position.take_profit_price}"
                )
                return "tp_filled"
            logger.error(f"[reconcile] Position #{position.id} {position.symbol} flagged orphaned; needs review")
            if cancel.success:
                self.store.update_position(position.id, take_profit_status=TakeProfitStatus.CANCELLED)
                return "orphaned_tp_cancelled"
            logger.warning(f"[reconcile] Could not cancel TP {position.take_profit_order_id}: {cancel.error}")
            return "orphaned"

        logger.error(f"[reconcile] Position #{position.id} {position.symbol} flagged orphaned; needs review")
        return "orphaned"

    def _fix_quantity(self, position: Position, venue_quantity: float) -> str:
        if position.trade_type != "futures" and venue_quantity > position.quantity:
            # Extra spot balance belongs to the account, not this position
            return "none"
        self.store.update_position(position.id, quantity=venue_quantity)
        logger.info(f"[reconcile] #{position.id} quantity {position.quantity} -> {venue_quantity}")
        return "quantity_updated"


async def reconcile_on_startup() -> ReconcileResult:
    """Flag drift left behind by a restart or crash. Called once from the app lifespan."""
    return await Reconciler(PositionStore()).reconcile(auto_fix=True)
