"""Trading loop: one cycle of reconcile, monitor, fetch signals, execute.

Steps:
1. Acquire the single-flight lock (skip if another cycle holds it)
2. Reconcile positions against the venues (best-effort)
3. Retry failed take-profit placements (best-effort)
4. Check policy: settings present, bot running, daily loss limit
5. Load connected venues
6. Monitor open positions: TP fill check, or market fallback without a TP
7. Stop if the open-position cap is reached
8. Fetch and pre-filter candidate signals
9. Execute per venue: venues concurrently, signals within a venue in order
10. Release the lock, whatever happened
"""

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from tradecore.config import settings as app_settings
from tradecore.engine.loop_lock import LoopLockPort
from tradecore.engine.reconciliation import Reconciler
from tradecore.models import BotSettings, PositionStatus, TakeProfitStatus, Venue
from tradecore.schemas.results import CycleResult, CycleStatus, ErrorType, TradeError
from tradecore.schemas.signal import Signal
from tradecore.services import risk
from tradecore.services.encryption import CredentialDecryptionError
from tradecore.services.execution import OrderExecutionService
from tradecore.services.gateway import GatewayError
from tradecore.services.position_store import PositionStore
from tradecore.services.signal_source import SignalSource
from tradecore.utils.constants import QUOTE_CURRENCY

logger = logging.getLogger(__name__)


@dataclass
class VenueBatch:
    executed: int = 0
    actions: list[str] = field(default_factory=list)
    errors: list[TradeError] = field(default_factory=list)


class TradingLoop:

    def __init__(
        self,
        store: PositionStore,
        lock: LoopLockPort,
        executor: OrderExecutionService,
        reconciler: Reconciler,
        signal_source: SignalSource,
        paper_balance: float | None = None,
    ):
        self.store = store
        self.lock = lock
        self.executor = executor
        self.reconciler = reconciler
        self.signal_source = signal_source
        self.paper_balance = app_settings.paper_balance_usd if paper_balance is None else paper_balance

    async def run_cycle(self, triggered_by: str = "scheduler") -> CycleResult:
        cycle_id = f"loop-{uuid.uuid4().hex[:12]}"
        tag = f"[cycle {cycle_id}]"
        started = time.monotonic()
        result = CycleResult(cycle_id=cycle_id)

        try:
            acquired = self.lock.acquire(cycle_id)
        except SQLAlchemyError as e:
            logger.error(f"{tag} Could not read loop lock: {e}")
            result.success = False
            result.status = CycleStatus.ERROR
            result.errors.append(TradeError(error_type=ErrorType.INTERNAL, message=f"Loop lock unavailable: {e}"))
            return result

        if not acquired:
            logger.info(f"{tag} Skipped, another cycle is running")
            result.status = CycleStatus.SKIPPED_CONCURRENT
            result.outcome = TradeError(error_type=ErrorType.CONCURRENT_SKIP, message="Another cycle holds the loop lock")
            result.actions.append("Skipped: another cycle holds the loop lock")
            return result

        logger.info(f"{tag} Starting (triggered by {triggered_by})")
        try:
            await self._run(result, tag)
        except Exception as e:
            logger.error(f"{tag} Cycle error: {e}", exc_info=True)
            result.success = False
            result.status = CycleStatus.ERROR
            result.errors.append(TradeError(error_type=ErrorType.INTERNAL, message=str(e)))
        finally:
            try:
                self.lock.release(cycle_id)
            except SQLAlchemyError as e:
                logger.error(f"{tag} Lock release failed, it will expire after the TTL: {e}")

        duration_ms = int((time.monotonic() - started) * 1000)
        self._log_cycle(result, duration_ms)
        logger.info(
            f"{tag} {result.status.value}: {result.signals_generated} signals, "
            f"{result.trades_executed} opened, {result.positions_closed} closed, "
            f"{len(result.errors)} errors in {duration_ms}ms"
        )
        return result

    async def _run(self, result: CycleResult, tag: str) -> None:
        try:
            reconciled = await self.reconciler.reconcile(auto_fix=True)
            result.actions.append(
                f"Reconciled {reconciled.total_positions} positions "
                f"({reconciled.mismatched} mismatched, {reconciled.fixed} fixed)"
            )
        except Exception as e:
            logger.warning(f"{tag} Reconciliation failed: {e}", exc_info=True)
            result.actions.append("Reconciliation failed")

        try:
            retried = await self.executor.retry_failed_take_profits()
            if retried.retried:
                result.actions.append(f"Retried {retried.retried} take-profit(s), {retried.succeeded} placed")
        except Exception as e:
            logger.warning(f"{tag} Take-profit retry failed: {e}", exc_info=True)
            result.actions.append("Take-profit retry failed")

        policy = self.store.get_settings()
        stop = risk.check_policy(policy, self.store.get_today_net_profit())
        if stop is not None:
            result.status, reason = stop
            result.outcome = reason
            result.actions.append(reason.message)
            if result.status == CycleStatus.NO_SETTINGS:
                result.success = False
                result.errors.append(reason)
            return

        venues = [v for v in self.store.list_venues() if policy.is_paper_trading or v.has_credentials]
        if not venues:
            result.status = CycleStatus.NO_EXCHANGES
            result.actions.append("No connected venues")
            return

        await self._monitor_positions(result, tag)

        active = self.store.count_active_positions()
        if active >= policy.max_open_positions:
            result.status = CycleStatus.MAX_POSITIONS
            result.outcome = TradeError(
                error_type=ErrorType.MAX_POSITIONS,
                message=f"Max open positions reached ({active}/{policy.max_open_positions})",
            )
            result.actions.append(result.outcome.message)
            return

        mode = "paper" if policy.is_paper_trading else "live"
        try:
            signals = await self.signal_source.analyze([v.name for v in venues], mode, policy.ai_aggressiveness)
        except GatewayError as e:
            logger.warning(f"{tag} Signal source failed: {e}")
            result.errors.append(
                TradeError(error_type=ErrorType.GATEWAY_ERROR, message=f"Signal source unavailable: {e}")
            )
            return
        result.signals_generated = len(signals)
        if not signals:
            result.status = CycleStatus.NO_SIGNALS
            result.actions.append("No signals")
            return

        venue_by_name = {v.name: v for v in venues}
        candidates = self._prefilter(signals, venue_by_name, policy, result)
        slots = policy.max_open_positions - active
        if len(candidates) > slots:
            result.actions.append(f"Trimmed {len(candidates)} candidates to {slots} free slot(s)")
            candidates = candidates[:slots]

        by_venue: dict[str, list[Signal]] = defaultdict(list)
        for signal in candidates:
            by_venue[signal.venue].append(signal)
        if not by_venue:
            result.actions.append("No candidates passed the filters")
            return

        logger.info(f"{tag} Executing {len(candidates)} candidate(s) across {len(by_venue)} venue(s)")
        batches = await asyncio.gather(
            *(self._execute_venue(venue_by_name[name], batch, policy) for name, batch in by_venue.items())
        )
        for batch in batches:
            result.trades_executed += batch.executed
            result.actions.extend(batch.actions)
            result.errors.extend(batch.errors)

    async def _monitor_positions(self, result: CycleResult, tag: str) -> None:
        for position in self.store.list_positions((PositionStatus.OPEN,)):
            try:
                if position.take_profit_status in TakeProfitStatus.WATCHED and position.take_profit_order_id:
                    closed = await self.executor.check_take_profit(position)
                else:
                    closed = await self.executor.run_fallback(position)
            except Exception as e:
                logger.error(f"{tag} Monitoring {position.symbol} #{position.id} failed: {e}", exc_info=True)
                result.errors.append(
                    TradeError(symbol=position.symbol, error_type=ErrorType.INTERNAL, message=str(e))
                )
                continue
            if closed is not None and closed.status == "closed":
                result.positions_closed += 1
                result.actions.append(
                    f"Closed {position.direction} {position.symbol} @ {closed.exit_price} (net {closed.net_profit:.2f})"
                )

    def _prefilter(
        self, signals: list[Signal], venue_by_name: dict[str, Venue], policy: BotSettings, result: CycleResult
    ) -> list[Signal]:
        """Drop signals for unknown venues, disabled markets, weak scores or sub-minimum sizes."""
        size = risk.order_size(policy)
        kept = []
        for signal in signals:
            venue = venue_by_name.get(signal.venue)
            if venue is None:
                continue
            if signal.trade_type == "futures" and not venue.futures_enabled:
                continue
            if signal.trade_type == "spot" and not venue.spot_enabled:
                continue
            if not risk.passes_threshold(signal, policy.ai_aggressiveness):
                continue
            try:
                gateway = self.executor.gateway_for(venue)
            except CredentialDecryptionError as e:
                logger.error(f"[{venue.name}] {e}")
                result.errors.append(
                    TradeError(symbol=signal.symbol, venue=venue.name, error_type=ErrorType.NO_CREDENTIALS, message=str(e))
                )
                continue
            if gateway.round_quantity(signal.symbol, size / signal.entry_price, signal.trade_type) <= 0:
                result.actions.append(
                    f"Skipped {signal.venue} {signal.trade_type} {signal.symbol}: ${size:.0f} below one tradable unit"
                )
                continue
            kept.append(signal)
        return kept

    async def _execute_venue(self, venue: Venue, signals: list[Signal], policy: BotSettings) -> VenueBatch:
        """Open positions for one venue in order, debiting the balance as we go."""
        batch = VenueBatch()
        gateway = self.executor.gateway_for(venue)
        paper = policy.is_paper_trading
        balances: dict[str, float] = {}

        for signal in signals:
            try:
                if signal.trade_type not in balances:
                    if paper:
                        balances[signal.trade_type] = self.paper_balance
                    else:
                        balances[signal.trade_type] = await gateway.get_balance(
                            QUOTE_CURRENCY, trade_type=signal.trade_type
                        )

                decision = risk.validate(
                    signal,
                    policy,
                    balances[signal.trade_type],
                    self.store.has_active_position(venue.id, signal.symbol),
                    gateway.round_quantity,
                )
                if not decision.ok:
                    batch.errors.append(decision.error)
                    continue

                sizing = decision.sizing
                opened = await self.executor.open_position(
                    venue,
                    signal.symbol,
                    signal.direction,
                    signal.trade_type,
                    order_size_usd=sizing.order_size_usd,
                    entry_price=signal.entry_price,
                    profit_target=sizing.profit_target,
                    leverage=sizing.leverage,
                    is_paper=paper,
                    score=signal.score,
                    reasoning=signal.reasoning,
                )
            except GatewayError as e:
                logger.error(f"[{venue.name}] {signal.symbol}: {e}")
                batch.errors.append(
                    TradeError(
                        symbol=signal.symbol,
                        venue=venue.name,
                        error_type=ErrorType.GATEWAY_ERROR,
                        message=str(e),
                    )
                )
                continue
            except Exception as e:
                logger.error(f"[{venue.name}] {signal.symbol}: unexpected error: {e}", exc_info=True)
                batch.errors.append(
                    TradeError(symbol=signal.symbol, venue=venue.name, error_type=ErrorType.INTERNAL, message=str(e))
                )
                continue

            batch.errors.extend(opened.errors)
            if opened.success:
                batch.executed += 1
                balances[signal.trade_type] -= sizing.order_size_usd
                batch.actions.append(
                    f"Opened {signal.direction} {signal.symbol} on {venue.name} @ {opened.trade.entry_price:.6f}"
                )
        return batch

    def _log_cycle(self, result: CycleResult, duration_ms: int) -> None:
        try:
            self.store.log_cycle(
                cycle_id=result.cycle_id,
                status=result.status.value,
                signals_generated=result.signals_generated,
                trades_executed=result.trades_executed,
                positions_closed=result.positions_closed,
                duration_ms=duration_ms,
                actions=result.actions,
                errors=[e.model_dump(mode="json", by_alias=True) for e in result.errors],
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to write cycle log {result.cycle_id}: {e}")
