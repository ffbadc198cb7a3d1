"""
Trade Expiry Service - periodic reconciliation of overdue trades
Re-evaluates non-terminal trades against expires_at. The state machine holds
no timers; this pass is the only place expiry turns into a status change.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from models import Trade, TradeStatus
from services.p2p_repositories import persist_collections
from services.trade_engine import TradeEngine
from utils.p2p_exceptions import P2PError
from utils.trade_state_machine import TradeStateValidator

logger = logging.getLogger(__name__)


class TradeExpiryService:
    """Detects overdue trades and cancels the ones whose payment never started"""

    def __init__(self, engine: TradeEngine, batch_size: int = 50):
        self.engine = engine
        self.batch_size = batch_size

    def find_expired_trades(self, now: Optional[datetime] = None) -> List[Trade]:
        """Non-terminal trades past their deadline (advisory, no side effects)"""
        cutoff = now or self.engine.clock()
        return [
            trade for trade in self.engine.trades.all()
            if not TradeStateValidator.is_terminal_state(trade.status)
            and trade.status != TradeStatus.DISPUTED
            and trade.expires_at < cutoff
        ]

    async def expire_overdue_trades(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Cancel overdue trades still waiting for payment.

        PENDING past deadline: payment never sent, cancelled with escrow refunded.
        PAYMENT_SENT past deadline: money may be in flight, reported only.
        """
        results: Dict[str, Any] = {
            "processed": 0,
            "expired_trades": [],
            "overdue_awaiting_receipt": [],
            "errors": [],
        }

        overdue = self.find_expired_trades(now)
        logger.info(f"🔍 EXPIRY_SWEEP: Found {len(overdue)} overdue trade(s)")

        # Report-only trades never change status, so they must not use up the batch
        for trade in overdue:
            if trade.status != TradeStatus.PENDING:
                results["overdue_awaiting_receipt"].append(trade.id)
                logger.warning(f"⚠️ EXPIRY_SWEEP: {trade.id} overdue while {trade.status.value}, left for the parties")

        pending = [trade for trade in overdue if trade.status == TradeStatus.PENDING]
        for trade in pending[: self.batch_size]:
            try:
                self.engine.mark_expired(trade)
                results["expired_trades"].append(trade.id)
                results["processed"] += 1
            except P2PError as e:
                logger.error(f"❌ EXPIRY_SWEEP_ERROR: {trade.id}: {e}")
                results["errors"].append(f"{trade.id}: {e}")

        if results["processed"]:
            await persist_collections(self.engine.orders, self.engine.trades)
            logger.info(f"✅ EXPIRY_SWEEP: Cancelled {results['processed']} expired trade(s)")
        return results
