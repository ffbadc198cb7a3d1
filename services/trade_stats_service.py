"""Trading statistics for the local user's trade history"""

from dataclasses import dataclass
from decimal import Decimal

from models import TradeStatus, UserProfile
from services.p2p_repositories import TradeRepository
from utils.trade_state_machine import TradeStateValidator

ACTIVE_STATES = frozenset({TradeStatus.PENDING, TradeStatus.PAYMENT_SENT, TradeStatus.DISPUTED})


@dataclass
class TradingStats:
    total_volume: Decimal
    success_rate: float
    average_completion_minutes: float
    active_trades: int


class TradeStatsService:
    def __init__(self, trades: TradeRepository):
        self.trades = trades

    def calculate_trading_stats(self, actor: UserProfile) -> TradingStats:
        """
        Summarize the actor's trades.

        total_volume sums total_value of settled trades; success_rate is the
        settled share of all the actor's trades, in percent.
        """
        user_trades = self.trades.for_party(actor.id)
        settled = [
            trade for trade in user_trades
            if trade.status in TradeStateValidator.SETTLED_STATES
        ]

        total_volume = sum((trade.total_value for trade in settled), Decimal("0"))
        success_rate = (len(settled) / len(user_trades) * 100) if user_trades else 0.0

        durations = [
            (trade.completed_at - trade.created_at).total_seconds() / 60
            for trade in settled
            if trade.completed_at is not None
        ]
        average_minutes = sum(durations) / len(durations) if durations else 0.0

        return TradingStats(
            total_volume=total_volume,
            success_rate=success_rate,
            average_completion_minutes=average_minutes,
            active_trades=sum(1 for trade in user_trades if trade.status in ACTIVE_STATES),
        )
