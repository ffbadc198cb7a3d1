"""Fee and escrow calculation utilities for P2P trades"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from config import Config
from models import OrderSide

logger = logging.getLogger(__name__)


class FeeCalculator:
    """Handles all fee-related calculations with decimal precision"""

    def __init__(self, fee_rate: Optional[Decimal] = None):
        rate = Config.P2P_PLATFORM_FEE_RATE if fee_rate is None else Decimal(str(fee_rate))
        if rate < 0:
            raise ValueError(f"Platform fee rate cannot be negative: {rate}")
        self.fee_rate = rate

    def platform_fee(self, amount: Decimal) -> Decimal:
        """Fixed proportional fee charged on the trade amount"""
        return amount * self.fee_rate

    @staticmethod
    def total_value(amount: Decimal, price: Decimal) -> Decimal:
        return amount * price

    @staticmethod
    def escrow_amount(side: OrderSide, amount: Decimal, price: Decimal) -> Decimal:
        """
        Seller-side holding locked for the trade.

        On a sell order the owner is the seller and locks the traded currency
        amount; on a buy order the acceptor sells and the counter-value
        (amount x price) is locked.
        """
        if side == OrderSide.SELL:
            return amount
        return amount * price

    def calculate_trade_breakdown(self, side: OrderSide, amount: Decimal, price: Decimal) -> Dict[str, Decimal]:
        """Fee, escrow and value figures for a prospective trade"""
        breakdown = {
            "total_value": self.total_value(amount, price),
            "escrow_amount": self.escrow_amount(side, amount, price),
            "platform_fee": self.platform_fee(amount),
            "fee_rate": self.fee_rate,
        }
        logger.debug(f"Trade breakdown for {side.value} {amount} @ {price}: {breakdown}")
        return breakdown
