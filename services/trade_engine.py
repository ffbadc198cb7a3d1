"""
Trade Engine
Creates trades from accepted orders and drives the escrow/payment handshake:

    accept -> pending -> payment_sent -> payment_confirmed
                 \\            \\
                  cancelled     cancelled | disputed

Every transition checks the actor's role before the trade status, writes a
system message to the conversation log and persists both collections before
returning. Expiry is advisory: expires_at is data, not a timer.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Union

from models import (
    SYSTEM_SENDER_ID, EscrowStatus, Order, OrderSide, OrderStatus, Trade, TradeStatus, UserProfile
)
from services.id_generator import EntityType, IDGenerator, id_generator
from services.p2p_repositories import OrderRepository, TradeRepository, persist_collections
from services.trade_conversation_log import TradeConversationLog
from utils.datetime_helpers import Clock, minutes_from, utc_now
from utils.fee_calculator import FeeCalculator
from utils.json_serialization import to_decimal
from utils.p2p_exceptions import (
    AmountOutOfRangeError, InvalidStateError, NotFoundError, SelfTradeError,
    UnsupportedPaymentMethodError, ValidationError
)
from utils.trade_state_machine import TradeStateValidator, TradeTransition

logger = logging.getLogger(__name__)


class TradeEngine:
    """State machine governing a trade from acceptance to settlement or cancellation"""

    def __init__(
        self,
        orders: OrderRepository,
        trades: TradeRepository,
        conversation: TradeConversationLog,
        fee_calculator: Optional[FeeCalculator] = None,
        clock: Clock = utc_now,
        ids: IDGenerator = id_generator,
    ):
        self.orders = orders
        self.trades = trades
        self.conversation = conversation
        self.fees = fee_calculator or FeeCalculator()
        self.clock = clock
        self.ids = ids

    # -------------------- Queries --------------------

    def get_trade_by_id(self, trade_id: str) -> Optional[Trade]:
        return self.trades.get(trade_id)

    def list_my_trades(self, actor: UserProfile) -> List[Trade]:
        """Trades where the actor is buyer or seller, in creation order"""
        return self.trades.for_party(actor.id)

    def _require_trade(self, trade_id: str) -> Trade:
        trade = self.trades.get(trade_id)
        if trade is None:
            raise NotFoundError(f"Trade not found: {trade_id}")
        return trade

    # -------------------- Acceptance --------------------

    async def accept_order(
        self,
        actor: UserProfile,
        order_id: str,
        amount: Union[Decimal, int, float, str],
        payment_method: str,
    ) -> Trade:
        """
        Instantiate a trade from an order for the given amount.

        Role assignment follows the order side: on a sell order the owner is
        the seller and the actor buys; on a buy order the reverse. A trade for
        the full order amount moves the order to processing. Partial accepts
        leave the order active with its nominal amount unchanged, so one order
        can be accepted repeatedly beyond its real remaining balance.

        Raises:
            NotFoundError: order does not exist
            SelfTradeError: actor owns the order
            InvalidStateError: order is not active
            AmountOutOfRangeError: amount outside [min_amount, max_amount]
            UnsupportedPaymentMethodError: method not offered by the order
        """
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order not found: {order_id}")
        if order.owner_id == actor.id:
            raise SelfTradeError("Cannot accept your own order")
        if order.status != OrderStatus.ACTIVE:
            raise InvalidStateError(f"Order {order_id} is {order.status.value} and cannot be accepted")

        try:
            trade_amount = to_decimal(amount)
        except ValueError:
            raise ValidationError("Amount must be a number")
        if (
            trade_amount is None
            or not trade_amount.is_finite()
            or trade_amount <= 0
            or trade_amount < order.min_amount
            or trade_amount > order.max_amount
        ):
            raise AmountOutOfRangeError(
                f"Amount outside allowed range {order.min_amount} - {order.max_amount}"
            )

        if payment_method not in order.payment_methods:
            raise UnsupportedPaymentMethodError(f"Payment method not supported: {payment_method}")

        trade = self._build_trade(order, actor, trade_amount, payment_method)
        self.conversation.record_system_message(
            trade,
            f"Trade initiated. Buyer {trade.buyer_username} has {order.time_limit_minutes} "
            f"minutes to complete payment via {payment_method}.",
        )
        self.trades.add(trade)

        if trade_amount >= order.amount:
            order.status = OrderStatus.PROCESSING
            logger.info(f"📦 ORDER_FULLY_MATCHED: {order.id} -> processing")

        await persist_collections(self.orders, self.trades)
        logger.info(
            f"✅ TRADE_ACCEPTED: {trade.id} from {order.id} {trade.amount} {trade.currency} "
            f"@ {trade.price} buyer={trade.buyer_id} seller={trade.seller_id}"
        )
        return trade

    def _build_trade(self, order: Order, actor: UserProfile, amount: Decimal, payment_method: str) -> Trade:
        breakdown = self.fees.calculate_trade_breakdown(order.side, amount, order.price)
        if order.side == OrderSide.SELL:
            buyer_id, buyer_username = actor.id, actor.username
            seller_id, seller_username = order.owner_id, order.owner_username
        else:
            buyer_id, buyer_username = order.owner_id, order.owner_username
            seller_id, seller_username = actor.id, actor.username

        created_at = self.clock()
        return Trade(
            id=self.ids.generate_id(EntityType.TRADE),
            order_id=order.id,
            buyer_id=buyer_id,
            buyer_username=buyer_username,
            seller_id=seller_id,
            seller_username=seller_username,
            currency=order.currency,
            amount=amount,
            price=order.price,
            payment_method=payment_method,
            status=TradeStatus.PENDING,
            escrow_status=EscrowStatus.LOCKED,
            escrow_amount=breakdown["escrow_amount"],
            platform_fee=breakdown["platform_fee"],
            created_at=created_at,
            expires_at=minutes_from(created_at, order.time_limit_minutes),
        )

    # -------------------- Transitions --------------------

    async def confirm_payment(self, actor: UserProfile, trade_id: str) -> Trade:
        """Buyer marks the payment as sent (pending -> payment_sent)"""
        trade = self._require_trade(trade_id)
        TradeStateValidator.apply_transition(trade, TradeTransition.CONFIRM_PAYMENT, actor.id)
        self.conversation.record_system_message(
            trade, f"Payment has been sent by {actor.username}. Seller, please check and confirm receipt."
        )
        await persist_collections(self.orders, self.trades)
        logger.info(f"💸 PAYMENT_SENT: {trade.id} by {actor.username}")
        return trade

    async def confirm_receipt(self, actor: UserProfile, trade_id: str) -> Trade:
        """Seller confirms receipt and escrow is released (payment_sent -> payment_confirmed)"""
        trade = self._require_trade(trade_id)
        TradeStateValidator.apply_transition(trade, TradeTransition.CONFIRM_RECEIPT, actor.id)
        trade.completed_at = self.clock()
        self.conversation.record_system_message(
            trade, "Payment confirmed. Escrow released and trade completed successfully!"
        )

        order = self.orders.get(trade.order_id)
        if order is not None and order.status == OrderStatus.PROCESSING:
            order.status = OrderStatus.COMPLETED
            order.completed_at = trade.completed_at
            logger.info(f"🏁 ORDER_COMPLETED: {order.id}")

        await persist_collections(self.orders, self.trades)
        logger.info(f"✅ TRADE_SETTLED: {trade.id} escrow {trade.escrow_amount} released")
        return trade

    async def cancel_trade(self, actor: UserProfile, trade_id: str, reason: str) -> Trade:
        """Either party cancels before settlement; escrow is refunded"""
        trade = self._require_trade(trade_id)
        TradeStateValidator.apply_transition(trade, TradeTransition.CANCEL, actor.id)
        reason_text = reason.strip() if reason and reason.strip() else "No reason provided"
        trade.cancelled_at = self.clock()
        trade.cancel_reason = reason_text
        self.conversation.record_system_message(
            trade, f"Trade cancelled by {actor.username}. Reason: {reason_text}. Escrow refunded."
        )
        await persist_collections(self.orders, self.trades)
        logger.info(f"🚫 TRADE_CANCELLED: {trade.id} by {actor.username}: {reason_text}")
        return trade

    async def open_dispute(self, actor: UserProfile, trade_id: str, reason: str) -> Trade:
        """
        Either party disputes a trade after payment was marked sent.

        Escrow stays locked; resolution happens outside this engine.
        """
        trade = self._require_trade(trade_id)
        if not reason or not reason.strip():
            raise ValidationError("A dispute reason is required")
        TradeStateValidator.apply_transition(trade, TradeTransition.DISPUTE, actor.id)
        trade.dispute_reason = reason.strip()
        self.conversation.record_system_message(
            trade, f"Dispute opened by {actor.username}. Reason: {trade.dispute_reason}. Escrow remains locked."
        )
        await persist_collections(self.orders, self.trades)
        logger.warning(f"⚖️ TRADE_DISPUTED: {trade.id} by {actor.username}: {trade.dispute_reason}")
        return trade

    def mark_expired(self, trade: Trade) -> Trade:
        """
        Cancel an overdue pending trade on behalf of the expiry reconciliation.

        Does not persist; the reconciliation pass persists once per sweep.
        """
        TradeStateValidator.apply_transition(trade, TradeTransition.EXPIRE, SYSTEM_SENDER_ID)
        trade.cancelled_at = self.clock()
        trade.cancel_reason = "Payment time limit expired"
        self.conversation.record_system_message(
            trade, "Trade cancelled automatically: payment time limit expired. Escrow refunded."
        )
        logger.info(f"⏰ TRADE_EXPIRED: {trade.id}")
        return trade
