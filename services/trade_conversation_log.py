"""
Trade Conversation Log
Append-only, timestamp-ordered message history per trade. Mixes user
messages with system messages written by the trade engine on every status
transition.
"""

import logging
from typing import List, Optional

from models import (
    SYSTEM_SENDER_ID, SYSTEM_SENDER_USERNAME, MessageType, Trade, TradeMessage, UserProfile
)
from services.id_generator import EntityType, IDGenerator, id_generator
from services.p2p_repositories import OrderRepository, TradeRepository, persist_collections
from utils.datetime_helpers import Clock, next_strictly_after, utc_now
from utils.p2p_exceptions import NotFoundError, UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)


class TradeConversationLog:
    """Message history attached to trades"""

    def __init__(
        self,
        orders: OrderRepository,
        trades: TradeRepository,
        clock: Clock = utc_now,
        ids: IDGenerator = id_generator,
    ):
        self.orders = orders
        self.trades = trades
        self.clock = clock
        self.ids = ids

    def _append(
        self,
        trade: Trade,
        sender_id: str,
        sender_username: str,
        text: str,
        kind: MessageType,
        attachments: Optional[List[str]] = None,
    ) -> TradeMessage:
        previous = trade.messages[-1].timestamp if trade.messages else None
        message = TradeMessage(
            id=self.ids.generate_id(EntityType.MESSAGE),
            trade_id=trade.id,
            sender_id=sender_id,
            sender_username=sender_username,
            text=text,
            kind=kind,
            timestamp=next_strictly_after(self.clock(), previous),
            attachments=list(attachments) if attachments is not None else None,
        )
        trade.messages.append(message)
        return message

    def record_system_message(self, trade: Trade, text: str) -> TradeMessage:
        """
        Append an engine-authored status message.

        Only the trade engine calls this, as part of a transition; the caller
        is responsible for persisting afterwards.
        """
        message = self._append(trade, SYSTEM_SENDER_ID, SYSTEM_SENDER_USERNAME, text, MessageType.SYSTEM)
        logger.debug(f"💬 SYSTEM_MESSAGE: {trade.id}: {text}")
        return message

    def _get_trade_for_party(self, actor: UserProfile, trade_id: str) -> Trade:
        trade = self.trades.get(trade_id)
        if trade is None:
            raise NotFoundError(f"Trade not found: {trade_id}")
        if not trade.is_party(actor.id):
            logger.warning(f"⚠️ CHAT_UNAUTHORIZED: {actor.id} attempted to post in {trade_id}")
            raise UnauthorizedError("Unauthorized to send message")
        return trade

    async def send_message(
        self,
        actor: UserProfile,
        trade_id: str,
        text: str,
        attachments: Optional[List[str]] = None,
    ) -> TradeMessage:
        """
        Append a text message from the actor.

        Posting after the trade reached a terminal status is allowed; whether
        to offer it is a caller decision.

        Raises:
            NotFoundError: trade does not exist
            UnauthorizedError: actor is neither buyer nor seller
            ValidationError: text is blank
        """
        trade = self._get_trade_for_party(actor, trade_id)
        if not text or not text.strip():
            raise ValidationError("Message text cannot be empty")

        message = self._append(trade, actor.id, actor.username, text, MessageType.TEXT, attachments)
        await persist_collections(self.orders, self.trades)
        logger.info(f"💬 MESSAGE_SENT: {actor.username} -> {trade_id}")
        return message

    async def send_payment_proof(
        self,
        actor: UserProfile,
        trade_id: str,
        text: str,
        attachments: List[str],
    ) -> TradeMessage:
        """Append a payment proof (receipt reference) from the actor"""
        trade = self._get_trade_for_party(actor, trade_id)
        if not attachments:
            raise ValidationError("Payment proof requires at least one attachment")

        message = self._append(
            trade, actor.id, actor.username, text or "Payment proof attached", MessageType.PAYMENT_PROOF, attachments
        )
        await persist_collections(self.orders, self.trades)
        logger.info(f"🧾 PAYMENT_PROOF_SENT: {actor.username} -> {trade_id} ({len(attachments)} attachment(s))")
        return message

    def list_messages(self, trade_id: str) -> List[TradeMessage]:
        trade = self.trades.get(trade_id)
        if trade is None:
            raise NotFoundError(f"Trade not found: {trade_id}")
        return list(trade.messages)
