"""
Trade Conversation Log Tests
Party-only posting, payment proofs, ordering of user and system messages.
"""

import json

import pytest

from config import Config
from models import MessageType
from utils.p2p_exceptions import NotFoundError, UnauthorizedError, ValidationError


@pytest.mark.asyncio
class TestSendMessage:
    """User-authored messages"""

    async def test_party_can_post(self, buyer, pending_trade):
        message = await buyer.send_message(pending_trade.id, "Sending now")

        assert message.id.startswith("msg_")
        assert message.sender_id == "user1"
        assert message.sender_username == "TradePro2024"
        assert message.kind == MessageType.TEXT
        assert message.attachments is None
        assert pending_trade.messages[-1] is message

    async def test_outsider_cannot_post(self, outsider, pending_trade):
        with pytest.raises(UnauthorizedError, match="Unauthorized to send message"):
            await outsider.send_message(pending_trade.id, "hello")
        assert len(pending_trade.messages) == 1

    async def test_blank_text_rejected(self, seller, pending_trade):
        with pytest.raises(ValidationError):
            await seller.send_message(pending_trade.id, "   ")

    async def test_unknown_trade(self, buyer):
        with pytest.raises(NotFoundError):
            await buyer.send_message("trade_missing", "hi")

    async def test_posting_after_settlement_is_allowed(self, buyer, seller, pending_trade):
        await buyer.confirm_payment(pending_trade.id)
        await seller.confirm_receipt(pending_trade.id)

        message = await buyer.send_message(pending_trade.id, "Thanks!")
        assert message.kind == MessageType.TEXT

    async def test_messages_are_persisted_with_trade(self, seller, store, pending_trade):
        await seller.send_message(pending_trade.id, "Waiting for your transfer", ["note.txt"])

        stored = json.loads(await store.get(Config.P2P_TRADES_KEY))
        messages = stored[0]["messages"]
        assert messages[-1]["message"] == "Waiting for your transfer"
        assert messages[-1]["type"] == "text"
        assert messages[-1]["attachments"] == ["note.txt"]
        assert "attachments" not in messages[0]


@pytest.mark.asyncio
class TestPaymentProof:

    async def test_proof_carries_attachments(self, buyer, pending_trade):
        proof = await buyer.send_payment_proof(pending_trade.id, "", ["receipt_001.png"])

        assert proof.kind == MessageType.PAYMENT_PROOF
        assert proof.attachments == ["receipt_001.png"]
        assert proof.text == "Payment proof attached"

    async def test_proof_requires_attachment(self, buyer, pending_trade):
        with pytest.raises(ValidationError):
            await buyer.send_payment_proof(pending_trade.id, "see receipt", [])


@pytest.mark.asyncio
class TestMessageOrdering:

    async def test_timestamps_strictly_increase_under_frozen_clock(self, buyer, seller, pending_trade):
        await buyer.send_message(pending_trade.id, "one")
        await seller.send_message(pending_trade.id, "two")
        await buyer.confirm_payment(pending_trade.id)
        await buyer.send_message(pending_trade.id, "three")

        messages = buyer.list_messages(pending_trade.id)
        timestamps = [message.timestamp for message in messages]

        assert len(messages) == 5
        assert all(earlier < later for earlier, later in zip(timestamps, timestamps[1:]))
        assert [message.kind for message in messages] == [
            MessageType.SYSTEM, MessageType.TEXT, MessageType.TEXT, MessageType.SYSTEM, MessageType.TEXT
        ]

    async def test_list_messages_returns_copy(self, buyer, pending_trade):
        messages = buyer.list_messages(pending_trade.id)
        messages.clear()
        assert len(buyer.list_messages(pending_trade.id)) == 1

    async def test_list_messages_unknown_trade(self, buyer):
        with pytest.raises(NotFoundError):
            buyer.list_messages("trade_missing")
