"""
Trade Expiry Reconciliation Tests
The sweep cancels overdue pending trades, reports overdue trades awaiting
receipt and never touches settled or disputed ones.
"""

import json
from datetime import timedelta

import pytest

from config import Config
from jobs.trade_expiry_job import JOB_ID, TradeExpiryScheduler
from models import EscrowStatus, TradeStatus


@pytest.mark.asyncio
class TestTradeExpiryService:

    async def test_nothing_expires_before_deadline(self, engine, pending_trade, clock):
        clock.advance(minutes=29)

        assert engine.expiry.find_expired_trades() == []
        results = await engine.expiry.expire_overdue_trades()
        assert results["processed"] == 0
        assert pending_trade.status == TradeStatus.PENDING

    async def test_overdue_pending_trade_is_cancelled(self, engine, store, pending_trade, clock):
        clock.advance(minutes=31)

        results = await engine.expiry.expire_overdue_trades()

        assert results["expired_trades"] == [pending_trade.id]
        assert pending_trade.status == TradeStatus.CANCELLED
        assert pending_trade.escrow_status == EscrowStatus.REFUNDED
        assert pending_trade.cancel_reason == "Payment time limit expired"
        assert pending_trade.messages[-1].sender_id == "system"

        stored = json.loads(await store.get(Config.P2P_TRADES_KEY))
        assert stored[0]["status"] == "cancelled"
        assert stored[0]["escrowStatus"] == "refunded"

    async def test_overdue_payment_sent_is_only_reported(self, engine, buyer, pending_trade, clock):
        await buyer.confirm_payment(pending_trade.id)
        clock.advance(hours=2)

        results = await engine.expiry.expire_overdue_trades()

        assert results["processed"] == 0
        assert results["overdue_awaiting_receipt"] == [pending_trade.id]
        assert pending_trade.status == TradeStatus.PAYMENT_SENT

    async def test_settled_and_disputed_trades_are_ignored(self, engine, buyer, seller, sell_order, clock):
        settled = await buyer.accept_order(sell_order.id, 200, "Bank Transfer")
        disputed = await buyer.accept_order(sell_order.id, 200, "Bank Transfer")
        await buyer.confirm_payment(settled.id)
        await seller.confirm_receipt(settled.id)
        await buyer.confirm_payment(disputed.id)
        await seller.open_dispute(disputed.id, "amount mismatch")
        clock.advance(days=1)

        assert engine.expiry.find_expired_trades() == []

    async def test_explicit_now_and_batch_size(self, engine, buyer, sell_order, clock):
        for _ in range(3):
            await buyer.accept_order(sell_order.id, 100, "Bank Transfer")
        engine.expiry.batch_size = 2

        results = await engine.expiry.expire_overdue_trades(now=clock() + timedelta(hours=1))

        assert results["processed"] == 2
        assert len(engine.expiry.find_expired_trades(now=clock() + timedelta(hours=1))) == 1

    async def test_awaiting_receipt_trades_do_not_use_up_batch(self, engine, buyer, sell_order, clock):
        awaiting = []
        for _ in range(2):
            trade = await buyer.accept_order(sell_order.id, 100, "Bank Transfer")
            await buyer.confirm_payment(trade.id)
            awaiting.append(trade.id)
        unpaid = await buyer.accept_order(sell_order.id, 100, "Bank Transfer")
        engine.expiry.batch_size = 2
        clock.advance(hours=1)

        results = await engine.expiry.expire_overdue_trades()

        assert results["expired_trades"] == [unpaid.id]
        assert results["overdue_awaiting_receipt"] == awaiting
        assert unpaid.status == TradeStatus.CANCELLED


class TestTradeExpiryScheduler:

    def test_setup_jobs_registers_single_interval_job(self, engine):
        scheduler = TradeExpiryScheduler(engine.expiry, interval_seconds=15)

        scheduler.setup_jobs()
        scheduler.setup_jobs()

        jobs = scheduler.scheduler.get_jobs()
        assert [job.id for job in jobs] == [JOB_ID]
        assert jobs[0].trigger.interval == timedelta(seconds=15)

    def test_interval_defaults_to_config(self, engine):
        scheduler = TradeExpiryScheduler(engine.expiry)
        assert scheduler.interval_seconds == Config.P2P_EXPIRY_SWEEP_INTERVAL_SECONDS

    @pytest.mark.asyncio
    async def test_run_sweep_delegates_to_service(self, engine, pending_trade, clock):
        scheduler = TradeExpiryScheduler(engine.expiry)
        clock.advance(hours=1)

        results = await scheduler.run_sweep()

        assert results["expired_trades"] == [pending_trade.id]

    def test_shutdown_without_start_is_noop(self, engine):
        TradeExpiryScheduler(engine.expiry).shutdown()
