"""
Order Book Service Tests
Covers order publication, validation, discovery filters and sorting,
owner-only cancellation and the demo order set.
"""

import json
from decimal import Decimal

import pytest

from config import Config
from models import OrderFilter, OrderSide, OrderSortField, OrderStatus, SortOrder
from services.order_book_service import SAMPLE_ORDERS
from utils.p2p_exceptions import InvalidStateError, NotFoundError, UnauthorizedError, ValidationError


def _order_kwargs(**overrides):
    kwargs = dict(
        side=OrderSide.SELL,
        currency="USD",
        amount=Decimal("1000"),
        price=Decimal("1.0952"),
        payment_methods=["Bank Transfer"],
        time_limit_minutes=30,
    )
    kwargs.update(overrides)
    return kwargs


class TestCreateOrder:
    """Order publication and input validation"""

    @pytest.mark.asyncio
    async def test_create_order_snapshots_owner_profile(self, seller, seller_profile):
        order = await seller.create_order(**_order_kwargs(min_amount=100, max_amount=1000))

        assert order.id.startswith("order_")
        assert order.owner_id == seller_profile.id
        assert order.owner_username == "CryptoKing"
        assert order.status == OrderStatus.ACTIVE
        assert order.owner_rating == 4.9
        assert order.owner_trade_count == 89
        assert order.owner_verified is True
        assert order.total_value == Decimal("1095.2")

    @pytest.mark.asyncio
    async def test_range_defaults_to_whole_order(self, seller):
        order = await seller.create_order(**_order_kwargs())

        assert order.min_amount == Decimal("0")
        assert order.max_amount == Decimal("1000")

    @pytest.mark.asyncio
    async def test_currency_is_normalized_and_methods_deduplicated(self, seller):
        order = await seller.create_order(**_order_kwargs(
            currency=" usd ",
            payment_methods=["PayPal", "Wise", "PayPal"],
        ))

        assert order.currency == "USD"
        assert order.payment_methods == ["PayPal", "Wise"]

    @pytest.mark.asyncio
    async def test_side_accepts_wire_value(self, seller):
        order = await seller.create_order(**_order_kwargs(side="buy"))
        assert order.side == OrderSide.BUY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"amount": 0},
        {"amount": -5},
        {"amount": "abc"},
        {"price": 0},
        {"price": "NaN"},
        {"payment_methods": []},
        {"payment_methods": ["  "]},
        {"time_limit_minutes": 0},
        {"currency": ""},
        {"side": "hold"},
        {"min_amount": 600, "max_amount": 500},
        {"max_amount": 1500},
        {"min_amount": -1},
    ])
    async def test_invalid_input_is_rejected(self, seller, overrides):
        with pytest.raises(ValidationError):
            await seller.create_order(**_order_kwargs(**overrides))

        assert seller.list_my_orders() == []

    @pytest.mark.asyncio
    async def test_create_order_persists_collection(self, seller, store):
        order = await seller.create_order(**_order_kwargs())

        stored = json.loads(await store.get(Config.P2P_ORDERS_KEY))
        assert [item["id"] for item in stored] == [order.id]
        assert stored[0]["userId"] == "user2"
        assert stored[0]["type"] == "sell"
        assert stored[0]["amount"] == "1000"


class TestListOrders:
    """Discovery: active orders of other users, filtered and sorted"""

    @pytest.mark.asyncio
    async def test_own_orders_are_hidden(self, seller, buyer, sell_order):
        assert seller.list_orders() == []
        assert [order.id for order in buyer.list_orders()] == [sell_order.id]

    @pytest.mark.asyncio
    async def test_only_active_orders_are_listed(self, seller, buyer, sell_order):
        await seller.cancel_order(sell_order.id)
        assert buyer.list_orders() == []

    @pytest.mark.asyncio
    async def test_side_and_currency_filters(self, seller, buyer):
        usd_sell = await seller.create_order(**_order_kwargs())
        await seller.create_order(**_order_kwargs(side=OrderSide.BUY))
        await seller.create_order(**_order_kwargs(currency="EUR"))

        results = buyer.list_orders(OrderFilter(side=OrderSide.SELL, currency="usd"))

        assert [order.id for order in results] == [usd_sell.id]

    @pytest.mark.asyncio
    async def test_filter_accepts_wire_values(self, seller, buyer):
        cheap_buy = await seller.create_order(**_order_kwargs(side=OrderSide.BUY, price="0.90"))
        await seller.create_order(**_order_kwargs())
        dear_buy = await seller.create_order(**_order_kwargs(side=OrderSide.BUY, price="0.95"))

        results = buyer.list_orders(OrderFilter(side="buy", sort_by="price", sort_order="desc"))

        assert results == [dear_buy, cheap_buy]

    @pytest.mark.asyncio
    async def test_amount_filter_matches_overlapping_ranges(self, seller, buyer):
        small = await seller.create_order(**_order_kwargs(amount=200, min_amount=10, max_amount=200))
        large = await seller.create_order(**_order_kwargs(amount=5000, min_amount=1000, max_amount=5000))

        assert buyer.list_orders(OrderFilter(min_amount=Decimal("500"))) == [large]
        assert buyer.list_orders(OrderFilter(max_amount=Decimal("500"))) == [small]
        assert buyer.list_orders(OrderFilter(min_amount=Decimal("150"), max_amount=Decimal("1200"))) == [small, large]

    @pytest.mark.asyncio
    async def test_sort_by_price_both_directions(self, seller, buyer):
        mid = await seller.create_order(**_order_kwargs(price="1.10"))
        low = await seller.create_order(**_order_kwargs(price="1.05"))
        high = await seller.create_order(**_order_kwargs(price="1.20"))

        ascending = buyer.list_orders(OrderFilter(sort_by=OrderSortField.PRICE))
        descending = buyer.list_orders(OrderFilter(sort_by=OrderSortField.PRICE, sort_order=SortOrder.DESC))

        assert ascending == [low, mid, high]
        assert descending == [high, mid, low]

    @pytest.mark.asyncio
    async def test_sort_ties_keep_creation_order(self, seller, buyer):
        first = await seller.create_order(**_order_kwargs(amount=300))
        second = await seller.create_order(**_order_kwargs(amount=300))
        third = await seller.create_order(**_order_kwargs(amount=100))

        results = buyer.list_orders(OrderFilter(sort_by=OrderSortField.AMOUNT))

        assert results == [third, first, second]

    @pytest.mark.asyncio
    async def test_sort_by_recency(self, seller, buyer, clock):
        older = await seller.create_order(**_order_kwargs())
        clock.advance(minutes=5)
        newer = await seller.create_order(**_order_kwargs())

        results = buyer.list_orders(OrderFilter(sort_by=OrderSortField.RECENCY, sort_order=SortOrder.DESC))

        assert results == [newer, older]

    @pytest.mark.asyncio
    async def test_list_my_orders_includes_every_status(self, seller, sell_order):
        second = await seller.create_order(**_order_kwargs())
        await seller.cancel_order(second.id)

        assert [order.id for order in seller.list_my_orders()] == [sell_order.id, second.id]


class TestCancelOrder:

    @pytest.mark.asyncio
    async def test_owner_can_cancel(self, seller, sell_order):
        cancelled = await seller.cancel_order(sell_order.id)
        assert cancelled.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_non_owner_is_rejected(self, buyer, sell_order):
        with pytest.raises(UnauthorizedError, match="Unauthorized to cancel order"):
            await buyer.cancel_order(sell_order.id)
        assert sell_order.status == OrderStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_unknown_order(self, seller):
        with pytest.raises(NotFoundError):
            await seller.cancel_order("order_missing")

    @pytest.mark.asyncio
    async def test_cancel_twice_is_invalid_state(self, seller, sell_order):
        await seller.cancel_order(sell_order.id)
        with pytest.raises(InvalidStateError):
            await seller.cancel_order(sell_order.id)


class TestSampleOrders:

    @pytest.mark.asyncio
    async def test_seed_publishes_demo_orders_once(self, engine, buyer, clock):
        assert await engine.order_book.seed_sample_orders() == len(SAMPLE_ORDERS)
        assert await engine.order_book.seed_sample_orders() == 0

        listed = buyer.list_orders()
        assert [order.id for order in listed] == ["order_1", "order_2", "order_3"]

        order_2 = engine.order_book.get_order_by_id("order_2")
        assert order_2.side == OrderSide.BUY
        assert order_2.currency == "EUR"
        assert order_2.created_at < clock()

    @pytest.mark.asyncio
    async def test_seeded_orders_do_not_share_method_lists(self, engine):
        await engine.order_book.seed_sample_orders()

        engine.order_book.get_order_by_id("order_1").payment_methods.append("Cash")

        assert "Cash" not in SAMPLE_ORDERS[0]["payment_methods"]
