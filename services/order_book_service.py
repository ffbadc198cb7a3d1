"""
Order Book Service
Publishes, discovers and retires P2P orders. The book never shows a user
their own orders and only ever lists active ones.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Union

from models import (
    Order, OrderFilter, OrderSide, OrderSortField, OrderStatus, SortOrder, UserProfile
)
from services.id_generator import EntityType, IDGenerator, id_generator
from services.p2p_repositories import OrderRepository, TradeRepository, persist_collections
from utils.datetime_helpers import Clock, utc_now
from utils.json_serialization import to_decimal
from utils.p2p_exceptions import InvalidStateError, NotFoundError, UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]


# Demo order set published by the mobile client on first launch
SAMPLE_ORDERS: List[Dict[str, Any]] = [
    {
        "id": "order_1",
        "owner_id": "user2",
        "owner_username": "CryptoKing",
        "side": OrderSide.SELL,
        "currency": "USD",
        "amount": Decimal("1000"),
        "price": Decimal("1.0952"),
        "payment_methods": ["Bank Transfer", "PayPal"],
        "min_amount": Decimal("100"),
        "max_amount": Decimal("1000"),
        "age": timedelta(hours=1),
        "time_limit_minutes": 30,
        "terms": "Payment within 30 minutes. Bank transfer only.",
        "owner_verified": True,
        "owner_rating": 4.9,
        "owner_trade_count": 89,
    },
    {
        "id": "order_2",
        "owner_id": "user3",
        "owner_username": "ForexMaster",
        "side": OrderSide.BUY,
        "currency": "EUR",
        "amount": Decimal("500"),
        "price": Decimal("0.9134"),
        "payment_methods": ["Wise", "SEPA"],
        "min_amount": Decimal("50"),
        "max_amount": Decimal("500"),
        "age": timedelta(hours=2),
        "time_limit_minutes": 45,
        "terms": None,
        "owner_verified": True,
        "owner_rating": 4.7,
        "owner_trade_count": 156,
    },
    {
        "id": "order_3",
        "owner_id": "user4",
        "owner_username": "TradingBot",
        "side": OrderSide.SELL,
        "currency": "GBP",
        "amount": Decimal("750"),
        "price": Decimal("1.2634"),
        "payment_methods": ["Bank Transfer"],
        "min_amount": Decimal("100"),
        "max_amount": Decimal("750"),
        "age": timedelta(minutes=30),
        "time_limit_minutes": 60,
        "terms": None,
        "owner_verified": False,
        "owner_rating": 4.2,
        "owner_trade_count": 23,
    },
]


def _positive_decimal(name: str, value: Optional[Number]) -> Decimal:
    try:
        parsed = to_decimal(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number")
    if parsed is None or not parsed.is_finite() or parsed <= 0:
        raise ValidationError(f"{name} must be greater than 0")
    return parsed


def _optional_decimal(name: str, value: Optional[Number]) -> Optional[Decimal]:
    try:
        parsed = to_decimal(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number")
    if parsed is not None and not parsed.is_finite():
        raise ValidationError(f"{name} must be a finite number")
    return parsed


class OrderBookService:
    """In-memory order book with write-through persistence"""

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

    async def create_order(
        self,
        actor: UserProfile,
        *,
        side: Union[OrderSide, str],
        currency: str,
        amount: Number,
        price: Number,
        payment_methods: Iterable[str],
        time_limit_minutes: int,
        min_amount: Optional[Number] = None,
        max_amount: Optional[Number] = None,
        terms: Optional[str] = None,
    ) -> Order:
        """
        Publish a new order owned by the actor.

        The owner's rating, trade count and verified flag are snapshotted so
        later profile changes do not alter already-published orders.

        Raises:
            ValidationError: any input violates the order invariants; nothing is added
        """
        try:
            order_side = OrderSide(side)
        except ValueError:
            raise ValidationError(f"Unknown order side: {side!r}")

        if not currency or not str(currency).strip():
            raise ValidationError("Currency is required")

        order_amount = _positive_decimal("Amount", amount)
        order_price = _positive_decimal("Price", price)

        methods: List[str] = []
        for method in payment_methods or []:
            if not isinstance(method, str) or not method.strip():
                raise ValidationError("Payment methods must be non-empty strings")
            if method not in methods:
                methods.append(method)
        if not methods:
            raise ValidationError("At least one payment method is required")

        if isinstance(time_limit_minutes, bool) or not isinstance(time_limit_minutes, int) or time_limit_minutes <= 0:
            raise ValidationError("Time limit must be a positive number of minutes")

        lower = _optional_decimal("Minimum amount", min_amount)
        upper = _optional_decimal("Maximum amount", max_amount)
        lower = Decimal("0") if lower is None else lower
        upper = order_amount if upper is None else upper

        if lower < 0:
            raise ValidationError("Minimum amount cannot be negative")
        if upper <= 0:
            raise ValidationError("Maximum amount must be greater than 0")
        if lower > upper:
            raise ValidationError("Minimum amount cannot exceed maximum amount")
        if upper > order_amount:
            raise ValidationError("Maximum amount cannot exceed order amount")

        order = Order(
            id=self.ids.generate_id(EntityType.ORDER),
            owner_id=actor.id,
            owner_username=actor.username,
            side=order_side,
            currency=str(currency).strip().upper(),
            amount=order_amount,
            price=order_price,
            payment_methods=methods,
            min_amount=lower,
            max_amount=upper,
            status=OrderStatus.ACTIVE,
            created_at=self.clock(),
            time_limit_minutes=time_limit_minutes,
            terms=terms,
            owner_verified=actor.verified,
            owner_rating=actor.rating,
            owner_trade_count=actor.completed_trade_count,
        )
        self.orders.add(order)
        await persist_collections(self.orders, self.trades)

        logger.info(
            f"✅ ORDER_CREATED: {order.id} {order.side.value} {order.amount} {order.currency} "
            f"@ {order.price} by {actor.username}"
        )
        return order

    def list_orders(self, actor: UserProfile, order_filter: Optional[OrderFilter] = None) -> List[Order]:
        """Active orders of other users, optionally filtered and sorted"""
        results = [
            order for order in self.orders.all()
            if order.status == OrderStatus.ACTIVE and order.owner_id != actor.id
        ]
        if order_filter is None:
            return results

        if order_filter.side is not None:
            results = [order for order in results if order.side == order_filter.side]
        if order_filter.currency:
            currency = order_filter.currency.upper()
            results = [order for order in results if order.currency == currency]
        # Requested range must overlap [min_amount, max_amount]
        if order_filter.min_amount is not None:
            results = [order for order in results if order.max_amount >= order_filter.min_amount]
        if order_filter.max_amount is not None:
            results = [order for order in results if order.min_amount <= order_filter.max_amount]

        if order_filter.sort_by is not None:
            sort_keys = {
                OrderSortField.PRICE: lambda order: order.price,
                OrderSortField.AMOUNT: lambda order: order.amount,
                OrderSortField.RATING: lambda order: order.owner_rating,
                OrderSortField.RECENCY: lambda order: order.created_at,
            }
            # sorted() is stable in both directions, so ties keep creation order
            results = sorted(
                results,
                key=sort_keys[order_filter.sort_by],
                reverse=order_filter.sort_order == SortOrder.DESC,
            )
        return results

    def list_my_orders(self, actor: UserProfile) -> List[Order]:
        return self.orders.owned_by(actor.id)

    def get_order_by_id(self, order_id: str) -> Optional[Order]:
        return self.orders.get(order_id)

    async def cancel_order(self, actor: UserProfile, order_id: str) -> Order:
        """
        Retire an active order owned by the actor.

        Raises:
            NotFoundError: no such order
            UnauthorizedError: actor is not the owner
            InvalidStateError: order is no longer active (already cancelled, processing or completed)
        """
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order not found: {order_id}")
        if order.owner_id != actor.id:
            logger.warning(f"⚠️ ORDER_CANCEL_UNAUTHORIZED: {actor.id} attempted to cancel {order_id}")
            raise UnauthorizedError("Unauthorized to cancel order")
        if order.status != OrderStatus.ACTIVE:
            raise InvalidStateError(f"Order {order_id} is already {order.status.value}")

        order.status = OrderStatus.CANCELLED
        await persist_collections(self.orders, self.trades)
        logger.info(f"🚫 ORDER_CANCELLED: {order_id} by {actor.username}")
        return order

    async def seed_sample_orders(self) -> int:
        """Publish the demo order set; returns how many orders were added"""
        now = self.clock()
        added = 0
        for sample in SAMPLE_ORDERS:
            if self.orders.get(sample["id"]) is not None:
                continue
            fields = {key: value for key, value in sample.items() if key != "age"}
            fields["payment_methods"] = list(sample["payment_methods"])
            self.orders.add(Order(
                status=OrderStatus.ACTIVE,
                created_at=now - sample["age"],
                **fields,
            ))
            added += 1

        if added:
            await persist_collections(self.orders, self.trades)
            logger.info(f"🌱 SAMPLE_ORDERS_SEEDED: {added} order(s)")
        return added
