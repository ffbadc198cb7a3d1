"""
P2P Service - call surface consumed by the UI layer
Binds the order book, trade engine and conversation log to one identity.
All mutating calls persist both collections before returning.
"""

import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from models import Order, OrderFilter, OrderSide, Trade, TradeMessage, UserProfile
from services.id_generator import IDGenerator, id_generator
from services.identity_context import IdentityContext
from services.order_book_service import OrderBookService
from services.p2p_repositories import OrderRepository, TradeRepository
from services.p2p_store import KeyValueStore, SQLAlchemyKeyValueStore
from services.trade_conversation_log import TradeConversationLog
from services.trade_engine import TradeEngine
from services.trade_expiry_service import TradeExpiryService
from services.trade_stats_service import TradeStatsService, TradingStats
from utils.datetime_helpers import Clock, utc_now
from utils.fee_calculator import FeeCalculator

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]


class P2PEngine:
    """Shared repositories and services, independent of any identity"""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock = utc_now,
        fee_calculator: Optional[FeeCalculator] = None,
        ids: IDGenerator = id_generator,
    ):
        self.store = store
        self.orders = OrderRepository(store)
        self.trades = TradeRepository(store)
        self.conversation = TradeConversationLog(self.orders, self.trades, clock=clock, ids=ids)
        self.order_book = OrderBookService(self.orders, self.trades, clock=clock, ids=ids)
        self.trade_engine = TradeEngine(
            self.orders, self.trades, self.conversation,
            fee_calculator=fee_calculator, clock=clock, ids=ids,
        )
        self.expiry = TradeExpiryService(self.trade_engine)
        self.stats = TradeStatsService(self.trades)

    async def load(self) -> None:
        await self.orders.load()
        await self.trades.load()

    async def close(self) -> None:
        await self.store.close()


class P2PService:
    """Identity-bound facade over a P2PEngine"""

    def __init__(self, engine: P2PEngine, identity: Optional[IdentityContext] = None):
        self.engine = engine
        self.identity = identity or IdentityContext()

    @classmethod
    async def open(
        cls,
        database_url: Optional[str] = None,
        identity: Optional[IdentityContext] = None,
        clock: Clock = utc_now,
    ) -> "P2PService":
        """Open the durable store, load both collections and bind the identity"""
        store = await SQLAlchemyKeyValueStore.open(database_url)
        engine = P2PEngine(store, clock=clock)
        await engine.load()
        return cls(engine, identity)

    def as_user(self, profile: UserProfile) -> "P2PService":
        """Facade for another identity sharing the same collections"""
        return P2PService(self.engine, IdentityContext(profile))

    async def load(self) -> None:
        await self.engine.load()

    async def close(self) -> None:
        await self.engine.close()

    def get_current_user(self) -> UserProfile:
        return self.identity.get_current_user()

    # -------------------- Order book --------------------

    async def create_order(
        self,
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
        return await self.engine.order_book.create_order(
            self.get_current_user(),
            side=side,
            currency=currency,
            amount=amount,
            price=price,
            payment_methods=payment_methods,
            time_limit_minutes=time_limit_minutes,
            min_amount=min_amount,
            max_amount=max_amount,
            terms=terms,
        )

    def list_orders(self, order_filter: Optional[OrderFilter] = None) -> List[Order]:
        return self.engine.order_book.list_orders(self.get_current_user(), order_filter)

    async def cancel_order(self, order_id: str) -> Order:
        return await self.engine.order_book.cancel_order(self.get_current_user(), order_id)

    def list_my_orders(self) -> List[Order]:
        return self.engine.order_book.list_my_orders(self.get_current_user())

    # -------------------- Trades --------------------

    async def accept_order(self, order_id: str, amount: Number, payment_method: str) -> Trade:
        return await self.engine.trade_engine.accept_order(
            self.get_current_user(), order_id, amount, payment_method
        )

    def get_trade_by_id(self, trade_id: str) -> Optional[Trade]:
        return self.engine.trade_engine.get_trade_by_id(trade_id)

    def list_my_trades(self) -> List[Trade]:
        return self.engine.trade_engine.list_my_trades(self.get_current_user())

    async def confirm_payment(self, trade_id: str) -> Trade:
        return await self.engine.trade_engine.confirm_payment(self.get_current_user(), trade_id)

    async def confirm_receipt(self, trade_id: str) -> Trade:
        return await self.engine.trade_engine.confirm_receipt(self.get_current_user(), trade_id)

    async def cancel_trade(self, trade_id: str, reason: str) -> Trade:
        return await self.engine.trade_engine.cancel_trade(self.get_current_user(), trade_id, reason)

    async def open_dispute(self, trade_id: str, reason: str) -> Trade:
        return await self.engine.trade_engine.open_dispute(self.get_current_user(), trade_id, reason)

    # -------------------- Conversation --------------------

    async def send_message(
        self, trade_id: str, text: str, attachments: Optional[List[str]] = None
    ) -> TradeMessage:
        return await self.engine.conversation.send_message(
            self.get_current_user(), trade_id, text, attachments
        )

    async def send_payment_proof(self, trade_id: str, text: str, attachments: List[str]) -> TradeMessage:
        return await self.engine.conversation.send_payment_proof(
            self.get_current_user(), trade_id, text, attachments
        )

    def list_messages(self, trade_id: str) -> List[TradeMessage]:
        return self.engine.conversation.list_messages(trade_id)

    # -------------------- Stats --------------------

    def calculate_trading_stats(self) -> TradingStats:
        return self.engine.stats.calculate_trading_stats(self.get_current_user())
