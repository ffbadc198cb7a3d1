"""
P2P Trading Engine - Domain Model and Storage Schema
===================================================

Domain records for the peer-to-peer order book and escrow engine:
- Orders published to the book
- Trades instantiated from an order, with their escrow state
- Conversation messages attached to a trade
- The local user profile used for authorship and authorization

Domain records are plain dataclasses persisted as JSON arrays through a
key/value table (KeyValueEntry). Persisted records use camelCase keys so the
stored layout matches what the mobile client reads.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from utils.json_serialization import ensure_json_safe, parse_datetime, to_decimal


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# ============================================================================
# ENUMS - Business Logic Constants
# ============================================================================

class OrderSide(Enum):
    """Direction of an order from its owner's point of view"""
    BUY = "buy"
    SELL = "sell"


class OrderStatus(Enum):
    """Order lifecycle states"""
    ACTIVE = "active"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TradeStatus(Enum):
    """Trade lifecycle states"""
    PENDING = "pending"
    PAYMENT_SENT = "payment_sent"
    PAYMENT_CONFIRMED = "payment_confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class EscrowStatus(Enum):
    """Simulated holding state of the seller-side funds"""
    LOCKED = "locked"
    RELEASED = "released"
    REFUNDED = "refunded"


class MessageType(Enum):
    TEXT = "text"
    PAYMENT_PROOF = "payment_proof"
    SYSTEM = "system"


class OrderSortField(Enum):
    PRICE = "price"
    AMOUNT = "amount"
    RATING = "rating"
    RECENCY = "time"


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


SYSTEM_SENDER_ID = "system"
SYSTEM_SENDER_USERNAME = "System"


def _optional_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ============================================================================
# DOMAIN RECORDS
# ============================================================================

@dataclass
class UserProfile:
    """Local trader profile (read-only to the engine)"""

    id: str
    username: str
    rating: float = 0.0
    completed_trade_count: int = 0
    verified: bool = False
    join_date: Optional[datetime] = None
    payment_methods: List[str] = field(default_factory=list)
    preferred_currencies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "rating": self.rating,
            "tradesCompleted": self.completed_trade_count,
            "isVerified": self.verified,
            "joinDate": _optional_iso(self.join_date),
            "paymentMethods": list(self.payment_methods),
            "preferredCurrencies": list(self.preferred_currencies),
        }


@dataclass
class Order:
    """An advertised intent to buy or sell an amount of a currency at a price"""

    id: str
    owner_id: str
    owner_username: str
    side: OrderSide
    currency: str
    amount: Decimal
    price: Decimal
    payment_methods: List[str]
    min_amount: Decimal
    max_amount: Decimal
    status: OrderStatus
    created_at: datetime
    time_limit_minutes: int
    terms: Optional[str] = None
    owner_verified: bool = False
    owner_rating: float = 0.0
    owner_trade_count: int = 0
    completed_at: Optional[datetime] = None

    @property
    def total_value(self) -> Decimal:
        return self.amount * self.price

    @property
    def is_active(self) -> bool:
        return self.status == OrderStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return ensure_json_safe({
            "id": self.id,
            "userId": self.owner_id,
            "username": self.owner_username,
            "type": self.side,
            "currency": self.currency,
            "amount": self.amount,
            "price": self.price,
            "totalValue": self.total_value,
            "paymentMethods": list(self.payment_methods),
            "minAmount": self.min_amount,
            "maxAmount": self.max_amount,
            "status": self.status,
            "createdAt": self.created_at,
            "completedAt": self.completed_at,
            "timeLimit": self.time_limit_minutes,
            "terms": self.terms,
            "isVerified": self.owner_verified,
            "rating": self.owner_rating,
            "tradesCompleted": self.owner_trade_count,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        amount = to_decimal(data["amount"])
        min_amount = to_decimal(data.get("minAmount"))
        max_amount = to_decimal(data.get("maxAmount"))
        return cls(
            id=data["id"],
            owner_id=data["userId"],
            owner_username=data["username"],
            side=OrderSide(data["type"]),
            currency=data["currency"],
            amount=amount,
            price=to_decimal(data["price"]),
            payment_methods=list(data.get("paymentMethods") or []),
            min_amount=Decimal("0") if min_amount is None else min_amount,
            max_amount=amount if max_amount is None else max_amount,
            status=OrderStatus(data["status"]),
            created_at=parse_datetime(data["createdAt"]),
            completed_at=parse_datetime(data.get("completedAt")),
            time_limit_minutes=int(data["timeLimit"]),
            terms=data.get("terms"),
            owner_verified=bool(data.get("isVerified", False)),
            owner_rating=float(data.get("rating", 0.0)),
            owner_trade_count=int(data.get("tradesCompleted", 0)),
        )


@dataclass
class TradeMessage:
    """One entry in a trade's conversation"""

    id: str
    trade_id: str
    sender_id: str
    sender_username: str
    text: str
    kind: MessageType
    timestamp: datetime
    attachments: Optional[List[str]] = None

    @property
    def is_system(self) -> bool:
        return self.kind == MessageType.SYSTEM

    def to_dict(self) -> Dict[str, Any]:
        record = ensure_json_safe({
            "id": self.id,
            "tradeId": self.trade_id,
            "senderId": self.sender_id,
            "senderUsername": self.sender_username,
            "message": self.text,
            "type": self.kind,
            "timestamp": self.timestamp,
        })
        if self.attachments is not None:
            record["attachments"] = list(self.attachments)
        return record

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeMessage":
        attachments = data.get("attachments")
        return cls(
            id=data["id"],
            trade_id=data["tradeId"],
            sender_id=data["senderId"],
            sender_username=data["senderUsername"],
            text=data["message"],
            kind=MessageType(data["type"]),
            timestamp=parse_datetime(data["timestamp"]),
            attachments=list(attachments) if attachments is not None else None,
        )


@dataclass
class Trade:
    """A bilateral agreement instantiated from one order by a counterparty"""

    id: str
    order_id: str
    buyer_id: str
    buyer_username: str
    seller_id: str
    seller_username: str
    currency: str
    amount: Decimal
    price: Decimal
    payment_method: str
    status: TradeStatus
    escrow_status: EscrowStatus
    escrow_amount: Decimal
    platform_fee: Decimal
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    dispute_reason: Optional[str] = None
    messages: List[TradeMessage] = field(default_factory=list)

    @property
    def total_value(self) -> Decimal:
        return self.amount * self.price

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def to_dict(self) -> Dict[str, Any]:
        record = ensure_json_safe({
            "id": self.id,
            "orderId": self.order_id,
            "buyerId": self.buyer_id,
            "buyerUsername": self.buyer_username,
            "sellerId": self.seller_id,
            "sellerUsername": self.seller_username,
            "currency": self.currency,
            "amount": self.amount,
            "price": self.price,
            "totalValue": self.total_value,
            "paymentMethod": self.payment_method,
            "status": self.status,
            "escrowStatus": self.escrow_status,
            "escrowAmount": self.escrow_amount,
            "platformFee": self.platform_fee,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            "completedAt": self.completed_at,
            "cancelledAt": self.cancelled_at,
            "cancelReason": self.cancel_reason,
            "disputeReason": self.dispute_reason,
        })
        record["messages"] = [message.to_dict() for message in self.messages]
        return record

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trade":
        return cls(
            id=data["id"],
            order_id=data["orderId"],
            buyer_id=data["buyerId"],
            buyer_username=data["buyerUsername"],
            seller_id=data["sellerId"],
            seller_username=data["sellerUsername"],
            currency=data["currency"],
            amount=to_decimal(data["amount"]),
            price=to_decimal(data["price"]),
            payment_method=data["paymentMethod"],
            status=TradeStatus(data["status"]),
            escrow_status=EscrowStatus(data["escrowStatus"]),
            escrow_amount=to_decimal(data["escrowAmount"]),
            platform_fee=to_decimal(data["platformFee"]),
            created_at=parse_datetime(data["createdAt"]),
            expires_at=parse_datetime(data["expiresAt"]),
            completed_at=parse_datetime(data.get("completedAt")),
            cancelled_at=parse_datetime(data.get("cancelledAt")),
            cancel_reason=data.get("cancelReason"),
            dispute_reason=data.get("disputeReason"),
            messages=[TradeMessage.from_dict(item) for item in data.get("messages") or []],
        )


@dataclass
class OrderFilter:
    """Discovery filter for the order book"""

    side: Optional[OrderSide] = None
    currency: Optional[str] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    sort_by: Optional[OrderSortField] = None
    sort_order: SortOrder = SortOrder.ASC

    def __post_init__(self):
        # Accept wire values ("buy", "price", "desc") as create_order does
        if self.side is not None:
            self.side = OrderSide(self.side)
        if self.sort_by is not None:
            self.sort_by = OrderSortField(self.sort_by)
        self.sort_order = SortOrder(self.sort_order)
        self.min_amount = to_decimal(self.min_amount)
        self.max_amount = to_decimal(self.max_amount)


# ============================================================================
# STORAGE
# ============================================================================

class KeyValueEntry(Base):
    """Durable key/value slot holding one serialized collection"""
    __tablename__ = "p2p_key_value_store"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    )

    def __repr__(self):
        return f"<KeyValueEntry(key={self.key}, size={len(self.value or '')})>"
