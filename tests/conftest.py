"""
Shared fixtures for the P2P engine test suites.

Key Components:
1. A frozen clock so expiry and ordering are deterministic
2. An in-memory key/value store shared by every identity in a test
3. Identity-bound service facades for seller, buyer and an unrelated outsider
4. The reference sell order and a pending trade against it
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from models import OrderSide, UserProfile
from services.identity_context import DEFAULT_PROFILE, IdentityContext
from services.p2p_service import P2PEngine, P2PService
from services.p2p_store import InMemoryKeyValueStore
from utils.datetime_helpers import FrozenClock
from utils.fee_calculator import FeeCalculator

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def engine(store, clock):
    return P2PEngine(store, clock=clock, fee_calculator=FeeCalculator(Decimal("0.001")))


@pytest.fixture
def seller_profile():
    return UserProfile(
        id="user2",
        username="CryptoKing",
        rating=4.9,
        completed_trade_count=89,
        verified=True,
        payment_methods=["Bank Transfer", "PayPal"],
        preferred_currencies=["USD"],
    )


@pytest.fixture
def buyer_profile():
    return DEFAULT_PROFILE


@pytest.fixture
def outsider_profile():
    return UserProfile(id="user9", username="Lurker", rating=3.1, completed_trade_count=2)


@pytest.fixture
def seller(engine, seller_profile):
    return P2PService(engine, IdentityContext(seller_profile))


@pytest.fixture
def buyer(engine, buyer_profile):
    return P2PService(engine, IdentityContext(buyer_profile))


@pytest.fixture
def outsider(engine, outsider_profile):
    return P2PService(engine, IdentityContext(outsider_profile))


@pytest_asyncio.fixture
async def sell_order(seller):
    """1000 USD sell order at 1.0952, Bank Transfer only, 100-1000 per trade"""
    return await seller.create_order(
        side=OrderSide.SELL,
        currency="USD",
        amount=1000,
        price=Decimal("1.0952"),
        payment_methods=["Bank Transfer"],
        min_amount=100,
        max_amount=1000,
        time_limit_minutes=30,
        terms="Payment within 30 minutes.",
    )


@pytest_asyncio.fixture
async def pending_trade(buyer, sell_order):
    return await buyer.accept_order(sell_order.id, 500, "Bank Transfer")
