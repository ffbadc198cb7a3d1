"""
Identity Context
The local actor used to stamp authorship and authorize trade operations.
The profile is read-only here; profile management lives outside the engine.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from models import UserProfile


DEFAULT_PROFILE = UserProfile(
    id="user1",
    username="TradePro2024",
    rating=4.8,
    completed_trade_count=127,
    verified=True,
    join_date=datetime(2023, 1, 15, tzinfo=timezone.utc),
    payment_methods=["Bank Transfer", "PayPal", "Wise"],
    preferred_currencies=["USD", "EUR", "GBP"],
)


class IdentityContext:
    """Holds the single local profile for one caller"""

    def __init__(self, profile: Optional[UserProfile] = None):
        self._profile = profile or DEFAULT_PROFILE

    def get_current_user(self) -> UserProfile:
        """Return a copy so callers cannot mutate the bound identity"""
        return replace(
            self._profile,
            payment_methods=list(self._profile.payment_methods),
            preferred_currencies=list(self._profile.preferred_currencies),
        )

    @property
    def user_id(self) -> str:
        return self._profile.id

    def __repr__(self):
        return f"<IdentityContext(user_id={self._profile.id}, username={self._profile.username})>"
