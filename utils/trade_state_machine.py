"""
Trade State Machine
==================

Valid trade state transitions, the actor role each transition requires, and
the escrow status implied by every trade status.

    (none)        --accept-->                     pending
    pending       --confirm_payment (buyer)-->    payment_sent
    payment_sent  --confirm_receipt (seller)-->   payment_confirmed   escrow released
    pending       --cancel (buyer|seller)-->      cancelled           escrow refunded
    payment_sent  --cancel (buyer|seller)-->      cancelled           escrow refunded
    payment_sent  --dispute (buyer|seller)-->     disputed            escrow stays locked
    pending       --expire (system)-->            cancelled           escrow refunded

Escrow status is never assigned directly; apply_transition derives it from the
target status so the two cannot disagree.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Set

from models import SYSTEM_SENDER_ID, EscrowStatus, Trade, TradeStatus
from utils.p2p_exceptions import InvalidStateError, UnauthorizedError

logger = logging.getLogger(__name__)


class TradeTransition(Enum):
    """Named trade transitions"""

    CONFIRM_PAYMENT = "confirm_payment"  # PENDING -> PAYMENT_SENT
    CONFIRM_RECEIPT = "confirm_receipt"  # PAYMENT_SENT -> PAYMENT_CONFIRMED
    CANCEL = "cancel"  # PENDING/PAYMENT_SENT -> CANCELLED
    DISPUTE = "dispute"  # PAYMENT_SENT -> DISPUTED
    EXPIRE = "expire"  # PENDING -> CANCELLED (reconciliation pass only)


class TradeRole(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    SYSTEM = "system"


@dataclass(frozen=True)
class TransitionRule:
    source_states: FrozenSet[TradeStatus]
    target_state: TradeStatus
    allowed_roles: FrozenSet[TradeRole]
    unauthorized_message: str


_PARTIES = frozenset({TradeRole.BUYER, TradeRole.SELLER})


class TradeStateValidator:
    """
    Validates trade state transitions and actor roles.

    Prevents invalid transitions like:
    - PAYMENT_CONFIRMED -> CANCELLED (refund after release)
    - CANCELLED -> PAYMENT_SENT (resurrection)
    - PENDING -> PAYMENT_CONFIRMED (releasing escrow before payment is sent)
    """

    VALID_TRANSITIONS: Dict[TradeStatus, Set[TradeStatus]] = {
        TradeStatus.PENDING: {
            TradeStatus.PAYMENT_SENT,
            TradeStatus.CANCELLED,
        },
        TradeStatus.PAYMENT_SENT: {
            TradeStatus.PAYMENT_CONFIRMED,
            TradeStatus.CANCELLED,
            TradeStatus.DISPUTED,
        },
        # Settled or cancelled (TERMINAL STATES)
        TradeStatus.PAYMENT_CONFIRMED: set(),
        TradeStatus.COMPLETED: set(),
        TradeStatus.CANCELLED: set(),
        # Resolution happens outside this engine
        TradeStatus.DISPUTED: set(),
    }

    TERMINAL_STATES: FrozenSet[TradeStatus] = frozenset({
        TradeStatus.PAYMENT_CONFIRMED,
        TradeStatus.COMPLETED,
        TradeStatus.CANCELLED,
    })

    SETTLED_STATES: FrozenSet[TradeStatus] = frozenset({
        TradeStatus.PAYMENT_CONFIRMED,
        TradeStatus.COMPLETED,
    })

    TRANSITION_RULES: Dict[TradeTransition, TransitionRule] = {
        TradeTransition.CONFIRM_PAYMENT: TransitionRule(
            source_states=frozenset({TradeStatus.PENDING}),
            target_state=TradeStatus.PAYMENT_SENT,
            allowed_roles=frozenset({TradeRole.BUYER}),
            unauthorized_message="Only buyer can confirm payment",
        ),
        TradeTransition.CONFIRM_RECEIPT: TransitionRule(
            source_states=frozenset({TradeStatus.PAYMENT_SENT}),
            target_state=TradeStatus.PAYMENT_CONFIRMED,
            allowed_roles=frozenset({TradeRole.SELLER}),
            unauthorized_message="Only seller can confirm receipt",
        ),
        TradeTransition.CANCEL: TransitionRule(
            source_states=frozenset({TradeStatus.PENDING, TradeStatus.PAYMENT_SENT}),
            target_state=TradeStatus.CANCELLED,
            allowed_roles=_PARTIES,
            unauthorized_message="Unauthorized to cancel trade",
        ),
        TradeTransition.DISPUTE: TransitionRule(
            source_states=frozenset({TradeStatus.PAYMENT_SENT}),
            target_state=TradeStatus.DISPUTED,
            allowed_roles=_PARTIES,
            unauthorized_message="Unauthorized to dispute trade",
        ),
        TradeTransition.EXPIRE: TransitionRule(
            source_states=frozenset({TradeStatus.PENDING}),
            target_state=TradeStatus.CANCELLED,
            allowed_roles=frozenset({TradeRole.SYSTEM}),
            unauthorized_message="Only the expiry reconciliation can expire a trade",
        ),
    }

    @classmethod
    def is_valid_transition(cls, current_status: TradeStatus, new_status: TradeStatus) -> bool:
        """Check if a status change is allowed by the transition graph"""
        return new_status in cls.VALID_TRANSITIONS.get(current_status, set())

    @classmethod
    def get_valid_transitions(cls, current_status: TradeStatus) -> Set[TradeStatus]:
        """Get all valid next states for current status"""
        return set(cls.VALID_TRANSITIONS.get(current_status, set()))

    @classmethod
    def is_terminal_state(cls, status: TradeStatus) -> bool:
        return status in cls.TERMINAL_STATES

    @staticmethod
    def escrow_status_for(status: TradeStatus) -> EscrowStatus:
        """Escrow status implied by a trade status"""
        if status in TradeStateValidator.SETTLED_STATES:
            return EscrowStatus.RELEASED
        if status == TradeStatus.CANCELLED:
            return EscrowStatus.REFUNDED
        return EscrowStatus.LOCKED

    @staticmethod
    def role_of(trade: Trade, actor_id: str) -> Optional[TradeRole]:
        """Role the actor holds on the trade, if any (party roles win over system)"""
        if actor_id == trade.buyer_id:
            return TradeRole.BUYER
        if actor_id == trade.seller_id:
            return TradeRole.SELLER
        if actor_id == SYSTEM_SENDER_ID:
            return TradeRole.SYSTEM
        return None

    @classmethod
    def validate(cls, trade: Trade, transition: TradeTransition, actor_id: str) -> TransitionRule:
        """
        Check actor role first, then the source status.

        Raises:
            UnauthorizedError: actor does not hold a role the transition requires
            InvalidStateError: trade status does not permit the transition
        """
        rule = cls.TRANSITION_RULES[transition]

        if cls.role_of(trade, actor_id) not in rule.allowed_roles:
            logger.warning(
                f"⚠️ TRADE_UNAUTHORIZED: {actor_id} attempted {transition.value} on {trade.id}"
            )
            raise UnauthorizedError(rule.unauthorized_message)

        if trade.status not in rule.source_states:
            logger.warning(
                f"⚠️ TRADE_INVALID_STATE: {transition.value} not allowed from "
                f"{trade.status.value} on {trade.id}"
            )
            raise InvalidStateError(
                f"Cannot {transition.value.replace('_', ' ')} a trade in "
                f"{trade.status.value} status"
            )

        # Guard against rules drifting away from the transition graph
        if not cls.is_valid_transition(trade.status, rule.target_state):
            raise InvalidStateError(
                f"Invalid transition {trade.status.value} -> {rule.target_state.value}"
            )

        return rule

    @classmethod
    def apply_transition(cls, trade: Trade, transition: TradeTransition, actor_id: str) -> TradeStatus:
        """Validate and apply a transition; returns the previous status"""
        rule = cls.validate(trade, transition, actor_id)
        previous = trade.status
        trade.status = rule.target_state
        trade.escrow_status = cls.escrow_status_for(rule.target_state)
        logger.info(
            f"🔄 TRADE_TRANSITION: {trade.id} {previous.value} -> {trade.status.value} "
            f"(escrow {trade.escrow_status.value})"
        )
        return previous
