"""
Lifecycle transition tables for promotions and handovers.

Every status change is checked against these maps; routes never test statuses
themselves.
"""
from enum import Enum
from typing import Mapping, Sequence

from reach.db.models.handover import HandoverStatus
from reach.db.models.tracking_link import PromotionStatus

PROMOTION_TRANSITIONS: dict[PromotionStatus, list[PromotionStatus]] = {
    PromotionStatus.ACTIVE: [PromotionStatus.PAUSED, PromotionStatus.STOPPED, PromotionStatus.EXPIRED],
    PromotionStatus.PAUSED: [PromotionStatus.ACTIVE, PromotionStatus.STOPPED],
    # resuming an expired link also needs a future expires_at
    PromotionStatus.EXPIRED: [PromotionStatus.ACTIVE],
    PromotionStatus.STOPPED: [],
}

# Linear: each step names the only status it may follow
HANDOVER_TRANSITIONS: dict[HandoverStatus, list[HandoverStatus]] = {
    HandoverStatus.PAYMENT_CONFIRMED: [HandoverStatus.PENDING_DEVELOPER_DOCS],
    HandoverStatus.PENDING_DEVELOPER_DOCS: [HandoverStatus.DOCS_SUBMITTED],
    HandoverStatus.DOCS_SUBMITTED: [HandoverStatus.DOCS_VERIFIED],
    HandoverStatus.DOCS_VERIFIED: [HandoverStatus.REACH_SIGNED],
    HandoverStatus.REACH_SIGNED: [HandoverStatus.BUYER_SIGNED],
    HandoverStatus.BUYER_SIGNED: [HandoverStatus.KEYS_RELEASED],
    HandoverStatus.KEYS_RELEASED: [HandoverStatus.KEYS_DELIVERED],
    HandoverStatus.KEYS_DELIVERED: [HandoverStatus.COMPLETED],
    HandoverStatus.COMPLETED: [],
}


def is_valid_transition(
    transitions: Mapping[Enum, Sequence[Enum]],
    current: Enum,
    target: Enum,
) -> bool:
    return target in transitions.get(current, ())


def predecessor(transitions: Mapping[Enum, Sequence[Enum]], target: Enum) -> Enum | None:
    """The status a linear flow must be in to reach ``target``"""
    for status, targets in transitions.items():
        if target in targets:
            return status
    return None
