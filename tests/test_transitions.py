"""
Lifecycle transition tables: promotions and handovers
"""
import pytest
from hypothesis import given
from hypothesis.strategies import lists, sampled_from

from reach.db.models.handover import HandoverStatus
from reach.db.models.tracking_link import PromotionStatus
from reach.domain.transitions import (
    HANDOVER_TRANSITIONS,
    PROMOTION_TRANSITIONS,
    is_valid_transition,
    predecessor,
)


@pytest.mark.unit
def test_every_status_has_an_entry():
    assert set(PROMOTION_TRANSITIONS) == set(PromotionStatus)
    assert set(HANDOVER_TRANSITIONS) == set(HandoverStatus)


@pytest.mark.unit
def test_stopped_and_completed_are_terminal():
    assert PROMOTION_TRANSITIONS[PromotionStatus.STOPPED] == []
    assert HANDOVER_TRANSITIONS[HandoverStatus.COMPLETED] == []


@pytest.mark.unit
@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (PromotionStatus.ACTIVE, PromotionStatus.PAUSED, True),
        (PromotionStatus.PAUSED, PromotionStatus.ACTIVE, True),
        (PromotionStatus.EXPIRED, PromotionStatus.ACTIVE, True),
        (PromotionStatus.PAUSED, PromotionStatus.EXPIRED, False),
        (PromotionStatus.EXPIRED, PromotionStatus.PAUSED, False),
        (PromotionStatus.STOPPED, PromotionStatus.ACTIVE, False),
        (PromotionStatus.ACTIVE, PromotionStatus.ACTIVE, False),
    ],
)
def test_promotion_transitions(current, target, allowed):
    assert is_valid_transition(PROMOTION_TRANSITIONS, current, target) is allowed


@pytest.mark.unit
def test_handover_flow_is_linear():
    order = list(HandoverStatus)
    for current, target in zip(order, order[1:]):
        assert HANDOVER_TRANSITIONS[current] == [target]
        assert predecessor(HANDOVER_TRANSITIONS, target) == current
    assert predecessor(HANDOVER_TRANSITIONS, HandoverStatus.PAYMENT_CONFIRMED) is None


@pytest.mark.unit
@given(lists(sampled_from(list(PromotionStatus)), min_size=1, max_size=15))
def test_nothing_leaves_stopped(targets):
    """Replaying random transition requests never escapes STOPPED"""
    status = PromotionStatus.ACTIVE
    stopped = False
    for target in targets:
        if is_valid_transition(PROMOTION_TRANSITIONS, status, target):
            assert status != PromotionStatus.STOPPED
            status = target
        stopped = stopped or status == PromotionStatus.STOPPED
    assert (status == PromotionStatus.STOPPED) == stopped
