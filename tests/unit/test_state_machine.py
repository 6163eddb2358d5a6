"""Unit tests for the payment state machine"""

import pytest
from payment_orchestrator.domain.exceptions import InvalidOperationError
from payment_orchestrator.domain.models import PaymentStatus as S
from payment_orchestrator.domain.state_machine import (
    ALLOWED_TRANSITIONS,
    CANCELLABLE_STATES,
    can_transition,
    ensure_transition,
    is_terminal,
)


@pytest.mark.parametrize(
    "current,target",
    [
        (S.PENDING, S.PROCESSING),
        (S.PENDING, S.BLOCKED),
        (S.PENDING, S.UNDER_REVIEW),
        (S.PROCESSING, S.COMPLETED),
        (S.PROCESSING, S.FAILED),
        (S.UNDER_REVIEW, S.PENDING),
        (S.UNDER_REVIEW, S.BLOCKED),
        (S.FAILED, S.PENDING),
        (S.PENDING, S.CANCELLED),
        (S.PROCESSING, S.CANCELLED),
    ],
)
def test_allowed_edges(current, target):
    assert can_transition(current, target)
    ensure_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (S.COMPLETED, S.FAILED),
        (S.CANCELLED, S.PENDING),
        (S.BLOCKED, S.PENDING),
        (S.FAILED, S.COMPLETED),
        (S.FAILED, S.CANCELLED),
        (S.UNDER_REVIEW, S.COMPLETED),
        (S.PENDING, S.COMPLETED),
    ],
)
def test_rejected_edges(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidOperationError):
        ensure_transition(current, target)


def test_terminal_states_have_no_exits():
    for status in (S.COMPLETED, S.BLOCKED, S.CANCELLED):
        assert is_terminal(status)
        assert ALLOWED_TRANSITIONS[status] == frozenset()
    assert not is_terminal(S.FAILED)


def test_every_status_has_an_edge_entry():
    assert set(ALLOWED_TRANSITIONS) == set(S)


def test_cancellable_states():
    assert CANCELLABLE_STATES == {S.PENDING, S.PROCESSING}
