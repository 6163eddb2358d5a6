"""Payment lifecycle state machine"""

from typing import Dict, FrozenSet

from payment_orchestrator.domain.exceptions import InvalidOperationError
from payment_orchestrator.domain.models import PaymentStatus

S = PaymentStatus

# The fraud gate runs before PROCESSING, so PENDING may go straight to BLOCKED or UNDER_REVIEW
ALLOWED_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    S.PENDING: frozenset({S.PROCESSING, S.BLOCKED, S.UNDER_REVIEW, S.CANCELLED}),
    S.PROCESSING: frozenset({S.COMPLETED, S.FAILED, S.BLOCKED, S.UNDER_REVIEW, S.CANCELLED}),
    S.UNDER_REVIEW: frozenset({S.PENDING, S.BLOCKED}),
    S.FAILED: frozenset({S.PENDING}),
    S.COMPLETED: frozenset(),
    S.BLOCKED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset({S.COMPLETED, S.BLOCKED, S.CANCELLED})

CANCELLABLE_STATES = frozenset({S.PENDING, S.PROCESSING})


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    """
    Validate a status change against the edge table.

    Raises:
        InvalidOperationError: If target is not reachable from current
    """
    if not can_transition(current, target):
        raise InvalidOperationError(
            f"Payment cannot move from {current.value} to {target.value}"
        )


def is_terminal(status: PaymentStatus) -> bool:
    return status in TERMINAL_STATES
