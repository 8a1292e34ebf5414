"""
Payment state machine - the single transition table shared by the
explicit status-update, webhook and reconciliation paths.
"""

import logging
from typing import Dict, FrozenSet, Optional

from app.errors import InvalidStateTransition
from app.fsm.states import PaymentStatus

logger = logging.getLogger(__name__)


VALID_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.INITIATED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.PENDING: frozenset({PaymentStatus.SUCCESS, PaymentStatus.FAILED}),
    PaymentStatus.SUCCESS: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}

# Outcomes a provider may report for the initial INITIATED record.
# A rejected initiation goes straight to FAILED.
INITIATION_OUTCOMES: FrozenSet[PaymentStatus] = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.FAILED}
)


def can_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    """Check whether `current -> new` is in the transition table."""
    return PaymentStatus(new) in VALID_TRANSITIONS.get(PaymentStatus(current), frozenset())


def validate_transition(
    current: PaymentStatus,
    new: PaymentStatus,
    reference_id: Optional[str] = None,
    operation: Optional[str] = None,
) -> None:
    """Raise InvalidStateTransition unless `current -> new` is allowed."""
    current = PaymentStatus(current)
    new = PaymentStatus(new)
    
    if not can_transition(current, new):
        logger.warning(
            f"Invalid state transition from {current.value} to {new.value} for payment {reference_id}",
            extra={"reference_id": reference_id, "operation": operation},
        )
        raise InvalidStateTransition(
            current,
            new,
            reference_id=reference_id,
            operation=operation,
        )


def validate_initiation_outcome(
    current: PaymentStatus,
    outcome: PaymentStatus,
    reference_id: Optional[str] = None,
) -> None:
    """The provider's initiation result may only land on an INITIATED payment."""
    current = PaymentStatus(current)
    outcome = PaymentStatus(outcome)
    
    if current != PaymentStatus.INITIATED or outcome not in INITIATION_OUTCOMES:
        raise InvalidStateTransition(
            current,
            outcome,
            reference_id=reference_id,
            operation="initiate_payment",
        )
