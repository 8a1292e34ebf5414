"""Payment state machine package."""

from app.fsm.states import PaymentStatus
from app.fsm.machine import (
    VALID_TRANSITIONS,
    can_transition,
    validate_transition,
    validate_initiation_outcome,
)

__all__ = [
    "PaymentStatus",
    "VALID_TRANSITIONS",
    "can_transition",
    "validate_transition",
    "validate_initiation_outcome",
]
