"""
Payment state definitions.
"""

from enum import Enum


class PaymentStatus(str, Enum):
    """
    Payment lifecycle states.
    SUCCESS and FAILED are terminal.
    """
    
    INITIATED = "INITIATED"
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    
    @property
    def is_terminal(self) -> bool:
        return self in (PaymentStatus.SUCCESS, PaymentStatus.FAILED)
