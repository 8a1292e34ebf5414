"""
Payment error taxonomy.

Every error carries the HTTP status it maps to at the boundary, whether the
caller may retry, and the payment reference / operation it belongs to.
"""

from typing import Optional


class PaymentError(Exception):
    """Base class for all payment errors."""

    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        reference_id: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.reference_id = reference_id
        self.operation = operation

    def with_context(self, reference_id: Optional[str], operation: str) -> "PaymentError":
        """Attach reference id and operation name if not already set."""
        if self.reference_id is None:
            self.reference_id = reference_id
        if self.operation is None:
            self.operation = operation
        return self

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.reference_id:
            parts.append(f"reference_id={self.reference_id}")
        return " | ".join(parts)


class ValidationError(PaymentError):
    """Malformed or out-of-range input."""
    status_code = 400


class NotFound(PaymentError):
    """Currency, payment method, provider or payment does not exist."""
    status_code = 404


class ProviderNotFound(NotFound):
    """No adapter registered under the routed provider name."""


class InvalidStateTransition(PaymentError):
    """Requested status change is not in the transition table."""

    status_code = 400

    def __init__(self, from_status, to_status, **kwargs):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid state transition from {_value(from_status)} to {_value(to_status)}",
            **kwargs,
        )


class LockContention(PaymentError):
    """Another worker is processing the same webhook; retry later."""
    status_code = 409
    retryable = True


class LockUnavailable(PaymentError):
    """Lock backend could not be reached."""
    status_code = 503
    retryable = True


class ProviderError(PaymentError):
    """Provider initiation or status check failed."""
    status_code = 502


class StoreError(PaymentError):
    """Unclassified storage failure."""
    status_code = 500


def _value(status) -> str:
    return getattr(status, "value", str(status))
