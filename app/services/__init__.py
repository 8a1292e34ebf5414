"""Services package."""

from app.services.auth_client import AuthClient, TokenVerification
from app.services.lock_service import LockService
from app.services.payment_service import PaymentService
from app.services.reference import generate_reference_id

__all__ = [
    "AuthClient",
    "TokenVerification",
    "LockService",
    "PaymentService",
    "generate_reference_id",
]
