"""Models package for database models."""

from app.models.reference_data import Currency, PaymentProvider, PaymentMethod
from app.models.payment import Payment
from app.models.webhook_event import WebhookEvent

__all__ = [
    "Currency",
    "PaymentProvider",
    "PaymentMethod",
    "Payment",
    "WebhookEvent",
]
