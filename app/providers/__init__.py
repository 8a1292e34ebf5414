"""Payment provider adapters."""

from app.providers.base import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentProviderAdapter,
    PaymentStatusResponse,
)
from app.providers.mtn import MtnProvider
from app.providers.registry import ProviderRegistry, build_provider_registry

__all__ = [
    "InitiatePaymentRequest",
    "InitiatePaymentResponse",
    "PaymentProviderAdapter",
    "PaymentStatusResponse",
    "MtnProvider",
    "ProviderRegistry",
    "build_provider_registry",
]
