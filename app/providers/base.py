"""
Payment provider interface.

Every gateway adapter (mobile money, cards, ...) implements this so the
payment service can route to it by name.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from app.fsm.states import PaymentStatus


@dataclass
class InitiatePaymentRequest:
    """Request to start a payment with the provider."""
    
    amount: Decimal
    currency: str
    customer_phone: str
    reference_id: str
    customer_email: Optional[str] = None


@dataclass
class InitiatePaymentResponse:
    """Provider's answer to an initiation request."""
    
    accepted: bool
    status: PaymentStatus  # PENDING or FAILED
    provider_transaction_id: Optional[str] = None
    message: str = ""


@dataclass
class PaymentStatusResponse:
    """Result of polling the provider for a transaction."""
    
    status: PaymentStatus
    provider_transaction_id: str
    amount: Optional[Decimal] = None
    message: str = ""


class PaymentProviderAdapter(ABC):
    """Abstract base class for payment providers."""
    
    @property
    @abstractmethod
    def name(self) -> str:
        """Stable provider identifier (e.g. 'MTN')."""
        ...
    
    @abstractmethod
    async def initiate_payment(self, request: InitiatePaymentRequest) -> InitiatePaymentResponse:
        """
        Ask the provider to collect a payment.
        
        Called at most once per payment. A rejection is returned as
        `accepted=False, status=FAILED`.
        
        Raises:
            ProviderError: The provider could not be reached or errored.
        """
        ...
    
    @abstractmethod
    async def check_payment_status(
        self,
        provider_transaction_id: str,
        reference_id: Optional[str] = None,
    ) -> PaymentStatusResponse:
        """
        Poll the provider for the current status of a transaction.
        
        Raises:
            ProviderError: The provider could not be reached or errored.
        """
        ...
