"""
Payment API schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.fsm.states import PaymentStatus
from app.models import Payment


class CreatePaymentRequest(BaseModel):
    """Request body for creating a payment."""
    amount: Decimal = Field(..., gt=0, examples=[1000.0])
    currency: str = Field(..., min_length=1, examples=["UGX"])
    payment_method: str = Field(..., min_length=1, examples=["MOBILE_MONEY"])
    customer_phone: str = Field(..., min_length=1, examples=["+256700000000"])
    customer_email: Optional[EmailStr] = None


class UpdatePaymentStatusRequest(BaseModel):
    """Request body for the explicit status callback."""
    payment_reference_id: str = Field(..., min_length=1)
    status: PaymentStatus
    provider_transaction_id: Optional[str] = None


class WebhookRequest(BaseModel):
    """Provider webhook payload."""
    payment_reference_id: str = Field(..., min_length=1)
    status: PaymentStatus
    provider_transaction_id: str = Field(..., min_length=1)
    timestamp: datetime


class PaymentResponse(BaseModel):
    """Payment as returned by every payment endpoint."""
    
    model_config = ConfigDict(use_enum_values=True)
    
    reference_id: str
    customer_phone: str
    customer_email: Optional[str] = None
    amount: float
    status: PaymentStatus
    payment_method: str
    currency: str
    provider_transaction_id: Optional[str] = None
    provider_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    
    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            reference_id=payment.reference_id,
            customer_phone=payment.customer_phone,
            customer_email=payment.customer_email,
            amount=float(payment.amount),
            status=payment.payment_status,
            payment_method=payment.payment_method_name,
            currency=payment.currency_name,
            provider_transaction_id=payment.provider_transaction_id,
            provider_name=payment.provider_name,
            created_at=payment.created_at,
            updated_at=payment.updated_at,
        )
