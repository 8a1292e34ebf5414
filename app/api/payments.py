"""
Payment Endpoints.
Creation, lookup, explicit status callback and reconciliation.
"""

import logging

from fastapi import APIRouter, Depends, status

from app.api.deps import get_current_subject, get_payment_service
from app.schemas.payment import (
    CreatePaymentRequest,
    PaymentResponse,
    UpdatePaymentStatusRequest,
)
from app.services.payment_service import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/payments",
    status_code=status.HTTP_201_CREATED,
    response_model=PaymentResponse,
)
async def create_payment(
    request: CreatePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
    subject: str = Depends(get_current_subject),
):
    """
    Initiate a payment.
    
    The payment is created INITIATED and immediately sent to the provider
    routed from its payment method; the response carries the provider's
    answer (PENDING or FAILED).
    """
    payment = await service.create_payment(
        amount=request.amount,
        currency=request.currency,
        payment_method=request.payment_method,
        customer_phone=request.customer_phone,
        customer_email=request.customer_email,
    )
    logger.info(f"Payment {payment.reference_id} created by {subject}")
    return PaymentResponse.from_payment(payment)


@router.post("/payments/callback", response_model=PaymentResponse)
async def update_payment_status(
    request: UpdatePaymentStatusRequest,
    service: PaymentService = Depends(get_payment_service),
    _: str = Depends(get_current_subject),
):
    """Update the status of a payment (simulated provider callback)."""
    payment = await service.update_payment_status(
        reference_id=request.payment_reference_id,
        status=request.status,
        provider_transaction_id=request.provider_transaction_id,
    )
    return PaymentResponse.from_payment(payment)


@router.get("/payments/{payment_reference_id}", response_model=PaymentResponse)
async def get_payment(
    payment_reference_id: str,
    service: PaymentService = Depends(get_payment_service),
    _: str = Depends(get_current_subject),
):
    """Get payment by reference."""
    payment = await service.get_payment_by_reference(payment_reference_id)
    return PaymentResponse.from_payment(payment)


@router.post("/payments/{payment_reference_id}/reconcile", response_model=PaymentResponse)
async def reconcile_payment(
    payment_reference_id: str,
    service: PaymentService = Depends(get_payment_service),
    _: str = Depends(get_current_subject),
):
    """Poll the provider for a PENDING payment and apply its final status."""
    payment = await service.reconcile_payment(payment_reference_id)
    return PaymentResponse.from_payment(payment)
