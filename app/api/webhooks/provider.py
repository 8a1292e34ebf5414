"""
Provider Webhook Handler.
Public endpoint: authenticity comes from the signature check, safety from
idempotent processing in the payment service.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.deps import get_payment_service, verify_webhook_signature
from app.schemas.payment import PaymentResponse, WebhookRequest
from app.services.payment_service import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/webhook",
    response_model=PaymentResponse,
    dependencies=[Depends(verify_webhook_signature)],
)
async def payment_webhook(
    payload: WebhookRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Receive payment status updates from the provider.
    
    Redelivery of an already processed webhook returns the current payment
    with 200. A concurrent delivery for the same payment gets 409 and
    should be retried.
    """
    logger.info(
        f"Provider webhook received for {payload.payment_reference_id}: {payload.status.value}",
        extra={"reference_id": payload.payment_reference_id},
    )
    
    payment = await service.handle_webhook(
        reference_id=payload.payment_reference_id,
        status=payload.status,
        provider_transaction_id=payload.provider_transaction_id,
        timestamp=payload.timestamp,
    )
    return PaymentResponse.from_payment(payment)
