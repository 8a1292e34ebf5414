"""
MTN Mobile Money adapter (simulated gateway).
"""

import time
import random
import asyncio
import logging
from typing import Optional

from app.fsm.states import PaymentStatus
from app.providers.base import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentProviderAdapter,
    PaymentStatusResponse,
)

logger = logging.getLogger(__name__)


class MtnProvider(PaymentProviderAdapter):
    """
    Mock MTN mobile-money gateway.
    
    Accepts `success_rate` of initiations. Each accepted transaction is
    settled up front: `settle_rate` of them will report SUCCESS, the rest
    FAILED, and the outcome is embedded in the transaction id
    (`MTN-SUCCESS-...` / `MTN-FAILED-...`) where status checks read it back.
    """
    
    def __init__(
        self,
        success_rate: float = 0.9,
        settle_rate: float = 0.6,
        initiate_delay: float = 0.5,
        check_delay: float = 0.3,
        rng: Optional[random.Random] = None,
    ):
        self.success_rate = success_rate
        self.settle_rate = settle_rate
        self.initiate_delay = initiate_delay
        self.check_delay = check_delay
        self.rng = rng or random.Random()
    
    @property
    def name(self) -> str:
        return "MTN"
    
    async def initiate_payment(self, request: InitiatePaymentRequest) -> InitiatePaymentResponse:
        await asyncio.sleep(self.initiate_delay)
        
        if self.rng.random() < self.success_rate:
            outcome = "SUCCESS" if self.rng.random() < self.settle_rate else "FAILED"
            transaction_id = (
                f"MTN-{outcome}-{int(time.time() * 1000)}-{self.rng.randint(0, 999_999)}"
            )
            logger.info(
                f"MTN accepted {request.reference_id} as {transaction_id}",
                extra={"reference_id": request.reference_id, "provider": self.name},
            )
            return InitiatePaymentResponse(
                accepted=True,
                status=PaymentStatus.PENDING,
                provider_transaction_id=transaction_id,
                message="Payment initiated successfully. Please approve on your mobile device.",
            )
        
        logger.info(
            f"MTN rejected {request.reference_id}",
            extra={"reference_id": request.reference_id, "provider": self.name},
        )
        return InitiatePaymentResponse(
            accepted=False,
            status=PaymentStatus.FAILED,
            message="Failed to initiate payment",
        )
    
    async def check_payment_status(
        self,
        provider_transaction_id: str,
        reference_id: Optional[str] = None,
    ) -> PaymentStatusResponse:
        await asyncio.sleep(self.check_delay)
        
        if "FAILED" in provider_transaction_id:
            status = PaymentStatus.FAILED
            message = "Payment failed"
        elif "SUCCESS" in provider_transaction_id:
            status = PaymentStatus.SUCCESS
            message = "Payment completed successfully"
        else:
            status = PaymentStatus.PENDING
            message = "Payment is still pending"
        
        return PaymentStatusResponse(
            status=status,
            provider_transaction_id=provider_transaction_id,
            message=message,
        )
