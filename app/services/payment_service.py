"""
Payment Service - payment lifecycle, provider initiation and idempotent
webhook processing.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import AsyncIterator, Dict, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import (
    LockContention,
    LockUnavailable,
    NotFound,
    PaymentError,
    ProviderError,
    StoreError,
    ValidationError,
)
from app.fsm.machine import validate_initiation_outcome, validate_transition
from app.fsm.states import PaymentStatus
from app.models import Payment
from app.providers.base import InitiatePaymentRequest, InitiatePaymentResponse
from app.providers.registry import ProviderRegistry
from app.repositories.payment_repository import PaymentRepository
from app.services.lock_service import LockService
from app.services.reference import generate_reference_id

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Orchestrates the payment state machine.

    Holds no payment state between calls: every operation re-reads the
    store, so any number of replicas can serve the same payments.
    """

    WEBHOOK_LOCK_PREFIX = "webhook:"

    def __init__(
        self,
        db: AsyncSession,
        providers: ProviderRegistry,
        lock: LockService,
        repository: Optional[PaymentRepository] = None,
        provider_timeout: Optional[float] = None,
        webhook_lock_ttl_ms: Optional[int] = None,
    ):
        self.db = db
        self.providers = providers
        self.lock = lock
        self.repository = repository or PaymentRepository(db)
        self.provider_timeout = (
            provider_timeout if provider_timeout is not None else settings.provider_timeout_seconds
        )
        self.webhook_lock_ttl_ms = webhook_lock_ttl_ms or settings.webhook_lock_ttl_ms

    @asynccontextmanager
    async def _unit_of_work(self, reference_id: Optional[str], operation: str) -> AsyncIterator[None]:
        """
        Run the block in one transaction: commit on success, roll back and
        tag the error with reference id and operation otherwise.
        """
        try:
            yield
            await self.repository.commit()
        except PaymentError as e:
            await self.repository.rollback()
            raise e.with_context(reference_id, operation)
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error(
                f"Store error during {operation} for payment {reference_id}: {e}",
                exc_info=True,
                extra={"reference_id": reference_id, "operation": operation},
            )
            raise StoreError(
                f"{operation} failed",
                reference_id=reference_id,
                operation=operation,
            ) from e
        except Exception:
            await self.repository.rollback()
            logger.error(
                f"Unexpected error during {operation} for payment {reference_id}",
                exc_info=True,
                extra={"reference_id": reference_id, "operation": operation},
            )
            raise

    # --- Creation ---

    async def create_payment(
        self,
        amount: Union[Decimal, float, int, str],
        currency: str,
        payment_method: str,
        customer_phone: str,
        customer_email: Optional[str] = None,
    ) -> Payment:
        """
        Create a payment and initiate it with the routed provider.

        1. Resolve currency, payment method and provider
        2. Persist an INITIATED record
        3. Call the provider (bounded by provider_timeout)
        4. Persist the provider's PENDING/FAILED answer

        If the provider call raises something other than ProviderError or
        a timeout, the INITIATED record stays behind and is picked up by
        reconciliation. No retry happens here.
        """
        logger.info("Creating new payment")

        amount = self._validate_amount(amount)
        if not customer_phone or not customer_phone.strip():
            raise ValidationError("customer_phone is required", operation="create_payment")

        async with self._unit_of_work(None, "create_payment"):
            currency_row = await self.repository.get_currency_by_name(currency)
            if not currency_row:
                raise NotFound(f"Currency {currency} not found")

            method_row = await self.repository.get_payment_method_by_name(payment_method)
            if not method_row:
                raise NotFound(f"Payment method {payment_method} not found")

            provider_name = method_row.payment_provider.name
            provider = self.providers.get(provider_name)

            reference_id = generate_reference_id()
            logger.debug(f"Generated payment reference: {reference_id}")

            payment = await self.repository.create(
                reference_id=reference_id,
                customer_phone=customer_phone,
                customer_email=customer_email,
                amount=amount,
                currency_id=currency_row.id,
                payment_method_id=method_row.id,
            )

        logger.info(
            f"Payment created successfully with reference: {reference_id}",
            extra={"reference_id": reference_id, "operation": "create_payment"},
        )

        request = InitiatePaymentRequest(
            amount=payment.amount,
            currency=payment.currency_name,
            customer_phone=payment.customer_phone,
            customer_email=payment.customer_email,
            reference_id=reference_id,
        )
        response = await self._initiate_with_provider(provider, provider_name, request)

        async with self._unit_of_work(reference_id, "initiate_payment"):
            current = await self.repository.find_by_reference(reference_id, for_update=True)
            if not current:
                raise NotFound(f"Payment with reference {reference_id} not found")

            validate_initiation_outcome(current.payment_status, response.status, reference_id)

            payment = await self.repository.update_by_reference(
                reference_id,
                status=response.status,
                provider_transaction_id=response.provider_transaction_id,
                provider_name=provider_name,
            )

        logger.info(
            f"Payment {reference_id} initiated with provider {provider_name}. Status: {payment.status}",
            extra={"reference_id": reference_id, "provider": provider_name, "status": payment.status},
        )
        return payment

    async def _initiate_with_provider(
        self,
        provider,
        provider_name: str,
        request: InitiatePaymentRequest,
    ) -> InitiatePaymentResponse:
        """Call the provider; classified failures and timeouts become FAILED."""
        reference_id = request.reference_id
        logger.info(
            f"Initiating payment with provider for reference: {reference_id}",
            extra={"reference_id": reference_id, "provider": provider_name},
        )

        try:
            response = await asyncio.wait_for(
                provider.initiate_payment(request),
                timeout=self.provider_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Provider {provider_name} timed out after {self.provider_timeout}s for {reference_id}",
                extra={"reference_id": reference_id, "provider": provider_name},
            )
            return InitiatePaymentResponse(
                accepted=False,
                status=PaymentStatus.FAILED,
                message="Provider timed out",
            )
        except ProviderError as e:
            logger.warning(
                f"Provider {provider_name} failed to initiate {reference_id}: {e.message}",
                extra={"reference_id": reference_id, "provider": provider_name},
            )
            return InitiatePaymentResponse(
                accepted=False,
                status=PaymentStatus.FAILED,
                message=e.message,
            )

        if not response.accepted:
            # Rejections are terminal regardless of what status came back
            response.status = PaymentStatus.FAILED

        return response

    # --- Reads ---

    async def get_payment_by_reference(self, reference_id: str) -> Payment:
        """Get payment by reference."""
        logger.info(f"Getting payment by reference: {reference_id}")

        async with self._unit_of_work(reference_id, "get_payment_by_reference"):
            payment = await self.repository.find_by_reference(reference_id)
            if not payment:
                logger.warning(f"Payment not found with reference: {reference_id}")
                raise NotFound(f"Payment with reference {reference_id} not found")

        return payment

    # --- Explicit status update ---

    async def update_payment_status(
        self,
        reference_id: str,
        status: PaymentStatus,
        provider_transaction_id: Optional[str] = None,
    ) -> Payment:
        """
        Administrative / callback transition.

        The payment row is locked while the transition is validated and
        written, so this cannot race a webhook on the same payment.
        """
        status = PaymentStatus(status)
        logger.info(
            f"Updating payment status for reference: {reference_id} to {status.value}",
            extra={"reference_id": reference_id, "operation": "update_payment_status"},
        )

        async with self._unit_of_work(reference_id, "update_payment_status"):
            payment = await self.repository.find_by_reference(reference_id, for_update=True)
            if not payment:
                logger.warning(f"Payment not found with reference: {reference_id}")
                raise NotFound(f"Payment with reference {reference_id} not found")

            validate_transition(payment.payment_status, status, reference_id, "update_payment_status")

            payment = await self.repository.update_by_reference(
                reference_id,
                status=status,
                provider_transaction_id=provider_transaction_id,
            )

        logger.info(f"Payment {reference_id} status updated to {status.value}")
        return payment

    # --- Webhooks ---

    async def handle_webhook(
        self,
        reference_id: str,
        status: PaymentStatus,
        provider_transaction_id: str,
        timestamp: Union[datetime, str],
    ) -> Payment:
        """
        Apply a provider webhook exactly once.

        1. Take the webhook lock (LockContention if another delivery holds it)
        2. Already processed -> return the current payment untouched
        3. Load and row-lock the payment
        4. Validate the transition
        5. Record the event and update the payment atomically
        6. Release the lock
        """
        status = PaymentStatus(status)
        event_time = self._parse_timestamp(timestamp, reference_id)
        lock_key = f"{self.WEBHOOK_LOCK_PREFIX}{reference_id}"

        try:
            async with self.lock.hold(lock_key, self.webhook_lock_ttl_ms):
                logger.info(
                    f"Processing webhook for payment reference: {reference_id}",
                    extra={"reference_id": reference_id, "operation": "handle_webhook"},
                )
                return await self._process_webhook(
                    reference_id, status, provider_transaction_id, event_time
                )
        except LockContention as e:
            logger.warning(
                f"Webhook already being processed for payment reference: {reference_id}",
                extra={"reference_id": reference_id, "operation": "handle_webhook"},
            )
            raise e.with_context(reference_id, "handle_webhook")
        except LockUnavailable as e:
            logger.error(
                f"Webhook lock unavailable for payment reference: {reference_id}",
                extra={"reference_id": reference_id, "operation": "handle_webhook"},
            )
            raise e.with_context(reference_id, "handle_webhook")

    async def _process_webhook(
        self,
        reference_id: str,
        status: PaymentStatus,
        provider_transaction_id: str,
        event_time: datetime,
    ) -> Payment:
        async with self._unit_of_work(reference_id, "handle_webhook"):
            existing = await self.repository.find_webhook_event(reference_id)

            if existing and existing.is_processed:
                logger.info(
                    f"Webhook for payment reference {reference_id} already processed, returning existing payment",
                    extra={"reference_id": reference_id, "operation": "handle_webhook"},
                )
                payment = await self.repository.find_by_reference(reference_id)
                if not payment:
                    # Event rows reference payments by foreign key
                    logger.error(f"Processed webhook event has no payment: {reference_id}")
                    raise NotFound("Payment not found")
                return payment

            payment = await self.repository.find_by_reference(reference_id, for_update=True)
            if not payment:
                logger.warning(f"Payment not found with reference: {reference_id}")
                raise NotFound(f"Payment with reference {reference_id} not found")

            validate_transition(payment.payment_status, status, reference_id, "handle_webhook")

            payment = await self.repository.process_webhook_transaction(
                payment_id=payment.id,
                payment_reference_id=reference_id,
                status=status,
                provider_transaction_id=provider_transaction_id,
                timestamp=event_time,
            )

        logger.info(
            f"Webhook processed successfully for payment {reference_id}, status updated to {status.value}",
            extra={"reference_id": reference_id, "status": status.value},
        )
        return payment

    # --- Reconciliation ---

    async def reconcile_payment(self, reference_id: str) -> Payment:
        """
        Poll the provider for a PENDING payment and apply a terminal answer.

        Payments that are not PENDING, or have no provider transaction yet,
        are returned unchanged.
        """
        payment = await self.get_payment_by_reference(reference_id)

        if payment.payment_status != PaymentStatus.PENDING or not payment.provider_transaction_id:
            logger.debug(f"Nothing to reconcile for {reference_id} ({payment.status})")
            return payment

        provider_name = payment.provider_name or payment.payment_provider_name
        provider = self.providers.get(provider_name, reference_id)

        try:
            result = await asyncio.wait_for(
                provider.check_payment_status(payment.provider_transaction_id, reference_id),
                timeout=self.provider_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"Provider {provider_name} timed out",
                reference_id=reference_id,
                operation="reconcile_payment",
            ) from e
        except ProviderError as e:
            raise e.with_context(reference_id, "reconcile_payment")

        if result.status == payment.payment_status:
            logger.info(f"Payment {reference_id} still {payment.status} at {provider_name}")
            return payment

        logger.info(
            f"Reconciling payment {reference_id}: {payment.status} -> {result.status.value}",
            extra={"reference_id": reference_id, "provider": provider_name},
        )
        return await self.update_payment_status(
            reference_id,
            result.status,
            result.provider_transaction_id,
        )

    async def fail_abandoned_initiation(self, reference_id: str) -> Payment:
        """Mark an INITIATED payment whose provider call never completed as FAILED."""
        async with self._unit_of_work(reference_id, "fail_abandoned_initiation"):
            payment = await self.repository.find_by_reference(reference_id, for_update=True)
            if not payment:
                raise NotFound(f"Payment with reference {reference_id} not found")

            validate_initiation_outcome(payment.payment_status, PaymentStatus.FAILED, reference_id)
            payment = await self.repository.update_by_reference(
                reference_id,
                status=PaymentStatus.FAILED,
            )

        logger.warning(f"Payment {reference_id} never completed initiation, marked FAILED")
        return payment

    async def reconcile_stale_payments(
        self,
        older_than_minutes: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, int]:
        """
        Sweep payments stuck in INITIATED or PENDING.

        Errors on one payment are logged and counted; the sweep continues.
        """
        minutes = older_than_minutes or settings.reconcile_after_minutes
        limit = limit or settings.reconcile_batch_size
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)

        async with self._unit_of_work(None, "reconcile_stale_payments"):
            abandoned = await self.repository.find_stale(PaymentStatus.INITIATED, cutoff, limit)
            pending = await self.repository.find_stale(PaymentStatus.PENDING, cutoff, limit)
            abandoned_refs = [p.reference_id for p in abandoned]
            pending_refs = [p.reference_id for p in pending]

        counts = {"checked": 0, "updated": 0, "errors": 0}

        for reference_id in abandoned_refs:
            counts["checked"] += 1
            try:
                await self.fail_abandoned_initiation(reference_id)
                counts["updated"] += 1
            except PaymentError as e:
                counts["errors"] += 1
                logger.warning(f"Could not fail abandoned payment: {e}")

        for reference_id in pending_refs:
            counts["checked"] += 1
            try:
                before = await self.get_payment_by_reference(reference_id)
                before_status = before.status
                after = await self.reconcile_payment(reference_id)
                if after.status != before_status:
                    counts["updated"] += 1
            except PaymentError as e:
                counts["errors"] += 1
                logger.warning(f"Could not reconcile payment: {e}")

        logger.info(f"Reconciliation sweep complete: {counts}")
        return counts

    # --- Helpers ---

    @staticmethod
    def _validate_amount(amount) -> Decimal:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid amount: {amount}", operation="create_payment") from e

        if not value.is_finite() or value <= 0:
            raise ValidationError("Amount must be greater than zero", operation="create_payment")
        return value

    @staticmethod
    def _parse_timestamp(timestamp: Union[datetime, str], reference_id: str) -> datetime:
        if isinstance(timestamp, datetime):
            parsed = timestamp
        else:
            try:
                parsed = datetime.fromisoformat(str(timestamp).replace("Z", "+00:00"))
            except ValueError as e:
                raise ValidationError(
                    f"Invalid webhook timestamp: {timestamp}",
                    reference_id=reference_id,
                    operation="handle_webhook",
                ) from e

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
