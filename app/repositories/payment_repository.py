"""
Payment Repository - persistence for payments, webhook events and
reference data.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.errors import NotFound, StoreError, ValidationError
from app.fsm.states import PaymentStatus
from app.models import Currency, Payment, PaymentMethod, WebhookEvent

logger = logging.getLogger(__name__)

# Fields callers may change through update_by_reference
UPDATABLE_FIELDS = frozenset({"status", "provider_transaction_id", "provider_name"})


class PaymentRepository:
    """
    Store for Payment and WebhookEvent records.

    Reads return payments with currency, payment method and provider
    loaded. Mutations only flush; the caller owns commit/rollback, except
    process_webhook_transaction which is its own unit of work.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Reference data ---

    async def get_currency_by_name(self, name: str) -> Optional[Currency]:
        result = await self.db.execute(
            select(Currency).where(Currency.name == name)
        )
        return result.scalar_one_or_none()

    async def get_payment_method_by_name(self, name: str) -> Optional[PaymentMethod]:
        """Get payment method with its provider loaded."""
        result = await self.db.execute(
            select(PaymentMethod)
            .where(PaymentMethod.name == name)
            .options(selectinload(PaymentMethod.payment_provider))
        )
        return result.scalar_one_or_none()

    # --- Payments ---

    def _payment_query(self):
        return select(Payment).options(
            selectinload(Payment.currency),
            selectinload(Payment.payment_method).selectinload(PaymentMethod.payment_provider),
        )

    async def create(
        self,
        reference_id: str,
        customer_phone: str,
        amount: Decimal,
        currency_id: int,
        payment_method_id: int,
        customer_email: Optional[str] = None,
    ) -> Payment:
        """
        Insert a new INITIATED payment.

        Raises ValidationError when currency/payment method ids do not exist.
        """
        logger.debug(f"Creating payment with reference: {reference_id}")

        payment = Payment(
            reference_id=reference_id,
            customer_phone=customer_phone,
            customer_email=customer_email,
            amount=amount,
            currency_id=currency_id,
            payment_method_id=payment_method_id,
            status=PaymentStatus.INITIATED.value,
        )
        self.db.add(payment)

        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise ValidationError(
                "Invalid currency, payment method or duplicate reference",
                reference_id=reference_id,
                operation="create",
            ) from e

        return await self._reload(payment.reference_id)

    async def find_by_reference(
        self,
        reference_id: str,
        for_update: bool = False,
    ) -> Optional[Payment]:
        """
        Get payment by reference.

        With for_update the row stays locked until the current
        transaction ends.
        """
        logger.debug(f"Finding payment by reference: {reference_id}")

        query = self._payment_query().where(Payment.reference_id == reference_id)
        if for_update:
            query = query.with_for_update(of=Payment)

        result = await self.db.execute(
            query.execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_by_reference(self, reference_id: str, **fields) -> Payment:
        """
        Apply a partial update to a payment, locking its row first.

        Raises NotFound if the reference does not exist.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                reference_id=reference_id,
                operation="update_by_reference",
            )

        logger.debug(f"Updating payment by reference: {reference_id}")

        payment = await self.find_by_reference(reference_id, for_update=True)
        if not payment:
            raise NotFound(
                f"Payment with reference {reference_id} not found",
                reference_id=reference_id,
                operation="update_by_reference",
            )

        self._apply(payment, fields)
        await self.db.flush()
        return payment

    async def find_stale(
        self,
        status: PaymentStatus,
        older_than: datetime,
        limit: int = 100,
    ) -> List[Payment]:
        """Payments stuck in `status` since before `older_than`, oldest first."""
        result = await self.db.execute(
            self._payment_query()
            .where(Payment.status == status.value)
            .where(Payment.updated_at < older_than)
            .order_by(Payment.updated_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    # --- Webhook events ---

    async def find_webhook_event(self, payment_reference_id: str) -> Optional[WebhookEvent]:
        logger.debug(f"Finding webhook event by payment reference ID: {payment_reference_id}")
        result = await self.db.execute(
            select(WebhookEvent)
            .where(WebhookEvent.payment_reference_id == payment_reference_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def process_webhook_transaction(
        self,
        payment_id: int,
        payment_reference_id: str,
        status: PaymentStatus,
        provider_transaction_id: str,
        timestamp: datetime,
    ) -> Payment:
        """
        Mark the webhook event processed and move the payment to `status`
        in one transaction.

        Either both records reflect the new state after this returns, or
        neither changes.
        """
        logger.debug(f"Processing webhook transaction for payment ID: {payment_id}")

        try:
            await self._upsert_webhook_event(
                payment_reference_id=payment_reference_id,
                status=status,
                provider_transaction_id=provider_transaction_id,
                timestamp=timestamp,
            )
            payment = await self._update_payment_status(
                payment_id=payment_id,
                status=status,
                provider_transaction_id=provider_transaction_id,
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ValidationError(
                f"Provider transaction {provider_transaction_id} already recorded for another payment",
                reference_id=payment_reference_id,
                operation="process_webhook_transaction",
            ) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(
                f"Webhook transaction failed: {e}",
                reference_id=payment_reference_id,
                operation="process_webhook_transaction",
            ) from e
        except Exception:
            await self.db.rollback()
            raise

        return payment

    async def _upsert_webhook_event(
        self,
        payment_reference_id: str,
        status: PaymentStatus,
        provider_transaction_id: str,
        timestamp: datetime,
    ) -> WebhookEvent:
        event = await self.find_webhook_event(payment_reference_id)

        if event is None:
            event = WebhookEvent(
                payment_reference_id=payment_reference_id,
                status=status.value,
                provider_transaction_id=provider_transaction_id,
                timestamp=timestamp,
                is_processed=True,
            )
            self.db.add(event)
        else:
            event.status = status.value
            event.is_processed = True

        await self.db.flush()
        return event

    async def _update_payment_status(
        self,
        payment_id: int,
        status: PaymentStatus,
        provider_transaction_id: str,
    ) -> Payment:
        result = await self.db.execute(
            self._payment_query()
            .where(Payment.id == payment_id)
            .with_for_update(of=Payment)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFound(
                f"Payment {payment_id} not found",
                operation="process_webhook_transaction",
            )

        self._apply(payment, {
            "status": status,
            "provider_transaction_id": provider_transaction_id,
        })
        await self.db.flush()
        return payment

    # --- Transaction control ---

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    # --- Helpers ---

    @staticmethod
    def _apply(payment: Payment, fields: dict) -> None:
        for name, value in fields.items():
            if value is None:
                # Optional fields are only ever set, never cleared
                continue
            if isinstance(value, PaymentStatus):
                value = value.value
            setattr(payment, name, value)

    async def _reload(self, reference_id: str) -> Payment:
        payment = await self.find_by_reference(reference_id)
        if payment is None:
            raise StoreError(
                "Payment vanished after insert",
                reference_id=reference_id,
                operation="create",
            )
        return payment
