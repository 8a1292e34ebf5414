"""Webhook event model - idempotency record for provider notifications."""

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.reference_data import utcnow


class WebhookEvent(Base):
    """
    One event per payment (at most one terminal webhook is expected).
    Once is_processed is true, redelivery is a no-op.
    """
    
    __tablename__ = "webhook_events"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    
    payment_reference_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("payments.reference_id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
    )
    
    # PaymentStatus value asserted by the provider
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    
    provider_transaction_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    
    # Provider-asserted event time
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    
    is_processed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    
    def __repr__(self) -> str:
        return f"<WebhookEvent {self.payment_reference_id} processed={self.is_processed}>"
