"""Payment model - one payment attempt and its lifecycle status."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.fsm.states import PaymentStatus
from app.models.reference_data import Currency, PaymentMethod, utcnow


class Payment(Base):
    """
    Payment record.
    reference_id is client-facing, unique and immutable once created.
    Rows are never deleted.
    """
    
    __tablename__ = "payments"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    
    # Client-facing reference (PAY-<millis>-<suffix>)
    reference_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    
    customer_phone: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    
    customer_email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    
    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
    )
    
    # PaymentStatus value
    status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.INITIATED.value,
        nullable=False,
        index=True,
    )
    
    currency_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("currencies.id", ondelete="RESTRICT"),
        nullable=False,
    )
    
    payment_method_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payment_methods.id", ondelete="RESTRICT"),
        nullable=False,
    )
    
    # Set once the provider acknowledges
    provider_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    
    # Set once routed to a provider
    provider_name: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    
    # Timestamps
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
    
    currency: Mapped[Currency] = relationship(lazy="selectin")
    payment_method: Mapped[PaymentMethod] = relationship(lazy="selectin")
    
    @property
    def payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.status)
    
    @property
    def currency_name(self) -> str:
        return self.currency.name
    
    @property
    def payment_method_name(self) -> str:
        return self.payment_method.name
    
    @property
    def payment_provider_name(self) -> str:
        return self.payment_method.payment_provider.name
    
    def __repr__(self) -> str:
        return f"<Payment {self.reference_id} {self.status}>"
