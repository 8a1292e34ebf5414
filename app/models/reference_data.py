"""Reference data models - currencies, providers and payment methods."""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Currency(Base):
    """Currency seeded at deployment, resolved by name (e.g. UGX)."""
    
    __tablename__ = "currencies"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    
    name: Mapped[str] = mapped_column(
        String(10),
        unique=True,
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
        return f"<Currency {self.name}>"


class PaymentProvider(Base):
    """
    External gateway a payment method is routed to.
    `name` is the key into the provider registry.
    """
    
    __tablename__ = "payment_providers"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    
    name: Mapped[str] = mapped_column(
        String(50),
        unique=True,
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
    
    payment_methods: Mapped[List["PaymentMethod"]] = relationship(
        back_populates="payment_provider",
    )
    
    def __repr__(self) -> str:
        return f"<PaymentProvider {self.name}>"


class PaymentMethod(Base):
    """Payment method (e.g. MOBILE_MONEY) served by exactly one provider."""
    
    __tablename__ = "payment_methods"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    
    name: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
    )
    
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    
    payment_provider_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payment_providers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
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
    
    payment_provider: Mapped[PaymentProvider] = relationship(
        back_populates="payment_methods",
        lazy="selectin",
    )
    
    def __repr__(self) -> str:
        return f"<PaymentMethod {self.name}>"
