"""
Reference data seeding - currencies, payment providers and payment methods.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Currency, PaymentMethod, PaymentProvider

logger = logging.getLogger(__name__)


CURRENCIES = ["UGX", "USD"]

PAYMENT_PROVIDERS = [
    {
        "name": "MTN_UGANDA",
        "payment_methods": [
            {
                "name": "MOBILE_MONEY",
                "description": "Mobile Money payment method",
            },
        ],
    },
]


async def seed_reference_data(db: AsyncSession) -> None:
    """Insert any missing reference rows; existing rows are left alone."""
    for name in CURRENCIES:
        result = await db.execute(select(Currency).where(Currency.name == name))
        if result.scalar_one_or_none() is None:
            db.add(Currency(name=name))
            logger.info(f"Seeded currency {name}")
    
    for provider_data in PAYMENT_PROVIDERS:
        result = await db.execute(
            select(PaymentProvider).where(PaymentProvider.name == provider_data["name"])
        )
        provider = result.scalar_one_or_none()
        if provider is None:
            provider = PaymentProvider(name=provider_data["name"])
            db.add(provider)
            await db.flush()
            logger.info(f"Seeded payment provider {provider.name}")
        
        for method_data in provider_data["payment_methods"]:
            result = await db.execute(
                select(PaymentMethod).where(PaymentMethod.name == method_data["name"])
            )
            if result.scalar_one_or_none() is None:
                db.add(PaymentMethod(
                    name=method_data["name"],
                    description=method_data["description"],
                    payment_provider_id=provider.id,
                ))
                logger.info(f"Seeded payment method {method_data['name']}")
    
    await db.commit()
