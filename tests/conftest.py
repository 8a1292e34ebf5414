"""
Pytest configuration and fixtures.
"""

import sys
import os
import time
import asyncio
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add app to path
sys.path.append(os.getcwd())

from app.database import Base
from app.errors import ProviderError
from app.fsm.states import PaymentStatus
from app.providers.base import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentProviderAdapter,
    PaymentStatusResponse,
)
from app.providers.registry import ProviderRegistry
from app.repositories.payment_repository import PaymentRepository
from app.seed import seed_reference_data
from app.services.lock_service import LockService
from app.services.payment_service import PaymentService
from app.services.reference import generate_reference_id
import app.models  # noqa: F401

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class FakeRedis:
    """In-memory stand-in for the few Redis commands the lock uses."""
    
    def __init__(self):
        self._data = {}
    
    def _get_live(self, name):
        entry = self._data.get(name)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._data[name]
            return None
        return value
    
    async def set(self, name, value, nx=False, px=None, ex=None):
        if nx and self._get_live(name) is not None:
            return None
        expires_at = None
        if px is not None:
            expires_at = time.monotonic() + px / 1000
        elif ex is not None:
            expires_at = time.monotonic() + ex
        self._data[name] = (value, expires_at)
        return True
    
    async def get(self, name):
        return self._get_live(name)
    
    async def delete(self, *names):
        removed = 0
        for name in names:
            if self._get_live(name) is not None:
                del self._data[name]
                removed += 1
        return removed
    
    async def eval(self, script, numkeys, *args):
        # Only the lock's compare-and-delete script is supported
        key, token = args[0], args[1]
        if self._get_live(key) == token:
            del self._data[key]
            return 1
        return 0
    
    async def ping(self):
        return True
    
    async def aclose(self):
        pass


class ScriptedProvider(PaymentProviderAdapter):
    """Provider double whose answers are set by the test."""
    
    def __init__(
        self,
        response: Optional[InitiatePaymentResponse] = None,
        status_response: Optional[PaymentStatusResponse] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
    ):
        self.response = response or InitiatePaymentResponse(
            accepted=True,
            status=PaymentStatus.PENDING,
            provider_transaction_id="TXN1",
            message="Payment initiated",
        )
        self.status_response = status_response
        self.error = error
        self.delay = delay
        self.initiate_calls = []
        self.check_calls = []
    
    @property
    def name(self) -> str:
        return "MTN"
    
    async def initiate_payment(self, request: InitiatePaymentRequest) -> InitiatePaymentResponse:
        self.initiate_calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response
    
    async def check_payment_status(self, provider_transaction_id, reference_id=None):
        self.check_calls.append(provider_transaction_id)
        if self.error:
            raise self.error
        return self.status_response or PaymentStatusResponse(
            status=PaymentStatus.PENDING,
            provider_transaction_id=provider_transaction_id,
        )


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create async engine for tests."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    
    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    
    async with async_session() as session:
        await seed_reference_data(session)
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def redis():
    return FakeRedis()


@pytest_asyncio.fixture
async def lock(redis):
    return LockService(redis)


@pytest_asyncio.fixture
async def provider():
    return ScriptedProvider()


@pytest_asyncio.fixture
async def registry(provider):
    return ProviderRegistry().register(provider, aliases=["MTN_UGANDA"])


@pytest_asyncio.fixture
async def service(db, registry, lock):
    return PaymentService(
        db,
        providers=registry,
        lock=lock,
        provider_timeout=0.5,
        webhook_lock_ttl_ms=10_000,
    )


@pytest_asyncio.fixture
async def make_payment(db):
    """Insert a payment directly in the given status (bypasses the provider)."""
    repository = PaymentRepository(db)
    
    async def _make(
        status: PaymentStatus = PaymentStatus.PENDING,
        provider_transaction_id: Optional[str] = "TXN1",
    ):
        currency = await repository.get_currency_by_name("UGX")
        method = await repository.get_payment_method_by_name("MOBILE_MONEY")
        payment = await repository.create(
            reference_id=generate_reference_id(),
            customer_phone="+256700000000",
            amount=Decimal("1000"),
            currency_id=currency.id,
            payment_method_id=method.id,
        )
        if status != PaymentStatus.INITIATED:
            payment = await repository.update_by_reference(
                payment.reference_id,
                status=status,
                provider_transaction_id=provider_transaction_id,
                provider_name="MTN_UGANDA",
            )
        await db.commit()
        return payment
    
    return _make
