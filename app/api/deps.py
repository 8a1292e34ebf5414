"""
Shared FastAPI dependencies: authentication, webhook signatures and
service wiring.
"""

import hmac
import hashlib
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from redis.asyncio.client import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.providers.registry import ProviderRegistry
from app.redis import get_redis
from app.services.auth_client import AuthClient
from app.services.lock_service import LockService
from app.services.payment_service import PaymentService

logger = logging.getLogger(__name__)


def get_auth_client(request: Request) -> AuthClient:
    """Auth client created at startup."""
    return request.app.state.auth_client


def get_provider_registry(request: Request) -> ProviderRegistry:
    """Provider registry created at startup."""
    return request.app.state.providers


async def get_lock_service(redis: Redis = Depends(get_redis)) -> LockService:
    return LockService(redis)


async def get_payment_service(
    db: AsyncSession = Depends(get_db),
    providers: ProviderRegistry = Depends(get_provider_registry),
    lock: LockService = Depends(get_lock_service),
) -> PaymentService:
    return PaymentService(db, providers=providers, lock=lock)


async def get_current_subject(
    authorization: Optional[str] = Header(None),
    auth_client: AuthClient = Depends(get_auth_client),
) -> str:
    """
    Validate the Bearer token with the auth service.
    Returns the subject id if valid, raises 401 otherwise.
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme != "Bearer" or not token:
        logger.warning("No token provided in request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided",
        )
    
    result = await auth_client.verify_token(token)
    if not result.valid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result.error or "Invalid token",
        )
    
    return result.subject_id or ""


def compute_webhook_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


async def verify_webhook_signature(
    request: Request,
    x_webhook_signature: Optional[str] = Header(None),
) -> None:
    """
    Verify the provider's webhook signature.
    Skipped when no secret is configured (development).
    """
    if not settings.webhook_secret:
        if settings.is_production:
            logger.error("WEBHOOK_SECRET not configured in production")
            raise HTTPException(status_code=500, detail="Webhook verification not configured")
        logger.warning("Webhook secret not configured, skipping signature check")
        return
    
    body = await request.body()
    expected = compute_webhook_signature(body, settings.webhook_secret)
    
    if not x_webhook_signature or not hmac.compare_digest(expected, x_webhook_signature):
        logger.error("Invalid webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
