"""
Auth Client - verifies bearer tokens against the auth service.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass
class TokenVerification:
    """Outcome of a token check."""
    
    valid: bool
    subject_id: Optional[str] = None
    error: Optional[str] = None


class AuthClient:
    """Client for the auth service's /auth/verify endpoint."""
    
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.auth_service_url).rstrip("/")
        self.timeout = timeout or settings.auth_timeout_seconds
        self.transport = transport
    
    async def verify_token(self, token: str) -> TokenVerification:
        """
        Verify an opaque token.
        
        Network and protocol failures are reported as an invalid token,
        never raised.
        """
        if not self.base_url:
            logger.error("AUTH_SERVICE_URL not configured, rejecting token")
            return TokenVerification(valid=False, error="Auth service not configured")
        
        url = f"{self.base_url}/auth/verify"
        
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json={"token": token})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Token verification error: {e}")
            return TokenVerification(valid=False, error="Token verification failed")
        except ValueError as e:
            logger.error(f"Token verification returned invalid JSON: {e}")
            return TokenVerification(valid=False, error="Token verification failed")
        
        if not isinstance(data, dict):
            logger.error(f"Token verification returned unexpected body: {type(data).__name__}")
            return TokenVerification(valid=False, error="Token verification failed")

        if not data.get("valid"):
            logger.warning("Token verification failed: invalid token")
            return TokenVerification(valid=False, error=data.get("error") or "Invalid token")
        
        user = data.get("user")
        if not isinstance(user, dict):
            user = {}
        subject_id = user.get("id") or data.get("subject_id")
        return TokenVerification(
            valid=True,
            subject_id=str(subject_id) if subject_id is not None else None,
        )
