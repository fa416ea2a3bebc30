"""
BETSYNC - Security
Bearer token decoding for bettor sessions and the scheduler trigger secret.
Session issuance lives with the authentication service; tokens are created
here only for service-to-service use and tests.
"""

import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

import jwt

from app.core.config import settings

logger = logging.getLogger(__name__)


class TokenType(str, Enum):
    """Token types for JWT"""
    ACCESS = "access"
    REFRESH = "refresh"


class SecurityManager:
    """JWT verification for bettor sessions"""

    def __init__(
        self,
        jwt_secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_token_expire: Optional[int] = None,
    ):
        self.jwt_secret = jwt_secret or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.access_token_expire = access_token_expire or settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    def create_access_token(self, user_id: str, role: str = "user") -> str:
        """Create JWT access token"""
        now = datetime.now(timezone.utc)
        expire = now + timedelta(minutes=self.access_token_expire)

        payload = {
            "sub": user_id,
            "user_id": user_id,
            "role": role,
            "token_type": TokenType.ACCESS.value,
            "exp": expire,
            "iat": now,
            "jti": secrets.token_urlsafe(16)
        }

        return jwt.encode(payload, self.jwt_secret, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Decode and validate JWT token"""
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[self.algorithm]
            )
        except jwt.ExpiredSignatureError as e:
            logger.warning(f"Token expired: {e}")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            return None

        if payload.get("token_type", TokenType.ACCESS.value) != TokenType.ACCESS.value:
            logger.warning("Rejected non-access token")
            return None
        return payload

    def verify_cron_secret(self, authorization: Optional[str]) -> bool:
        """
        Check a `Bearer <secret>` header against CRON_SECRET.

        An unset secret allows the call outside production.
        """
        expected = settings.CRON_SECRET
        if not expected:
            return not settings.is_production
        if not authorization or not authorization.startswith("Bearer "):
            return False
        return hmac.compare_digest(authorization[len("Bearer "):], expected)


security_manager = SecurityManager()


def get_security_manager() -> SecurityManager:
    return security_manager
