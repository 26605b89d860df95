"""First-party JWT encoding and verification"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import jwt
from jwt import exceptions as jwt_exceptions
from authgate.config import settings
from authgate.errors import InvalidTokenError

MICROSERVICE_ID = "microservice"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_token(claims: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """Sign the claims, stamping iat and createdAt (milliseconds)"""
    issued_at = now or _now()
    to_encode = dict(claims)
    to_encode["iat"] = int(issued_at.timestamp())
    to_encode["createdAt"] = int(issued_at.timestamp() * 1000)
    if settings.JWT_EXPIRE_MINUTES > 0:
        to_encode["exp"] = issued_at + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_microservice_token() -> str:
    return create_token({"id": MICROSERVICE_ID, "role": "MICROSERVICE", "email": None})


def decode_token(token: str) -> Dict[str, Any]:
    """Verify the signature and return the claims"""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt_exceptions.InvalidTokenError:
        raise InvalidTokenError()


def token_age_seconds(claims: Dict[str, Any], now: Optional[datetime] = None) -> float:
    """Age of a token from its createdAt (ms) or iat (s) claim"""
    current = (now or _now()).timestamp()
    created_at = claims.get("createdAt")
    if isinstance(created_at, (int, float)):
        return current - created_at / 1000.0
    issued_at = claims.get("iat")
    if isinstance(issued_at, (int, float)):
        return current - issued_at
    return float("inf")


def extract_bearer_token(value: str) -> Optional[str]:
    """Return the token part of a 'Bearer <token>' value, or the raw value"""
    parts = value.split(" ")
    if len(parts) == 2:
        scheme, credentials = parts
        if scheme.lower() == "bearer":
            return credentials
        return None
    return value
