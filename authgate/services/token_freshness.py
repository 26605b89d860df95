"""
Token freshness reconciliation.

Tokens younger than the staleness threshold are trusted as-is. Older tokens
are compared field by field against the live identity record; any mismatch
rejects the token. Nothing is reissued here: the caller has to regenerate.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
import structlog
from authgate.config import settings
from authgate.errors import OutdatedTokenError
from authgate.security.jwt import MICROSERVICE_ID, token_age_seconds
from authgate.services.identity.user_adapter import User, same_apps
from authgate.services.identity.user_service import UserService

logger = structlog.get_logger()


class FreshnessState(str, Enum):
    FRESH = "FRESH"
    CHECK = "CHECK"


def _claim_apps(claims: Dict[str, Any]):
    return (claims.get("extraUserData") or {}).get("apps")


def find_mismatch(claims: Dict[str, Any], user: User) -> Optional[str]:
    """Name of the first claim that differs from the live user, or None"""
    if claims.get("id") != user.id:
        return "id"
    if claims.get("role") != user.role:
        return "role"
    if not same_apps(_claim_apps(claims), user.apps):
        return "extraUserData"
    if claims.get("email") != user.email:
        return "email"
    return None


class TokenFreshnessReconciler:
    """Decides whether decoded claims may be trusted"""

    def __init__(self, user_service: UserService, threshold_seconds: int = settings.TOKEN_STALENESS_SECONDS):
        self.user_service = user_service
        self.threshold_seconds = threshold_seconds

    def initial_state(self, claims: Dict[str, Any], now: Optional[datetime] = None) -> FreshnessState:
        if claims.get("id") == MICROSERVICE_ID:
            return FreshnessState.FRESH
        if token_age_seconds(claims, now) < self.threshold_seconds:
            return FreshnessState.FRESH
        return FreshnessState.CHECK

    async def check(self, claims: Dict[str, Any]) -> FreshnessState:
        """
        Compare claims against the live identity record.

        Raises:
            OutdatedTokenError: If the user is gone or any claim differs
        """
        email = claims.get("email")
        user = await self.user_service.get_user_by_email(email) if email else None
        if user is None:
            logger.info("Token outdated", reason="user not found", user_id=claims.get("id"))
            raise OutdatedTokenError()

        mismatch = find_mismatch(claims, user)
        if mismatch is not None:
            logger.info("Token outdated", field=mismatch, user_id=claims.get("id"))
            raise OutdatedTokenError()
        return FreshnessState.FRESH

    async def reconcile(self, claims: Dict[str, Any], now: Optional[datetime] = None) -> FreshnessState:
        state = self.initial_state(claims, now)
        if state is FreshnessState.CHECK:
            state = await self.check(claims)
        return state
