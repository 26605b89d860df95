"""Combined user token and API key validation for internal microservices"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session
import structlog
from authgate.api.serializers import application_resource, serialize_user
from authgate.database.database import get_db
from authgate.errors import (
    ApplicationNotFoundError,
    InvalidTokenError,
    OutdatedTokenError,
    TokenRevokedError,
    UserNotFoundError,
)
from authgate.middleware.auth_middleware import (
    get_freshness_reconciler,
    get_user_service,
    require_microservice,
)
from authgate.security.jwt import MICROSERVICE_ID, decode_token, extract_bearer_token
from authgate.services.application_service import ApplicationService
from authgate.services.identity.user_service import UserService
from authgate.services.token_freshness import TokenFreshnessReconciler

logger = structlog.get_logger()

router = APIRouter()


class ValidateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    userToken: Optional[str] = None
    apiKey: Optional[str] = None


async def _validate_user_token(
    user_token: str,
    reconciler: TokenFreshnessReconciler,
    user_service: UserService,
) -> Dict[str, Any]:
    token = extract_bearer_token(user_token)
    if not token:
        raise InvalidTokenError("Invalid userToken")
    try:
        claims = decode_token(token)
    except InvalidTokenError:
        raise InvalidTokenError("Invalid userToken")

    if claims.get("id") == MICROSERVICE_ID:
        return {"data": {"id": MICROSERVICE_ID}}

    # Tokens handed over for validation are always checked against the live record
    try:
        await reconciler.check(claims)
    except OutdatedTokenError:
        raise TokenRevokedError()

    user = await user_service.get_user_by_id(claims["id"])
    if user is None:
        raise UserNotFoundError()
    return serialize_user(user)


@router.post("/validate")
async def validate_request(
    body: ValidateRequest,
    microservice: dict = Depends(require_microservice),
    reconciler: TokenFreshnessReconciler = Depends(get_freshness_reconciler),
    user_service: UserService = Depends(get_user_service),
    db: Session = Depends(get_db),
):
    """
    Validate a user token and/or an application API key in one round trip.

    Only the keys that were sent appear in the response.
    """
    response: Dict[str, Any] = {}

    if body.userToken:
        response["user"] = await _validate_user_token(body.userToken, reconciler, user_service)

    if body.apiKey:
        application = ApplicationService.get_application_by_api_key(db, body.apiKey)
        if application is None:
            logger.info("Unknown API key presented for validation")
            raise ApplicationNotFoundError()
        owner = await user_service.get_user_by_id(application.user_id) if application.user_id else None
        response["application"] = {"data": application_resource(application, owner.name if owner else None)}

    return response
