"""Authentication dependencies and collaborator providers"""

from typing import Any, Callable, Dict, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
import structlog
from authgate.database.database import get_db
from authgate.errors import NotAuthenticatedError, NotAuthorizedError
from authgate.security.jwt import MICROSERVICE_ID, decode_token
from authgate.services.authorization import AuthorizationResolver
from authgate.services.cache_service import CacheService
from authgate.services.identity.okta_client import OktaClient
from authgate.services.identity.user_service import UserService
from authgate.services.session_bridge import ProviderSessionBridge
from authgate.services.token_freshness import TokenFreshnessReconciler
from authgate.services.user_deletion_service import UserDeletionWorkflow
from authgate.services.user_resources_service import UserResourcesService

logger = structlog.get_logger()

security = HTTPBearer(auto_error=False)


def get_okta_client(request: Request) -> OktaClient:
    return request.app.state.okta_client


def get_cache(request: Request) -> CacheService:
    return request.app.state.cache


def get_user_resources_service(request: Request) -> UserResourcesService:
    return request.app.state.user_resources


def get_user_service(
    okta: OktaClient = Depends(get_okta_client),
    cache: CacheService = Depends(get_cache),
) -> UserService:
    return UserService(okta, cache)


def get_freshness_reconciler(user_service: UserService = Depends(get_user_service)) -> TokenFreshnessReconciler:
    return TokenFreshnessReconciler(user_service)


def get_resolver(db: Session = Depends(get_db)) -> AuthorizationResolver:
    return AuthorizationResolver(db)


def get_session_bridge(
    user_service: UserService = Depends(get_user_service),
    cache: CacheService = Depends(get_cache),
) -> ProviderSessionBridge:
    return ProviderSessionBridge(user_service, cache)


def get_deletion_workflow(
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
    resources: UserResourcesService = Depends(get_user_resources_service),
) -> UserDeletionWorkflow:
    return UserDeletionWorkflow(db, user_service, resources)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    reconciler: TokenFreshnessReconciler = Depends(get_freshness_reconciler),
) -> Optional[Dict[str, Any]]:
    """
    Decode the bearer token and reconcile it with the live identity record.

    Returns None for anonymous requests. A token that does not verify or
    no longer matches the identity record is rejected with 401.
    """
    if credentials is None:
        return None
    claims = decode_token(credentials.credentials)
    await reconciler.reconcile(claims)
    return claims


async def require_user(
    user: Optional[Dict[str, Any]] = Depends(get_current_user),
) -> Dict[str, Any]:
    if not user:
        raise NotAuthenticatedError()
    return user


def require_roles(*roles: str) -> Callable:
    """
    Dependency factory that requires one of the given global roles.

    Usage:
        @router.get("/user")
        async def list_users(user: dict = Depends(require_roles("ADMIN"))):
    """
    async def check_role(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
        if user.get("role") not in roles:
            logger.info("Role check failed", user_id=user.get("id"), required=roles)
            raise NotAuthorizedError()
        return user

    return check_role


async def require_microservice(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    if user.get("id") != MICROSERVICE_ID:
        logger.info("Microservice check failed", user_id=user.get("id"))
        raise NotAuthorizedError()
    return user
