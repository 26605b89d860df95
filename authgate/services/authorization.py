"""
Authorization resolver.

Decides whether a caller may act on an application, organization or user.
Rules are evaluated top to bottom and the first match wins:

1. no caller                          -> 401 Not authenticated
2. ADMIN                              -> allow
3. LIST by a MANAGER                  -> allow
4. application: owner, or ORG_ADMIN of the owning organization -> allow
5. organization, any other intent    -> 403 Not authorized
6. user SELF_DELETE by the user itself or a microservice -> allow
7. anything else                      -> 403 Not authorized
"""

from enum import Enum
from typing import Any, Dict, Optional, Set
from sqlalchemy.orm import Session
import structlog
from authgate.database.models import ORG_ADMIN
from authgate.errors import ForbiddenError, NotAuthenticatedError, NotAuthorizedError
from authgate.security.jwt import MICROSERVICE_ID
from authgate.services.association_store import AssociationStore
from authgate.services.identity.user_adapter import ADMIN, MANAGER

logger = structlog.get_logger()

Caller = Dict[str, Any]


class Intent(str, Enum):
    READ = "READ"
    WRITE = "WRITE"
    DELETE = "DELETE"
    LIST = "LIST"
    CREATE = "CREATE"
    SELF_DELETE = "SELF_DELETE"


class ResourceKind(str, Enum):
    APPLICATION = "APPLICATION"
    ORGANIZATION = "ORGANIZATION"
    USER = "USER"


# Intents a MANAGER may exercise on any resource
MANAGER_INTENTS = frozenset({Intent.LIST})


class AuthorizationResolver:
    """Role and association graph based access decisions"""

    def __init__(self, db: Session):
        self.db = db

    def authorize(
        self,
        caller: Optional[Caller],
        kind: ResourceKind,
        intent: Intent,
        resource_id: Optional[str] = None,
    ) -> None:
        """
        Raise unless the caller may exercise intent on the resource.

        Raises:
            NotAuthenticatedError: If there is no caller
            NotAuthorizedError: For every other denial
        """
        if not caller:
            raise NotAuthenticatedError()
        if self._decide(caller, kind, intent, resource_id):
            return
        logger.info(
            "Access denied",
            user_id=caller.get("id"),
            kind=kind.value,
            intent=intent.value,
            resource_id=resource_id,
        )
        raise NotAuthorizedError()

    def is_allowed(
        self,
        caller: Optional[Caller],
        kind: ResourceKind,
        intent: Intent,
        resource_id: Optional[str] = None,
    ) -> bool:
        if not caller:
            return False
        return self._decide(caller, kind, intent, resource_id)

    def _decide(self, caller: Caller, kind: ResourceKind, intent: Intent, resource_id: Optional[str]) -> bool:
        role = caller.get("role")
        user_id = caller.get("id")

        if role == ADMIN:
            return True
        if intent in MANAGER_INTENTS and role == MANAGER:
            return True

        if kind is ResourceKind.APPLICATION:
            if resource_id is None:
                return False
            if AssociationStore.user_owns_application(self.db, resource_id, user_id):
                return True
            return AssociationStore.user_is_org_admin_of_application(self.db, resource_id, user_id)

        if kind is ResourceKind.USER and intent is Intent.SELF_DELETE:
            return user_id == resource_id or user_id == MICROSERVICE_ID

        return False

    def authorize_application_target(
        self,
        caller: Optional[Caller],
        user_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> None:
        """
        Check that the caller may attach an application to this user or organization.

        Non-ADMIN callers may only target themselves or an organization they
        administer.

        Raises:
            NotAuthenticatedError: If there is no caller
            ForbiddenError: If the target is out of reach for the caller
        """
        if not caller:
            raise NotAuthenticatedError()
        if caller.get("role") == ADMIN:
            return

        if user_id is not None and user_id != caller.get("id"):
            raise ForbiddenError("User can only create applications for themselves")
        if organization_id is not None:
            role = AssociationStore.organization_membership(self.db, organization_id, caller.get("id"))
            if role != ORG_ADMIN:
                raise ForbiddenError("User can only create applications for organizations they administer")

    def visible_application_ids(self, caller: Optional[Caller]) -> Optional[Set[str]]:
        """
        Applications the caller may list.

        Returns:
            None when every application is visible, otherwise the set of
            owned and organization-administered application ids
        """
        if not caller:
            raise NotAuthenticatedError()
        if self.is_allowed(caller, ResourceKind.APPLICATION, Intent.LIST):
            return None
        user_id = caller.get("id")
        return (
            AssociationStore.list_owned_applications(self.db, user_id)
            | AssociationStore.list_applications_for_organization_admin(self.db, user_id)
        )
