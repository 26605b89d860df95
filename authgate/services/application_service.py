"""Application service"""

from typing import Any, Dict, List, Optional, Set, Tuple
import secrets
from sqlalchemy.orm import Session
import structlog
from authgate.database.models import Application
from authgate.errors import ApplicationOrphanedError
from authgate.services.association_store import AssociationStore

logger = structlog.get_logger()


def generate_api_key() -> str:
    """Generate an application API key"""
    return secrets.token_urlsafe(30)


class ApplicationService:
    """Application management service"""

    @staticmethod
    def get_application(db: Session, application_id: str) -> Application:
        return AssociationStore.get_application(db, application_id)

    @staticmethod
    def get_application_by_api_key(db: Session, api_key: str) -> Optional[Application]:
        return db.query(Application).filter(Application.api_key_value == api_key).first()

    @staticmethod
    def list_applications(
        db: Session,
        visible_ids: Optional[Set[str]] = None,
        page_number: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Application], int]:
        """
        List applications, newest first.

        Args:
            visible_ids: Restrict the listing to these ids; None lists everything

        Returns:
            Tuple of (applications on the page, total matching count)
        """
        query = db.query(Application)
        if visible_ids is not None:
            if not visible_ids:
                return [], 0
            query = query.filter(Application.id.in_(visible_ids))

        total = query.count()
        applications = (
            query.order_by(Application.created_at.desc(), Application.id)
            .offset((page_number - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return applications, total

    @staticmethod
    def create_application(
        db: Session,
        name: str,
        user_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> Application:
        """
        Create an application linked to an organization or a user.

        Raises:
            ApplicationOrphanedError: If neither a user nor an organization is given
            OrganizationNotFoundError: If the organization does not exist
        """
        if organization_id is None and user_id is None:
            raise ApplicationOrphanedError()
        if organization_id is not None:
            AssociationStore.get_organization(db, organization_id)

        application = Application(name=name, api_key_value=generate_api_key())
        db.add(application)
        db.commit()
        db.refresh(application)

        if organization_id is not None:
            AssociationStore.set_application_organization(db, application.id, organization_id)
        else:
            AssociationStore.set_application_owner(db, application.id, user_id)

        db.refresh(application)
        logger.info(
            "Application created",
            application_id=application.id,
            user_id=user_id,
            organization_id=organization_id,
        )
        return application

    @staticmethod
    def update_application(
        db: Session,
        application_id: str,
        changes: Dict[str, Any],
        regen_api_key: bool = False,
    ) -> Application:
        """
        Update name, API key and links of an application.

        Naming a user or an organization replaces both links, so the
        application ends up linked only to what the request names. Naming a
        link as null only removes that link.

        Raises:
            ApplicationNotFoundError: If the application does not exist
            OrganizationNotFoundError: If the new organization does not exist
            ApplicationOrphanedError: If the change would leave it unlinked
        """
        application = AssociationStore.get_application(db, application_id)

        relinking = "organization" in changes or "user" in changes
        if relinking:
            if changes.get("organization") is not None or changes.get("user") is not None:
                future_organization = changes.get("organization")
                future_user = changes.get("user")
            else:
                future_organization = None if "organization" in changes else (
                    AssociationStore.application_organization(db, application_id)
                )
                future_user = None if "user" in changes else application.user_id
            if future_organization is None and future_user is None:
                raise ApplicationOrphanedError()
            if future_organization is not None:
                AssociationStore.get_organization(db, future_organization)

        if changes.get("name"):
            application.name = changes["name"]
        if regen_api_key:
            application.api_key_value = generate_api_key()
        db.commit()

        if relinking:
            AssociationStore.set_application_organization(db, application_id, future_organization)
            AssociationStore.set_application_owner(db, application_id, future_user)

        db.refresh(application)
        logger.info("Application updated", application_id=application_id, fields=sorted(changes))
        return application

    @staticmethod
    def delete_application(db: Session, application: Application) -> None:
        """Delete an application together with its owner and organization links"""
        application_id = application.id
        db.delete(application)
        db.commit()
        logger.info("Application deleted", application_id=application_id)
