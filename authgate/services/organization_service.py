"""Organization service"""

from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
import structlog
from authgate.database.models import (
    Organization,
    OrganizationApplication,
    OrganizationUser,
)
from authgate.services.association_store import AssociationStore

logger = structlog.get_logger()


class OrganizationService:
    """Organization management service"""

    @staticmethod
    def get_organization(db: Session, organization_id: str) -> Organization:
        return AssociationStore.get_organization(db, organization_id)

    @staticmethod
    def list_organizations(
        db: Session,
        page_number: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Organization], int]:
        """List organizations, newest first"""
        query = db.query(Organization)

        total = query.count()
        organizations = (
            query.order_by(Organization.created_at.desc(), Organization.id)
            .offset((page_number - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return organizations, total

    @staticmethod
    def create_organization(
        db: Session,
        name: str,
        applications: Optional[List[str]] = None,
        users: Optional[List[Dict[str, str]]] = None,
    ) -> Organization:
        """Create an organization with its applications and members"""
        for application_id in applications or []:
            AssociationStore.get_application(db, application_id)

        organization = Organization(name=name)
        db.add(organization)
        db.commit()
        db.refresh(organization)

        OrganizationService._associate(db, organization.id, applications, users)
        db.refresh(organization)
        logger.info("Organization created", organization_id=organization.id)
        return organization

    @staticmethod
    def update_organization(
        db: Session,
        organization_id: str,
        changes: Dict[str, Any],
    ) -> Organization:
        """
        Update an organization.

        Applications and users given in the changes replace the current ones.

        Raises:
            OrganizationNotFoundError: If the organization does not exist
            ApplicationNotFoundError: If a listed application does not exist
        """
        organization = AssociationStore.get_organization(db, organization_id)

        applications = changes.get("applications")
        if applications is not None:
            for application_id in applications:
                AssociationStore.get_application(db, application_id)
            db.query(OrganizationApplication).filter(
                OrganizationApplication.organization_id == organization_id
            ).delete()

        users = changes.get("users")
        if users is not None:
            db.query(OrganizationUser).filter(OrganizationUser.organization_id == organization_id).delete()

        if changes.get("name"):
            organization.name = changes["name"]
        db.commit()

        OrganizationService._associate(db, organization_id, applications, users)
        db.refresh(organization)
        logger.info("Organization updated", organization_id=organization_id, fields=sorted(changes))
        return organization

    @staticmethod
    def delete_organization(db: Session, organization_id: str) -> None:
        AssociationStore.cascade_delete_organization(db, organization_id)

    @staticmethod
    def _associate(
        db: Session,
        organization_id: str,
        applications: Optional[List[str]],
        users: Optional[List[Dict[str, str]]],
    ) -> None:
        for application_id in applications or []:
            AssociationStore.set_application_organization(db, application_id, organization_id)
        for user in users or []:
            AssociationStore.set_organization_membership(db, organization_id, user["id"], user["role"])

