"""Association store over application owners, organization members and organization applications"""

from typing import Dict, Optional, Set
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import structlog
from authgate.database.models import (
    ORG_ADMIN,
    ORGANIZATION_ROLES,
    Application,
    ApplicationUser,
    Organization,
    OrganizationApplication,
    OrganizationUser,
    is_valid_id,
)
from authgate.errors import (
    ApplicationNotFoundError,
    ConflictError,
    HasApplicationsError,
    OrganizationNotFoundError,
    ValidationError,
)

logger = structlog.get_logger()


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Association uniqueness violated", error=str(e.orig))
        raise ConflictError("Association already exists")


class AssociationStore:
    """Reads and writes of the association graph"""

    @staticmethod
    def get_application(db: Session, application_id: str) -> Application:
        """
        Load an application by id.

        Raises:
            ApplicationNotFoundError: If the id is malformed or unknown
        """
        if not is_valid_id(application_id):
            raise ApplicationNotFoundError()
        application = db.query(Application).filter(Application.id == application_id).first()
        if not application:
            raise ApplicationNotFoundError()
        return application

    @staticmethod
    def get_organization(db: Session, organization_id: str) -> Organization:
        """
        Load an organization by id.

        Raises:
            OrganizationNotFoundError: If the id is malformed or unknown
        """
        if not is_valid_id(organization_id):
            raise OrganizationNotFoundError()
        organization = db.query(Organization).filter(Organization.id == organization_id).first()
        if not organization:
            raise OrganizationNotFoundError()
        return organization

    @staticmethod
    def set_application_owner(db: Session, application_id: str, user_id: Optional[str]) -> None:
        """Replace the owning user of an application; None removes it"""
        AssociationStore.get_application(db, application_id)
        db.query(ApplicationUser).filter(ApplicationUser.application_id == application_id).delete()
        if user_id is not None:
            db.add(ApplicationUser(application_id=application_id, user_id=user_id))
        _commit(db)

    @staticmethod
    def set_organization_membership(
        db: Session,
        organization_id: str,
        user_id: str,
        role: Optional[str],
    ) -> None:
        """Set the role of a user in an organization; None removes the membership"""
        AssociationStore.get_organization(db, organization_id)
        if role is not None and role not in ORGANIZATION_ROLES:
            raise ValidationError(f"Invalid organization role {role}")

        membership = db.query(OrganizationUser).filter(
            OrganizationUser.organization_id == organization_id,
            OrganizationUser.user_id == user_id,
        ).first()
        if role is None:
            if membership:
                db.delete(membership)
        elif membership:
            membership.role = role
        else:
            db.add(OrganizationUser(organization_id=organization_id, user_id=user_id, role=role))
        _commit(db)

    @staticmethod
    def set_application_organization(db: Session, application_id: str, organization_id: Optional[str]) -> None:
        """Move an application to an organization; None detaches it"""
        AssociationStore.get_application(db, application_id)
        if organization_id is not None:
            AssociationStore.get_organization(db, organization_id)

        db.query(OrganizationApplication).filter(
            OrganizationApplication.application_id == application_id
        ).delete()
        if organization_id is not None:
            db.add(OrganizationApplication(organization_id=organization_id, application_id=application_id))
        _commit(db)

    @staticmethod
    def cascade_delete_user_associations(db: Session, user_id: str) -> Dict[str, int]:
        """
        Remove every ownership and membership row of a user.

        Applications and organizations themselves are left in place.
        """
        applications = db.query(ApplicationUser).filter(ApplicationUser.user_id == user_id).delete()
        organizations = db.query(OrganizationUser).filter(OrganizationUser.user_id == user_id).delete()
        db.commit()
        logger.info(
            "User associations removed",
            user_id=user_id,
            applications=applications,
            organizations=organizations,
        )
        return {"applications": applications, "organizations": organizations}

    @staticmethod
    def cascade_delete_organization(db: Session, organization_id: str) -> None:
        """
        Delete an organization and its memberships.

        Raises:
            HasApplicationsError: If any application still belongs to it
        """
        organization = AssociationStore.get_organization(db, organization_id)
        has_applications = db.query(OrganizationApplication).filter(
            OrganizationApplication.organization_id == organization_id
        ).count()
        if has_applications:
            raise HasApplicationsError()

        for membership in list(organization.memberships):
            db.delete(membership)
        db.delete(organization)
        db.commit()
        logger.info("Organization deleted", organization_id=organization_id)

    @staticmethod
    def list_applications_for_organization_admin(db: Session, user_id: str) -> Set[str]:
        """Ids of the applications of every organization the user administers"""
        rows = (
            db.query(OrganizationApplication.application_id)
            .join(
                OrganizationUser,
                OrganizationUser.organization_id == OrganizationApplication.organization_id,
            )
            .filter(OrganizationUser.user_id == user_id, OrganizationUser.role == ORG_ADMIN)
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def list_owned_applications(db: Session, user_id: str) -> Set[str]:
        rows = db.query(ApplicationUser.application_id).filter(ApplicationUser.user_id == user_id).all()
        return {row[0] for row in rows}

    @staticmethod
    def application_owner(db: Session, application_id: str) -> Optional[str]:
        row = db.query(ApplicationUser).filter(ApplicationUser.application_id == application_id).first()
        return row.user_id if row else None

    @staticmethod
    def application_organization(db: Session, application_id: str) -> Optional[str]:
        row = db.query(OrganizationApplication).filter(
            OrganizationApplication.application_id == application_id
        ).first()
        return row.organization_id if row else None

    @staticmethod
    def organization_membership(db: Session, organization_id: str, user_id: str) -> Optional[str]:
        """Role of the user in the organization, or None"""
        row = db.query(OrganizationUser).filter(
            OrganizationUser.organization_id == organization_id,
            OrganizationUser.user_id == user_id,
        ).first()
        return row.role if row else None

    @staticmethod
    def user_owns_application(db: Session, application_id: str, user_id: str) -> bool:
        return AssociationStore.application_owner(db, application_id) == user_id

    @staticmethod
    def user_is_org_admin_of_application(db: Session, application_id: str, user_id: str) -> bool:
        organization_id = AssociationStore.application_organization(db, application_id)
        if organization_id is None:
            return False
        return AssociationStore.organization_membership(db, organization_id, user_id) == ORG_ADMIN
