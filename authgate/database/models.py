"""SQLAlchemy models"""

from datetime import datetime
import re
import secrets
import sqlalchemy as sa
from sqlalchemy import Column, String, Boolean, ForeignKey, TIMESTAMP
from sqlalchemy.orm import relationship
from authgate.database.database import Base

ORG_ADMIN = "ORG_ADMIN"
ORG_MEMBER = "ORG_MEMBER"
ORGANIZATION_ROLES = (ORG_ADMIN, ORG_MEMBER)

DELETION_PENDING = "pending"
DELETION_DONE = "done"
DELETION_FAILED = "failed"
DELETION_STATUSES = (DELETION_PENDING, DELETION_DONE, DELETION_FAILED)

# Per resource type flags tracked by a Deletion record
DELETION_FLAGS = (
    "datasetsDeleted",
    "layersDeleted",
    "widgetsDeleted",
    "userAccountDeleted",
    "userDataDeleted",
    "graphDataDeleted",
    "collectionsDeleted",
    "favouritesDeleted",
    "vocabulariesDeleted",
    "areasDeleted",
    "applicationsDeleted",
    "storiesDeleted",
    "subscriptionsDeleted",
    "dashboardsDeleted",
    "profilesDeleted",
    "topicsDeleted",
)

_ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")


def generate_id():
    """Generate a 24 character hex id"""
    return secrets.token_hex(12)


def is_valid_id(value) -> bool:
    """Check that a value has the shape of a generated id"""
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def _camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class Application(Base):
    """Application model"""
    __tablename__ = "applications"

    id = Column(String(24), primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    api_key_value = Column(String, unique=True, nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = relationship(
        "ApplicationUser", back_populates="application", uselist=False, cascade="all, delete-orphan"
    )
    organization_link = relationship(
        "OrganizationApplication", back_populates="application", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def user_id(self):
        return self.owner.user_id if self.owner else None

    @property
    def organization(self):
        return self.organization_link.organization if self.organization_link else None


class Organization(Base):
    """Organization model"""
    __tablename__ = "organizations"

    id = Column(String(24), primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    memberships = relationship("OrganizationUser", back_populates="organization")
    application_links = relationship("OrganizationApplication", back_populates="organization")

    @property
    def applications(self):
        return [link.application for link in self.application_links]


class ApplicationUser(Base):
    """Owning user of an application, at most one per application"""
    __tablename__ = "application_users"

    id = Column(String(24), primary_key=True, default=generate_id)
    application_id = Column(String(24), ForeignKey("applications.id"), unique=True, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    application = relationship("Application", back_populates="owner")


class OrganizationUser(Base):
    """Membership of a user in an organization, with a per-membership role"""
    __tablename__ = "organization_users"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "user_id", name="uq_organization_user"),
    )

    id = Column(String(24), primary_key=True, default=generate_id)
    organization_id = Column(String(24), ForeignKey("organizations.id"), nullable=False)
    user_id = Column(String, nullable=False, index=True)
    role = Column(String(20), nullable=False, default=ORG_MEMBER)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    organization = relationship("Organization", back_populates="memberships")


class OrganizationApplication(Base):
    """Link between an organization and one of its applications"""
    __tablename__ = "organization_applications"

    id = Column(String(24), primary_key=True, default=generate_id)
    organization_id = Column(String(24), ForeignKey("organizations.id"), nullable=False)
    application_id = Column(String(24), ForeignKey("applications.id"), unique=True, nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    organization = relationship("Organization", back_populates="application_links")
    application = relationship("Application", back_populates="organization_link")


class Deletion(Base):
    """Audit record of a user deletion workflow"""
    __tablename__ = "deletions"

    id = Column(String(24), primary_key=True, default=generate_id)
    user_id = Column(String, unique=True, nullable=False)
    requestor_user_id = Column(String, nullable=False)
    status = Column(String(20), nullable=False, default=DELETION_PENDING)
    datasets_deleted = Column(Boolean, nullable=False, default=False)
    layers_deleted = Column(Boolean, nullable=False, default=False)
    widgets_deleted = Column(Boolean, nullable=False, default=False)
    user_account_deleted = Column(Boolean, nullable=False, default=False)
    user_data_deleted = Column(Boolean, nullable=False, default=False)
    graph_data_deleted = Column(Boolean, nullable=False, default=False)
    collections_deleted = Column(Boolean, nullable=False, default=False)
    favourites_deleted = Column(Boolean, nullable=False, default=False)
    vocabularies_deleted = Column(Boolean, nullable=False, default=False)
    areas_deleted = Column(Boolean, nullable=False, default=False)
    applications_deleted = Column(Boolean, nullable=False, default=False)
    stories_deleted = Column(Boolean, nullable=False, default=False)
    subscriptions_deleted = Column(Boolean, nullable=False, default=False)
    dashboards_deleted = Column(Boolean, nullable=False, default=False)
    profiles_deleted = Column(Boolean, nullable=False, default=False)
    topics_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow)

    def get_flag(self, flag: str) -> bool:
        return getattr(self, _camel_to_snake(flag))

    def set_flag(self, flag: str, value: bool) -> None:
        if flag not in DELETION_FLAGS:
            raise ValueError(f"Unknown deletion flag {flag}")
        setattr(self, _camel_to_snake(flag), value)

    def flags(self) -> dict:
        return {flag: self.get_flag(flag) for flag in DELETION_FLAGS}
