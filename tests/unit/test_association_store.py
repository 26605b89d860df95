"""Unit tests for the association store"""

import pytest
from authgate.database.models import (
    ORG_ADMIN,
    ORG_MEMBER,
    Application,
    ApplicationUser,
    Organization,
    OrganizationApplication,
    OrganizationUser,
)
from authgate.errors import (
    ApplicationNotFoundError,
    HasApplicationsError,
    OrganizationNotFoundError,
    ValidationError,
)
from authgate.services.association_store import AssociationStore

pytestmark = pytest.mark.unit


def _application(db, name="app"):
    application = Application(name=name, api_key_value=f"key-{name}")
    db.add(application)
    db.commit()
    return application


def _organization(db, name="org"):
    organization = Organization(name=name)
    db.add(organization)
    db.commit()
    return organization


class TestLookups:
    """Malformed and unknown ids are not found"""

    def test_malformed_application_id(self, db):
        with pytest.raises(ApplicationNotFoundError):
            AssociationStore.get_application(db, "potato")

    def test_unknown_application_id(self, db):
        with pytest.raises(ApplicationNotFoundError):
            AssociationStore.get_application(db, "5f0000000000000000000000")

    def test_malformed_organization_id(self, db):
        with pytest.raises(OrganizationNotFoundError):
            AssociationStore.get_organization(db, "123")


class TestApplicationOwner:
    """Tests for setting the owner of an application"""

    def test_set_and_replace_owner(self, db):
        application = _application(db)

        AssociationStore.set_application_owner(db, application.id, "user-1")
        AssociationStore.set_application_owner(db, application.id, "user-2")

        assert AssociationStore.application_owner(db, application.id) == "user-2"
        assert db.query(ApplicationUser).count() == 1

    def test_remove_owner(self, db):
        application = _application(db)
        AssociationStore.set_application_owner(db, application.id, "user-1")

        AssociationStore.set_application_owner(db, application.id, None)

        assert AssociationStore.application_owner(db, application.id) is None

    def test_unknown_application(self, db):
        with pytest.raises(ApplicationNotFoundError):
            AssociationStore.set_application_owner(db, "5f0000000000000000000000", "user-1")


class TestOrganizationMembership:
    """Tests for organization membership rows"""

    def test_add_update_remove(self, db):
        organization = _organization(db)

        AssociationStore.set_organization_membership(db, organization.id, "user-1", ORG_MEMBER)
        assert AssociationStore.organization_membership(db, organization.id, "user-1") == ORG_MEMBER

        AssociationStore.set_organization_membership(db, organization.id, "user-1", ORG_ADMIN)
        assert AssociationStore.organization_membership(db, organization.id, "user-1") == ORG_ADMIN
        assert db.query(OrganizationUser).count() == 1

        AssociationStore.set_organization_membership(db, organization.id, "user-1", None)
        assert AssociationStore.organization_membership(db, organization.id, "user-1") is None

    def test_invalid_role(self, db):
        organization = _organization(db)
        with pytest.raises(ValidationError):
            AssociationStore.set_organization_membership(db, organization.id, "user-1", "OWNER")


class TestApplicationOrganization:
    """Tests for moving applications between organizations"""

    def test_move_and_detach(self, db):
        application = _application(db)
        first = _organization(db, "first")
        second = _organization(db, "second")

        AssociationStore.set_application_organization(db, application.id, first.id)
        AssociationStore.set_application_organization(db, application.id, second.id)
        assert AssociationStore.application_organization(db, application.id) == second.id

        AssociationStore.set_application_organization(db, application.id, None)
        assert AssociationStore.application_organization(db, application.id) is None

    def test_unknown_organization(self, db):
        application = _application(db)
        with pytest.raises(OrganizationNotFoundError):
            AssociationStore.set_application_organization(db, application.id, "5f0000000000000000000000")


class TestCascadeDeleteUserAssociations:
    """Deleting a user removes their rows and nothing else"""

    def test_removes_rows_and_keeps_documents(self, db):
        owned = _application(db, "owned")
        other = _application(db, "other")
        organization = _organization(db)
        AssociationStore.set_application_owner(db, owned.id, "user-1")
        AssociationStore.set_application_owner(db, other.id, "user-2")
        AssociationStore.set_organization_membership(db, organization.id, "user-1", ORG_ADMIN)
        AssociationStore.set_organization_membership(db, organization.id, "user-2", ORG_MEMBER)

        removed = AssociationStore.cascade_delete_user_associations(db, "user-1")

        assert removed == {"applications": 1, "organizations": 1}
        assert db.query(ApplicationUser).filter(ApplicationUser.user_id == "user-1").count() == 0
        assert db.query(OrganizationUser).filter(OrganizationUser.user_id == "user-1").count() == 0
        assert AssociationStore.application_owner(db, other.id) == "user-2"
        assert db.query(Application).count() == 2
        assert db.query(Organization).count() == 1

    def test_unknown_user_is_a_noop(self, db):
        assert AssociationStore.cascade_delete_user_associations(db, "nobody") == {
            "applications": 0,
            "organizations": 0,
        }


class TestCascadeDeleteOrganization:
    """Organizations with applications cannot be deleted"""

    def test_rejected_while_applications_remain(self, db):
        organization = _organization(db)
        application = _application(db)
        AssociationStore.set_application_organization(db, application.id, organization.id)
        AssociationStore.set_organization_membership(db, organization.id, "user-1", ORG_ADMIN)

        for _ in range(2):
            with pytest.raises(HasApplicationsError):
                AssociationStore.cascade_delete_organization(db, organization.id)

        assert AssociationStore.get_organization(db, organization.id)
        assert db.query(OrganizationApplication).count() == 1
        assert db.query(OrganizationUser).count() == 1

    def test_deletes_memberships_then_organization(self, db):
        organization = _organization(db)
        organization_id = organization.id
        AssociationStore.set_organization_membership(db, organization_id, "user-1", ORG_ADMIN)

        AssociationStore.cascade_delete_organization(db, organization_id)

        assert db.query(Organization).count() == 0
        assert db.query(OrganizationUser).count() == 0


class TestOrganizationAdminTraversal:
    """Applications reachable through ORG_ADMIN memberships"""

    def test_only_admin_memberships_count(self, db):
        admin_org = _organization(db, "admin-org")
        member_org = _organization(db, "member-org")
        admin_app = _application(db, "admin-app")
        member_app = _application(db, "member-app")
        AssociationStore.set_application_organization(db, admin_app.id, admin_org.id)
        AssociationStore.set_application_organization(db, member_app.id, member_org.id)
        AssociationStore.set_organization_membership(db, admin_org.id, "user-1", ORG_ADMIN)
        AssociationStore.set_organization_membership(db, member_org.id, "user-1", ORG_MEMBER)

        assert AssociationStore.list_applications_for_organization_admin(db, "user-1") == {admin_app.id}
        assert AssociationStore.user_is_org_admin_of_application(db, admin_app.id, "user-1")
        assert not AssociationStore.user_is_org_admin_of_application(db, member_app.id, "user-1")
