"""
User deletion workflow.

Removes a user's downstream resources, associations and identity record,
tracking every step on a Deletion record. The workflow is best effort and
not transactional: a failed step leaves its flag false and the record ends
up failed, while the remaining steps still run.
"""

from sqlalchemy.orm import Session
import structlog
from authgate.database.models import DELETION_DONE, DELETION_FAILED
from authgate.errors import UpstreamError, UserNotFoundError
from authgate.services.association_store import AssociationStore
from authgate.services.deletion_service import DeletionService
from authgate.services.identity.user_adapter import User
from authgate.services.identity.user_service import UserService
from authgate.services.user_resources_service import RESOURCE_STEPS, UserResourcesService

logger = structlog.get_logger()


class UserDeletionWorkflow:
    """Cascade delete of a user across collaborators"""

    def __init__(self, db: Session, user_service: UserService, resources: UserResourcesService):
        self.db = db
        self.user_service = user_service
        self.resources = resources

    async def delete_user(self, user_id: str, requestor_id: str) -> User:
        """
        Delete a user everywhere.

        Returns:
            The user as it was before deletion

        Raises:
            UserNotFoundError: If the user does not exist
            DeletionAlreadyExistsError: If a deletion was already started for the user
        """
        user = await self.user_service.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError()

        deletion = DeletionService.create_deletion(self.db, user_id, requestor_id)
        all_succeeded = True

        for step in RESOURCE_STEPS:
            result = await self.resources.delete_resource(step, user_id)
            if result.succeeded:
                deletion.set_flag(step.flag, True)
                self.db.commit()
            else:
                all_succeeded = False

        AssociationStore.cascade_delete_user_associations(self.db, user_id)
        deletion.set_flag("applicationsDeleted", True)
        self.db.commit()

        try:
            await self.user_service.delete_user(user_id)
            deletion.set_flag("userAccountDeleted", True)
        except UpstreamError as e:
            logger.error("Identity record deletion failed", user_id=user_id, error=e.detail)
            all_succeeded = False

        deletion.status = DELETION_DONE if all_succeeded else DELETION_FAILED
        self.db.commit()
        logger.info("User deletion finished", user_id=user_id, status=deletion.status)
        return user
