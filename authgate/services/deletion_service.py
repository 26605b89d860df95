"""Deletion record service"""

from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
import structlog
from authgate.database.models import DELETION_FLAGS, DELETION_STATUSES, Deletion, is_valid_id
from authgate.errors import DeletionAlreadyExistsError, DeletionNotFoundError, ValidationError

logger = structlog.get_logger()

_FILTER_COLUMNS = {
    "userId": Deletion.user_id,
    "requestorUserId": Deletion.requestor_user_id,
    "status": Deletion.status,
}


class DeletionService:
    """Deletion audit record management"""

    @staticmethod
    def get_deletion(db: Session, deletion_id: str) -> Deletion:
        if not is_valid_id(deletion_id):
            raise DeletionNotFoundError()
        deletion = db.query(Deletion).filter(Deletion.id == deletion_id).first()
        if not deletion:
            raise DeletionNotFoundError()
        return deletion

    @staticmethod
    def get_deletion_by_user_id(db: Session, user_id: str) -> Optional[Deletion]:
        return db.query(Deletion).filter(Deletion.user_id == user_id).first()

    @staticmethod
    def list_deletions(
        db: Session,
        filters: Dict[str, Any],
        page_number: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Deletion], int]:
        query = db.query(Deletion)
        for name, value in filters.items():
            if name in _FILTER_COLUMNS and value is not None:
                query = query.filter(_FILTER_COLUMNS[name] == value)

        total = query.count()
        deletions = (
            query.order_by(Deletion.created_at.desc(), Deletion.id)
            .offset((page_number - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return deletions, total

    @staticmethod
    def create_deletion(
        db: Session,
        user_id: str,
        requestor_user_id: str,
        flags: Optional[Dict[str, bool]] = None,
    ) -> Deletion:
        """
        Open a deletion record for a user.

        Raises:
            DeletionAlreadyExistsError: If the user already has one
        """
        if DeletionService.get_deletion_by_user_id(db, user_id) is not None:
            raise DeletionAlreadyExistsError()

        deletion = Deletion(user_id=user_id, requestor_user_id=requestor_user_id)
        for flag, value in (flags or {}).items():
            deletion.set_flag(flag, bool(value))
        db.add(deletion)
        db.commit()
        db.refresh(deletion)
        logger.info("Deletion created", deletion_id=deletion.id, user_id=user_id)
        return deletion

    @staticmethod
    def update_deletion(db: Session, deletion_id: str, changes: Dict[str, Any]) -> Deletion:
        deletion = DeletionService.get_deletion(db, deletion_id)
        for name, value in changes.items():
            if name == "status":
                if value not in DELETION_STATUSES:
                    raise ValidationError(f'"status" must be one of [{", ".join(DELETION_STATUSES)}]')
                deletion.status = value
            elif name in DELETION_FLAGS:
                deletion.set_flag(name, bool(value))
        db.commit()
        db.refresh(deletion)
        return deletion

    @staticmethod
    def delete_deletion(db: Session, deletion: Deletion) -> None:
        deletion_id = deletion.id
        db.delete(deletion)
        db.commit()
        logger.info("Deletion removed", deletion_id=deletion_id)
