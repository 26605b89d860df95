"""Deletion record routes (ADMIN only)"""

from typing import Literal, Optional
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session
from authgate.api.serializers import PageParams, deletion_resource, serialize_list
from authgate.database.database import get_db
from authgate.middleware.auth_middleware import require_roles
from authgate.services.deletion_service import DeletionService

router = APIRouter()

require_admin = require_roles("ADMIN")

DeletionStatus = Literal["pending", "done", "failed"]


class DeletionFlags(BaseModel):
    model_config = ConfigDict(extra="forbid")

    datasetsDeleted: Optional[bool] = None
    layersDeleted: Optional[bool] = None
    widgetsDeleted: Optional[bool] = None
    userAccountDeleted: Optional[bool] = None
    userDataDeleted: Optional[bool] = None
    graphDataDeleted: Optional[bool] = None
    collectionsDeleted: Optional[bool] = None
    favouritesDeleted: Optional[bool] = None
    vocabulariesDeleted: Optional[bool] = None
    areasDeleted: Optional[bool] = None
    applicationsDeleted: Optional[bool] = None
    storiesDeleted: Optional[bool] = None
    subscriptionsDeleted: Optional[bool] = None
    dashboardsDeleted: Optional[bool] = None
    profilesDeleted: Optional[bool] = None
    topicsDeleted: Optional[bool] = None


class DeletionCreate(DeletionFlags):
    userId: Optional[str] = None


class DeletionUpdate(DeletionFlags):
    status: Optional[DeletionStatus] = None


@router.get("")
async def list_deletions(
    request: Request,
    page: PageParams = Depends(),
    user_id: Optional[str] = Query(None, alias="userId"),
    requestor_user_id: Optional[str] = Query(None, alias="requestorUserId"),
    status: Optional[DeletionStatus] = Query(None),
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    filters = {"userId": user_id, "requestorUserId": requestor_user_id, "status": status}
    deletions, total = DeletionService.list_deletions(db, filters, page.number, page.size)
    return serialize_list(request, [deletion_resource(d) for d in deletions], page, total)


@router.get("/{deletion_id}")
async def get_deletion(
    deletion_id: str,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {"data": deletion_resource(DeletionService.get_deletion(db, deletion_id))}


@router.post("")
async def create_deletion(
    body: DeletionCreate,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Open a deletion record, for the requesting user unless userId is given"""
    flags = body.model_dump(exclude_none=True, exclude={"userId"})
    deletion = DeletionService.create_deletion(
        db,
        user_id=body.userId or admin["id"],
        requestor_user_id=admin["id"],
        flags=flags,
    )
    return {"data": deletion_resource(deletion)}


@router.patch("/{deletion_id}")
async def update_deletion(
    deletion_id: str,
    body: DeletionUpdate,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    deletion = DeletionService.update_deletion(db, deletion_id, body.model_dump(exclude_none=True))
    return {"data": deletion_resource(deletion)}


@router.delete("/{deletion_id}")
async def delete_deletion(
    deletion_id: str,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    deletion = DeletionService.get_deletion(db, deletion_id)
    response = {"data": deletion_resource(deletion)}
    DeletionService.delete_deletion(db, deletion)
    return response
