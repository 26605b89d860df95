"""Application routes"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, model_validator
from sqlalchemy.orm import Session
from authgate.api.serializers import PageParams, application_resource, serialize_list
from authgate.database.database import get_db
from authgate.middleware.auth_middleware import get_current_user, get_resolver, get_user_service
from authgate.services.application_service import ApplicationService
from authgate.services.authorization import AuthorizationResolver, Intent, ResourceKind
from authgate.services.identity.user_service import UserService

router = APIRouter()


class ApplicationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    user: Optional[str] = None
    organization: Optional[str] = None

    @model_validator(mode="after")
    def check_single_link(self):
        if self.user is not None and self.organization is not None:
            raise ValueError('"value" contains a conflict between exclusive peers [user, organization]')
        return self


class ApplicationUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    user: Optional[str] = None
    organization: Optional[str] = None
    regenApiKey: Optional[bool] = None

    @model_validator(mode="after")
    def check_single_link(self):
        if {"user", "organization"} <= self.model_fields_set:
            raise ValueError('"value" contains a conflict between optional exclusive peers [user, organization]')
        return self


async def _serialize(application, user_service: UserService) -> Dict[str, Any]:
    owner = await user_service.get_user_by_id(application.user_id) if application.user_id else None
    return {"data": application_resource(application, owner.name if owner else None)}


@router.get("")
async def list_applications(
    request: Request,
    page: PageParams = Depends(),
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    user_service: UserService = Depends(get_user_service),
    db: Session = Depends(get_db),
):
    """List the applications visible to the caller"""
    visible_ids = resolver.visible_application_ids(caller)
    applications, total = ApplicationService.list_applications(db, visible_ids, page.number, page.size)

    owner_ids = {application.user_id for application in applications if application.user_id}
    owners = {user.id: user.name for user in await user_service.get_users_by_ids(owner_ids)}
    resources = [application_resource(a, owners.get(a.user_id)) for a in applications]
    return serialize_list(request, resources, page, total)


@router.get("/{application_id}")
async def get_application(
    application_id: str,
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    user_service: UserService = Depends(get_user_service),
    db: Session = Depends(get_db),
):
    resolver.authorize(caller, ResourceKind.APPLICATION, Intent.READ, application_id)
    application = ApplicationService.get_application(db, application_id)
    return await _serialize(application, user_service)


@router.post("")
async def create_application(
    body: ApplicationCreate,
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    user_service: UserService = Depends(get_user_service),
    db: Session = Depends(get_db),
):
    """Create an application for a user or an organization, defaulting to the caller"""
    user_id = body.user
    if user_id is None and body.organization is None and caller:
        user_id = caller.get("id")
    resolver.authorize_application_target(caller, user_id, body.organization)

    application = ApplicationService.create_application(db, body.name, user_id, body.organization)
    return await _serialize(application, user_service)


@router.patch("/{application_id}")
async def update_application(
    application_id: str,
    body: ApplicationUpdate,
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    user_service: UserService = Depends(get_user_service),
    db: Session = Depends(get_db),
):
    resolver.authorize(caller, ResourceKind.APPLICATION, Intent.WRITE, application_id)
    changes = body.model_dump(exclude_unset=True, exclude={"regenApiKey"})
    if "user" in changes or "organization" in changes:
        resolver.authorize_application_target(caller, changes.get("user"), changes.get("organization"))

    application = ApplicationService.update_application(
        db, application_id, changes, regen_api_key=bool(body.regenApiKey)
    )
    return await _serialize(application, user_service)


@router.delete("/{application_id}")
async def delete_application(
    application_id: str,
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    user_service: UserService = Depends(get_user_service),
    db: Session = Depends(get_db),
):
    resolver.authorize(caller, ResourceKind.APPLICATION, Intent.DELETE, application_id)
    application = ApplicationService.get_application(db, application_id)
    response = await _serialize(application, user_service)
    ApplicationService.delete_application(db, application)
    return response
