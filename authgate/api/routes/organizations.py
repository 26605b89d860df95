"""Organization routes"""

from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.orm import Session
from authgate.api.serializers import PageParams, organization_resource, serialize_list
from authgate.database.database import get_db
from authgate.database.models import ORG_ADMIN
from authgate.middleware.auth_middleware import get_current_user, get_resolver
from authgate.services.authorization import AuthorizationResolver, Intent, ResourceKind
from authgate.services.organization_service import OrganizationService

router = APIRouter()


class OrganizationMember(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    role: Literal["ORG_ADMIN", "ORG_MEMBER"]


def _validate_members(users: Optional[List[OrganizationMember]]) -> Optional[List[OrganizationMember]]:
    if users is not None and not any(user.role == ORG_ADMIN for user in users):
        raise ValueError('"users" must contain a user with role ORG_ADMIN')
    return users


class OrganizationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    applications: Optional[List[str]] = None
    users: List[OrganizationMember]

    @field_validator("users")
    @classmethod
    def validate_users(cls, v):
        return _validate_members(v)


class OrganizationUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    applications: Optional[List[str]] = None
    users: Optional[List[OrganizationMember]] = None

    @field_validator("users")
    @classmethod
    def validate_users(cls, v):
        return _validate_members(v)


@router.get("")
async def list_organizations(
    request: Request,
    page: PageParams = Depends(),
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    resolver.authorize(caller, ResourceKind.ORGANIZATION, Intent.LIST)
    organizations, total = OrganizationService.list_organizations(db, page.number, page.size)
    return serialize_list(request, [organization_resource(o) for o in organizations], page, total)


@router.get("/{organization_id}")
async def get_organization(
    organization_id: str,
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    resolver.authorize(caller, ResourceKind.ORGANIZATION, Intent.READ, organization_id)
    organization = OrganizationService.get_organization(db, organization_id)
    return {"data": organization_resource(organization)}


@router.post("")
async def create_organization(
    body: OrganizationCreate,
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    resolver.authorize(caller, ResourceKind.ORGANIZATION, Intent.CREATE)
    organization = OrganizationService.create_organization(
        db,
        body.name,
        applications=body.applications,
        users=[user.model_dump() for user in body.users],
    )
    return {"data": organization_resource(organization)}


@router.patch("/{organization_id}")
async def update_organization(
    organization_id: str,
    body: OrganizationUpdate,
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    resolver.authorize(caller, ResourceKind.ORGANIZATION, Intent.WRITE, organization_id)
    changes = body.model_dump(exclude_unset=True)
    organization = OrganizationService.update_organization(db, organization_id, changes)
    return {"data": organization_resource(organization)}


@router.delete("/{organization_id}")
async def delete_organization(
    organization_id: str,
    caller: Optional[dict] = Depends(get_current_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    """Delete an organization that has no applications left"""
    resolver.authorize(caller, ResourceKind.ORGANIZATION, Intent.DELETE, organization_id)
    organization = OrganizationService.get_organization(db, organization_id)
    response = {"data": organization_resource(organization)}
    OrganizationService.delete_organization(db, organization_id)
    return response
