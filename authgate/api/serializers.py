"""JSON:API serialization and pagination helpers"""

from datetime import datetime
from math import ceil
from typing import Any, Dict, List, Optional
from fastapi import Query, Request
from authgate.database.models import Application, Deletion, Organization
from authgate.services.identity.user_adapter import User

MAX_PAGE_SIZE = 100


class PageParams:
    """Offset pagination parameters page[number] and page[size]"""

    def __init__(
        self,
        number: int = Query(1, alias="page[number]", ge=1),
        size: int = Query(10, alias="page[size]", ge=1, le=MAX_PAGE_SIZE),
    ):
        self.number = number
        self.size = size


class CursorParams:
    """Cursor pagination parameters page[after] and page[before]"""

    def __init__(
        self,
        after: Optional[str] = Query(None, alias="page[after]"),
        before: Optional[str] = Query(None, alias="page[before]"),
    ):
        self.after = after
        self.before = before


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _page_url(request: Request, number: int, size: int) -> str:
    return str(request.url.include_query_params(**{"page[number]": number, "page[size]": size}))


def serialize_list(
    request: Request,
    resources: List[Dict[str, Any]],
    page: PageParams,
    total: int,
) -> Dict[str, Any]:
    """Wrap serialized resources with offset pagination links and meta"""
    total_pages = max(ceil(total / page.size), 1)
    return {
        "data": resources,
        "links": {
            "self": _page_url(request, page.number, page.size),
            "first": _page_url(request, 1, page.size),
            "last": _page_url(request, total_pages, page.size),
            "prev": _page_url(request, max(page.number - 1, 1), page.size),
            "next": _page_url(request, min(page.number + 1, total_pages), page.size),
        },
        "meta": {
            "total-pages": total_pages,
            "total-items": total,
            "size": page.size,
        },
    }


def application_resource(application: Application, user_name: Optional[str] = None) -> Dict[str, Any]:
    organization = application.organization
    user_id = application.user_id
    return {
        "id": application.id,
        "type": "application",
        "attributes": {
            "name": application.name,
            "organization": {"id": organization.id, "name": organization.name} if organization else None,
            "user": {"id": user_id, "name": user_name} if user_id else None,
            "apiKeyValue": application.api_key_value,
            "createdAt": _timestamp(application.created_at),
            "updatedAt": _timestamp(application.updated_at),
        },
    }


def organization_resource(organization: Organization) -> Dict[str, Any]:
    return {
        "id": organization.id,
        "type": "organization",
        "attributes": {
            "name": organization.name,
            "applications": [
                {"id": application.id, "name": application.name}
                for application in organization.applications
            ],
            "users": [
                {"id": membership.user_id, "role": membership.role}
                for membership in organization.memberships
            ],
            "createdAt": _timestamp(organization.created_at),
            "updatedAt": _timestamp(organization.updated_at),
        },
    }


def deletion_resource(deletion: Deletion) -> Dict[str, Any]:
    return {
        "id": deletion.id,
        "type": "deletion",
        "attributes": {
            "userId": deletion.user_id,
            "requestorUserId": deletion.requestor_user_id,
            "status": deletion.status,
            **deletion.flags(),
            "createdAt": _timestamp(deletion.created_at),
            "updatedAt": _timestamp(deletion.updated_at),
        },
    }


def serialize_user(user: User) -> Dict[str, Any]:
    return {"data": user.to_dict()}


def serialize_user_list(
    request: Request,
    users: List[User],
    size: int,
    next_cursor: Optional[str] = None,
    page_number: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Users are listed from Okta cursors, so the total is unknown. Offset
    listings link by page number, cursor listings by the next cursor.
    """
    if page_number is not None:
        links = {
            "self": _page_url(request, page_number, size),
            "first": _page_url(request, 1, size),
            "prev": _page_url(request, max(page_number - 1, 1), size),
            "next": _page_url(request, page_number + 1 if next_cursor else page_number, size),
        }
    else:
        first = request.url.remove_query_params(["page[after]", "page[before]"])
        links = {
            "self": str(request.url),
            "first": str(first),
            "next": str(first.include_query_params(**{"page[after]": next_cursor})) if next_cursor else None,
        }
    return {
        "data": [user.to_dict() for user in users],
        "links": links,
        "meta": {"size": size},
    }
