"""Normalization of identity-provider user records"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

USER = "USER"
MANAGER = "MANAGER"
ADMIN = "ADMIN"
MICROSERVICE = "MICROSERVICE"
# Roles accepted by the ids-by-role lookup
LOOKUP_ROLES = ("SUPERADMIN", ADMIN, MANAGER, USER)

_SEARCHABLE_FIELDS = ("name", "provider", "email", "role", "apps", "id", "providerId")
_EXACT_MATCH_FIELDS = ("apps", "role", "provider", "id", "providerId")
_PROFILE_FIELD_NAMES = {
    "name": "profile.displayName",
    "id": "profile.legacyId",
}


@dataclass
class User:
    """A user as the rest of the system sees it, keyed by legacyId"""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str = USER
    provider: str = "local"
    provider_id: Optional[str] = None
    photo: Optional[str] = None
    apps: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    okta_id: Optional[str] = None

    @property
    def extra_user_data(self) -> Dict[str, List[str]]:
        return {"apps": list(self.apps)}

    def to_dict(self) -> Dict[str, Any]:
        """Public representation of the user"""
        return {
            "id": self.id,
            "_id": self.id,
            "email": self.email,
            "name": self.name,
            "photo": self.photo,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "role": self.role,
            "provider": self.provider,
            "extraUserData": self.extra_user_data,
        }

    def to_claims(self) -> Dict[str, Any]:
        """Claims embedded in a first-party token"""
        return {
            "id": self.id,
            "role": self.role,
            "provider": self.provider,
            "email": self.email,
            "extraUserData": self.extra_user_data,
            "photo": self.photo,
            "name": self.name,
        }


def convert_okta_user(okta_user: Dict[str, Any]) -> User:
    """Map an Okta user object onto a User"""
    profile = okta_user.get("profile") or {}
    return User(
        id=profile.get("legacyId"),
        email=profile.get("email"),
        name=profile.get("displayName"),
        role=profile.get("role") or USER,
        provider=profile.get("provider") or "local",
        provider_id=profile.get("providerId"),
        photo=profile.get("photo"),
        apps=list(profile.get("apps") or []),
        created_at=okta_user.get("created"),
        updated_at=okta_user.get("lastUpdated"),
        okta_id=okta_user.get("id"),
    )


def _profile_field_name(field_name: str) -> str:
    return _PROFILE_FIELD_NAMES.get(field_name, f"profile.{field_name}")


def _field_operator(field_name: str) -> str:
    return "eq" if field_name in _EXACT_MATCH_FIELDS else "sw"


def _any_of(field_name: str, values: Iterable[str]) -> str:
    clauses = [f'({_profile_field_name(field_name)} eq "{value}")' for value in values]
    if not clauses:
        return ""
    return f"({' or '.join(clauses)})"


def build_search_criteria(query: Dict[str, Any]) -> str:
    """
    Build an Okta search expression from a user query.

    Unknown keys are ignored. Apps and lists of values become or-groups,
    everything else a single comparison; clauses are and-ed together.
    """
    criteria = []
    for field_name in query:
        if field_name not in _SEARCHABLE_FIELDS:
            continue
        value = query[field_name]
        if value is None:
            continue
        if field_name == "apps" or isinstance(value, (list, tuple, set)):
            criteria.append(_any_of(field_name, value))
        else:
            operator = _field_operator(field_name)
            criteria.append(f'({_profile_field_name(field_name)} {operator} "{value}")')
    return " and ".join(clause for clause in criteria if clause)


def same_apps(left: Optional[Iterable[str]], right: Optional[Iterable[str]]) -> bool:
    """Order-insensitive comparison of two app lists"""
    return sorted(left or []) == sorted(right or [])
