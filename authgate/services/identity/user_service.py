"""
User service.

Reads go through the identity cache keyed by legacyId. update_user and
delete_user are the only paths that mutate a user in Okta, and both evict
the cached identity before returning.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
import structlog
from authgate.errors import InvalidCredentialsError, UnprocessableEntityError, UserNotFoundError
from authgate.services.cache_service import CacheService, identity_key
from authgate.services.identity.okta_client import OktaClient
from authgate.services.identity.user_adapter import (
    ADMIN,
    LOOKUP_ROLES,
    User,
    build_search_criteria,
    convert_okta_user,
)

logger = structlog.get_logger()

MAX_LOOKUP_SIZE = 100


@dataclass
class UserPage:
    """One page of users from Okta"""
    users: List[User]
    size: int
    page_number: Optional[int] = None
    next_cursor: Optional[str] = None
    filters: Dict[str, Any] = field(default_factory=dict)


def build_profile_update(data: Dict[str, Any], requester_role: Optional[str]) -> Dict[str, Any]:
    """
    Translate a user update body into Okta profile fields.

    Name and photo are always editable; role and apps only by an ADMIN.
    """
    profile: Dict[str, Any] = {}
    if data.get("name"):
        profile["displayName"] = data["name"]
    if "photo" in data:
        profile["photo"] = data["photo"]

    if requester_role == ADMIN:
        if data.get("role"):
            profile["role"] = data["role"]
        apps = (data.get("extraUserData") or {}).get("apps")
        if apps is not None:
            profile["apps"] = list(apps)
    return profile


class UserService:
    """Okta-backed user lookups and mutations with an identity cache"""

    def __init__(self, okta: OktaClient, cache: CacheService):
        self.okta = okta
        self.cache = cache

    async def _get_okta_user(self, legacy_id: str) -> Optional[Dict[str, Any]]:
        key = identity_key(legacy_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        okta_users, _ = await self.okta.list_users(search=build_search_criteria({"id": legacy_id}), limit=1)
        if not okta_users:
            return None
        await self.cache.set(key, okta_users[0])
        return okta_users[0]

    async def get_user_by_id(self, legacy_id: str) -> Optional[User]:
        okta_user = await self._get_okta_user(legacy_id)
        return convert_okta_user(okta_user) if okta_user else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Look a user up by login, refreshing the identity cache on a hit"""
        okta_user = await self.okta.get_user(email)
        if okta_user is None:
            return None
        user = convert_okta_user(okta_user)
        await self.cache.set(identity_key(user.id), okta_user)
        return user

    async def get_users_by_ids(self, ids: Iterable[str]) -> List[User]:
        ids = [legacy_id for legacy_id in ids if legacy_id]
        if not ids:
            return []
        okta_users, _ = await self.okta.list_users(
            search=build_search_criteria({"id": ids}), limit=MAX_LOOKUP_SIZE
        )
        return [convert_okta_user(okta_user) for okta_user in okta_users]

    async def get_ids_by_role(self, role: str) -> List[str]:
        if role not in LOOKUP_ROLES:
            raise UnprocessableEntityError(f"Invalid role {role} provided")
        okta_users, _ = await self.okta.list_users(
            search=build_search_criteria({"role": role}), limit=MAX_LOOKUP_SIZE
        )
        return [convert_okta_user(okta_user).id for okta_user in okta_users]

    async def find_by_provider(self, provider: str, provider_id: str) -> Optional[User]:
        okta_users, _ = await self.okta.list_users(
            search=build_search_criteria({"provider": provider, "providerId": provider_id}), limit=1
        )
        return convert_okta_user(okta_users[0]) if okta_users else None

    async def list_users(
        self,
        apps: Optional[List[str]],
        filters: Dict[str, Any],
        page_size: int = 10,
        page_number: int = 1,
        after: Optional[str] = None,
        before: Optional[str] = None,
        strategy: str = "offset",
    ) -> UserPage:
        """
        List users visible for the given apps.

        The cursor strategy maps straight onto Okta's cursors. The offset
        strategy walks cursors from the first page to simulate page numbers.
        """
        search = build_search_criteria({**filters, "apps": apps})

        if strategy == "cursor":
            okta_users, next_cursor = await self.okta.list_users(search, page_size, after, before)
            return UserPage(
                users=[convert_okta_user(u) for u in okta_users],
                size=page_size,
                next_cursor=next_cursor,
                filters=filters,
            )

        cursor = None
        for _ in range(page_number - 1):
            _, cursor = await self.okta.list_users(search, page_size, cursor)
            if cursor is None:
                return UserPage(users=[], size=page_size, page_number=page_number, filters=filters)

        okta_users, next_cursor = await self.okta.list_users(search, page_size, cursor)
        return UserPage(
            users=[convert_okta_user(u) for u in okta_users],
            size=page_size,
            page_number=page_number,
            next_cursor=next_cursor,
            filters=filters,
        )

    async def create_user(self, data: Dict[str, Any], send_activation: bool = False) -> User:
        """
        Create a user in Okta.

        Users with a local login get an activation email from Okta so they
        can choose a password; social users stay staged.
        """
        okta_user = await self.okta.create_user(data)
        user = convert_okta_user(okta_user)
        if send_activation:
            await self.okta.activate_user(okta_user["id"])
        logger.info(
            "User created", user_id=user.id, provider=user.provider, activated=send_activation
        )
        return user

    async def sign_up(self, email: str, name: Optional[str] = None) -> User:
        """Self-service sign up: a local USER without apps, activated by email"""
        return await self.create_user(
            {"email": email, "name": name, "provider": "local", "role": "USER", "apps": []},
            send_activation=True,
        )

    async def update_user(self, legacy_id: str, profile: Dict[str, Any]) -> User:
        """
        Apply profile changes in Okta and evict the cached identity.

        Raises:
            UserNotFoundError: If no user has this legacyId
        """
        okta_user = await self._get_okta_user(legacy_id)
        if okta_user is None:
            raise UserNotFoundError()

        updated = await self.okta.update_user(okta_user["id"], profile)
        await self.cache.delete(identity_key(legacy_id))
        logger.info("User updated", user_id=legacy_id, fields=sorted(profile))
        return convert_okta_user(updated)

    async def delete_user(self, legacy_id: str) -> User:
        """
        Delete the user in Okta and evict the cached identity.

        Raises:
            UserNotFoundError: If no user has this legacyId
        """
        okta_user = await self._get_okta_user(legacy_id)
        if okta_user is None:
            raise UserNotFoundError()

        await self.okta.delete_user(okta_user["id"])
        await self.cache.delete(identity_key(legacy_id))
        logger.info("User deleted", user_id=legacy_id)
        return convert_okta_user(okta_user)

    async def login(self, email: str, password: str) -> User:
        """
        Password login through Okta.

        Raises:
            InvalidCredentialsError: For any failure, never telling apart a
                wrong password from an unknown email
        """
        result = await self.okta.authenticate(email, password)
        okta_id = ((result.get("_embedded") or {}).get("user") or {}).get("id")
        okta_user = await self.okta.get_user(okta_id) if okta_id else None
        if okta_user is None:
            raise InvalidCredentialsError()
        user = convert_okta_user(okta_user)
        await self.cache.set(identity_key(user.id), okta_user)
        return user

    async def send_password_recovery(self, email: str) -> None:
        await self.okta.send_password_recovery(email)

    async def reset_password(self, recovery_token: str, password: str) -> User:
        """
        Finish a password recovery started from the recovery email.

        Raises:
            UnprocessableEntityError: If the token expired or Okta refuses the password
        """
        state_token = await self.okta.verify_recovery_token(recovery_token)
        result = await self.okta.reset_password(state_token, password)
        okta_id = ((result.get("_embedded") or {}).get("user") or {}).get("id")
        okta_user = await self.okta.get_user(okta_id) if okta_id else None
        if okta_user is None:
            raise UserNotFoundError()
        user = convert_okta_user(okta_user)
        await self.cache.delete(identity_key(user.id))
        logger.info("Password reset", user_id=user.id)
        return user

    async def update_applications_for_user(self, legacy_id: str, applications: Iterable[str]) -> User:
        """Add applications (lower-cased) to the apps of a user"""
        user = await self.get_user_by_id(legacy_id)
        if user is None:
            raise UserNotFoundError()

        apps = list(user.apps)
        for app in applications:
            if app.lower() not in apps:
                apps.append(app.lower())
        if apps == user.apps:
            return user
        return await self.update_user(legacy_id, {"apps": apps})
