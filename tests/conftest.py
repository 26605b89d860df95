"""Pytest configuration and fixtures"""

import copy
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import uuid

# Settings are read at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from authgate.database.database import Base, get_db
from authgate.errors import ConflictError, InvalidCredentialsError, UnprocessableEntityError, UpstreamError
from authgate.main import app
from authgate.middleware.auth_middleware import get_cache, get_okta_client, get_user_resources_service
from authgate.security.jwt import create_microservice_token, create_token
from authgate.services.identity.user_adapter import User, convert_okta_user
from authgate.services.identity.user_service import UserService
from authgate.services.oauth.provider_factory import OAuthProviderFactory
from authgate.services.oauth.provider_interface import (
    OAuthProviderInterface,
    OAuthTokens,
    SocialProfile,
    TokenExchangeError,
    UserInfoError,
)
from authgate.services.user_resources_service import DeleteResourceResult

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

_SEARCH_ITEM = re.compile(r'profile\.(\w+) (eq|sw) "([^"]*)"')


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches_item(profile: Dict[str, Any], item: str) -> bool:
    match = _SEARCH_ITEM.search(item)
    if not match:
        raise ValueError(f"Unsupported search item: {item}")
    field_name, operator, value = match.groups()
    actual = profile.get(field_name)
    if isinstance(actual, list):
        return value in actual
    if actual is None:
        return False
    if operator == "eq":
        return str(actual) == value
    return str(actual).startswith(value)


def matches_search(profile: Dict[str, Any], search: Optional[str]) -> bool:
    """Evaluate the subset of Okta search syntax the user adapter produces"""
    if not search:
        return True
    for clause in search.split(" and "):
        if not any(_matches_item(profile, item) for item in clause.split(" or ")):
            return False
    return True


class FakeOktaClient:
    """In-memory stand-in for the Okta users API"""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.passwords: Dict[str, str] = {}
        self.calls: List[str] = []
        self.fail_deletes = False
        self.activated: List[str] = []
        self.recovery_tokens: Dict[str, str] = {}

    def add_user(
        self,
        email: str,
        legacy_id: Optional[str] = None,
        role: str = "USER",
        apps: Optional[List[str]] = None,
        provider: str = "local",
        provider_id: Optional[str] = None,
        name: Optional[str] = None,
        password: Optional[str] = None,
    ) -> User:
        okta_id = f"okta-{uuid.uuid4().hex[:12]}"
        self.users[okta_id] = {
            "id": okta_id,
            "created": _now_iso(),
            "lastUpdated": _now_iso(),
            "profile": {
                "email": email,
                "login": email,
                "displayName": name or email.split("@")[0],
                "legacyId": legacy_id or uuid.uuid4().hex,
                "role": role,
                "apps": list(apps if apps is not None else ["gfw"]),
                "provider": provider,
                "providerId": provider_id,
                "photo": None,
            },
        }
        if password:
            self.passwords[email] = password
        return convert_okta_user(copy.deepcopy(self.users[okta_id]))

    def find(self, legacy_id: str) -> Optional[Dict[str, Any]]:
        for okta_user in self.users.values():
            if okta_user["profile"]["legacyId"] == legacy_id:
                return okta_user
        return None

    async def get_user(self, email_or_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append("get_user")
        for okta_id, okta_user in self.users.items():
            if email_or_id in (okta_id, okta_user["profile"]["login"]):
                return copy.deepcopy(okta_user)
        return None

    async def list_users(self, search=None, limit=None, after=None, before=None):
        self.calls.append("list_users")
        matching = [u for u in self.users.values() if matches_search(u["profile"], search)]
        start = int(after) if after else 0
        end = start + limit if limit else len(matching)
        next_cursor = str(end) if end < len(matching) else None
        return copy.deepcopy(matching[start:end]), next_cursor

    async def create_user(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append("create_user")
        if any(u["profile"]["login"] == profile["email"] for u in self.users.values()):
            raise ConflictError("Email exists")
        user = self.add_user(
            email=profile["email"],
            role=profile.get("role") or "USER",
            apps=profile.get("apps") or [],
            provider=profile.get("provider", "local"),
            provider_id=profile.get("providerId"),
            name=profile.get("name"),
        )
        self.users[user.okta_id]["profile"]["photo"] = profile.get("photo")
        return copy.deepcopy(self.users[user.okta_id])

    async def update_user(self, okta_id: str, profile: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append("update_user")
        self.users[okta_id]["profile"].update(profile)
        self.users[okta_id]["lastUpdated"] = _now_iso()
        return copy.deepcopy(self.users[okta_id])

    async def delete_user(self, okta_id: str) -> None:
        self.calls.append("delete_user")
        if self.fail_deletes:
            raise UpstreamError("Identity provider error during delete user")
        self.users.pop(okta_id, None)

    async def authenticate(self, username: str, password: str) -> Dict[str, Any]:
        self.calls.append("authenticate")
        if self.passwords.get(username) != password:
            raise InvalidCredentialsError()
        okta_id = next(k for k, u in self.users.items() if u["profile"]["login"] == username)
        return {"status": "SUCCESS", "_embedded": {"user": {"id": okta_id}}}

    async def send_password_recovery(self, email: str) -> None:
        self.calls.append("send_password_recovery")
        if not any(u["profile"]["login"] == email for u in self.users.values()):
            raise UpstreamError("Identity provider error during password recovery")

    async def activate_user(self, okta_id: str) -> None:
        self.calls.append("activate_user")
        self.activated.append(okta_id)

    def issue_recovery_token(self, email: str) -> str:
        token = uuid.uuid4().hex
        self.recovery_tokens[token] = next(k for k, u in self.users.items() if u["profile"]["login"] == email)
        return token

    async def verify_recovery_token(self, recovery_token: str) -> str:
        self.calls.append("verify_recovery_token")
        if recovery_token not in self.recovery_tokens:
            raise UnprocessableEntityError("Token expired")
        return f"state-{recovery_token}"

    async def reset_password(self, state_token: str, new_password: str) -> Dict[str, Any]:
        self.calls.append("reset_password")
        okta_id = self.recovery_tokens.pop(state_token[len("state-"):])
        self.passwords[self.users[okta_id]["profile"]["login"]] = new_password
        return {"status": "SUCCESS", "_embedded": {"user": {"id": okta_id}}}

    async def close(self) -> None:
        pass


class FakeCache:
    """Dict backed stand-in for CacheService"""

    def __init__(self):
        self.data: Dict[str, Any] = {}

    async def get(self, key: str):
        value = self.data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value, ttl=None) -> None:
        self.data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def clear(self) -> None:
        self.data.clear()

    async def close(self) -> None:
        pass


class FakeUserResources:
    """Records downstream deletion calls; steps listed in failing report count -1"""

    def __init__(self):
        self.calls: List[tuple] = []
        self.failing: set = set()

    async def delete_resource(self, step, user_id: str) -> DeleteResourceResult:
        self.calls.append((step.name, user_id))
        if step.name in self.failing:
            return DeleteResourceResult(count=-1, error="boom")
        return DeleteResourceResult(count=1, deleted_data=[{"id": "1"}])

    async def close(self) -> None:
        pass


class FakeSocialProvider(OAuthProviderInterface):
    """Provider whose codes map to prepared profiles"""

    profiles: Dict[str, SocialProfile] = {}
    social_provider = None

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, scopes=None):
        super().__init__(
            provider=self.social_provider,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=scopes or ["email"],
        )

    def get_authorization_url(self, state: str) -> str:
        return f"https://provider.example.com/authorize?state={state}"

    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        if code not in self.profiles:
            raise TokenExchangeError("Invalid code", provider=self.provider_name)
        return OAuthTokens(access_token=code)

    async def get_social_profile(self, tokens: OAuthTokens) -> SocialProfile:
        if tokens.access_token not in self.profiles:
            raise UserInfoError("Invalid token", provider=self.provider_name)
        return self.profiles[tokens.access_token]


@pytest.fixture
def fake_provider():
    """
    Replace a registered social provider with FakeSocialProvider.

    Usage:
        provider_class = fake_provider(SocialProvider.GOOGLE)
        provider_class.profiles["code"] = SocialProfile(...)
    """
    replaced = {}

    def install(social_provider):
        name = social_provider.value
        replaced[name] = OAuthProviderFactory._providers.get(name)
        provider_class = type(
            f"Fake{name.title()}Provider",
            (FakeSocialProvider,),
            {"profiles": {}, "social_provider": social_provider},
        )
        OAuthProviderFactory.unregister(name)
        OAuthProviderFactory.register(name, provider_class)
        return provider_class

    yield install

    for name, original in replaced.items():
        OAuthProviderFactory.unregister(name)
        if original is not None:
            OAuthProviderFactory.register(name, original)


@pytest.fixture(scope="function")
def db():
    """Create a fresh in-memory database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def okta():
    return FakeOktaClient()


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def resources():
    return FakeUserResources()


@pytest.fixture
def user_service(okta, cache):
    return UserService(okta, cache)


@pytest.fixture(scope="function")
def client(db, okta, cache, resources):
    """Create a test client wired to the in-memory collaborators."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_okta_client] = lambda: okta
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_user_resources_service] = lambda: resources
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def token_for(user: User, now: Optional[datetime] = None) -> str:
    return create_token(user.to_claims(), now=now)


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def headers_for(user: User, now: Optional[datetime] = None) -> Dict[str, str]:
    return auth_headers(token_for(user, now))


@pytest.fixture
def microservice_headers():
    return auth_headers(create_microservice_token())
