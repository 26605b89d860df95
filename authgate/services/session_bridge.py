"""
Provider session bridge.

Runs the social login handshake:

    INITIATED -> AWAITING_CALLBACK -> RESOLVED | FAILED

Session state lives in the cache under oauth-session:{state} and the state
token travels in a cookie. A failed handshake is final: the caller has to
start again from initiate.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import hmac
import secrets
import time
import httpx
import structlog
from authgate.config import settings
from authgate.errors import AuthGateError, NotFoundError, ProviderAuthError
from authgate.security.jwt import create_token
from authgate.services.cache_service import CacheService
from authgate.services.identity.user_adapter import USER, User
from authgate.services.identity.user_service import UserService
from authgate.services.oauth.provider_factory import OAuthProviderFactory
from authgate.services.oauth.provider_interface import (
    OAuthProviderInterface,
    SocialProfile,
    SocialProvider,
)

logger = structlog.get_logger()

# Providers allowed to sign into an existing account registered with another provider
LINKABLE_PROVIDERS = frozenset({SocialProvider.FACEBOOK})


class SessionState(str, Enum):
    INITIATED = "INITIATED"
    AWAITING_CALLBACK = "AWAITING_CALLBACK"
    RESOLVED = "RESOLVED"
    FAILED = "FAILED"


def session_key(state: str) -> str:
    return f"oauth-session:{state}"


@dataclass
class ProviderSession:
    """Server-side state of one login handshake"""
    state: str
    provider: str
    status: SessionState = SessionState.INITIATED
    callback_url: Optional[str] = None
    origin: Optional[str] = None
    generate_token: bool = False
    applications: List[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderSession":
        return cls(**{**data, "status": SessionState(data["status"])})


@dataclass
class SessionOutcome:
    redirect_url: str
    token: Optional[str] = None
    user: Optional[User] = None


class ProviderSessionBridge:
    """Social login orchestration on top of the provider registry"""

    def __init__(
        self,
        user_service: UserService,
        cache: CacheService,
        session_ttl: int = settings.OAUTH_STATE_COOKIE_MAX_AGE,
        success_url: str = settings.SUCCESS_REDIRECT_URL,
        failure_url: str = settings.FAILURE_REDIRECT_URL,
    ):
        self.user_service = user_service
        self.cache = cache
        self.session_ttl = session_ttl
        self.success_url = success_url
        self.failure_url = failure_url

    @staticmethod
    def get_provider(provider_name: str) -> OAuthProviderInterface:
        if not OAuthProviderFactory.is_registered(provider_name):
            raise NotFoundError(f"Provider {provider_name} not found")
        return OAuthProviderFactory.create_from_settings(provider_name)

    async def _save(self, session: ProviderSession) -> None:
        await self.cache.set(session_key(session.state), session.to_dict(), ttl=self.session_ttl)

    async def initiate(
        self,
        provider_name: str,
        callback_url: Optional[str] = None,
        origin: Optional[str] = None,
        generate_token: bool = False,
        applications: Optional[List[str]] = None,
    ) -> Tuple[str, str]:
        """
        Start a handshake.

        Returns:
            Tuple of (authorization URL, state token for the cookie)
        """
        provider = self.get_provider(provider_name)
        session = ProviderSession(
            state=secrets.token_urlsafe(32),
            provider=provider_name,
            callback_url=callback_url,
            origin=origin or settings.DEFAULT_APP,
            generate_token=generate_token,
            applications=list(applications or []),
        )
        authorization_url = provider.get_authorization_url(session.state)
        session.status = SessionState.AWAITING_CALLBACK
        await self._save(session)
        logger.info("Social login initiated", provider=provider_name, origin=session.origin)
        return authorization_url, session.state

    async def complete(
        self,
        provider_name: str,
        code: Optional[str],
        state: Optional[str],
        cookie_state: Optional[str],
    ) -> SessionOutcome:
        """
        Finish a handshake from the provider callback.

        Every failure ends the session in FAILED and redirects to the
        failure URL.
        """
        if not state or not cookie_state or not hmac.compare_digest(cookie_state, state):
            logger.warning("Social login state mismatch", provider=provider_name)
            return SessionOutcome(redirect_url=self.failure_url)

        cached = await self.cache.get(session_key(state))
        session = ProviderSession.from_dict(cached) if cached else None
        if (
            session is None
            or session.status is not SessionState.AWAITING_CALLBACK
            or session.provider != provider_name
        ):
            logger.warning("Social login session not awaiting callback", provider=provider_name)
            return SessionOutcome(redirect_url=self.failure_url)

        try:
            if not code:
                raise ProviderAuthError("Missing authorization code", provider=provider_name)
            provider = self.get_provider(provider_name)
            tokens = await provider.exchange_code_for_tokens(code)
            profile = await provider.get_social_profile(tokens)
            user = await self.resolve_or_create(profile)
            user = await self._merge_applications(user, session.applications)
        except AuthGateError as e:
            session.status = SessionState.FAILED
            await self._save(session)
            logger.warning("Social login failed", provider=provider_name, error=e.detail)
            return SessionOutcome(redirect_url=self.failure_url)

        token = create_token(user.to_claims())
        session.status = SessionState.RESOLVED
        session.user_id = user.id
        await self._save(session)
        logger.info("Social login resolved", provider=provider_name, user_id=user.id)
        return SessionOutcome(redirect_url=self._success_redirect(session, token), token=token, user=user)

    def _success_redirect(self, session: ProviderSession, token: str) -> str:
        if not session.callback_url:
            return self.success_url
        # Facebook appends an empty fragment to its redirects
        callback_url = session.callback_url.replace("#_=_", "")
        if session.generate_token:
            return str(httpx.URL(callback_url).copy_set_param("token", token))
        return callback_url

    async def login_with_provider_token(self, provider_name: str, access_token: str) -> Tuple[str, User]:
        """
        Log in with a token the client already obtained from the provider.

        Returns:
            Tuple of (first-party token, user)
        """
        provider = self.get_provider(provider_name)
        profile = await provider.get_social_profile(provider.tokens_from_access_token(access_token))
        user = await self.resolve_or_create(profile)
        return create_token(user.to_claims()), user

    async def resolve_or_create(self, profile: SocialProfile) -> User:
        """
        Find the user behind a social profile, creating one when needed.

        Lookup goes by provider id, then by email. An account found by email
        that was registered with another provider is only reused for
        providers in LINKABLE_PROVIDERS.

        Raises:
            ProviderAuthError: If the profile has no email or the account
                cannot be linked
        """
        provider_name = profile.provider.value
        user = await self.user_service.find_by_provider(provider_name, profile.provider_id)
        if user is not None:
            if profile.email and profile.email != user.email:
                user = await self.user_service.update_user(
                    user.id, {"email": profile.email, "login": profile.email}
                )
            return user

        if not profile.email:
            raise ProviderAuthError(
                f"No email address was provided by {provider_name}", provider=provider_name
            )

        user = await self.user_service.get_user_by_email(profile.email)
        if user is not None:
            if user.provider == provider_name or profile.provider in LINKABLE_PROVIDERS:
                logger.info("Social login linked to existing account", provider=provider_name, user_id=user.id)
                return user
            raise ProviderAuthError(
                f"This email is already registered with {user.provider}", provider=provider_name
            )

        return await self.user_service.create_user({
            "email": profile.email,
            "name": profile.display_name,
            "photo": profile.photo,
            "provider": provider_name,
            "providerId": profile.provider_id,
            "role": USER,
            "apps": [],
        })

    async def _merge_applications(self, user: User, applications: List[str]) -> User:
        if not applications or user.role != USER:
            return user
        return await self.user_service.update_applications_for_user(user.id, applications)
