"""Social login provider interface"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
import httpx
import structlog
from authgate.errors import ProviderAuthError

logger = structlog.get_logger()


class SocialProvider(str, Enum):
    GOOGLE = "google"
    FACEBOOK = "facebook"
    APPLE = "apple"
    TWITTER = "twitter"


@dataclass(frozen=True)
class SocialProfile:
    """Verified identity returned by a social provider, tagged with its provider"""
    provider: SocialProvider
    provider_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo: Optional[str] = None


@dataclass
class OAuthTokens:
    """OAuth tokens from provider"""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "Bearer"
    id_token: Optional[str] = None


class TokenExchangeError(ProviderAuthError):
    """The provider refused the authorization code"""


class UserInfoError(ProviderAuthError):
    """The provider refused to return the profile"""


class OAuthProviderInterface(ABC):
    """
    Base class for social login providers.

    A provider knows how to send the user to the consent screen, how to trade
    the returned code for tokens and how to turn those tokens into a
    SocialProfile. Any non-2xx answer from the provider is a ProviderAuthError.
    """

    def __init__(self, provider: SocialProvider, client_id: str, client_secret: str,
                 redirect_uri: str, scopes: list[str]):
        self.provider = provider
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes

    @property
    def provider_name(self) -> str:
        return self.provider.value

    @abstractmethod
    def get_authorization_url(self, state: str) -> str:
        """
        Generate the authorization URL for the consent screen.

        Args:
            state: CSRF protection token
        """

    @abstractmethod
    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        """
        Exchange authorization code for access tokens.

        Raises:
            TokenExchangeError: If the provider rejects the code
        """

    @abstractmethod
    async def get_social_profile(self, tokens: OAuthTokens) -> SocialProfile:
        """
        Fetch the verified profile of the token holder.

        Raises:
            UserInfoError: If the provider rejects the token
        """

    def tokens_from_access_token(self, access_token: str) -> OAuthTokens:
        """Wrap a client-supplied access token for get_social_profile"""
        return OAuthTokens(access_token=access_token)

    async def _request_json(
        self,
        method: str,
        url: str,
        error_class: type = UserInfoError,
        **kwargs,
    ) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Provider request rejected",
                provider=self.provider_name,
                status_code=e.response.status_code,
                error=e.response.text,
            )
            raise error_class(
                f"Authentication with {self.provider_name} failed",
                provider=self.provider_name,
                details={"status_code": e.response.status_code},
            )
        except (httpx.RequestError, ValueError) as e:
            logger.warning("Provider request failed", provider=self.provider_name, error=str(e))
            raise error_class(
                f"Authentication with {self.provider_name} failed",
                provider=self.provider_name,
                details={"error": str(e)},
            )
        if not isinstance(data, dict):
            logger.warning("Provider reply is not an object", provider=self.provider_name)
            raise error_class(
                f"Authentication with {self.provider_name} failed",
                provider=self.provider_name,
            )
        return data

    def _required(self, data: Dict[str, Any], key: str, error_class: type = UserInfoError) -> Any:
        """Value of a field the provider must send; a reply without it is a failed handshake"""
        value = data.get(key)
        if value is None or value == "":
            logger.warning("Provider reply missing field", provider=self.provider_name, field=key)
            raise error_class(
                f"Authentication with {self.provider_name} failed",
                provider=self.provider_name,
                details={"missing": key},
            )
        return value
