"""Google OAuth Provider"""

from typing import Optional
from urllib.parse import urlencode
from .provider_interface import (
    OAuthProviderInterface,
    OAuthTokens,
    SocialProfile,
    SocialProvider,
    TokenExchangeError,
)


class GoogleOAuthProvider(OAuthProviderInterface):
    """
    Google OAuth 2.0 provider.

    References:
    - https://developers.google.com/identity/protocols/oauth2/web-server
    """

    AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USER_INFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

    DEFAULT_SCOPES = [
        "openid",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
    ]

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 scopes: Optional[list[str]] = None):
        super().__init__(
            provider=SocialProvider.GOOGLE,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=scopes or self.DEFAULT_SCOPES,
        )

    def get_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        token_data = await self._request_json(
            "POST",
            self.TOKEN_URL,
            error_class=TokenExchangeError,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        return OAuthTokens(
            access_token=self._required(token_data, "access_token", TokenExchangeError),
            refresh_token=token_data.get("refresh_token"),
            expires_in=token_data.get("expires_in"),
            token_type=token_data.get("token_type", "Bearer"),
            id_token=token_data.get("id_token"),
        )

    async def get_social_profile(self, tokens: OAuthTokens) -> SocialProfile:
        user_data = await self._request_json(
            "GET",
            self.USER_INFO_URL,
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        return SocialProfile(
            provider=self.provider,
            provider_id=str(self._required(user_data, "id")),
            email=user_data.get("email"),
            display_name=user_data.get("name"),
            photo=user_data.get("picture"),
        )
