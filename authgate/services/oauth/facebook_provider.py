"""Facebook OAuth Provider"""

from typing import Optional
from urllib.parse import urlencode
from .provider_interface import (
    OAuthProviderInterface,
    OAuthTokens,
    SocialProfile,
    SocialProvider,
    TokenExchangeError,
)


class FacebookOAuthProvider(OAuthProviderInterface):
    """
    Facebook Login provider on the Graph API.

    References:
    - https://developers.facebook.com/docs/facebook-login/guides/advanced/manual-flow
    """

    GRAPH_VERSION = "v19.0"
    AUTHORIZATION_URL = f"https://www.facebook.com/{GRAPH_VERSION}/dialog/oauth"
    TOKEN_URL = f"https://graph.facebook.com/{GRAPH_VERSION}/oauth/access_token"
    USER_INFO_URL = f"https://graph.facebook.com/{GRAPH_VERSION}/me"

    DEFAULT_SCOPES = ["email", "public_profile"]
    PROFILE_FIELDS = "id,name,email,picture.type(large)"

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 scopes: Optional[list[str]] = None):
        super().__init__(
            provider=SocialProvider.FACEBOOK,
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
            "scope": ",".join(self.scopes),
            "state": state,
        }
        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        token_data = await self._request_json(
            "GET",
            self.TOKEN_URL,
            error_class=TokenExchangeError,
            params={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "code": code,
            },
        )
        return OAuthTokens(
            access_token=self._required(token_data, "access_token", TokenExchangeError),
            expires_in=token_data.get("expires_in"),
            token_type=token_data.get("token_type", "Bearer"),
        )

    async def get_social_profile(self, tokens: OAuthTokens) -> SocialProfile:
        user_data = await self._request_json(
            "GET",
            self.USER_INFO_URL,
            params={"fields": self.PROFILE_FIELDS, "access_token": tokens.access_token},
        )
        picture = ((user_data.get("picture") or {}).get("data") or {}).get("url")
        return SocialProfile(
            provider=self.provider,
            provider_id=str(self._required(user_data, "id")),
            email=user_data.get("email"),
            display_name=user_data.get("name"),
            photo=picture,
        )
