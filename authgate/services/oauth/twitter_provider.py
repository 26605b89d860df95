"""Twitter (X) OAuth 2.0 Provider"""

from typing import Optional
from urllib.parse import urlencode
from .provider_interface import (
    OAuthProviderInterface,
    OAuthTokens,
    SocialProfile,
    SocialProvider,
    TokenExchangeError,
)


class TwitterOAuthProvider(OAuthProviderInterface):
    """
    Twitter OAuth 2.0 provider (confidential client).

    Twitter only returns an email when the app has been granted the
    email scope; a profile without one is rejected during login.

    References:
    - https://developer.twitter.com/en/docs/authentication/oauth-2-0/authorization-code
    """

    AUTHORIZATION_URL = "https://twitter.com/i/oauth2/authorize"
    TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
    USER_INFO_URL = "https://api.twitter.com/2/users/me"

    DEFAULT_SCOPES = ["users.read", "tweet.read", "users.email"]
    # Plain PKCE challenge, the client secret authenticates the exchange
    CODE_VERIFIER = "challenge"

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 scopes: Optional[list[str]] = None):
        super().__init__(
            provider=SocialProvider.TWITTER,
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
            "code_challenge": self.CODE_VERIFIER,
            "code_challenge_method": "plain",
        }
        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        token_data = await self._request_json(
            "POST",
            self.TOKEN_URL,
            error_class=TokenExchangeError,
            auth=(self.client_id, self.client_secret),
            data={
                "code": code,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
                "code_verifier": self.CODE_VERIFIER,
            },
        )
        return OAuthTokens(
            access_token=self._required(token_data, "access_token", TokenExchangeError),
            refresh_token=token_data.get("refresh_token"),
            expires_in=token_data.get("expires_in"),
            token_type=token_data.get("token_type", "Bearer"),
        )

    async def get_social_profile(self, tokens: OAuthTokens) -> SocialProfile:
        payload = await self._request_json(
            "GET",
            self.USER_INFO_URL,
            params={"user.fields": "profile_image_url,confirmed_email"},
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        user_data = payload.get("data") or {}
        return SocialProfile(
            provider=self.provider,
            provider_id=str(self._required(user_data, "id")),
            email=user_data.get("confirmed_email"),
            display_name=user_data.get("name"),
            photo=user_data.get("profile_image_url"),
        )
