"""Sign in with Apple provider"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode
import jwt
from jwt import exceptions as jwt_exceptions
from .provider_interface import (
    OAuthProviderInterface,
    OAuthTokens,
    SocialProfile,
    SocialProvider,
    TokenExchangeError,
    UserInfoError,
)


class AppleOAuthProvider(OAuthProviderInterface):
    """
    Sign in with Apple.

    Apple posts the callback as a form and carries the profile in the
    id_token returned by the token endpoint. The id_token is read straight
    from Apple's token endpoint over TLS, so its claims are taken as issued.

    References:
    - https://developer.apple.com/documentation/sign_in_with_apple/sign_in_with_apple_rest_api
    """

    AUTHORIZATION_URL = "https://appleid.apple.com/auth/authorize"
    TOKEN_URL = "https://appleid.apple.com/auth/token"

    DEFAULT_SCOPES = ["name", "email"]

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 scopes: Optional[list[str]] = None):
        super().__init__(
            provider=SocialProvider.APPLE,
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
            "response_mode": "form_post",
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

    def tokens_from_access_token(self, access_token: str) -> OAuthTokens:
        # Native clients hand over the identity token itself
        return OAuthTokens(access_token=access_token, id_token=access_token)

    def _id_token_claims(self, id_token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(id_token, options={"verify_signature": False})
        except jwt_exceptions.DecodeError:
            raise UserInfoError("Invalid Apple identity token", provider=self.provider_name)

    async def get_social_profile(self, tokens: OAuthTokens) -> SocialProfile:
        if not tokens.id_token:
            raise UserInfoError("Apple did not return an identity token", provider=self.provider_name)
        claims = self._id_token_claims(tokens.id_token)
        if claims.get("aud") != self.client_id:
            raise UserInfoError("Apple identity token issued for another client", provider=self.provider_name)
        return SocialProfile(
            provider=self.provider,
            provider_id=str(self._required(claims, "sub")),
            email=claims.get("email"),
        )
