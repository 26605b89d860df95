"""
Okta management API client.

Async wrapper around the Okta users and authn endpoints. Lookups return None
when Okta reports the user missing; every other non-2xx is an UpstreamError.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import uuid
import httpx
import structlog
from authgate.config import settings
from authgate.errors import (
    ConflictError,
    InvalidCredentialsError,
    UnprocessableEntityError,
    UpstreamError,
    ValidationError,
)

logger = structlog.get_logger()


@dataclass
class OktaConfig:
    """Configuration for the Okta client"""

    base_url: str = field(default_factory=lambda: settings.OKTA_URL)
    api_key: str = field(default_factory=lambda: settings.OKTA_API_KEY)
    timeout: float = field(default_factory=lambda: settings.OKTA_REQUEST_TIMEOUT)


class OktaClient:
    """
    Async client for the Okta users API.

    Example:
        ```python
        async with OktaClient() as okta:
            okta_user = await okta.get_user("someone@example.com")
        ```
    """

    def __init__(self, config: Optional[OktaConfig] = None):
        self.config = config or OktaConfig()
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers=self._get_headers(),
            )
        return self._client

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"SSWS {self.config.api_key}",
        }

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._get_client().request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error("Okta request failed", method=method, path=path, error=str(e))
            raise UpstreamError("Identity provider unavailable")

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        logger.error(
            "Okta returned an error",
            action=action,
            status_code=response.status_code,
            error=response.text,
        )
        raise UpstreamError(f"Identity provider error during {action}")

    @staticmethod
    def _error_summaries(response: httpx.Response) -> List[str]:
        try:
            body = response.json()
        except ValueError:
            return []
        if not isinstance(body, dict):
            return []
        causes = body.get("errorCauses") or []
        return [cause.get("errorSummary", "") for cause in causes if isinstance(cause, dict)]

    async def get_user(self, email_or_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a user by Okta id or login.

        Returns:
            The Okta user object, or None if Okta does not know the user
        """
        response = await self._request("GET", f"/api/v1/users/{email_or_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, "get user")
        return response.json()

    async def list_users(
        self,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        after: Optional[str] = None,
        before: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        List users matching an Okta search expression.

        Returns:
            Tuple of (users, cursor for the next page or None)
        """
        params: Dict[str, Any] = {}
        if search:
            params["search"] = search
        if limit:
            params["limit"] = limit
        if after:
            params["after"] = after
        if before:
            params["before"] = before

        response = await self._request("GET", "/api/v1/users", params=params)
        self._raise_for_status(response, "list users")
        return response.json(), self._next_cursor(response)

    @staticmethod
    def _next_cursor(response: httpx.Response) -> Optional[str]:
        next_link = response.links.get("next", {}).get("url")
        if not next_link:
            return None
        return httpx.URL(next_link).params.get("after")

    async def create_user(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a staged (not yet activated) user with a fresh legacyId.

        Raises:
            ConflictError: If the login is already taken
            ValidationError: If the login is blank
        """
        payload = {
            "profile": {
                "email": profile["email"],
                "login": profile["email"],
                "firstName": profile.get("firstName"),
                "lastName": profile.get("lastName"),
                "displayName": profile.get("name"),
                "provider": profile.get("provider", "local"),
                "legacyId": str(uuid.uuid4()),
                "role": profile.get("role") or "USER",
                "apps": profile.get("apps") or [],
                "photo": profile.get("photo"),
                "providerId": profile.get("providerId"),
            }
        }
        response = await self._request("POST", "/api/v1/users", params={"activate": "false"}, json=payload)
        if response.status_code == 400:
            summaries = self._error_summaries(response)
            if any(s.startswith("login:") and "already exists" in s for s in summaries):
                raise ConflictError("Email exists")
            if any(s.startswith("login:") and "cannot be left blank" in s for s in summaries):
                raise ValidationError("Email is required")
        self._raise_for_status(response, "create user")
        return response.json()

    async def update_user(self, okta_id: str, profile: Dict[str, Any]) -> Dict[str, Any]:
        """Partially update the profile of a user"""
        response = await self._request("POST", f"/api/v1/users/{okta_id}", json={"profile": profile})
        self._raise_for_status(response, "update user")
        return response.json()

    async def delete_user(self, okta_id: str) -> None:
        response = await self._request("DELETE", f"/api/v1/users/{okta_id}")
        self._raise_for_status(response, "delete user")

    async def authenticate(self, username: str, password: str) -> Dict[str, Any]:
        """
        Primary authentication against /authn.

        Raises:
            InvalidCredentialsError: For any authentication failure
        """
        response = await self._request(
            "POST", "/api/v1/authn", json={"username": username, "password": password}
        )
        if response.status_code in (400, 401, 403, 429):
            logger.info("Okta rejected credentials", status_code=response.status_code)
            raise InvalidCredentialsError()
        self._raise_for_status(response, "authenticate")
        return response.json()

    async def send_password_recovery(self, email: str) -> None:
        response = await self._request(
            "POST",
            "/api/v1/authn/recovery/password",
            json={"username": email, "factorType": "EMAIL"},
        )
        self._raise_for_status(response, "password recovery")

    async def activate_user(self, okta_id: str) -> None:
        """Activate a staged user; Okta emails them a link to set a password"""
        response = await self._request(
            "POST", f"/api/v1/users/{okta_id}/lifecycle/activate", params={"sendEmail": "true"}
        )
        self._raise_for_status(response, "activate user")

    async def verify_recovery_token(self, recovery_token: str) -> str:
        """
        Exchange the token from a recovery email for a state token.

        Raises:
            UnprocessableEntityError: If the token is unknown or expired
        """
        response = await self._request(
            "POST", "/api/v1/authn/recovery/token", json={"recoveryToken": recovery_token}
        )
        if response.status_code in (401, 403, 404):
            logger.info("Okta rejected recovery token", status_code=response.status_code)
            raise UnprocessableEntityError("Token expired")
        self._raise_for_status(response, "verify recovery token")
        return response.json()["stateToken"]

    async def reset_password(self, state_token: str, new_password: str) -> Dict[str, Any]:
        """
        Set a new password within a recovery transaction.

        Returns:
            The authn transaction, with the user under _embedded

        Raises:
            UnprocessableEntityError: If Okta refuses the password
        """
        response = await self._request(
            "POST",
            "/api/v1/authn/credentials/reset_password",
            json={"stateToken": state_token, "newPassword": new_password},
        )
        if response.status_code in (400, 403):
            summaries = self._error_summaries(response)
            logger.info("Okta refused the new password", status_code=response.status_code, causes=summaries)
            detail = summaries[0] if summaries else "Password does not meet the requirements"
            raise UnprocessableEntityError(detail)
        self._raise_for_status(response, "reset password")
        return response.json()
