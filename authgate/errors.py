"""Error taxonomy and the JSON:API error envelope"""

from typing import Any, Dict, List, Optional
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
import structlog

logger = structlog.get_logger()

OUTDATED_TOKEN_MESSAGE = (
    "Your token is outdated. Please use /auth/login to login and "
    "/auth/generate-token to generate a new token."
)
INVALID_TOKEN_MESSAGE = (
    "Your token is invalid. Please use /auth/login to login and "
    "/auth/generate-token to generate a new token."
)


class AuthGateError(Exception):
    """Base exception for errors that map to an HTTP response"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.detail = detail or self.default_detail
        self.details = details or {}
        super().__init__(self.detail)


class NotAuthenticatedError(AuthGateError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"


class InvalidTokenError(AuthGateError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = INVALID_TOKEN_MESSAGE


class OutdatedTokenError(AuthGateError):
    """Token claims no longer match the live identity record"""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = OUTDATED_TOKEN_MESSAGE


class TokenRevokedError(AuthGateError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Token revoked"


class InvalidCredentialsError(AuthGateError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid email or password"


class NotAuthorizedError(AuthGateError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not authorized"


class ForbiddenError(AuthGateError):
    """Forbidden with a specific explanation, used by service-level rules"""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFoundError(AuthGateError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ApplicationNotFoundError(NotFoundError):
    default_detail = "Application not found"


class OrganizationNotFoundError(NotFoundError):
    default_detail = "Organization not found"


class UserNotFoundError(NotFoundError):
    default_detail = "User not found"


class DeletionNotFoundError(NotFoundError):
    default_detail = "Deletion not found"


class ValidationError(AuthGateError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Bad request"


class ConflictError(ValidationError):
    default_detail = "Resource already exists"


class HasApplicationsError(ValidationError):
    default_detail = "Organizations with associated applications cannot be deleted"


class ApplicationOrphanedError(ValidationError):
    default_detail = "Application must be associated with either a user or an organization"


class DeletionAlreadyExistsError(ValidationError):
    default_detail = "Deletion already exists for this user"


class UnprocessableEntityError(AuthGateError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Unprocessable entity"


class ProviderAuthError(AuthGateError):
    """A social or identity provider refused the handshake"""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication with the provider failed"

    def __init__(self, detail: Optional[str] = None, provider: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(detail, details)
        self.provider = provider


class UpstreamError(AuthGateError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream service error"


def error_body(status_code: int, detail: str) -> Dict[str, List[Dict[str, Any]]]:
    return {"errors": [{"status": status_code, "detail": detail}]}


def format_validation_error(error: Dict[str, Any]) -> str:
    """Render one pydantic error as a short, field-oriented message"""
    loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header")]
    field = loc[-1] if loc else "body"
    error_type = error.get("type", "")

    if error_type == "extra_forbidden":
        return f'"{field}" is not allowed'
    if error_type == "missing":
        return f'"{field}" is required'
    if error_type == "value_error" and error.get("ctx", {}).get("error") is not None:
        return str(error["ctx"]["error"])
    return f'"{field}" {error.get("msg", "is invalid")}'


async def authgate_error_handler(request: Request, exc: AuthGateError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.detail, **exc.details)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, exc.detail))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = format_validation_error(errors[0]) if errors else "Bad request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(status.HTTP_400_BAD_REQUEST, detail),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the single error-formatting layer on the app"""
    app.add_exception_handler(AuthGateError, authgate_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
