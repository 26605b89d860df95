"""Authentication, user management and social login routes"""

from typing import Any, Dict, List, Literal, Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict
import structlog
from authgate.api.serializers import (
    MAX_PAGE_SIZE,
    CursorParams,
    serialize_user,
    serialize_user_list,
)
from authgate.config import settings
from authgate.errors import (
    ForbiddenError,
    NotAuthorizedError,
    ProviderAuthError,
    UnprocessableEntityError,
    UpstreamError,
    UserNotFoundError,
    ValidationError,
)
from authgate.middleware.auth_middleware import (
    get_deletion_workflow,
    get_resolver,
    get_session_bridge,
    get_user_service,
    require_microservice,
    require_roles,
    require_user,
)
from authgate.security.jwt import MICROSERVICE_ID, create_token
from authgate.services.authorization import AuthorizationResolver, Intent, ResourceKind
from authgate.services.identity.user_adapter import ADMIN, MANAGER, User
from authgate.services.identity.user_service import UserService, build_profile_update
from authgate.services.session_bridge import ProviderSessionBridge
from authgate.services.user_deletion_service import UserDeletionWorkflow

logger = structlog.get_logger()

router = APIRouter()

require_admin = require_roles(ADMIN)
require_admin_or_manager = require_roles(ADMIN, MANAGER)

# Cross-site form posts only carry cookies marked SameSite=None
FORM_POST_PROVIDERS = frozenset({"apple"})


class LoginRequest(BaseModel):
    email: str
    password: str


class ResetPasswordRequest(BaseModel):
    email: Optional[str] = None


class NewPasswordRequest(BaseModel):
    password: Optional[str] = None
    repeatPassword: Optional[str] = None


class SignUpRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


class ExtraUserData(BaseModel):
    apps: Optional[List[str]] = None


class UserCreate(BaseModel):
    email: str
    name: Optional[str] = None
    role: Literal["USER", "MANAGER", "ADMIN"] = "USER"
    photo: Optional[str] = None
    extraUserData: Optional[ExtraUserData] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    photo: Optional[str] = None
    role: Optional[Literal["USER", "MANAGER", "ADMIN"]] = None
    extraUserData: Optional[ExtraUserData] = None


class FindByIdsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ids: List[str]


async def _live_user(user_service: UserService, user_id: str) -> User:
    user = await user_service.get_user_by_id(user_id)
    if user is None:
        raise UserNotFoundError()
    return user


@router.post("/login")
async def login(body: LoginRequest, user_service: UserService = Depends(get_user_service)):
    """Log in with email and password, returning the user and a fresh token"""
    user = await user_service.login(body.email, body.password)
    logger.info("User logged in", user_id=user.id)
    response = serialize_user(user)
    response["data"]["token"] = create_token(user.to_claims())
    return response


@router.get("/check-logged")
async def check_logged(
    caller: Dict[str, Any] = Depends(require_user),
    user_service: UserService = Depends(get_user_service),
):
    if caller.get("id") == MICROSERVICE_ID:
        return caller
    user = await _live_user(user_service, caller["id"])
    return {
        "id": user.id,
        "name": user.name,
        "photo": user.photo,
        "provider": user.provider,
        "providerId": user.provider_id,
        "email": user.email,
        "role": user.role,
        "createdAt": user.created_at,
        "extraUserData": user.extra_user_data,
    }


@router.get("/generate-token")
async def generate_token(
    caller: Dict[str, Any] = Depends(require_user),
    user_service: UserService = Depends(get_user_service),
):
    """Mint a new token from the live identity record"""
    user = await _live_user(user_service, caller["id"])
    return {"token": create_token(user.to_claims())}


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    user_service: UserService = Depends(get_user_service),
):
    if not body.email:
        raise UnprocessableEntityError("Mail required")
    try:
        await user_service.send_password_recovery(body.email)
    except UpstreamError as e:
        logger.info("Password recovery failed", error=e.detail)
        raise UnprocessableEntityError("User not found")
    return {"message": "Email sent"}


@router.post("/reset-password/{token}")
async def reset_password_with_token(
    token: str,
    body: NewPasswordRequest,
    user_service: UserService = Depends(get_user_service),
):
    """Set a new password with the token from the recovery email"""
    if not body.password or not body.repeatPassword:
        raise UnprocessableEntityError("Password and Repeat password are required")
    if body.password != body.repeatPassword:
        raise UnprocessableEntityError("Password and Repeat password not equal")
    user = await user_service.reset_password(token, body.password)
    return serialize_user(user)


@router.post("/sign-up")
async def sign_up(body: SignUpRequest, user_service: UserService = Depends(get_user_service)):
    """Create a local account; Okta emails an activation link to choose a password"""
    if not body.email:
        raise UnprocessableEntityError("Email is required")
    try:
        user = await user_service.sign_up(body.email, body.name)
    except ValidationError as e:
        raise UnprocessableEntityError(e.detail)
    return serialize_user(user)


@router.get("/logout")
async def logout(callbackUrl: Optional[str] = Query(None)):
    """
    Tokens are stateless, so logging out only drops the social login cookie.
    Redirects to callbackUrl when given.
    """
    response = (
        RedirectResponse(url=callbackUrl, status_code=302)
        if callbackUrl
        else JSONResponse({"message": "Logged out"})
    )
    response.delete_cookie(settings.OAUTH_STATE_COOKIE_NAME)
    return response


@router.get("/success")
async def login_success():
    return {"status": "success"}


@router.get("/fail")
async def login_fail():
    raise ProviderAuthError()


@router.get("/user")
async def list_users(
    request: Request,
    number: int = Query(1, alias="page[number]", ge=1),
    size: int = Query(10, alias="page[size]", ge=1, le=MAX_PAGE_SIZE),
    cursor: CursorParams = Depends(),
    strategy: Literal["offset", "cursor"] = Query("offset"),
    app: Optional[str] = Query(None),
    name: Optional[str] = Query(None),
    email: Optional[str] = Query(None),
    provider: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    admin: Dict[str, Any] = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    """
    List users, scoped to the caller's apps unless app is given.

    app=all lists every user, app=a,b lists the users of those apps.
    """
    admin_apps = (admin.get("extraUserData") or {}).get("apps")
    if not admin_apps:
        raise NotAuthorizedError()

    if app == "all":
        apps = None
    elif app:
        apps = app.split(",")
    else:
        apps = admin_apps

    filters = {"name": name, "email": email, "provider": provider, "role": role}
    page = await user_service.list_users(
        apps,
        {key: value for key, value in filters.items() if value is not None},
        page_size=size,
        page_number=number,
        after=cursor.after,
        before=cursor.before,
        strategy=strategy,
    )
    return serialize_user_list(request, page.users, page.size, page.next_cursor, page.page_number)


@router.get("/user/me")
@router.get("/user/from-token")
async def get_current_user(
    caller: Dict[str, Any] = Depends(require_user),
    user_service: UserService = Depends(get_user_service),
):
    if caller.get("id") == MICROSERVICE_ID:
        return caller
    user = await _live_user(user_service, caller["id"])
    return user.to_dict()


@router.post("/user/find-by-ids")
async def find_by_ids(
    body: FindByIdsRequest,
    microservice: Dict[str, Any] = Depends(require_microservice),
    user_service: UserService = Depends(get_user_service),
):
    users = await user_service.get_users_by_ids(body.ids)
    return {"data": [user.to_dict() for user in users]}


@router.get("/user/ids/{role}")
async def get_ids_by_role(
    role: str,
    microservice: Dict[str, Any] = Depends(require_microservice),
    user_service: UserService = Depends(get_user_service),
):
    return {"data": await user_service.get_ids_by_role(role)}


@router.get("/user/{user_id}")
async def get_user(
    user_id: str,
    admin: Dict[str, Any] = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    user = await _live_user(user_service, user_id)
    return user.to_dict()


@router.post("/user")
async def create_user(
    body: UserCreate,
    caller: Dict[str, Any] = Depends(require_admin_or_manager),
    user_service: UserService = Depends(get_user_service),
):
    """
    Create a user without a password. Okta emails them an activation link.

    Managers cannot create admins, and nobody can grant apps they do not
    have themselves.
    """
    if caller.get("role") == MANAGER and body.role == ADMIN:
        logger.info("Manager tried to create an admin", user_id=caller.get("id"))
        raise ForbiddenError()

    apps = body.extraUserData.apps if body.extraUserData else None
    if not apps:
        raise ValidationError("Apps required")

    caller_apps = (caller.get("extraUserData") or {}).get("apps") or []
    if any(requested not in caller_apps for requested in apps):
        logger.info("Requested apps outside the caller's apps", user_id=caller.get("id"))
        raise ForbiddenError()

    user = await user_service.create_user({
        "email": body.email,
        "name": body.name,
        "role": body.role,
        "photo": body.photo,
        "apps": apps,
        "provider": "local",
    }, send_activation=True)
    return serialize_user(user)


@router.patch("/user/me")
async def update_me(
    body: UserUpdate,
    caller: Dict[str, Any] = Depends(require_user),
    user_service: UserService = Depends(get_user_service),
):
    profile = build_profile_update(body.model_dump(exclude_unset=True), caller.get("role"))
    user = await user_service.update_user(caller["id"], profile)
    return serialize_user(user)


@router.patch("/user/{user_id}")
async def update_user(
    user_id: str,
    body: UserUpdate,
    admin: Dict[str, Any] = Depends(require_admin),
    user_service: UserService = Depends(get_user_service),
):
    profile = build_profile_update(body.model_dump(exclude_unset=True), admin.get("role"))
    user = await user_service.update_user(user_id, profile)
    return serialize_user(user)


@router.delete("/user/{user_id}")
async def delete_user(
    user_id: str,
    caller: Dict[str, Any] = Depends(require_user),
    resolver: AuthorizationResolver = Depends(get_resolver),
    workflow: UserDeletionWorkflow = Depends(get_deletion_workflow),
):
    """
    Delete a user with all their resources and associations.

    Partial failures are only recorded on the deletion record; the
    response is the deleted user either way.
    """
    resolver.authorize(caller, ResourceKind.USER, Intent.SELF_DELETE, user_id)
    user = await workflow.delete_user(user_id, caller["id"])
    return serialize_user(user)


def _state_cookie_kwargs(provider: str) -> Dict[str, Any]:
    if provider in FORM_POST_PROVIDERS:
        return {"samesite": "none", "secure": True}
    return {"samesite": "lax", "secure": settings.APP_ENV == "production"}


@router.get("/{provider}")
async def provider_login(
    provider: str,
    request: Request,
    callbackUrl: Optional[str] = Query(None),
    origin: Optional[str] = Query(None),
    token: bool = Query(False),
    applications: Optional[str] = Query(None),
    bridge: ProviderSessionBridge = Depends(get_session_bridge),
):
    """
    Initiate social login.

    Redirects to the provider's authorization page. The state token is
    stored in a cookie and checked again on callback.
    """
    authorization_url, state = await bridge.initiate(
        provider,
        callback_url=callbackUrl or request.headers.get("referer"),
        origin=origin,
        generate_token=token,
        applications=applications.split(",") if applications else None,
    )

    redirect_response = RedirectResponse(url=authorization_url, status_code=302)
    redirect_response.set_cookie(
        key=settings.OAUTH_STATE_COOKIE_NAME,
        value=state,
        max_age=settings.OAUTH_STATE_COOKIE_MAX_AGE,
        httponly=True,
        **_state_cookie_kwargs(provider),
    )
    return redirect_response


@router.api_route("/{provider}/callback", methods=["GET", "POST"])
async def provider_callback(
    provider: str,
    request: Request,
    bridge: ProviderSessionBridge = Depends(get_session_bridge),
):
    """
    Provider callback. Apple answers with a form post, the others with a
    query string.
    """
    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({key: value for key, value in form.items() if isinstance(value, str)})

    outcome = await bridge.complete(
        provider,
        code=params.get("code"),
        state=params.get("state"),
        cookie_state=request.cookies.get(settings.OAUTH_STATE_COOKIE_NAME),
    )

    response = RedirectResponse(url=outcome.redirect_url, status_code=302)
    response.delete_cookie(settings.OAUTH_STATE_COOKIE_NAME)
    return response


@router.get("/{provider}/token")
async def provider_token(
    provider: str,
    access_token: str = Query(...),
    bridge: ProviderSessionBridge = Depends(get_session_bridge),
):
    """Exchange an access token obtained from the provider for a first-party token"""
    token, user = await bridge.login_with_provider_token(provider, access_token)
    logger.info("Token login with provider", provider=provider, user_id=user.id)
    return {"token": token}
