"""
Authentication endpoints.

Every endpoint returns the ``{success, ...}`` envelope produced by the
identity service; the HTTP status is derived from the failure code.
"""

from typing import FrozenSet

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.api.deps import Identity, get_client_ip
from src.kernel.identity.results import Failure, Result
from src.logging_config import get_logger
from src.schemas.auth import (
    ChangePasswordRequest,
    GoogleUserCreate,
    PasswordResetComplete,
    PasswordResetRequest,
    PhoneOtpRequest,
    PhoneOtpVerify,
    UserCreate,
    UserLogin,
    UserProfileUpdate,
    UserSearchRequest,
)
from src.schemas.common import ErrorResponse

logger = get_logger(__name__)

router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)

INFRA_CODES = frozenset({"transient_infra", "permanent_infra"})
CREDENTIAL_CODES = frozenset({"invalid_credentials", "invalid_code", "expired_code"})


def _status_for(failure: Failure, unauthorized: FrozenSet[str]) -> int:
    if failure.code in INFRA_CODES:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if failure.code == "not_found":
        return status.HTTP_404_NOT_FOUND
    if failure.code in unauthorized:
        return status.HTTP_401_UNAUTHORIZED
    return status.HTTP_400_BAD_REQUEST


def _respond(
    result: Result,
    success_status: int = status.HTTP_200_OK,
    unauthorized: FrozenSet[str] = frozenset(),
) -> JSONResponse:
    if isinstance(result, Failure):
        return JSONResponse(status_code=_status_for(result, unauthorized), content=result.to_dict())
    return JSONResponse(status_code=success_status, content=result.to_dict())


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(data: UserCreate, identity: Identity):
    """Register a new password account."""
    result = await identity.register_with_email(
        email=data.email,
        password=data.password,
        name=data.name,
        phone=data.phone,
    )
    return _respond(result, success_status=status.HTTP_201_CREATED)


@router.post("/register/google")
async def register_google(data: GoogleUserCreate, identity: Identity):
    """
    Register with Google sign-in.

    An existing account with the same email or Google id is returned as-is.
    """
    result = await identity.register_with_google(
        email=data.email,
        google_id=data.google_id,
        name=data.name,
        profile_image=data.profile_image,
    )
    return _respond(result)


@router.post("/login")
async def login(request: Request, data: UserLogin, identity: Identity):
    """Authenticate with email and password."""
    result = await identity.login_with_email(data.email, data.password)
    if isinstance(result, Failure):
        logger.info("Login failed", extra={"client_ip": get_client_ip(request), "reason": result.code})
    return _respond(result, unauthorized=CREDENTIAL_CODES)


@router.post("/phone/send-otp")
async def send_phone_otp(data: PhoneOtpRequest, identity: Identity):
    """Send a login code by SMS."""
    return _respond(await identity.send_phone_otp(data.phone))


@router.post("/phone/verify-otp")
async def verify_phone_otp(request: Request, data: PhoneOtpVerify, identity: Identity):
    """Log in with an SMS code."""
    result = await identity.verify_phone_otp(data.phone, data.code)
    if isinstance(result, Failure):
        logger.info("OTP login failed", extra={"client_ip": get_client_ip(request), "reason": result.code})
    return _respond(result, unauthorized=CREDENTIAL_CODES)


@router.post("/password/forgot")
async def forgot_password(data: PasswordResetRequest, identity: Identity):
    """Request a password reset code."""
    return _respond(await identity.request_password_reset(data.email_or_phone))


@router.post("/password/reset")
async def reset_password(data: PasswordResetComplete, identity: Identity):
    """Set a new password using a reset code."""
    result = await identity.reset_password(
        data.email_or_phone,
        data.reset_code,
        data.new_password,
    )
    return _respond(result)


@router.post("/change-password")
async def change_password(data: ChangePasswordRequest, identity: Identity):
    """Change a user's password."""
    result = await identity.change_password(
        data.user_id,
        data.current_password,
        data.new_password,
    )
    return _respond(result, unauthorized=frozenset({"invalid_credentials"}))


@router.post("/search-users")
async def search_users(data: UserSearchRequest, identity: Identity):
    """Search users by name, email or phone."""
    return _respond(await identity.search_users(data.query))


@router.get("/user/{user_id}")
async def get_user(user_id: str, identity: Identity):
    """Get a user profile."""
    return _respond(await identity.get_user(user_id))


@router.put("/profile/{user_id}")
async def update_profile(user_id: str, data: UserProfileUpdate, identity: Identity):
    """Update profile fields; omitted fields are left unchanged."""
    updates = data.model_dump(exclude_unset=True)
    return _respond(await identity.update_profile(user_id, updates))
