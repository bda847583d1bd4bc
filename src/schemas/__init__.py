"""
Pydantic schemas for API request/response validation.
"""

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
from src.schemas.common import ErrorResponse, HealthResponse

__all__ = [
    # Auth
    "UserCreate",
    "GoogleUserCreate",
    "UserLogin",
    "PhoneOtpRequest",
    "PhoneOtpVerify",
    "PasswordResetRequest",
    "PasswordResetComplete",
    "ChangePasswordRequest",
    "UserProfileUpdate",
    "UserSearchRequest",
    # Common
    "ErrorResponse",
    "HealthResponse",
]
