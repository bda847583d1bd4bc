"""
Authentication schemas.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserCreate(BaseModel):
    """Password registration request."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)


class GoogleUserCreate(BaseModel):
    """Delegated-identity registration request."""

    email: EmailStr
    google_id: str = Field(..., min_length=1, max_length=255)
    name: Optional[str] = Field(None, max_length=255)
    profile_image: Optional[str] = None


class UserLogin(BaseModel):
    """User login request."""

    email: str
    password: str


class PhoneOtpRequest(BaseModel):
    """Request a login code by SMS."""

    phone: str = Field(..., min_length=1, max_length=32)


class PhoneOtpVerify(BaseModel):
    """Log in with an SMS code."""

    phone: str = Field(..., min_length=1, max_length=32)
    code: str = Field(..., min_length=1, max_length=12)


class PasswordResetRequest(BaseModel):
    """Request a password reset code."""

    email_or_phone: str = Field(..., min_length=1, max_length=255)


class PasswordResetComplete(BaseModel):
    """Complete a password reset."""

    email_or_phone: str = Field(..., min_length=1, max_length=255)
    reset_code: str
    new_password: str = Field(..., max_length=128)


class ChangePasswordRequest(BaseModel):
    """Password change request."""

    user_id: str
    current_password: str = ""
    new_password: str = Field(..., max_length=128)


class UserProfileUpdate(BaseModel):
    """User profile update request. Unset fields are left unchanged."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=32)
    profile_image: Optional[str] = None


class UserSearchRequest(BaseModel):
    """Free-text user search; prefix with ``google:`` for an exact Google id."""

    query: str = Field(..., min_length=1, max_length=255)
