"""
User record model for identity management.

Users live in the external record store as plain JSON items; this module
converts between those items and typed models. ``UserProfile`` is the shape
that leaves the service; ``User`` adds the password hash and never does.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.kernel.models.base import generate_id, utc_now_iso


class AuthMethod(str, Enum):
    """Ways a user can authenticate."""
    PASSWORD = "password"
    GOOGLE = "google"
    PHONE = "phone"


class UserProfile(BaseModel):
    """User record without credentials."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str = Field(default_factory=generate_id)
    email: Optional[str] = None
    phone: Optional[str] = None
    name: str = "User"
    profile_image: Optional[str] = None
    google_id: Optional[str] = None
    auth_methods: List[AuthMethod] = Field(default_factory=list)
    is_verified: bool = False
    last_login_at: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class User(UserProfile):
    """Full user record as stored."""

    password_hash: Optional[str] = None

    @classmethod
    def from_item(cls, item: Optional[Dict[str, Any]]) -> Optional["User"]:
        if not item:
            return None
        return cls.model_validate(item)

    def to_item(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def profile(self) -> UserProfile:
        """Strip the password hash."""
        return UserProfile.model_validate(self.model_dump(exclude={"password_hash"}))

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email or self.phone}>"
