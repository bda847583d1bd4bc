"""
Outcomes of identity flows.

Each flow returns one of these variants; every variant carries exactly the
fields valid for that outcome and renders itself as the ``{success, ...}``
envelope returned to API callers.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from src.kernel.errors import IdentityError
from src.kernel.models.user import UserProfile


@dataclass(frozen=True)
class UserResult:
    user: UserProfile
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "user": self.user.model_dump(mode="json")}


@dataclass(frozen=True)
class UsersResult:
    users: List[UserProfile]
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "users": [u.model_dump(mode="json") for u in self.users]}


@dataclass(frozen=True)
class MessageResult:
    message: str
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "message": self.message}


@dataclass(frozen=True)
class OtpSent:
    delivery_id: Optional[str] = None
    message: str = "Verification code sent"
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "message": self.message, "delivery_id": self.delivery_id}


@dataclass(frozen=True)
class RegistrationNoticeSent:
    """Phone not registered: a notice was sent instead of a code."""

    delivery_id: Optional[str] = None
    message: str = "Phone number is not registered. Please register first."
    success: bool = True
    needs_registration: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "needs_registration": True,
            "message": self.message,
            "delivery_id": self.delivery_id,
        }


@dataclass(frozen=True)
class ResetCodeIssued:
    """Development fallback: the reset code is handed back to the caller."""

    reset_code: str
    message: str = "Reset code generated. Check console/server logs for code."
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "message": self.message, "reset_code": self.reset_code}


@dataclass(frozen=True)
class Failure:
    error: str
    code: str = "error"
    needs_registration: bool = False
    success: bool = False

    @classmethod
    def from_error(cls, exc: IdentityError, needs_registration: bool = False) -> "Failure":
        return cls(error=exc.user_message, code=exc.code, needs_registration=needs_registration)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.error, "code": self.code}
        if self.needs_registration:
            body["needs_registration"] = True
        return body


AuthResult = Union[UserResult, Failure]
OtpIssueResult = Union[OtpSent, RegistrationNoticeSent, Failure]
ResetRequestResult = Union[MessageResult, ResetCodeIssued, Failure]
PasswordResult = Union[MessageResult, Failure]
SearchResult = Union[UsersResult, Failure]
Result = Union[
    UserResult,
    UsersResult,
    MessageResult,
    OtpSent,
    RegistrationNoticeSent,
    ResetCodeIssued,
    Failure,
]
