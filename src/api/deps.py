"""
FastAPI dependencies for the identity service and request metadata.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request

from src.kernel.identity.identity_service import IdentityService


def get_identity_service(request: Request) -> IdentityService:
    """Return the process-wide identity service created at startup."""
    service = getattr(request.app.state, "identity_service", None)
    if service is None:
        raise RuntimeError("Identity service is not initialized")
    return service


Identity = Annotated[IdentityService, Depends(get_identity_service)]


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
