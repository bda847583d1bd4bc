"""
Kernel Data Models

``Record`` is the SQLAlchemy table behind the SQL record store; ``User`` and
``UserProfile`` are the typed views of user items kept in that store.
"""

from src.kernel.models.base import Base, TimestampMixin, generate_id, utc_now_iso
from src.kernel.models.record import Record
from src.kernel.models.user import AuthMethod, User, UserProfile

__all__ = [
    "Base",
    "TimestampMixin",
    "generate_id",
    "utc_now_iso",
    "Record",
    "AuthMethod",
    "User",
    "UserProfile",
]
