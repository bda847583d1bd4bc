"""
User lookup over the record store.

All reads are full scans filtered in Python and run through the retry
executor. Phone lookups try every representation the normalizer produces, so
a user is found whichever format their number was stored in.
"""

from typing import List, Optional

from src.kernel.errors import ValidationError
from src.kernel.identity.phone import PhoneNormalizer
from src.kernel.infra.record_store import RecordStore
from src.kernel.infra.retry import RetryExecutor
from src.kernel.models.user import User
from src.logging_config import get_logger

logger = get_logger(__name__)

# Search queries with this prefix match a delegated identity id exactly
DELEGATED_ID_PREFIX = "google:"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class IdentityLookup:
    """Find users by email, phone, delegated id, or free text."""

    def __init__(
        self,
        store: RecordStore,
        executor: RetryExecutor,
        phone_normalizer: PhoneNormalizer,
        table: str = "users",
    ):
        self.store = store
        self.executor = executor
        self.phones = phone_normalizer
        self.table = table

    async def _first(self, name: str, predicate) -> Optional[User]:
        items = await self.executor.run(lambda: self.store.scan(self.table, predicate), name)
        return User.from_item(items[0]) if items else None

    async def by_id(self, user_id: str) -> Optional[User]:
        item = await self.executor.run(lambda: self.store.get(self.table, user_id), "get user")
        return User.from_item(item)

    async def by_email(self, email: str) -> Optional[User]:
        wanted = normalize_email(email)
        if not wanted:
            return None
        return await self._first(
            "get user by email",
            lambda item: (item.get("email") or "").lower() == wanted,
        )

    async def by_phone(self, phone: str) -> Optional[User]:
        for candidate in self.phones.candidates(phone):
            user = await self._first(
                "get user by phone",
                lambda item, c=candidate: item.get("phone") == c,
            )
            if user:
                logger.debug("Found user with phone format %s", self.phones.mask(candidate))
                return user
        logger.debug("No user found with any phone format")
        return None

    async def by_delegated_id(self, google_id: str) -> Optional[User]:
        if not google_id:
            return None
        return await self._first(
            "get user by google id",
            lambda item: item.get("google_id") == google_id,
        )

    async def by_email_or_phone(self, identifier: str) -> Optional[User]:
        """Try the identifier as an email first, then as a phone number."""
        user = await self.by_email(identifier)
        if user:
            return user
        return await self.by_phone(identifier)

    async def search(self, query: str) -> List[User]:
        """
        Free-text user search.

        ``google:<id>`` switches to an exact delegated-id match. Otherwise
        matches substrings of name or email (case-insensitive) or phone.
        """
        if not query or not query.strip():
            raise ValidationError("Search query is required")

        query = query.strip()
        if query.startswith(DELEGATED_ID_PREFIX):
            user = await self.by_delegated_id(query[len(DELEGATED_ID_PREFIX):])
            return [user] if user else []

        needle = query.lower()

        def matches(item: dict) -> bool:
            return (
                needle in (item.get("name") or "").lower()
                or needle in (item.get("email") or "").lower()
                or needle in (item.get("phone") or "")
            )

        items = await self.executor.run(lambda: self.store.scan(self.table, matches), "search users")
        return [User.model_validate(item) for item in items]

    async def email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        user = await self.by_email(email)
        return user is not None and user.id != exclude_id

    async def phone_taken(self, phone: str, exclude_id: Optional[str] = None) -> bool:
        user = await self.by_phone(phone)
        return user is not None and user.id != exclude_id
