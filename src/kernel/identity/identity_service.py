"""
Identity service: registration, login, phone OTP login and password reset.

Every public flow returns a result variant from ``results``; expected
failures never raise. Internal causes are logged, and only the user-safe
message of the mapped error is returned.
"""

from typing import Any, Dict, List, Optional

from src.config import Settings, get_settings
from src.kernel.errors import (
    DuplicateError,
    ExpiredCodeError,
    IdentityError,
    InfraError,
    InvalidCodeError,
    InvalidCredentialsError,
    NotFoundError,
    UnsupportedAccountTypeError,
    ValidationError,
)
from src.kernel.identity.codes import OneTimeCodeStore
from src.kernel.identity.lookup import IdentityLookup, normalize_email
from src.kernel.identity.password import CredentialManager
from src.kernel.identity.phone import PhoneNormalizer
from src.kernel.identity.results import (
    AuthResult,
    Failure,
    MessageResult,
    OtpIssueResult,
    OtpSent,
    PasswordResult,
    RegistrationNoticeSent,
    ResetCodeIssued,
    ResetRequestResult,
    SearchResult,
    UserResult,
    UsersResult,
)
from src.kernel.infra.messaging import DeliveryReceipt, MessagingGateway
from src.kernel.infra.record_store import RecordStore
from src.kernel.infra.retry import RetryExecutor
from src.kernel.models.base import utc_now_iso
from src.kernel.models.user import AuthMethod, User
from src.logging_config import get_logger

logger = get_logger(__name__)

RESET_REQUESTED_MESSAGE = "If an account exists, a reset code will be sent"
INVALID_CODE_MESSAGE = "Invalid or expired code"
PROFILE_FIELDS = frozenset({"name", "email", "phone", "profile_image"})


class IdentityService:
    """
    Service for user identity operations.

    One instance serves the whole process: the login and reset code stores
    it owns are shared by all concurrent requests.
    """

    def __init__(
        self,
        store: RecordStore,
        messaging: MessagingGateway,
        settings: Optional[Settings] = None,
        *,
        executor: Optional[RetryExecutor] = None,
        credentials: Optional[CredentialManager] = None,
        otp_codes: Optional[OneTimeCodeStore] = None,
        reset_codes: Optional[OneTimeCodeStore] = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings
        self.store = store
        self.messaging = messaging
        self.table = s.users_table
        self.phones = PhoneNormalizer(s.phone_country_code, s.phone_trunk_prefix)
        self.executor = executor or RetryExecutor(s.retry_policy())
        self.credentials = credentials or CredentialManager(s.bcrypt_rounds)
        self.lookup = IdentityLookup(store, self.executor, self.phones, self.table)
        self.otp_codes = otp_codes or OneTimeCodeStore(
            "login_otp",
            s.otp_ttl_seconds,
            key_normalizer=self.phones.subject_key,
        )
        self.reset_codes = reset_codes or OneTimeCodeStore(
            "password_reset",
            s.reset_code_ttl_seconds,
        )

    @property
    def code_stores(self) -> List[OneTimeCodeStore]:
        return [self.otp_codes, self.reset_codes]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(self, flow: str, exc: IdentityError, needs_registration: bool = False) -> Failure:
        if isinstance(exc, InfraError):
            logger.error(
                "%s failed: %s",
                flow,
                exc,
                exc_info=exc.__cause__ is not None,
                extra={"error_kind": exc.kind.value},
            )
        else:
            logger.info("%s rejected: %s", flow, exc.code)
        return Failure.from_error(exc, needs_registration=needs_registration)

    def _check_password(self, password: Optional[str]) -> None:
        minimum = self.settings.min_password_length
        if not password or len(password) < minimum:
            raise ValidationError(f"Password must be at least {minimum} characters long")

    def _message(self, template: str, **values: Any) -> str:
        return template.format(brand=self.settings.brand_name, **values)

    async def _create_user(self, user: User) -> None:
        await self.executor.run(lambda: self.store.put(self.table, user.to_item()), "create user")

    async def _update_user(self, user_id: str, attributes: Dict[str, Any]) -> User:
        attributes = {**attributes, "updated_at": utc_now_iso()}
        item = await self.executor.run(
            lambda: self.store.update(self.table, user_id, attributes),
            "update user",
        )
        return User.model_validate(item)

    async def _deliver(self, destination: str, text: str, name: str) -> DeliveryReceipt:
        return await self.executor.run(lambda: self.messaging.send(destination, text), name)

    @staticmethod
    def _with_method(user: User, method: AuthMethod) -> List[str]:
        methods = [m.value if isinstance(m, AuthMethod) else m for m in user.auth_methods]
        if method.value not in methods:
            methods.append(method.value)
        return methods

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register_with_email(
        self,
        email: str,
        password: str,
        name: str,
        phone: Optional[str] = None,
    ) -> AuthResult:
        """
        Register a new password account.

        Fails with DuplicateError when the email (or phone) is already in
        use; the existing record is left untouched.
        """
        try:
            email = normalize_email(email)
            if not email or "@" not in email:
                raise ValidationError("A valid email is required")
            if not name or not name.strip():
                raise ValidationError("Name is required")
            self._check_password(password)

            if await self.lookup.by_email(email):
                raise DuplicateError()

            canonical_phone = None
            if phone:
                canonical_phone = self.phones.subject_key(phone)
                if await self.lookup.phone_taken(canonical_phone):
                    raise DuplicateError("User already exists with this phone number")

            now = utc_now_iso()
            user = User(
                email=email,
                phone=canonical_phone,
                name=name.strip(),
                password_hash=await self.credentials.hash_async(password),
                auth_methods=[AuthMethod.PASSWORD],
                is_verified=False,
                last_login_at=now,
                created_at=now,
                updated_at=now,
            )
            await self._create_user(user)
        except IdentityError as exc:
            return self._fail("Registration", exc)

        logger.info("User registered", extra={"user_id": user.id, "method": "password"})
        return UserResult(user.profile())

    async def register_with_google(
        self,
        email: str,
        google_id: str,
        name: Optional[str] = None,
        profile_image: Optional[str] = None,
    ) -> AuthResult:
        """
        Register (or log in) with a delegated identity.

        When the email or the Google id already resolves to a user, that user
        is returned and nothing is created.
        """
        try:
            email = normalize_email(email)
            if not email or not google_id:
                raise ValidationError("Email and Google id are required")

            existing = await self.lookup.by_email(email) or await self.lookup.by_delegated_id(google_id)
            if existing:
                logger.info(
                    "Google registration matched existing user",
                    extra={"user_id": existing.id},
                )
                return UserResult(existing.profile())

            now = utc_now_iso()
            user = User(
                email=email,
                name=(name or "").strip() or "User",
                profile_image=profile_image,
                password_hash=None,
                google_id=google_id,
                auth_methods=[AuthMethod.GOOGLE],
                is_verified=True,
                last_login_at=now,
                created_at=now,
                updated_at=now,
            )
            await self._create_user(user)
        except IdentityError as exc:
            return self._fail("Google registration", exc)

        logger.info("User registered", extra={"user_id": user.id, "method": "google"})
        return UserResult(user.profile())

    # ------------------------------------------------------------------
    # Password login
    # ------------------------------------------------------------------

    async def login_with_email(self, email: str, password: str) -> AuthResult:
        """
        Authenticate with email and password.

        Unknown email, password-less account and wrong password all produce
        the same "Invalid email or password" failure.
        """
        try:
            user = await self.lookup.by_email(email)
            if user is None or not user.has_password:
                raise InvalidCredentialsError()
            if not await self.credentials.verify_async(password, user.password_hash):
                raise InvalidCredentialsError()

            updates: Dict[str, Any] = {"last_login_at": utc_now_iso()}
            if self.credentials.needs_rehash(user.password_hash):
                updates["password_hash"] = await self.credentials.hash_async(password)
                logger.info("Upgrading password hash", extra={"user_id": user.id})
            user = await self._update_user(user.id, updates)
        except IdentityError as exc:
            return self._fail("Login", exc)

        return UserResult(user.profile())

    # ------------------------------------------------------------------
    # Phone OTP login
    # ------------------------------------------------------------------

    async def send_phone_otp(self, phone: str) -> OtpIssueResult:
        """
        Send a login code to a registered phone.

        Unregistered phones receive a "please register" notice instead.
        If delivery fails the issued code stays live; calling again replaces it.
        """
        if not phone or not phone.strip():
            return self._fail("Send OTP", ValidationError("Phone number is required"))
        canonical = self.phones.subject_key(phone)

        try:
            user = await self.lookup.by_phone(canonical)
        except IdentityError as exc:
            return self._fail("Send OTP", exc)

        if user is None:
            logger.info("Phone not registered, sending registration notice",
                        extra={"phone": self.phones.mask(canonical)})
            text = self._message(self.settings.registration_notice_template)
            try:
                receipt = await self._deliver(canonical, text, "send registration notice")
            except IdentityError as exc:
                return self._fail("Send OTP", exc, needs_registration=True)
            return RegistrationNoticeSent(delivery_id=receipt.delivery_id)

        code = self.otp_codes.issue(canonical, metadata={"user_id": user.id})
        text = self._message(self.settings.otp_message_template, code=code)
        try:
            receipt = await self._deliver(canonical, text, "send otp")
        except IdentityError as exc:
            return self._fail("Send OTP", exc)

        logger.info("OTP sent", extra={"user_id": user.id, "delivery_id": receipt.delivery_id})
        return OtpSent(delivery_id=receipt.delivery_id)

    async def verify_phone_otp(self, phone: str, code: str) -> AuthResult:
        """Log in with a phone login code."""
        if not phone or not code:
            return self._fail("Verify OTP", ValidationError("Phone number and code are required"))
        canonical = self.phones.subject_key(phone)

        try:
            self.otp_codes.consume(canonical, code)
        except (InvalidCodeError, ExpiredCodeError) as exc:
            logger.info("OTP rejected: %s", exc.code, extra={"phone": self.phones.mask(canonical)})
            return Failure(error=INVALID_CODE_MESSAGE, code=exc.code)

        try:
            user = await self.lookup.by_phone(canonical)
            if user is None:
                return self._fail(
                    "Verify OTP",
                    NotFoundError("No account found for this phone number. Please register first."),
                    needs_registration=True,
                )
            user = await self._update_user(user.id, {"last_login_at": utc_now_iso()})
        except IdentityError as exc:
            return self._fail("Verify OTP", exc)

        return UserResult(user.profile())

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def request_password_reset(self, identifier: str) -> ResetRequestResult:
        """
        Issue a password reset code for the account behind an email or phone.

        Unknown identifiers get the same generic success message as known ones.
        """
        if not identifier or not identifier.strip():
            return self._fail("Password reset request", ValidationError("Email or phone is required"))

        try:
            user = await self.lookup.by_email_or_phone(identifier)
        except IdentityError as exc:
            return self._fail("Password reset request", exc)

        if user is None:
            return MessageResult(RESET_REQUESTED_MESSAGE)
        if not user.has_password:
            return self._fail("Password reset request", UnsupportedAccountTypeError())

        minutes = max(1, int(self.settings.reset_code_ttl_seconds // 60))
        code = self.reset_codes.issue(user.id, metadata={"email": user.email})

        delivery_error: Optional[InfraError] = None
        if user.phone:
            text = self._message(self.settings.reset_message_template, code=code, minutes=minutes)
            try:
                await self._deliver(user.phone, text, "send reset code")
                logger.info("Password reset code sent via SMS", extra={"user_id": user.id})
                return MessageResult("Password reset code sent successfully")
            except InfraError as exc:
                logger.warning("Reset code delivery failed: %s", exc, extra={"user_id": user.id})
                delivery_error = exc

        # Undelivered codes stay reachable through the server log
        logger.warning("Password reset code for %s: %s", user.email, code, extra={"user_id": user.id})
        if self.settings.reset_code_fallback:
            return ResetCodeIssued(reset_code=code)
        if delivery_error is not None:
            return self._fail("Password reset request", delivery_error)
        return MessageResult(RESET_REQUESTED_MESSAGE)

    async def reset_password(self, identifier: str, code: str, new_password: str) -> PasswordResult:
        """Complete a password reset with a reset code."""
        try:
            if not code or not new_password:
                raise ValidationError("Reset code and new password are required")
            self._check_password(new_password)

            user = await self.lookup.by_email_or_phone(identifier) if identifier else None
            if user is None:
                raise NotFoundError("Invalid reset code or user not found")

            self.reset_codes.consume(user.id, code)

            user = await self._update_user(user.id, {
                "password_hash": await self.credentials.hash_async(new_password),
                "auth_methods": self._with_method(user, AuthMethod.PASSWORD),
            })
        except IdentityError as exc:
            return self._fail("Password reset", exc)

        logger.info("Password reset", extra={"user_id": user.id})
        return MessageResult("Password reset successfully")

    async def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
    ) -> PasswordResult:
        """
        Change a user's password.

        Accounts without a password (Google-only) may set one without
        providing a current password.
        """
        try:
            user = await self.lookup.by_id(user_id)
            if user is None:
                raise NotFoundError()
            if user.has_password and not await self.credentials.verify_async(
                current_password, user.password_hash
            ):
                raise InvalidCredentialsError("Current password is incorrect")
            self._check_password(new_password)

            await self._update_user(user.id, {
                "password_hash": await self.credentials.hash_async(new_password),
                "auth_methods": self._with_method(user, AuthMethod.PASSWORD),
            })
        except IdentityError as exc:
            return self._fail("Change password", exc)

        return MessageResult("Password updated successfully")

    # ------------------------------------------------------------------
    # Profiles and search
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> AuthResult:
        """Get a user profile by id."""
        try:
            user = await self.lookup.by_id(user_id)
            if user is None:
                raise NotFoundError()
        except IdentityError as exc:
            return self._fail("Get user", exc)
        return UserResult(user.profile())

    async def update_profile(self, user_id: str, updates: Dict[str, Any]) -> AuthResult:
        """
        Update profile fields.

        Only name, email, phone and profile_image may change here; email and
        phone stay unique.
        """
        try:
            unknown = set(updates) - PROFILE_FIELDS
            if unknown:
                raise ValidationError(f"Unsupported profile fields: {', '.join(sorted(unknown))}")

            user = await self.lookup.by_id(user_id)
            if user is None:
                raise NotFoundError()

            changes: Dict[str, Any] = {}
            if "name" in updates:
                name = (updates["name"] or "").strip()
                if not name:
                    raise ValidationError("Name is required")
                changes["name"] = name
            if "email" in updates:
                email = normalize_email(updates["email"])
                if not email or "@" not in email:
                    raise ValidationError("A valid email is required")
                if await self.lookup.email_taken(email, exclude_id=user.id):
                    raise DuplicateError("Email already in use")
                changes["email"] = email
            if "phone" in updates:
                phone = updates["phone"]
                if phone:
                    phone = self.phones.subject_key(phone)
                    if await self.lookup.phone_taken(phone, exclude_id=user.id):
                        raise DuplicateError("Phone number already in use")
                changes["phone"] = phone or None
            if "profile_image" in updates:
                changes["profile_image"] = updates["profile_image"]

            if changes:
                user = await self._update_user(user.id, changes)
        except IdentityError as exc:
            return self._fail("Update profile", exc)

        return UserResult(user.profile())

    async def search_users(self, query: str) -> SearchResult:
        """Search users by name, email or phone; ``google:<id>`` for exact id."""
        try:
            users = await self.lookup.search(query)
        except IdentityError as exc:
            return self._fail("Search users", exc)
        return UsersResult([u.profile() for u in users])
