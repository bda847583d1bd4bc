"""
Pytest fixtures for identity service tests.
"""

from typing import List, Optional, Tuple

import pytest
import pytest_asyncio

from src.config import Settings
from src.kernel.errors import InfraError
from src.kernel.identity.codes import OneTimeCodeStore
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.password import CredentialManager
from src.kernel.identity.phone import PhoneNormalizer
from src.kernel.infra.messaging import DeliveryReceipt
from src.kernel.infra.record_store import InMemoryRecordStore
from src.kernel.infra.retry import RetryExecutor, RetryPolicy
from src.kernel.models.user import AuthMethod, User


TEST_PASSWORD = "TestPassword123"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingGateway:
    """Messaging gateway that records sends and can be told to fail."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.error: Optional[InfraError] = None

    async def send(self, destination: str, text: str) -> DeliveryReceipt:
        if self.error is not None:
            raise self.error
        self.sent.append((destination, text))
        return DeliveryReceipt(delivery_id=f"msg-{len(self.sent)}")

    @property
    def last_text(self) -> str:
        return self.sent[-1][1]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def settings() -> Settings:
    """Fast, isolated settings (low bcrypt cost, memory store)."""
    return Settings(
        _env_file=None,
        record_store="memory",
        bcrypt_rounds=4,
        sms_provider="log",
        reset_code_fallback=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def executor(sleeper: RecordingSleep) -> RetryExecutor:
    return RetryExecutor(RetryPolicy(max_retries=3, base_delay=1.0, max_delay=10.0), sleep=sleeper)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def phones() -> PhoneNormalizer:
    return PhoneNormalizer()


@pytest.fixture
def credentials() -> CredentialManager:
    return CredentialManager(rounds=4)


@pytest.fixture
def service(
    store: InMemoryRecordStore,
    gateway: RecordingGateway,
    settings: Settings,
    executor: RetryExecutor,
    credentials: CredentialManager,
    clock: FakeClock,
    phones: PhoneNormalizer,
) -> IdentityService:
    """Identity service wired to in-memory fakes and a controllable clock."""
    return IdentityService(
        store,
        gateway,
        settings,
        executor=executor,
        credentials=credentials,
        otp_codes=OneTimeCodeStore(
            "login_otp",
            settings.otp_ttl_seconds,
            clock=clock,
            key_normalizer=phones.subject_key,
        ),
        reset_codes=OneTimeCodeStore(
            "password_reset",
            settings.reset_code_ttl_seconds,
            clock=clock,
        ),
    )


@pytest_asyncio.fixture
async def test_user(store: InMemoryRecordStore, credentials: CredentialManager) -> User:
    """A password user with a phone stored in local format."""
    user = User(
        email="testuser@example.com",
        phone="0501234567",
        name="Test User",
        password_hash=credentials.hash(TEST_PASSWORD),
        auth_methods=[AuthMethod.PASSWORD],
    )
    await store.put("users", user.to_item())
    return user


@pytest_asyncio.fixture
async def google_user(store: InMemoryRecordStore) -> User:
    """A Google-only user without a password."""
    user = User(
        email="googler@example.com",
        name="Google User",
        google_id="g-123",
        auth_methods=[AuthMethod.GOOGLE],
        is_verified=True,
    )
    await store.put("users", user.to_item())
    return user
