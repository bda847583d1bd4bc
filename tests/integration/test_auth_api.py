"""Integration tests for auth API endpoints."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from unittest.mock import AsyncMock

from src.kernel.errors import ErrorKind, TransientInfraError
from src.kernel.infra.messaging import LogSmsGateway
from src.kernel.infra.record_store import InMemoryRecordStore
from src.main import app, build_identity_service, build_record_store

TEST_PASSWORD = "TestPassword123"


@pytest_asyncio.fixture
async def client(service):
    """HTTP client against the app, wired to the in-memory identity service."""
    app.state.identity_service = service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    del app.state.identity_service


class TestAuthAPI:
    """Integration tests for /api/auth endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_register_new_user(self, client: AsyncClient):
        """Test user registration endpoint."""
        response = await client.post(
            "/api/auth/register",
            json={
                "email": "newuser@example.com",
                "password": "SecurePass123",
                "name": "New User",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["user"]["email"] == "newuser@example.com"
        assert "password_hash" not in data["user"]
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client: AsyncClient, test_user):
        """Test registration with existing email."""
        response = await client.post(
            "/api/auth/register",
            json={
                "email": "testuser@example.com",
                "password": "AnotherPass123",
                "name": "Second User",
            },
        )

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "User already exists with this email",
            "code": "duplicate",
        }

    @pytest.mark.asyncio
    async def test_register_malformed_body(self, client: AsyncClient):
        response = await client.post("/api/auth/register", json={"email": "not-an-email"})

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["errors"]

    @pytest.mark.asyncio
    async def test_register_google(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register/google",
            json={"email": "g@example.com", "google_id": "g-1", "name": "G"},
        )
        assert response.status_code == 200
        assert response.json()["user"]["auth_methods"] == ["google"]

    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient, test_user):
        response = await client.post(
            "/api/auth/login",
            json={"email": "testuser@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 200
        assert response.json()["user"]["id"] == test_user.id

    @pytest.mark.asyncio
    async def test_login_invalid_credentials(self, client: AsyncClient, test_user):
        """Test login with wrong password."""
        response = await client.post(
            "/api/auth/login",
            json={"email": "testuser@example.com", "password": "WrongPassword"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_phone_otp_round_trip(self, client: AsyncClient, service, gateway, test_user):
        sent = await client.post("/api/auth/phone/send-otp", json={"phone": "050-123-4567"})
        assert sent.status_code == 200
        assert sent.json()["delivery_id"] == "msg-1"

        code = service.otp_codes.peek("0501234567").code
        verified = await client.post(
            "/api/auth/phone/verify-otp",
            json={"phone": "+972501234567", "code": code},
        )
        assert verified.status_code == 200
        assert verified.json()["user"]["id"] == test_user.id

        replay = await client.post(
            "/api/auth/phone/verify-otp",
            json={"phone": "+972501234567", "code": code},
        )
        assert replay.status_code == 401
        assert replay.json()["error"] == "Invalid or expired code"

    @pytest.mark.asyncio
    async def test_send_otp_unregistered_phone(self, client: AsyncClient):
        response = await client.post("/api/auth/phone/send-otp", json={"phone": "0529999999"})
        assert response.status_code == 200
        assert response.json()["needs_registration"] is True

    @pytest.mark.asyncio
    async def test_password_reset_flow(self, client: AsyncClient, service, test_user):
        forgot = await client.post(
            "/api/auth/password/forgot",
            json={"email_or_phone": "testuser@example.com"},
        )
        assert forgot.status_code == 200
        assert forgot.json()["message"] == "Password reset code sent successfully"

        code = service.reset_codes.peek(test_user.id).code
        reset = await client.post(
            "/api/auth/password/reset",
            json={
                "email_or_phone": "testuser@example.com",
                "reset_code": code,
                "new_password": "BrandNew123",
            },
        )
        assert reset.status_code == 200
        assert reset.json() == {"success": True, "message": "Password reset successfully"}

        login = await client.post(
            "/api/auth/login",
            json={"email": "testuser@example.com", "password": "BrandNew123"},
        )
        assert login.status_code == 200

    @pytest.mark.asyncio
    async def test_forgot_password_unknown_account(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/password/forgot",
            json={"email_or_phone": "nobody@example.com"},
        )
        assert response.status_code == 200
        assert response.json()["message"] == "If an account exists, a reset code will be sent"

    @pytest.mark.asyncio
    async def test_change_password(self, client: AsyncClient, test_user):
        wrong = await client.post(
            "/api/auth/change-password",
            json={"user_id": test_user.id, "current_password": "nope", "new_password": "Changed123"},
        )
        assert wrong.status_code == 401

        ok = await client.post(
            "/api/auth/change-password",
            json={
                "user_id": test_user.id,
                "current_password": TEST_PASSWORD,
                "new_password": "Changed123",
            },
        )
        assert ok.status_code == 200
        assert ok.json()["message"] == "Password updated successfully"

    @pytest.mark.asyncio
    async def test_get_user_and_update_profile(self, client: AsyncClient, test_user):
        missing = await client.get("/api/auth/user/does-not-exist")
        assert missing.status_code == 404

        updated = await client.put(
            f"/api/auth/profile/{test_user.id}",
            json={"name": "Renamed"},
        )
        assert updated.status_code == 200
        assert updated.json()["user"]["name"] == "Renamed"

        fetched = await client.get(f"/api/auth/user/{test_user.id}")
        assert fetched.json()["user"]["name"] == "Renamed"
        assert fetched.json()["user"]["phone"] == "0501234567"

    @pytest.mark.asyncio
    async def test_update_profile_rejects_unknown_fields(self, client: AsyncClient, test_user):
        response = await client.put(
            f"/api/auth/profile/{test_user.id}",
            json={"password_hash": "x"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_search_users(self, client: AsyncClient, test_user, google_user):
        response = await client.post("/api/auth/search-users", json={"query": "google:g-123"})

        assert response.status_code == 200
        assert [u["id"] for u in response.json()["users"]] == [google_user.id]

    @pytest.mark.asyncio
    async def test_store_outage_is_503(self, client: AsyncClient, store):
        store.scan = AsyncMock(side_effect=TransientInfraError(ErrorKind.UNAVAILABLE, "db down"))

        response = await client.post(
            "/api/auth/login",
            json={"email": "testuser@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 503
        assert response.json()["error"] == "Service temporarily unavailable. Please try again."


class TestAppWiring:
    @pytest.mark.asyncio
    async def test_memory_backend_wiring(self, settings):
        store = await build_record_store(settings)
        service = build_identity_service(settings, store)

        assert isinstance(store, InMemoryRecordStore)
        assert isinstance(service.messaging, LogSmsGateway)
        assert service.settings is settings

    @pytest.mark.asyncio
    async def test_missing_service_is_an_error(self):
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/auth/user/u1")
        assert response.status_code == 500
        assert response.json()["success"] is False
