"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.kernel.infra.retry import RetryPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Record store
    record_store: str = "sql"  # "sql" or "memory"
    database_url: str = "sqlite+aiosqlite:///./identity.db"
    users_table: str = "users"

    # Credentials
    bcrypt_rounds: int = 12
    min_password_length: int = 6

    # One-time codes
    otp_ttl_seconds: int = 300  # 5 minutes
    reset_code_ttl_seconds: int = 900  # 15 minutes
    code_sweep_interval_seconds: int = 60
    reset_code_fallback: bool = True  # development only: return reset code when SMS is unavailable

    # Retry policy for record store and messaging calls
    retry_max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_backoff_multiplier: float = 2.0

    # Phone numbers
    phone_country_code: str = "972"
    phone_trunk_prefix: str = "0"

    # SMS
    sms_provider: str = "log"  # "log" or "http"
    sms_http_url: str = ""
    sms_http_auth_token: str = ""
    sms_sender_name: str = ""
    sms_timeout_seconds: float = 5.0
    brand_name: str = "ZIKO"
    otp_message_template: str = "Your {brand} verification code is: {code}"
    registration_notice_template: str = (
        "Your number is not registered with {brand}. Please register first."
    )
    reset_message_template: str = (
        "Your {brand} password reset code is: {code}. This code expires in {minutes} minutes."
    )

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_prefix: str = "/api"
    project_name: str = "Identity & Verification Service"
    version: str = "1.0.0"

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy for external calls."""
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
