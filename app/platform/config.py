from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class SignupPolicy(str, Enum):
    REQUIRE_EMAIL_VERIFICATION = "require_email_verification"
    VERIFY_IMMEDIATELY = "verify_immediately"


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Unmask"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    PUBLIC_URL: str = "http://localhost:3000"

    # ── Database ────────────────────────────────
    DATABASE_URL: str

    # ── Rate limiting ───────────────────────────
    # Leave empty to use the in-process counter store (single instance only)
    REDIS_URL: Optional[str] = None
    RATE_LIMIT_SWEEP_SECONDS: int = 900

    # ── Waitlist ────────────────────────────────
    SIGNUP_POLICY: SignupPolicy = SignupPolicy.REQUIRE_EMAIL_VERIFICATION
    REJECT_TYPO_DOMAINS: bool = False
    PUBLIC_COUNT_FALLBACK: int = 0
    VERIFICATION_TOKEN_MAX_AGE_HOURS: int = 24

    # x-debug-bypass is ignored unless this is switched on server side
    ALLOW_DEBUG_BYPASS: bool = False
    EMAIL_DEBUG: bool = False
    ADMIN_API_KEY: Optional[str] = None

    # ── Security ────────────────────────────────
    ENCRYPTION_KEY: Optional[str] = None

    # ── Email Configuration ─────────────────────
    MAIL_FROM_ADDRESS: str = "hello@unmask.life"
    MAIL_FROM_NAME: str = "Unmask"
    EMAIL_PROVIDER_TIMEOUT: int = 30

    MAILGUN_API_KEY: Optional[str] = None
    MAILGUN_DOMAIN: Optional[str] = None
    MAILGUN_BASE_URL: str = "https://api.mailgun.net/v3"

    SENDGRID_API_KEY: Optional[str] = None

    EMAIL_RELAY_URL: str = ""
    EMAIL_RELAY_API_KEY: str = ""

    MAIL_HOST: Optional[str] = None
    MAIL_PORT: int = 587
    MAIL_USERNAME: Optional[str] = None
    MAIL_PASSWORD: Optional[str] = None
    MAIL_ENCRYPTION: str = "tls"

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
