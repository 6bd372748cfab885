import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import bleach
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from app.platform.schemas import APIResponse

# RFC 5322 simplified
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

MIN_EMAIL_LENGTH = 5
MAX_EMAIL_LENGTH = 254


def _clean_attribution(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = bleach.clean(value, tags=[], strip=True).strip()
    return cleaned or None


class WaitlistIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str
    source: Optional[str] = Field(None, max_length=50)
    referrer: Optional[str] = Field(None, max_length=2048)
    utm_source: Optional[str] = Field(None, max_length=100)
    utm_medium: Optional[str] = Field(None, max_length=100)
    utm_campaign: Optional[str] = Field(None, max_length=100)
    utm_term: Optional[str] = Field(None, max_length=100)
    utm_content: Optional[str] = Field(None, max_length=100)
    ab_test_variant: Optional[str] = Field(None, max_length=50)
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise PydanticCustomError("email_required", "Email is required")
        email = value.strip().lower()
        if len(email) < MIN_EMAIL_LENGTH:
            raise PydanticCustomError("email_too_short", "Email too short")
        if len(email) > MAX_EMAIL_LENGTH:
            raise PydanticCustomError("email_too_long", "Email too long")
        if not EMAIL_PATTERN.match(email):
            raise PydanticCustomError("email_format", "Invalid email format")
        return email

    @field_validator("referrer")
    @classmethod
    def validate_referrer(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise PydanticCustomError("referrer_url", "Referrer must be a valid URL")
        return value

    @field_validator(
        "source", "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
        "ab_test_variant",
    )
    @classmethod
    def sanitize_attribution(cls, value: Optional[str]) -> Optional[str]:
        return _clean_attribution(value)


class TokenIn(BaseModel):
    token: str = Field(..., min_length=10, max_length=100)


class WaitlistOut(BaseModel):
    id: str
    email: str
    verification_required: bool
    waitlist_position: Optional[int] = None
    suggestions: Optional[List[str]] = None


class WaitListResponse(APIResponse[WaitlistOut]):
    pass


class WaitlistCountOut(BaseModel):
    count: int


class SourceCount(BaseModel):
    source: str
    count: int


class DailyStat(BaseModel):
    date: str
    signups: int
    verified: int
    conversion_rate: float


class WaitlistStatsResponse(BaseModel):
    total_signups: int
    verified_signups: int
    recent_signups: int
    conversion_rate: float
    top_sources: List[SourceCount]
    top_referrers: List[SourceCount] = []
    daily_stats: List[DailyStat]
