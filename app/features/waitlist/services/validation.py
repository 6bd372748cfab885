from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import ValidationError

from app.features.waitlist.schemas.waitlist import (
    EMAIL_PATTERN,
    MAX_EMAIL_LENGTH,
    MIN_EMAIL_LENGTH,
    WaitlistIn,
)
from app.platform.exceptions import InvalidPayload

DISPOSABLE_DOMAINS = {
    "10minutemail.com",
    "mailinator.com",
    "guerrillamail.com",
    "temp-mail.org",
    "throwaway.email",
    "tempmail.org",
    "yopmail.com",
}

DOMAIN_TYPOS = {
    "gmial.com": "gmail.com",
    "gmai.com": "gmail.com",
    "gmail.co": "gmail.com",
    "yahooo.com": "yahoo.com",
    "yaho.com": "yahoo.com",
    "yahoo.co": "yahoo.com",
    "hotmial.com": "hotmail.com",
    "hotmai.com": "hotmail.com",
    "outlok.com": "outlook.com",
    "outloo.com": "outlook.com",
}

COMMON_DOMAINS = [
    "gmail.com",
    "yahoo.com",
    "hotmail.com",
    "outlook.com",
    "icloud.com",
    "protonmail.com",
]

MAX_SUGGESTIONS = 3
MAX_TYPO_DISTANCE = 2


@dataclass
class EmailValidationResult:
    valid: bool
    reason: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


def validate_structure(payload: Any) -> WaitlistIn:
    """Parse a raw request body, raising InvalidPayload with the first broken rule."""
    if not isinstance(payload, dict):
        raise InvalidPayload("Request body must be a JSON object")
    try:
        return WaitlistIn.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(part) for part in first["loc"]) or "body"
        if field_name == "email":
            message = "Email is required" if first["type"] == "missing" else first["msg"]
        else:
            message = f"{field_name}: {first['msg']}"
        raise InvalidPayload(message)


def levenshtein_distance(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(current[j - 1] + 1, previous[j] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def suggest_domains(email: str) -> List[str]:
    local_part, _, domain = email.partition("@")
    domain = domain.lower()

    if domain in DOMAIN_TYPOS:
        return [f"{local_part}@{DOMAIN_TYPOS[domain]}"]

    suggestions = [
        f"{local_part}@{common}"
        for common in COMMON_DOMAINS
        if common != domain and levenshtein_distance(domain, common) <= MAX_TYPO_DISTANCE
    ]
    return suggestions[:MAX_SUGGESTIONS]


def validate_email_advanced(email: str, reject_typo_domains: bool = False) -> EmailValidationResult:
    """
    Semantic checks on an address that already passed structural validation.

    Disposable domains are always rejected. Typo suggestions are advisory
    unless reject_typo_domains is set, in which case a domain found in the
    exact typo table is rejected. Fuzzy matches never block.
    """
    email = (email or "").strip().lower()
    if (
        len(email) < MIN_EMAIL_LENGTH
        or len(email) > MAX_EMAIL_LENGTH
        or not EMAIL_PATTERN.match(email)
    ):
        return EmailValidationResult(valid=False, reason="Invalid email format")

    domain = email.rsplit("@", 1)[1]
    if domain in DISPOSABLE_DOMAINS:
        return EmailValidationResult(
            valid=False, reason="Disposable email addresses are not allowed"
        )

    suggestions = suggest_domains(email)
    if reject_typo_domains and domain in DOMAIN_TYPOS:
        return EmailValidationResult(
            valid=False,
            reason=f"Did you mean {suggestions[0]}?",
            suggestions=suggestions,
        )

    return EmailValidationResult(valid=True, suggestions=suggestions)
