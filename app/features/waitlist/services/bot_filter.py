import re
from typing import Any, Mapping

BOT_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in ("bot", "crawler", "spider", "scraper", "curl", "wget", "python", "go-http")
]

# Real browsers always send these
BROWSER_HEADERS = ("accept", "accept-language", "accept-encoding")


def validate_honeypot(value: Any) -> bool:
    """True when the hidden field was left empty, i.e. the submitter looks human."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    return not value


def detect_bot(user_agent: str, headers: Mapping[str, str]) -> bool:
    if any(pattern.search(user_agent or "") for pattern in BOT_PATTERNS):
        return True

    return any(not headers.get(name) for name in BROWSER_HEADERS)


def sanitize_user_agent(user_agent: str) -> str:
    return re.sub(r"[<>\"']", "", user_agent or "")[:500]
