import base64
import hashlib
import secrets
import time
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from app.platform.config import settings

# Fallback key for development (never use in production)
DEV_KEY = "dev-key-32-chars-for-testing-only"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_email(email: str) -> str:
    """Irreversible digest of the normalized email, used for duplicate detection."""
    return hashlib.sha256(normalize_email(email).encode("utf-8")).hexdigest()


def _get_fernet(secret: Optional[str] = None) -> Fernet:
    secret = secret or settings.ENCRYPTION_KEY
    if not secret:
        if settings.ENVIRONMENT == "production":
            raise RuntimeError("ENCRYPTION_KEY environment variable is required in production")
        secret = DEV_KEY
    # Use SHA256 to get 32 bytes, then base64 encode for Fernet
    key_hash = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(key_hash))


def encrypt_email(email: str, secret: Optional[str] = None) -> str:
    return _get_fernet(secret).encrypt(email.encode("utf-8")).decode("utf-8")


def decrypt_email(ciphertext: str, secret: Optional[str] = None) -> str:
    try:
        return _get_fernet(secret).decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        raise ValueError("Failed to decrypt data - invalid key or corrupted data")


def generate_unsubscribe_token() -> str:
    return secrets.token_urlsafe(32)


def generate_verification_token() -> str:
    """Random token prefixed with its issue time in ms so its age can be checked."""
    return f"{int(time.time() * 1000)}.{secrets.token_urlsafe(24)}"


def is_verification_token_fresh(token: str, max_age_hours: int = 24) -> bool:
    timestamp, _, random_part = token.partition(".")
    if not random_part or not timestamp.isdigit():
        return False
    age_ms = time.time() * 1000 - int(timestamp)
    return age_ms <= max_age_hours * 60 * 60 * 1000
