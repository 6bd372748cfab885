import time

import pytest
from unittest.mock import patch

from app.features.waitlist.utils.crypto import (
    decrypt_email,
    encrypt_email,
    generate_unsubscribe_token,
    generate_verification_token,
    hash_email,
    is_verification_token_fresh,
    normalize_email,
)


def test_hash_is_stable_across_case_and_whitespace():
    assert hash_email(" Alice@Example.COM ") == hash_email("alice@example.com")
    assert len(hash_email("alice@example.com")) == 64
    assert hash_email("alice@example.com") != hash_email("bob@example.com")


def test_normalize_email():
    assert normalize_email("  MiXeD@Case.Org\n") == "mixed@case.org"


def test_encryption_is_randomized_but_reversible():
    first = encrypt_email("alice@example.com", "key-one")
    second = encrypt_email("alice@example.com", "key-one")

    assert first != second
    assert "alice" not in first
    assert decrypt_email(first, "key-one") == "alice@example.com"
    assert decrypt_email(second, "key-one") == "alice@example.com"


def test_decrypt_with_wrong_key_fails():
    ciphertext = encrypt_email("alice@example.com", "key-one")
    with pytest.raises(ValueError):
        decrypt_email(ciphertext, "key-two")


def test_missing_key_is_fatal_in_production():
    with patch("app.features.waitlist.utils.crypto.settings") as fake_settings:
        fake_settings.ENCRYPTION_KEY = None
        fake_settings.ENVIRONMENT = "production"
        with pytest.raises(RuntimeError):
            encrypt_email("alice@example.com")


def test_missing_key_uses_dev_key_outside_production():
    with patch("app.features.waitlist.utils.crypto.settings") as fake_settings:
        fake_settings.ENCRYPTION_KEY = None
        fake_settings.ENVIRONMENT = "local"
        assert decrypt_email(encrypt_email("alice@example.com")) == "alice@example.com"


def test_tokens_are_unique_and_bounded():
    unsubscribe = {generate_unsubscribe_token() for _ in range(50)}
    verification = {generate_verification_token() for _ in range(50)}

    assert len(unsubscribe) == 50
    assert len(verification) == 50
    assert all(10 <= len(token) <= 100 for token in unsubscribe | verification)


def test_fresh_verification_token():
    assert is_verification_token_fresh(generate_verification_token()) is True


def test_stale_verification_token():
    issued = int((time.time() - 25 * 3600) * 1000)
    assert is_verification_token_fresh(f"{issued}.abcdefghij") is False
    assert is_verification_token_fresh(f"{issued}.abcdefghij", max_age_hours=48) is True


@pytest.mark.parametrize("token", ["no-dot-here", "abc.def", "123.", ""])
def test_malformed_verification_token_is_not_fresh(token):
    assert is_verification_token_fresh(token) is False
