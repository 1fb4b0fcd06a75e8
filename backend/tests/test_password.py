"""Unit tests for bcrypt password hashing."""

from auth_service.core.auth import burn_password_check, hash_password, verify_password


def test_hash_is_not_plaintext():
    hashed = hash_password("pw123")
    assert hashed != "pw123"
    assert "pw123" not in hashed
    assert hashed.startswith("$2")


def test_hash_is_salted():
    assert hash_password("pw123") != hash_password("pw123")


def test_verify_password():
    hashed = hash_password("pw123")
    assert verify_password("pw123", hashed)
    assert not verify_password("pw124", hashed)
    assert not verify_password("", hashed)


def test_verify_malformed_hash_is_false():
    assert not verify_password("pw123", "not-a-bcrypt-hash")


def test_long_passwords_truncated_to_72_bytes():
    """bcrypt only looks at the first 72 bytes; longer input must not raise."""
    base = "a" * 72
    hashed = hash_password(base + "tail-one")
    assert verify_password(base + "tail-two", hashed)


def test_burn_password_check_does_not_raise():
    burn_password_check("anything")
