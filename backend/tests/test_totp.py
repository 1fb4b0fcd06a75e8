"""Unit tests for TOTP enrollment and verification."""

import time
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pyotp
import pytest

from auth_service.config import settings
from auth_service.core.totp import current_code, generate_secret, verify_code


def test_generate_secret_is_base32_with_uri():
    enrollment = generate_secret("alice@example.com")
    assert len(enrollment.secret) >= 16
    pyotp.TOTP(enrollment.secret).now()  # valid base32
    uri = urlparse(enrollment.enrollment_uri)
    assert uri.scheme == "otpauth"
    assert uri.netloc == "totp"
    assert "alice%40example.com" in uri.path or "alice@example.com" in uri.path
    query = parse_qs(uri.query)
    assert query["secret"] == [enrollment.secret]
    assert query["issuer"] == [settings.totp_issuer]


def test_generate_secret_is_random():
    assert generate_secret("a@b.co").secret != generate_secret("a@b.co").secret


def test_issuer_comes_from_settings():
    with patch.object(settings, "totp_issuer", "My App"):
        enrollment = generate_secret("alice@example.com")
    assert "issuer=My%20App" in enrollment.enrollment_uri


def test_verify_current_code():
    secret = pyotp.random_base32()
    assert verify_code(secret, current_code(secret))


def test_verify_tolerates_one_step_drift():
    secret = pyotp.random_base32()
    totp = pyotp.TOTP(secret)
    assert verify_code(secret, totp.at(time.time() - 30))
    assert verify_code(secret, totp.at(time.time() + 30))


def test_verify_rejects_two_steps_drift():
    secret = pyotp.random_base32()
    totp = pyotp.TOTP(secret)
    assert not verify_code(secret, totp.at(time.time() - 60))


def test_code_for_other_secret_rejected():
    secret, other = pyotp.random_base32(), pyotp.random_base32()
    code = current_code(other)
    # 1-in-a-million chance the codes collide; compare directly to keep the test deterministic
    if code != current_code(secret):
        assert not verify_code(secret, code)


@pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef", "12 34 5", None])
def test_malformed_codes_rejected(code):
    assert not verify_code(pyotp.random_base32(), code)


def test_spaces_in_code_are_ignored():
    secret = pyotp.random_base32()
    code = current_code(secret)
    assert verify_code(secret, f"{code[:3]} {code[3:]}")


def test_invalid_secret_rejected():
    assert not verify_code("not base32!!", "123456")
    assert not verify_code("", "123456")
