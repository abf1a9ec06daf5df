import re

import pytest

from id100.core.security import (
    CSRF_TOKEN_LENGTH,
    INVITATION_CODE_LENGTH,
    SESSION_ID_LENGTH,
    TOKEN_LENGTH,
    clean_text,
    constant_time_equals,
    generate_secure_token,
    mask_secret,
    sanitize_filename,
)

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


@pytest.mark.parametrize(
    "length", [1, 2, 3, 4, 5, TOKEN_LENGTH, SESSION_ID_LENGTH, CSRF_TOKEN_LENGTH, INVITATION_CODE_LENGTH]
)
def test_generate_secure_token_exact_length(length):
    """Tokens have exactly the requested length and only URL-safe characters."""
    value = generate_secure_token(length)
    assert len(value) == length
    assert URL_SAFE.match(value)


def test_generate_secure_token_is_random():
    values = {generate_secure_token(TOKEN_LENGTH) for _ in range(50)}
    assert len(values) == 50


@pytest.mark.parametrize("length", [0, -1])
def test_generate_secure_token_rejects_non_positive(length):
    with pytest.raises(ValueError):
        generate_secure_token(length)


def test_constant_time_equals():
    assert constant_time_equals("abc", "abc") is True
    assert constant_time_equals("abc", "abd") is False
    assert constant_time_equals("abc", "abcd") is False
    assert constant_time_equals(None, "abc") is False
    assert constant_time_equals("äöü", "äöü") is True


def test_sanitize_filename_strips_header_breakers():
    assert sanitize_filename('qr_a"b\\c\r\nd.png') == "qr_a_b_c__d.png"
    assert sanitize_filename("qr_Tasche 1.png") == "qr_Tasche 1.png"


def test_clean_text_trims_and_caps():
    assert clean_text("  Alice  ", 50) == "Alice"
    assert clean_text("x" * 80, 50) == "x" * 50
    assert clean_text(None, 10) == ""


def test_mask_secret_keeps_only_prefix():
    assert mask_secret("abcdefghij") == "abcd…"
    assert mask_secret(None) == "-"
