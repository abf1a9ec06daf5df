"""Credential generation and small input-hygiene helpers."""

import math
import secrets

TOKEN_LENGTH = 40
SESSION_ID_LENGTH = 44
CSRF_TOKEN_LENGTH = 43
INVITATION_CODE_LENGTH = 32

MAX_PLAYER_NAME_LENGTH = 50
MAX_PLAYER_CITY_LENGTH = 100


def generate_secure_token(length: int) -> str:
    """Random string of exactly ``length`` URL-safe base64 characters.

    Each character carries 6 bits of entropy from the system CSPRNG.
    """
    if length < 1:
        raise ValueError("length must be at least 1")
    nbytes = math.ceil(length * 3 / 4) + 1
    return secrets.token_urlsafe(nbytes)[:length]


def constant_time_equals(a: str | None, b: str | None) -> bool:
    if a is None or b is None:
        return False
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def mask_secret(value: str | None) -> str:
    """Loggable form of a token or session id."""
    if not value:
        return "-"
    return f"{value[:4]}…"


def sanitize_filename(name: str) -> str:
    """Make ``name`` safe to embed in a Content-Disposition header."""
    for char in ("\r", "\n", '"', "\\"):
        name = name.replace(char, "_")
    return name


def clean_text(value: str | None, max_length: int) -> str:
    """Trim whitespace and cap length. Escaping happens at render time."""
    if value is None:
        return ""
    return value.strip()[:max_length]
