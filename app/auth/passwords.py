"""Password hashing for local logins and generation of panel credentials."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string

PASSWORD_SCHEME = "pbkdf2_sha256"
PANEL_PASSWORD_ALPHABET = string.ascii_letters + string.digits
_DIGEST_BYTES = 32
_SALT_BYTES = 16


class LocalPasswordPolicyError(ValueError):
    """Raised when password input does not meet local policy."""


def normalize_login_username(username: str) -> str:
    normalized = username.strip().lower()
    if not normalized:
        raise ValueError("username is required")
    return normalized


def hash_password(*, password: str, min_length: int, iterations: int) -> str:
    if len(password) < min_length:
        raise LocalPasswordPolicyError(f"password must be at least {min_length} characters")

    salt = secrets.token_bytes(_SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "$".join((PASSWORD_SCHEME, str(iterations), salt.hex(), digest.hex()))


def verify_password(*, password: str, encoded_hash: str) -> bool:
    try:
        scheme, iterations_raw, salt_hex, digest_hex = encoded_hash.split("$")
        iterations = int(iterations_raw)
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
    except ValueError:
        return False
    if scheme != PASSWORD_SCHEME or iterations <= 0 or not expected:
        return False

    actual = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        iterations,
        dklen=len(expected),
    )
    return hmac.compare_digest(actual, expected)


def generate_panel_password(length: int = 12) -> str:
    """Generate the credential stored on a hosting account for panel logins."""
    return "".join(secrets.choice(PANEL_PASSWORD_ALPHABET) for _ in range(length))
