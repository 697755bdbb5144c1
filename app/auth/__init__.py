"""Authentication helpers."""

from app.auth.passwords import (
    LocalPasswordPolicyError,
    generate_panel_password,
    hash_password,
    normalize_login_username,
    verify_password,
)

__all__ = [
    "LocalPasswordPolicyError",
    "generate_panel_password",
    "hash_password",
    "normalize_login_username",
    "verify_password",
]
