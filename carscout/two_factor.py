"""
TOTP code generation for accounts protected by two-factor authentication.
"""
import binascii
import re

import pyotp


def generate_code(secret: str) -> str:
    """Return the current six-digit TOTP code for a base32 secret."""
    if not secret or not secret.strip():
        raise ValueError("Two-factor secret is empty")
    normalized = re.sub(r"\s+", "", secret).upper()
    try:
        return pyotp.TOTP(normalized).now()
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Malformed two-factor secret: {e}") from e
