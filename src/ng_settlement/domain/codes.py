"""Discount code generation.

Format: <prefix><N random uppercase alphanumerics>, e.g. NEGO-7K2QX9AB.
Uniqueness is NOT guaranteed here; the issuer checks the store and retries.
"""

import secrets
import string

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_code(prefix: str, length: int) -> str:
    return prefix + "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    """Codes are case-insensitive on input; stored upper-case."""
    return code.strip().upper()
