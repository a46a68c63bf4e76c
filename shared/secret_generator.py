"""
Secret material generation and handling helpers.
"""

import hmac
import re
import secrets
import string
import uuid
from typing import Dict, Optional, Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


PASSWORD_CHARSET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "!@#$%^&*"

PBKDF2_ITERATIONS = 10000
PBKDF2_LENGTH = 64

_SPECIAL_CHARS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


class SecretGenerator:
    """
    Generates and inspects secret material.

    All randomness comes from the ``secrets`` module.
    """

    @staticmethod
    def generate_secure_token(length: int = 32) -> str:
        """
        Generate a hex token.

        Args:
            length: Number of random bytes; the result has ``2 * length`` characters

        Returns:
            Hexadecimal token
        """
        return secrets.token_hex(length)

    @staticmethod
    def generate_uuid() -> str:
        """Generate a random UUID4 string."""
        return str(uuid.uuid4())

    @staticmethod
    def generate_secure_password(length: int = 16) -> str:
        """
        Generate a password drawn uniformly from ``PASSWORD_CHARSET``.

        Args:
            length: Password length

        Returns:
            Password
        """
        return "".join(secrets.choice(PASSWORD_CHARSET) for _ in range(length))

    @staticmethod
    def hash_with_salt(data: str, salt: Optional[str] = None) -> Tuple[str, str]:
        """
        Hash a value with PBKDF2-SHA512.

        Args:
            data: Value to hash
            salt: Hex salt; a fresh 16-byte salt is generated when omitted

        Returns:
            (hash, salt) as hex strings
        """
        if not salt:
            salt = secrets.token_hex(16)

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=PBKDF2_LENGTH,
            salt=salt.encode(),
            iterations=PBKDF2_ITERATIONS,
        )
        return kdf.derive(data.encode()).hex(), salt

    @classmethod
    def verify_hash(cls, data: str, expected_hash: str, salt: str) -> bool:
        """Check ``data`` against a hash produced by ``hash_with_salt``."""
        computed, _ = cls.hash_with_salt(data, salt)
        return hmac.compare_digest(computed, expected_hash)

    @staticmethod
    def mask_secret(secret: Optional[str], visible_chars: int = 4) -> str:
        """Mask a secret for display, keeping only a short prefix."""
        if not secret or len(secret) <= visible_chars:
            return "***"

        masked = "*" * min(len(secret) - visible_chars, 8)
        return f"{secret[:visible_chars]}{masked}"

    @staticmethod
    def validate_password_strength(password: Optional[str]) -> Dict[str, object]:
        """
        Score a password against the length and character-class requirements.

        Returns:
            Dictionary with ``valid``, ``score`` and per-requirement flags
        """
        requirements = {
            "min_length": False,
            "has_uppercase": False,
            "has_lowercase": False,
            "has_numbers": False,
            "has_special_chars": False,
        }
        if not password:
            return {"valid": False, "score": 0, "requirements": requirements}

        requirements["min_length"] = len(password) >= 12
        requirements["has_uppercase"] = bool(re.search(r"[A-Z]", password))
        requirements["has_lowercase"] = bool(re.search(r"[a-z]", password))
        requirements["has_numbers"] = bool(re.search(r"\d", password))
        requirements["has_special_chars"] = bool(_SPECIAL_CHARS.search(password))

        score = sum(1 for met in requirements.values() if met)
        return {
            "valid": score >= 4 and requirements["min_length"],
            "score": score,
            "requirements": requirements,
        }
