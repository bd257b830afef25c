"""
Temporary credential generation and bcrypt hashing for newly provisioned users.
"""

import secrets
import string

import bcrypt

from .logger import get_logger

# Ambiguous glyphs (0/O, 1/l/I) are left out so passwords survive being read aloud
_LETTERS = "".join(c for c in string.ascii_letters if c not in "OlI")
_DIGITS = "".join(c for c in string.digits if c not in "01")
_SYMBOLS = "!@#$%^&*"
_ALPHABET = _LETTERS + _DIGITS + _SYMBOLS


def generate_temp_password(length: int = 12) -> str:
    """
    Generate a random temporary password.

    The result always contains at least one lower-case letter, one upper-case
    letter, one digit and one symbol.
    """
    if length < 8:
        raise ValueError("Temporary passwords must be at least 8 characters")

    required = [
        secrets.choice(string.ascii_lowercase),
        secrets.choice([c for c in string.ascii_uppercase if c not in "OI"]),
        secrets.choice(_DIGITS),
        secrets.choice(_SYMBOLS),
    ]
    rest = [secrets.choice(_ALPHABET) for _ in range(length - len(required))]
    chars = required + rest
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


class PasswordHasher:
    """bcrypt hashing with a configurable cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Raises:
            ValueError: If password is empty.
        """
        if not password:
            raise ValueError("Password cannot be empty")

        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Return True when ``password`` matches ``password_hash``."""
        if not password or not password_hash:
            return False

        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError as e:
            get_logger().warning(
                "Password verification failed", extra={"error_details": str(e)}
            )
            return False
