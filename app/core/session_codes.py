"""Join-code generation, normalization, and format checks."""

from __future__ import annotations

import random
import re
import secrets
from functools import lru_cache

from app.config import get_settings

SAFE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_NON_ALPHANUMERIC = re.compile(r"[^A-Z0-9]")


def _random_bytes(count: int) -> bytes:
    """Return random bytes, degrading to the non-cryptographic PRNG if the OS source is missing."""
    try:
        return secrets.token_bytes(count)
    except NotImplementedError:
        fallback = random.Random()
        return bytes(fallback.getrandbits(8) for _ in range(count))


class SessionCodeGenerator:
    """Fixed-length session codes drawn from an alphabet without I, O, 0 and 1."""

    def __init__(self, length: int) -> None:
        if length <= 0:
            raise ValueError("Session code length must be a positive integer.")
        self._length = length

    @property
    def length(self) -> int:
        """Configured code length."""
        return self._length

    def generate(self) -> str:
        """Draw one code of the configured length."""
        raw = _random_bytes(self._length)
        return "".join(SAFE_ALPHABET[byte % len(SAFE_ALPHABET)] for byte in raw)

    @staticmethod
    def normalize(value: str | None) -> str:
        """Uppercase, trim, and drop everything outside [A-Z0-9]."""
        return _NON_ALPHANUMERIC.sub("", (value or "").upper().strip())

    def is_valid(self, code: str) -> bool:
        """Exact length match with every symbol from the safe alphabet."""
        if not isinstance(code, str) or len(code) != self._length:
            return False
        return all(symbol in SAFE_ALPHABET for symbol in code)

    def describe_format(self) -> str:
        """Human-readable format rule for validation messages."""
        return (
            f"Session code must be {self._length} characters long and contain only "
            "letters and numbers (no I, O, 0, 1)."
        )


@lru_cache
def get_session_code_generator() -> SessionCodeGenerator:
    """Create and cache the code generator from settings."""
    settings = get_settings()
    return SessionCodeGenerator(length=settings.session_codes.length)
