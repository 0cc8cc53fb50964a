"""Salted one-way password hashing and the password acceptance policy."""

from __future__ import annotations

import re

from argon2 import PasswordHasher as Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError

from ..errors import ValidationError

PASSWORD_SYMBOLS = "!@#$%^&*()-_=+{};:,<.>"
MIN_PASSWORD_LENGTH = 8

_REQUIRED_CLASSES = (
    re.compile("[A-Z]"),
    re.compile("[a-z]"),
    re.compile("[0-9]"),
    re.compile("[" + re.escape(PASSWORD_SYMBOLS) + "]"),
)

POLICY_MESSAGE = (
    f"Password must contain at least {MIN_PASSWORD_LENGTH} characters, one uppercase, "
    f"one lowercase, one number and one special character ({PASSWORD_SYMBOLS})"
)


def check_password_policy(plaintext: str) -> None:
    """Raise :class:`ValidationError` unless ``plaintext`` satisfies the policy."""
    if len(plaintext) < MIN_PASSWORD_LENGTH or not all(
        pattern.search(plaintext) for pattern in _REQUIRED_CLASSES
    ):
        raise ValidationError(POLICY_MESSAGE)


class PasswordHasher:
    """Argon2id hashing with a fresh random salt per call."""

    def __init__(
        self,
        *,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
    ) -> None:
        self._hasher = Argon2Hasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )

    def hash(self, plaintext: str) -> str:
        """Return the encoded argon2 hash; engine failures propagate unchanged."""
        return self._hasher.hash(plaintext)

    def verify(self, plaintext: str, password_hash: str) -> bool:
        """Return ``True`` only when ``plaintext`` matches ``password_hash``.

        Mismatches and corrupt stored hashes are both reported as ``False``.
        """
        if not plaintext or not password_hash:
            return False
        try:
            return self._hasher.verify(password_hash, plaintext)
        except (VerificationError, InvalidHashError):
            return False
