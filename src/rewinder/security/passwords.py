"""PBKDF2 password hashing for seeded accounts."""

from __future__ import annotations

import binascii
import hashlib
import secrets
from dataclasses import dataclass

DEFAULT_ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 390_000
SALT_BYTES = 16


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


@dataclass(slots=True)
class PasswordHash:
    """Structured representation of a PBKDF2 hash entry."""

    algorithm: str
    iterations: int
    salt: bytes
    digest: bytes

    @classmethod
    def parse(cls, encoded: str) -> "PasswordHash":
        """Parse an encoded password hash string."""

        try:
            algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
            iterations_int = int(iterations)
            salt = binascii.unhexlify(salt_hex)
            digest = binascii.unhexlify(digest_hex)
        except (ValueError, binascii.Error) as exc:
            raise ValueError("invalid password hash format") from exc
        return cls(
            algorithm=algorithm,
            iterations=iterations_int,
            salt=salt,
            digest=digest,
        )

    def encode(self) -> str:
        return "$".join(
            (
                self.algorithm,
                str(self.iterations),
                binascii.hexlify(self.salt).decode("ascii"),
                binascii.hexlify(self.digest).decode("ascii"),
            )
        )


def hash_password(password: str, *, iterations: int = DEFAULT_ITERATIONS) -> str:
    """Return an encoded PBKDF2-SHA256 hash with a random salt."""

    salt = secrets.token_bytes(SALT_BYTES)
    return PasswordHash(
        algorithm=DEFAULT_ALGORITHM,
        iterations=iterations,
        salt=salt,
        digest=_derive(password, salt, iterations),
    ).encode()


__all__ = ["PasswordHash", "hash_password"]
