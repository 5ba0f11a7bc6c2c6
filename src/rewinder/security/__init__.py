"""Credential helpers used when seeding users."""

from .passwords import PasswordHash, hash_password

__all__ = ["PasswordHash", "hash_password"]
