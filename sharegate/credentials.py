"""
Share password hashing and verification.

A single bcrypt path serves every share target. Malformed stored hashes fail
closed; a missing bcrypt backend is an infrastructure fault, not a denial.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from passlib.context import CryptContext
from passlib.exc import MissingBackendError

from .config import get_settings
from .errors import InfrastructureFault, ValidationFault

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def _crypt_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def _context() -> CryptContext:
    return _crypt_context(get_settings().share_password_rounds)


def hash_share_password(plaintext: str) -> str:
    if not plaintext:
        raise ValidationFault("Password must not be empty", field="password")
    try:
        return _context().hash(plaintext)
    except MissingBackendError as exc:
        raise InfrastructureFault("bcrypt backend unavailable", component="credentials") from exc


def verify_share_password(plaintext: str | None, stored_hash: str | None) -> bool:
    if not plaintext or not stored_hash:
        return False
    try:
        return _context().verify(plaintext, stored_hash)
    except MissingBackendError as exc:
        raise InfrastructureFault("bcrypt backend unavailable", component="credentials") from exc
    except (ValueError, TypeError) as exc:
        # Unknown or corrupt hash: deny, and never echo the secret
        logger.warning(f"Rejecting share password against malformed stored hash: {type(exc).__name__}")
        return False
