"""
accounts/credentials.py -- Password hashing, verification, policy, and generation.

Security design decisions:
  Hashing: bcrypt directly (no passlib wrapper). Salt is generated fresh per
       call by bcrypt.gensalt() and embedded in the output, so verification
       needs nothing but the stored string. BCRYPT_ROUNDS=10 keeps one
       verification in the tens of milliseconds -- that latency is the
       brute-force throttle.

  Verification never raises. Absent input, a malformed hash, an unknown
       algorithm tag and any internal bcrypt error all come back as False,
       so callers cannot tell "wrong password" from "broken hash".

  bcrypt only reads the first 72 bytes of input and bcrypt>=5 rejects longer
       input outright. hash_password() turns that into InvalidInputError up
       front instead of letting a ValueError escape from the library.

  Temporary passwords use secrets.choice() over a fixed alphabet. They are
       handed to a person once and expected to be changed.

Layer rule: leaf module. Imports nothing from the rest of the project except
accounts.results.
"""

from __future__ import annotations

import logging
import re
import secrets
from typing import Optional

import bcrypt

from accounts.results import InvalidInputError

logger = logging.getLogger("schoolrecords.accounts.credentials")

BCRYPT_ROUNDS = 10
_BCRYPT_MAX_BYTES = 72
_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")

MIN_PASSWORD_LENGTH = 6
PASSWORD_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#$%^&*"

_HAS_LETTER = re.compile(r"[A-Za-z]")
_HAS_DIGIT = re.compile(r"[0-9]")


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def hash_password(plain: Optional[str]) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises InvalidInputError if the password is missing, empty, whitespace
    only, or longer than bcrypt's 72-byte input limit.
    """
    if plain is None or not plain.strip():
        raise InvalidInputError("Password cannot be empty")
    encoded = plain.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        raise InvalidInputError(f"Password cannot exceed {_BCRYPT_MAX_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: Optional[str], hashed: Optional[str]) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if not plain or not hashed:
        return False
    if not hashed.startswith(_BCRYPT_PREFIXES):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except Exception:
        logger.debug("Password verification raised; treating as mismatch", exc_info=True)
        return False


# Timing equalization: authenticate() runs bcrypt against this hash when the
# username is unknown, so an unknown user costs the same as a wrong password.
DUMMY_HASH: str = hash_password("schoolrecords_timing_dummy1")


# ---------------------------------------------------------------------------
# Policy and generation
# ---------------------------------------------------------------------------


def meets_policy(plain: Optional[str]) -> bool:
    """True iff the password has at least 6 characters, a letter, and a digit."""
    if plain is None or len(plain) < MIN_PASSWORD_LENGTH:
        return False
    return bool(_HAS_LETTER.search(plain)) and bool(_HAS_DIGIT.search(plain))


def random_password(length: int) -> str:
    """Return `length` characters drawn uniformly from PASSWORD_ALPHABET."""
    if length < 1:
        raise InvalidInputError("Password length must be at least 1")
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
