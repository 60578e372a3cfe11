"""
auth/passwords.py -- bcrypt verification primitives for AUTHD password hashes.

Security design decisions:
  Hash method: AUTHD tags every password row with an integer method. Only
       HASH_METHOD_BCRYPT is understood. Any other tag fails verification --
       a new scheme needs explicit support here before it is trusted.

  Tag normalization: bcrypt digests start with a variant tag ("$2b$",
       "$2y$", ...). "$2y$" (PHP crypt_blowfish) and "$2b$" (OpenBSD, and
       pyca/bcrypt's canonical form) denote the same algorithm with the same
       cost and salt encoding. normalize_hash_encoding() rewrites known
       equivalents to the canonical tag using BCRYPT_TAG_EQUIVALENCES and
       touches nothing after the tag. "$2x$" (the crypt_blowfish sign-
       extension bug) is NOT equivalent and is left alone, so it fails.

  Expiry: expires_at is epoch seconds, 0 meaning "never". A password whose
       expires_at is in the past is rejected even if it matches.

  Timing: verify_dummy() runs bcrypt against _DUMMY_HASH so an unknown user
       costs the same as a wrong password and response time does not reveal
       whether a username exists.

Cleartext passwords are never logged or stored by this module.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import bcrypt

logger = logging.getLogger("duneauth.passwords")

# NB: must match HASH_METHOD in the game server's authd.h.
HASH_METHOD_BCRYPT = 0x01

# foreign tag -> canonical tag accepted by bcrypt.checkpw
BCRYPT_TAG_EQUIVALENCES: dict[str, str] = {
    "$2y$": "$2b$",
}

# bcrypt only ever consumes this many bytes of the password.
_BCRYPT_MAX_PASSWORD_BYTES = 72


def normalize_hash_encoding(digest: str) -> str:
    """Rewrite a foreign bcrypt variant tag to its canonical equivalent.

    Only the leading tag changes; cost, salt and hash body are returned
    byte-for-byte. Digests with an unknown tag are returned unchanged.
    """
    for foreign, canonical in BCRYPT_TAG_EQUIVALENCES.items():
        if digest.startswith(foreign):
            return canonical + digest[len(foreign) :]
    return digest


def now_timestamp() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def is_expired(expires_at: int, now: int | None = None) -> bool:
    """Return True if expires_at is set (non-zero) and lies before now."""
    if expires_at == 0:
        return False
    if now is None:
        now = now_timestamp()
    return expires_at < now


def _encode_password(plain: str) -> bytes:
    # Older bcrypt releases silently truncated at 72 bytes; bcrypt 5 raises
    # instead. Truncate here so hashes issued by the game server still match.
    return plain.encode("utf-8")[:_BCRYPT_MAX_PASSWORD_BYTES]


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of plain. Used for the timing dummy and test fixtures."""
    return bcrypt.hashpw(_encode_password(plain), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if plain matches the bcrypt digest hashed.

    A digest bcrypt cannot parse (unknown tag, truncated, not ASCII) is a
    failed verification, never an exception.
    """
    try:
        return bcrypt.checkpw(_encode_password(plain), hashed.encode("ascii"))
    except (ValueError, UnicodeEncodeError):
        logger.debug("bcrypt rejected a malformed digest")
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("duneauth_timing_dummy")


def verify_dummy(plain: str) -> None:
    """Burn one bcrypt comparison against a fixed hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)
