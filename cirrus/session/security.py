# =============================================================================
# Session Token Primitives
# =============================================================================
# Partition keys are salted one-way hashes of the caller's session key; sort
# keys and CSRF tokens are independent random values. Every secret comparison
# goes through hmac.compare_digest.
# =============================================================================

import hashlib
import hmac
import secrets
from typing import Any, Optional, Tuple

TOKEN_BYTES = 32
TOKEN_SEPARATOR = ":"


def hash_session_key(session_key: str, salt: str) -> str:
    """sha256(session_key + salt) as hex; the raw key never becomes a lookup key."""
    return hashlib.sha256(f"{session_key}{salt}".encode("utf-8")).hexdigest()


def generate_token(nbytes: int = TOKEN_BYTES) -> str:
    return secrets.token_hex(nbytes)


def constant_time_compare(a: Any, b: Any) -> bool:
    """Compare two secrets without leaking where they first differ."""
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def split_session_token(session_token: Any) -> Optional[Tuple[str, str]]:
    """Return (partition_key, sort_key) or None when the token is malformed."""
    if not isinstance(session_token, str):
        return None
    parts = session_token.split(TOKEN_SEPARATOR)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


def join_session_token(partition_key: str, sort_key: str) -> str:
    return f"{partition_key}{TOKEN_SEPARATOR}{sort_key}"
