# =============================================================================
# Session Manager
# =============================================================================
# Issues, validates, rotates and revokes session records on top of a
# SessionStore. Cookie side effects live in SessionController; this layer only
# deals with records and tokens.
# =============================================================================

import logging
import time
from dataclasses import replace
from typing import Any, Callable, Optional

from cirrus.runtime.errors import SessionInvalid, SessionNotFound, SessionTokensInvalid
from cirrus.session.security import (
    constant_time_compare,
    generate_token,
    hash_session_key,
    join_session_token,
    split_session_token,
)
from cirrus.session.store import SessionRecord, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 30 * 24 * 60 * 60


class SessionManager:
    """
    Session lifecycle over a SessionStore.

    Args:
        store: Persistence adapter
        session_salt: Server-held secret mixed into partition key hashes
        enable_sliding_expiration: Extend expires_at on every successful access
        default_ttl_in_seconds: Lifetime for sessions created without a ttl
        clock: Returns the current epoch time in seconds
    """

    def __init__(
        self,
        store: SessionStore,
        session_salt: str,
        enable_sliding_expiration: bool = True,
        default_ttl_in_seconds: int = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.time,
    ):
        if not session_salt:
            raise ValueError("session_salt must be a non-empty secret")
        self.store = store
        self.session_salt = session_salt
        self.enable_sliding_expiration = enable_sliding_expiration
        self.default_ttl_in_seconds = default_ttl_in_seconds
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    def _touch(self, record: SessionRecord) -> SessionRecord:
        record.last_accessed_at = self._now()
        if self.enable_sliding_expiration:
            record.expires_at = record.last_accessed_at + int(record.ttl_in_seconds)
        return record

    # =========================================================================
    # Issue
    # =========================================================================

    def create_session(self, session_key: str, data: Any = None, ttl_in_seconds: Optional[int] = None) -> SessionRecord:
        """Persist and return a new session for session_key."""
        if not session_key:
            raise ValueError("session_key is required")
        ttl = int(ttl_in_seconds) if ttl_in_seconds is not None else self.default_ttl_in_seconds
        partition_key = hash_session_key(str(session_key), self.session_salt)
        sort_key = generate_token()
        now = self._now()

        record = SessionRecord(
            partition_key=partition_key,
            sort_key=sort_key,
            session_token=join_session_token(partition_key, sort_key),
            csrf_token=generate_token(),
            session_key=str(session_key),
            data=data if data is not None else {},
            created_at=now,
            last_accessed_at=now,
            expires_at=now + ttl,
            ttl_in_seconds=ttl,
        )
        self.store.put(record)
        logger.info(f"Created session partition={partition_key[:8]}... ttl={ttl}s")
        return record

    # =========================================================================
    # Validate
    # =========================================================================

    def is_session_valid(self, record: Optional[SessionRecord], session_token: Any,
                         csrf_token: Any, skip_csrf: bool = False) -> bool:
        """
        True iff the record is complete, unexpired, and the supplied tokens match.

        Both comparisons are constant-time.
        """
        if record is None or not record.has_required_fields():
            return False
        if not isinstance(session_token, str) or not session_token:
            return False
        if not constant_time_compare(record.session_token, session_token):
            return False
        if record.expires_at <= self._now():
            return False
        if not skip_csrf:
            if not isinstance(csrf_token, str) or not csrf_token:
                return False
            if not constant_time_compare(record.csrf_token, csrf_token):
                return False
        return True

    def fetch_session(self, session_token: Any, csrf_token: Any = None, skip_csrf: bool = False) -> SessionRecord:
        """
        Look up and validate a session.

        Raises:
            SessionTokensInvalid: token is not "partition:sort"
            SessionNotFound: no record under that key
            SessionInvalid: record failed is_session_valid()

        With sliding expiration the refreshed expiry is persisted before
        returning.
        """
        key = split_session_token(session_token)
        if key is None:
            raise SessionTokensInvalid("Session token is malformed")

        record = self.store.get(*key)
        if record is None:
            raise SessionNotFound("Session not found")

        if not self.is_session_valid(record, session_token, csrf_token, skip_csrf=skip_csrf):
            logger.warning(f"Rejected session partition={key[0][:8]}...")
            raise SessionInvalid("Invalid session")

        if self.enable_sliding_expiration:
            self._touch(record)
            self.store.put(record)
        return record

    # =========================================================================
    # Mutate
    # =========================================================================

    def update_session_data(self, record: SessionRecord, new_data: Any) -> SessionRecord:
        """Replace the payload and bump last access."""
        if record is None:
            raise SessionNotFound("Session not found")
        record.data = new_data
        self._touch(record)
        self.store.put(record)
        return record

    def regenerate_session(self, record: SessionRecord) -> SessionRecord:
        """Swap the record for a fresh one with new tokens."""
        if record is None:
            raise SessionNotFound("Session not found")
        previous = replace(record)
        self.delete_session(previous)
        return self.create_session(previous.session_key, previous.data, previous.ttl_in_seconds)

    # =========================================================================
    # Revoke
    # =========================================================================

    def delete_session(self, record: SessionRecord) -> None:
        """Delete one record; deleting an already-deleted record fails."""
        if record is None:
            raise SessionNotFound("Session not found")
        if not self.store.delete(record.partition_key, record.sort_key):
            raise SessionNotFound("Session not found")

    def delete_session_all(self, record: SessionRecord) -> int:
        """Delete every session ever issued under the record's session key."""
        if record is None:
            raise SessionNotFound("Session not found")
        records = self.store.query_by_partition(record.partition_key)
        deleted = 0
        for row in records:
            if self.store.delete(record.partition_key, row.sort_key):
                deleted += 1
        logger.info(f"Deleted {deleted} session(s) for partition={record.partition_key[:8]}...")
        return deleted
