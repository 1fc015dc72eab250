# =============================================================================
# Session Controller
# =============================================================================
# Per-request wrapper around SessionManager. Reads tokens from the request
# context, attaches/clears ctx.session, and queues Set-Cookie headers that the
# dispatcher applies after afterRender.
# =============================================================================

import logging
from email.utils import formatdate
from typing import Any, Optional

from cirrus.runtime.context import RequestContext
from cirrus.runtime.errors import SessionError, SessionNotFound, SessionTokensInvalid
from cirrus.session.manager import SessionManager
from cirrus.session.security import split_session_token
from cirrus.session.store import SessionRecord

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TOKEN_COOKIE = "CRSSESSIONTKID"
DEFAULT_SESSION_CSRF_COOKIE = "CRSSESSIONCSTK"
EXPIRED_COOKIE_OFFSET = 100


def _cookie_expiry(epoch_seconds: float) -> str:
    return formatdate(epoch_seconds, usegmt=True)


class SessionController:
    """Session operations bound to one RequestContext."""

    def __init__(
        self,
        manager: SessionManager,
        ctx: RequestContext,
        session_token_cookie_key: str = DEFAULT_SESSION_TOKEN_COOKIE,
        session_csrf_cookie_key: str = DEFAULT_SESSION_CSRF_COOKIE,
    ):
        self.manager = manager
        self.ctx = ctx
        self.session_token_cookie_key = session_token_cookie_key
        self.session_csrf_cookie_key = session_csrf_cookie_key

    # =========================================================================
    # Request-side tokens
    # =========================================================================

    @property
    def request_session_token(self) -> Optional[str]:
        return self.ctx.cookies.get(self.session_token_cookie_key)

    @property
    def request_csrf_token(self) -> Any:
        return self.ctx.body.get("token")

    def are_request_session_tokens_valid(self) -> bool:
        """
        Structural check before touching the store.

        Operation calls must also carry a non-empty CSRF token in the body;
        route reads only need a well-formed session cookie.
        """
        if split_session_token(self.request_session_token) is None:
            return False
        if self.ctx.is_operation_call:
            csrf_token = self.request_csrf_token
            return isinstance(csrf_token, str) and len(csrf_token) > 0
        return True

    # =========================================================================
    # Cookies
    # =========================================================================

    def _queue_session_cookies(self, record: SessionRecord) -> None:
        expires = _cookie_expiry(record.expires_at)
        add_headers = self.ctx.internal.add_headers
        add_headers.append((
            "Set-Cookie",
            f"{self.session_token_cookie_key}={record.session_token}; Expires={expires}; Path=/; HttpOnly; SameSite=Lax; Secure",
        ))
        add_headers.append((
            "Set-Cookie",
            f"{self.session_csrf_cookie_key}={record.csrf_token}; Expires={expires}; Path=/; SameSite=Lax; Secure",
        ))

    def _queue_expired_cookies(self) -> None:
        expires = _cookie_expiry(self.manager.clock() - EXPIRED_COOKIE_OFFSET)
        add_headers = self.ctx.internal.add_headers
        add_headers.append((
            "Set-Cookie",
            f"{self.session_token_cookie_key}=0; Expires={expires}; Path=/; HttpOnly; SameSite=Lax; Secure",
        ))
        add_headers.append((
            "Set-Cookie",
            f"{self.session_csrf_cookie_key}=0; Expires={expires}; Path=/; SameSite=Lax; Secure",
        ))

    def _require_session(self) -> SessionRecord:
        if self.ctx.session is None:
            raise SessionNotFound("Session not found.")
        return self.ctx.session

    # =========================================================================
    # Operations
    # =========================================================================

    def create_session(self, session_key: str, data: Any = None, ttl_in_seconds: Optional[int] = None) -> SessionRecord:
        record = self.manager.create_session(session_key, data, ttl_in_seconds)
        self._queue_session_cookies(record)
        self.ctx.session = record
        return record

    def fetch_session(self) -> SessionRecord:
        """Validate request tokens, load the session and attach it to ctx."""
        if not self.are_request_session_tokens_valid():
            raise SessionTokensInvalid("Session tokens are invalid")

        if self.ctx.is_operation_call:
            record = self.manager.fetch_session(self.request_session_token, self.request_csrf_token)
        else:
            record = self.manager.fetch_session(self.request_session_token, None, skip_csrf=True)
        self.ctx.session = record
        return record

    def fetch_session_if_exists(self) -> Optional[SessionRecord]:
        try:
            return self.fetch_session()
        except SessionError as e:
            logger.debug(f"No usable session: {e}")
            return None

    def is_session_valid(self, record: Optional[SessionRecord]) -> bool:
        if self.ctx.is_operation_call:
            return self.manager.is_session_valid(record, self.request_session_token, self.request_csrf_token)
        return self.manager.is_session_valid(record, self.request_session_token, None, skip_csrf=True)

    def update_session_data(self, new_data: Any) -> SessionRecord:
        record = self.manager.update_session_data(self._require_session(), new_data)
        self.ctx.session = record
        return record

    def regenerate_session(self) -> SessionRecord:
        record = self.manager.regenerate_session(self._require_session())
        self._queue_session_cookies(record)
        self.ctx.session = record
        return record

    def end_session(self) -> None:
        self.manager.delete_session(self._require_session())
        self._queue_expired_cookies()
        self.ctx.session = None

    def end_session_all(self) -> int:
        deleted = self.manager.delete_session_all(self._require_session())
        self._queue_expired_cookies()
        self.ctx.session = None
        return deleted
