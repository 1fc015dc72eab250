# =============================================================================
# Error Taxonomy
# =============================================================================
# Every failure the dispatch pipeline or the session layer raises on purpose.
# All of them funnel into the single error boundary in Cirrus.render, except
# ValidationFailed which has its own handler.
# =============================================================================

from typing import Any, List, Optional


class CirrusError(Exception):
    """Base class for all framework errors."""


class RegistryFrozen(CirrusError):
    """Raised when an action or hook is registered after the first request."""


class SessionNotEnabled(CirrusError):
    """Raised when session helpers are used before a session store is configured."""


# =============================================================================
# SESSION ERRORS
# =============================================================================

class SessionError(CirrusError):
    """Base class for session failures."""


class SessionInvalid(SessionError):
    """Session record exists but failed validation (expired, tampered, CSRF mismatch)."""


class SessionTokensInvalid(SessionInvalid):
    """Request-side tokens are missing or malformed; the store was not contacted."""


class SessionNotFound(SessionInvalid):
    """No session record matches the supplied token."""


# =============================================================================
# PIPELINE ERRORS
# =============================================================================

class HookAborted(CirrusError):
    """
    A beforeRender/afterRender hook returned Err(...) instead of a value.

    The message mirrors the wrapped error so error handlers can surface it
    without unwrapping.
    """

    def __init__(self, error: BaseException, event: str = "", hook: Any = None):
        super().__init__(str(error))
        self.error = error
        self.event = event
        self.hook = hook


class ValidationFailed(CirrusError):
    """Operation payload was rejected by the action's validator."""

    def __init__(self, message: str = "Input validation failed", errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors or []
