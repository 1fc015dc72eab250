# =============================================================================
# Session Package - Server-Side Sessions
# =============================================================================
# Token primitives, store adapters, the session manager and the per-request
# controller that turns session changes into Set-Cookie headers.
# =============================================================================

from cirrus.session.store import SessionRecord, SessionStore, DynamoDBSessionStore, InMemorySessionStore
from cirrus.session.manager import SessionManager
from cirrus.session.controller import SessionController

__all__ = [
    "SessionRecord",
    "SessionStore",
    "DynamoDBSessionStore",
    "InMemorySessionStore",
    "SessionManager",
    "SessionController",
]
