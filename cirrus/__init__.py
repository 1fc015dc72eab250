# =============================================================================
# Cirrus - Lambda Request Dispatch with Server-Side Sessions
# =============================================================================
# Routes and operations are matched first-wins, wrapped by a priority-ordered
# hook pipeline, and backed by DynamoDB session records.
# =============================================================================

from cirrus.runtime.dispatch import ActionEntry, ActionKind, Cirrus
from cirrus.runtime.errors import (
    CirrusError,
    HookAborted,
    RegistryFrozen,
    SessionError,
    SessionInvalid,
    SessionNotEnabled,
    SessionNotFound,
    SessionTokensInvalid,
    ValidationFailed,
)
from cirrus.runtime.hooks import Err, HookEvent, Ok
from cirrus.runtime.response import Response, ResponseBuilder
from cirrus.runtime.resolver import Resolver
from cirrus.runtime.validation import pydantic_validator

__version__ = "1.0.0"

__all__ = [
    "Cirrus",
    "ActionEntry",
    "ActionKind",
    "HookEvent",
    "Ok",
    "Err",
    "Response",
    "ResponseBuilder",
    "Resolver",
    "pydantic_validator",
    "CirrusError",
    "RegistryFrozen",
    "SessionNotEnabled",
    "SessionError",
    "SessionInvalid",
    "SessionTokensInvalid",
    "SessionNotFound",
    "HookAborted",
    "ValidationFailed",
]
