# =============================================================================
# Runtime Package - Dispatch Pipeline
# =============================================================================
# - Context building from API Gateway proxy events (REST v1 / HTTP API v2)
# - Condition matching, hooks, response building
# - Error boundary and environment-driven configuration
# =============================================================================

from cirrus.runtime.context import RequestContext, build_context
from cirrus.runtime.conditions import PathTemplate, Pattern, Predicate, to_condition
from cirrus.runtime.hooks import HookEvent, HookRegistry, Ok, Err
from cirrus.runtime.response import Response, ResponseBuilder
from cirrus.runtime.resolver import Completion, Resolver
from cirrus.runtime.dispatch import Cirrus, ActionEntry, ActionKind
from cirrus.runtime.deps import Deps, Settings, create_deps

__all__ = [
    "RequestContext",
    "build_context",
    "PathTemplate",
    "Pattern",
    "Predicate",
    "to_condition",
    "HookEvent",
    "HookRegistry",
    "Ok",
    "Err",
    "Response",
    "ResponseBuilder",
    "Completion",
    "Resolver",
    "Cirrus",
    "ActionEntry",
    "ActionKind",
    "Deps",
    "Settings",
    "create_deps",
]
