# =============================================================================
# Dispatcher
# =============================================================================
# Single entry point for every invocation. Actions are matched first-wins in
# registration order; hooks wrap the matched action; every failure ends up in
# one error boundary that always produces a response.
# =============================================================================

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from cirrus.runtime.conditions import Condition, ConditionInput, to_condition
from cirrus.runtime.context import RequestContext, build_context
from cirrus.runtime.errors import RegistryFrozen, SessionNotEnabled, ValidationFailed
from cirrus.runtime.hooks import HookEvent, HookRegistry, unwrap_hook_result
from cirrus.runtime.resolver import Completion, Resolver
from cirrus.runtime.response import Response, ResponseBuilder, as_response
from cirrus.runtime.validation import Validator, default_validation_error_response
from cirrus.session.controller import (
    DEFAULT_SESSION_CSRF_COOKIE,
    DEFAULT_SESSION_TOKEN_COOKIE,
    SessionController,
)
from cirrus.session.manager import DEFAULT_SESSION_TTL, SessionManager
from cirrus.session.store import DynamoDBSessionStore, SessionStore

logger = logging.getLogger(__name__)

# Type definitions
ActionFunc = Callable[[RequestContext, Resolver], Any]
FallbackFunc = Callable[[RequestContext, Resolver], Any]
ErrorHandlerFunc = Callable[[BaseException, Optional[RequestContext], ResponseBuilder, List[Any]], Any]
ValidationErrorHandlerFunc = Callable[[ValidationFailed, RequestContext, Resolver], Any]
PluginFunc = Callable[["Cirrus"], Any]

ROUTE_METHOD = "GET"

INTERNAL_SERVER_ERROR = {"statusCode": 500, "body": "Internal Server Error."}
API_HANDLER_NOT_SET = {"statusCode": 204, "body": "API handler not set."}
ROUTE_HANDLER_NOT_SET = {"statusCode": 204, "body": "Route handler not set."}


class ActionKind(str, Enum):
    """What an action is matched against."""
    ROUTE = "route"
    OPERATION = "operation"


@dataclass(frozen=True)
class ActionEntry:
    """
    One registered action.

    Attributes:
        condition: Condition variant deciding whether the action matches
        action: Handler called as action(ctx, resolver)
        kind: Route (GET path) or operation (operation name)
        session_required: Fetch and validate the session before the action
        validator: Optional callable applied to the operation payload
    """
    condition: Condition
    action: ActionFunc
    kind: ActionKind
    session_required: bool = False
    validator: Optional[Validator] = None

    @property
    def name(self) -> str:
        return getattr(self.action, "__name__", repr(self.action))

    def match(self, ctx: RequestContext) -> Optional[Dict[str, Any]]:
        """Return extracted params when the action matches ctx, else None."""
        if self.kind == ActionKind.ROUTE:
            if ctx.method != ROUTE_METHOD:
                return None
            return self.condition.match(ctx, ctx.path)
        if not ctx.operation_name:
            return None
        return self.condition.match_name(ctx, ctx.operation_name)


@dataclass
class Invocation:
    """Latest context and completion channel for one render() call."""
    completion: Completion = field(default_factory=Completion)
    ctx: Optional[RequestContext] = None


class Cirrus:
    """
    Action registry, hook pipeline and error boundary.

    Usage:
        app = Cirrus(api_path="/api", api_version="1")
        app.add_route("/user/:id", lambda ctx, res: res.json({"id": ctx.path_params["id"]}))
        app.add_api("echo", lambda ctx, res: res.api(ctx.operation_payload))
        lambda_handler = app.get_handler()
    """

    def __init__(self, api_path: str = "/api", api_version: Optional[str] = None, is_cors_enabled: bool = False):
        self.api_path = api_path
        self.api_version = api_version
        self.is_cors_enabled = is_cors_enabled

        self.hooks = HookRegistry()
        self._actions: List[ActionEntry] = []
        self._frozen_actions: Optional[Tuple[ActionEntry, ...]] = None

        self.session_manager: Optional[SessionManager] = None
        self.session_token_cookie_key = DEFAULT_SESSION_TOKEN_COOKIE
        self.session_csrf_cookie_key = DEFAULT_SESSION_CSRF_COOKIE

        self.global_error_handler: Optional[ErrorHandlerFunc] = None
        self.validation_error_handler: ValidationErrorHandlerFunc = default_validation_error_response
        self.route_fallback_handler: Optional[FallbackFunc] = None
        self.api_fallback_handler: Optional[FallbackFunc] = None

    # =========================================================================
    # REGISTRY
    # =========================================================================

    @property
    def is_frozen(self) -> bool:
        return self._frozen_actions is not None

    @property
    def actions(self) -> Tuple[ActionEntry, ...]:
        if self._frozen_actions is not None:
            return self._frozen_actions
        return tuple(self._actions)

    def _ensure_not_frozen(self, what: str) -> None:
        if self.is_frozen:
            raise RegistryFrozen(f"Cannot register {what} after the first request")

    def _register(self, condition: Union[ConditionInput, Condition], action: ActionFunc, kind: ActionKind,
                  session_required: bool = False, validator: Optional[Validator] = None) -> "Cirrus":
        self._ensure_not_frozen("an action")
        if not callable(action):
            raise TypeError("action must be callable")
        entry = ActionEntry(
            condition=to_condition(condition),
            action=action,
            kind=kind,
            session_required=session_required,
            validator=validator,
        )
        self._actions.append(entry)
        logger.debug(f"Registered {kind.value} {entry.name} session={session_required}")
        return self

    def add_route(self, condition: Union[ConditionInput, Condition], action: ActionFunc) -> "Cirrus":
        """Register a GET route."""
        return self._register(condition, action, ActionKind.ROUTE)

    def add_session_route(self, condition: Union[ConditionInput, Condition], action: ActionFunc) -> "Cirrus":
        """Register a GET route that requires a valid session cookie."""
        return self._register(condition, action, ActionKind.ROUTE, session_required=True)

    def add_api(self, condition: Union[ConditionInput, Condition], action: ActionFunc,
                validator: Optional[Validator] = None) -> "Cirrus":
        """Register an operation matched by operation name."""
        return self._register(condition, action, ActionKind.OPERATION, validator=validator)

    def add_session_api(self, condition: Union[ConditionInput, Condition], action: ActionFunc,
                        validator: Optional[Validator] = None) -> "Cirrus":
        """Register an operation that requires a valid session and CSRF token."""
        return self._register(condition, action, ActionKind.OPERATION, session_required=True, validator=validator)

    def use(self, plugin: PluginFunc) -> "Cirrus":
        """Let plugin(app) register a bundle of actions and hooks."""
        plugin(self)
        return self

    add_module = use

    def add_hook(self, event: Union[HookEvent, str], callback: Callable[..., Any], priority: int = 0) -> "Cirrus":
        """
        Register a lifecycle hook.

        `created` hooks run immediately with the app; the others are stored
        and run in ascending priority on every matching invocation.
        """
        event = HookEvent(event)
        if event == HookEvent.CREATED:
            self._ensure_not_frozen("a created hook")
            callback(self)
            return self
        self.hooks.add(event, callback, priority)
        return self

    def freeze(self) -> "Cirrus":
        """Snapshot actions and hooks; later registration raises RegistryFrozen."""
        if not self.is_frozen:
            self._frozen_actions = tuple(self._actions)
            self.hooks.freeze()
            logger.info(f"Registry frozen: {len(self._frozen_actions)} actions, hooks={self.hooks.count()}")
        return self

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def enable_cors(self, is_cors_enabled: bool = True) -> "Cirrus":
        self.is_cors_enabled = is_cors_enabled
        return self

    def set_global_error_handler(self, handler: ErrorHandlerFunc) -> "Cirrus":
        self.global_error_handler = handler
        return self

    def set_validation_error_handler(self, handler: ValidationErrorHandlerFunc) -> "Cirrus":
        self.validation_error_handler = handler
        return self

    def set_route_fallback_handler(self, handler: FallbackFunc) -> "Cirrus":
        self.route_fallback_handler = handler
        return self

    def set_api_fallback_handler(self, handler: FallbackFunc) -> "Cirrus":
        self.api_fallback_handler = handler
        return self

    def enable_session(
        self,
        store: SessionStore,
        session_salt: str,
        enable_sliding_expiration: bool = True,
        default_ttl_in_seconds: int = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.time,
    ) -> "Cirrus":
        """Enable sessions on any SessionStore."""
        self.session_manager = SessionManager(
            store,
            session_salt,
            enable_sliding_expiration=enable_sliding_expiration,
            default_ttl_in_seconds=default_ttl_in_seconds,
            clock=clock,
        )
        return self

    def enable_ddb_session(
        self,
        table_name: str,
        table_region: Optional[str],
        session_salt: str,
        partition_key: str = "pk",
        sort_key: str = "sk",
        enable_sliding_expiration: bool = True,
    ) -> "Cirrus":
        """Enable sessions backed by a DynamoDB table."""
        store = DynamoDBSessionStore(
            table_name=table_name,
            region=table_region,
            partition_key=partition_key,
            sort_key=sort_key,
        )
        return self.enable_session(store, session_salt, enable_sliding_expiration=enable_sliding_expiration)

    def set_session_cookie_keys(self, session_token_cookie_key: str, session_csrf_cookie_key: str) -> "Cirrus":
        self.session_token_cookie_key = session_token_cookie_key
        self.session_csrf_cookie_key = session_csrf_cookie_key
        return self

    def get_session_controller(self, ctx: RequestContext) -> SessionController:
        if self.session_manager is None:
            raise SessionNotEnabled("Session is not enabled. Use enable_ddb_session() or enable_session() first.")
        return SessionController(
            self.session_manager,
            ctx,
            session_token_cookie_key=self.session_token_cookie_key,
            session_csrf_cookie_key=self.session_csrf_cookie_key,
        )

    def get_response_builder(self, ctx: Optional[RequestContext] = None) -> ResponseBuilder:
        return ResponseBuilder(is_cors_enabled=self.is_cors_enabled, api_version=self.api_version, ctx=ctx)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def get_handler(self) -> Callable[[Dict[str, Any], Any], Dict[str, Any]]:
        """Return a Lambda handler bound to this app."""
        def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
            return self.render(event, context)
        return handler

    def render(self, event: Dict[str, Any], lambda_context: Any = None) -> Dict[str, Any]:
        """
        Handle one invocation.

        Args:
            event: API Gateway proxy event
            lambda_context: Lambda context

        Returns:
            API Gateway proxy response dict; never raises.
        """
        self.freeze()
        invocation = Invocation()
        try:
            response = self._dispatch(event, lambda_context, invocation)
        except Exception as e:
            if invocation.completion.done:
                logger.warning(f"Ignoring error raised after the response was resolved: {e}")
                response = invocation.completion.response
            else:
                response = self._handle_error(e, invocation.ctx)
        return response.to_dict()

    def _find_action(self, ctx: RequestContext) -> Tuple[Optional[ActionEntry], Optional[Dict[str, Any]]]:
        for entry in self.actions:
            params = entry.match(ctx)
            if params is not None:
                return entry, params
        return None, None

    def _dispatch(self, event: Dict[str, Any], lambda_context: Any, invocation: Invocation) -> Response:
        completion = invocation.completion
        ctx = build_context(event, lambda_context, self.api_path)
        invocation.ctx = ctx
        resolver = Resolver(completion, self.is_cors_enabled, self.api_version, ctx=ctx)

        if ctx.method == "OPTIONS" and self.is_cors_enabled:
            return resolver.cors()

        if (
            ctx.is_operation_call
            and self.api_version is not None
            and ctx.request_version is not None
            and str(ctx.request_version) != str(self.api_version)
        ):
            logger.info(f"Version expired: requested={ctx.request_version} current={self.api_version}")
            return resolver.version_expired()

        entry, params = self._find_action(ctx)
        if entry is None:
            logger.info(f"No action matched method={ctx.method} path={ctx.path} operation={ctx.operation_name}")
            return self._fallback(ctx, resolver)

        logger.info(f"Dispatching {entry.kind.value}={entry.name} method={ctx.method} path={ctx.path}")

        for hook in self.hooks.get(HookEvent.BEFORE_RENDER):
            result = hook.callback(ctx, resolver)
            if completion.done:
                return completion.response
            ctx = unwrap_hook_result(result, ctx, HookEvent.BEFORE_RENDER, hook)
            if not isinstance(ctx, RequestContext):
                raise TypeError(f"beforeRender hook {hook.name} returned {type(ctx).__name__}, expected RequestContext")
            invocation.ctx = ctx
            resolver.bind(ctx)

        result = self._run_action(entry, params, ctx, resolver)
        if completion.done:
            return completion.response
        response = as_response(result)

        for hook in self.hooks.get(HookEvent.AFTER_RENDER):
            result = hook.callback(ctx, resolver, response)
            if completion.done:
                return completion.response
            response = as_response(unwrap_hook_result(result, response, HookEvent.AFTER_RENDER, hook))

        response = apply_header_changes(ctx, response)
        completion.resolve(response)
        return completion.response

    def _run_action(self, entry: ActionEntry, params: Dict[str, Any], ctx: RequestContext, resolver: Resolver) -> Any:
        """Session fetch, payload validation and the action itself."""
        if entry.condition.extracts_params:
            ctx.path_params = params

        if entry.session_required:
            self.get_session_controller(ctx).fetch_session()

        if entry.validator is not None:
            try:
                ctx.operation_payload = entry.validator(ctx.operation_payload)
            except ValidationFailed as e:
                logger.info(f"Validation failed for {entry.name}: {e.errors}")
                return self.validation_error_handler(e, ctx, resolver)

        return entry.action(ctx, resolver)

    def _fallback(self, ctx: RequestContext, resolver: Resolver) -> Response:
        completion = resolver.completion
        for hook in self.hooks.get(HookEvent.FALLBACK):
            hook.callback(ctx, resolver)
            if completion.done:
                return completion.response

        if ctx.path == self.api_path:
            handler, default = self.api_fallback_handler, API_HANDLER_NOT_SET
        else:
            handler, default = self.route_fallback_handler, ROUTE_HANDLER_NOT_SET

        result = handler(ctx, resolver) if handler else default
        if not completion.done:
            completion.resolve(result)
        return completion.response

    # =========================================================================
    # ERROR BOUNDARY
    # =========================================================================

    def _handle_error(self, error: Exception, ctx: Optional[RequestContext]) -> Response:
        if self.global_error_handler is None:
            logger.exception(f"Unhandled error: {error}")
            return Response.from_dict(INTERNAL_SERVER_ERROR)

        logger.warning(f"Handing {type(error).__name__} to global error handler: {error}")
        log_list = ctx.internal.response_log if ctx is not None else []
        try:
            return as_response(self.global_error_handler(error, ctx, self.get_response_builder(ctx), log_list))
        except Exception as handler_error:
            logger.exception(f"Global error handler failed: {handler_error} (original: {error})")
            return Response.from_dict(INTERNAL_SERVER_ERROR)


def apply_header_changes(ctx: RequestContext, response: Response) -> Response:
    """Return a copy of response with queued set_header, then add_header, values applied."""
    response = replace(response, headers={key: list(values) for key, values in response.headers.items()})
    for key, value in ctx.internal.set_headers:
        response.headers[key] = list(value) if isinstance(value, (list, tuple)) else [value]
    for key, value in ctx.internal.add_headers:
        response.headers.setdefault(key, []).append(value)
    return response
