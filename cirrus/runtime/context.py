# =============================================================================
# Request Context - Normalized Invocation Container
# =============================================================================
# API Gateway REST (v1) and HTTP API (v2) proxy events are normalized into one
# RequestContext per invocation. The context flows through every hook, the
# matched action and the session layer, and carries the per-request header
# and response-log accumulators.
# =============================================================================

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, unquote

logger = logging.getLogger(__name__)

OPERATION_METHOD = "POST"


@dataclass
class ContextInternal:
    """Per-request accumulators that only the framework reads back."""
    is_operation_call: bool = False
    request_version: Optional[str] = None
    set_headers: List[Tuple[str, Any]] = field(default_factory=list)
    add_headers: List[Tuple[str, str]] = field(default_factory=list)
    response_log: List[Any] = field(default_factory=list)


@dataclass
class RequestContext:
    """
    Canonical view of one invocation.

    Attributes:
        host: Host header value
        path: Request path
        method: HTTP method (upper-case)
        query: Query string parameters
        body: Parsed request body (JSON or form-encoded)
        cookies: Parsed Cookie header
        headers: Request headers with lower-cased names
        path_params: Parameters extracted by the matched condition
        operation_name: Operation name when the call targets the operation endpoint
        operation_payload: Operation payload when operation_name is set
        session: Attached session record, if any
        event: Original unmodified event
        lambda_context: Invocation metadata passed by the runtime
        internal: Header and log accumulators
    """
    host: str
    path: str
    method: str
    query: Dict[str, Any] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    path_params: Optional[Dict[str, Any]] = None
    operation_name: Optional[str] = None
    operation_payload: Any = None
    session: Any = None
    event: Dict[str, Any] = field(default_factory=dict, repr=False)
    lambda_context: Any = field(default=None, repr=False)
    internal: ContextInternal = field(default_factory=ContextInternal, repr=False)

    @property
    def is_operation_call(self) -> bool:
        return self.internal.is_operation_call

    @property
    def request_version(self) -> Optional[str]:
        return self.internal.request_version

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


# =============================================================================
# PARSING HELPERS
# =============================================================================

def parse_cookies(cookie_parts: List[str]) -> Dict[str, str]:
    """Parse 'name=value' fragments; the first occurrence of a name wins."""
    cookies: Dict[str, str] = {}
    for part in cookie_parts:
        for fragment in part.split(";"):
            fragment = fragment.strip()
            if not fragment or "=" not in fragment:
                continue
            name, _, value = fragment.partition("=")
            name = name.strip()
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] == '"':
                value = value[1:-1]
            if name and name not in cookies:
                cookies[name] = unquote(value)
    return cookies


def parse_body(raw_body: Any, is_base64_encoded: bool = False) -> Dict[str, Any]:
    """
    Decode a proxy event body.

    JSON objects are returned as-is; anything else that is not JSON is parsed
    as form-urlencoded data. Undecodable bodies yield an empty dict.
    """
    if raw_body is None or raw_body == "":
        return {}
    if isinstance(raw_body, dict):
        return raw_body

    text = raw_body
    if is_base64_encoded:
        try:
            text = base64.b64decode(raw_body).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError):
            logger.warning("Could not decode base64 request body")
            return {}

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return dict(parse_qsl(text, keep_blank_values=True))
    return parsed if isinstance(parsed, dict) else {}


def _normalize_headers(event: Dict[str, Any]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for key, values in (event.get("multiValueHeaders") or {}).items():
        if values:
            headers[key.lower()] = values[-1]
    for key, value in (event.get("headers") or {}).items():
        if value is not None:
            headers[key.lower()] = value
    return headers


def _request_line(event: Dict[str, Any]) -> Tuple[str, str]:
    """Return (method, path) for REST API v1 or HTTP API v2 events."""
    request_context = event.get("requestContext") or {}
    http = request_context.get("http") or {}
    method = event.get("httpMethod") or http.get("method") or request_context.get("httpMethod") or ""
    path = event.get("path") or event.get("rawPath") or http.get("path") or "/"
    return method.upper(), path


# =============================================================================
# CONTEXT BUILDER
# =============================================================================

def build_context(event: Dict[str, Any], lambda_context: Any = None, api_path: Optional[str] = "/api") -> RequestContext:
    """
    Build the RequestContext for one invocation.

    Args:
        event: API Gateway proxy event (REST v1 or HTTP API v2)
        lambda_context: Lambda context object
        api_path: Path of the single operation endpoint

    Returns:
        A fresh RequestContext; operation fields are only populated for a
        POST to api_path whose body names an operation.
    """
    event = event or {}
    method, path = _request_line(event)
    headers = _normalize_headers(event)

    cookie_parts: List[str] = []
    if headers.get("cookie"):
        cookie_parts.append(headers["cookie"])
    event_cookies = event.get("cookies") or []
    if isinstance(event_cookies, list):
        cookie_parts.extend(c for c in event_cookies if isinstance(c, str))

    query = dict(event.get("queryStringParameters") or {})
    body = parse_body(event.get("body"), bool(event.get("isBase64Encoded")))

    operation_name = body.get("operationName") or body.get("apiName")
    is_operation_call = bool(
        method == OPERATION_METHOD
        and api_path
        and path == api_path
        and isinstance(operation_name, str)
        and operation_name
    )

    internal = ContextInternal(
        is_operation_call=is_operation_call,
        request_version=body.get("version") if is_operation_call else None,
    )

    return RequestContext(
        host=headers.get("host", ""),
        path=path,
        method=method,
        query=query,
        body=body,
        cookies=parse_cookies(cookie_parts),
        headers=headers,
        operation_name=operation_name if is_operation_call else None,
        operation_payload=body.get("payload") if is_operation_call else None,
        event=event,
        lambda_context=lambda_context,
        internal=internal,
    )
