# =============================================================================
# Response Builder
# =============================================================================
# Builds API Gateway proxy responses (multiValueHeaders form). Text bodies for
# HTML/XML/404 are base64-encoded so binary-safe media types pass through the
# gateway unchanged.
# =============================================================================

import base64
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

HeaderInput = Optional[Mapping[str, Union[str, List[str]]]]

CORS_HEADERS = {
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Headers": "Origin, X-Requested-With, Content-Type, Accept",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "OPTIONS,POST",
}


def to_multi_headers(headers: HeaderInput) -> Dict[str, List[str]]:
    """Normalize {name: value | [values]} into {name: [values]}."""
    return {
        key: list(value) if isinstance(value, (list, tuple)) else [value]
        for key, value in (headers or {}).items()
    }


def _json_default(obj: Any) -> Any:
    # Session data read back from DynamoDB carries Decimal numbers
    if isinstance(obj, Decimal):
        return int(obj) if obj % 1 == 0 else float(obj)
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    return str(obj)


def jdump(data: Any) -> str:
    """JSON dump with defaults for non-serializable types."""
    return json.dumps(data, ensure_ascii=False, default=_json_default)


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@dataclass
class Response:
    """
    Outbound response envelope.

    Attributes:
        status_code: HTTP status code
        headers: Multi-valued headers
        body: Response body (base64 text when is_base64_encoded)
        is_base64_encoded: Whether body is base64 encoded
    """
    status_code: int
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: Optional[str] = None
    is_base64_encoded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """API Gateway proxy integration shape."""
        return {
            "statusCode": self.status_code,
            "multiValueHeaders": {key: list(values) for key, values in self.headers.items()},
            "body": self.body,
            "isBase64Encoded": self.is_base64_encoded,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Response":
        """Accept a proxy-shaped dict; single-valued `headers` are folded in."""
        headers = to_multi_headers(data.get("headers"))
        headers.update(to_multi_headers(data.get("multiValueHeaders")))
        body = data.get("body")
        if body is not None and not isinstance(body, str):
            body = jdump(body)
        return cls(
            status_code=int(data.get("statusCode", 200)),
            headers=headers,
            body=body,
            is_base64_encoded=bool(data.get("isBase64Encoded", False)),
        )

    def decoded_body(self) -> Optional[str]:
        """Body as text, undoing base64 when needed."""
        if self.body is None or not self.is_base64_encoded:
            return self.body
        return base64.b64decode(self.body).decode("utf-8")


def as_response(value: Any) -> Response:
    """Coerce an action/hook return value into a Response."""
    if isinstance(value, Response):
        return value
    if isinstance(value, Mapping):
        return Response.from_dict(value)
    raise TypeError(f"Actions must return a Response or a dict, got {type(value).__name__}")


class ResponseBuilder:
    """
    Standard response shapes.

    When bound to a RequestContext, header helpers and the response log are
    available and api() picks up the accumulated log list.
    """

    def __init__(self, is_cors_enabled: bool = False, api_version: Optional[str] = None, ctx: Any = None):
        self.is_cors_enabled = is_cors_enabled
        self.api_version = api_version
        self.ctx = ctx

    def bind(self, ctx: Any) -> None:
        self.ctx = ctx

    def _require_ctx(self, fn_name: str) -> Any:
        if self.ctx is None:
            raise RuntimeError(f".{fn_name}() is not available without a request context")
        return self.ctx

    # =========================================================================
    # Per-request header / log accumulators
    # =========================================================================

    def add_header(self, key: str, value: str) -> None:
        """Append a header value; multiple values per key are kept."""
        self._require_ctx("add_header").internal.add_headers.append((key, value))

    def set_header(self, key: str, value: Union[str, List[str]]) -> None:
        """Replace a header; pending add_header values for the key are dropped."""
        internal = self._require_ctx("set_header").internal
        internal.add_headers[:] = [(k, v) for k, v in internal.add_headers if k != key]
        internal.set_headers.append((key, value))

    def log_to_api_response(self, entry: Any) -> None:
        """Attach a diagnostic entry that surfaces as logList in api() responses."""
        self._require_ctx("log_to_api_response").internal.response_log.append(entry)

    # =========================================================================
    # Response shapes
    # =========================================================================

    def raw(self, response: Union[Response, Mapping[str, Any]]) -> Response:
        return as_response(response)

    def status(self, status_code: int, body: Optional[str] = None, headers: HeaderInput = None) -> Response:
        return Response(status_code=status_code, headers=to_multi_headers(headers), body=body)

    def json(self, data: Any, headers: HeaderInput = None, status_code: int = 200) -> Response:
        merged = {"Content-Type": ["application/json; charset=utf-8"]}
        if self.is_cors_enabled:
            merged.update(to_multi_headers(CORS_HEADERS))
        merged.update(to_multi_headers(headers))
        return Response(status_code=status_code, headers=merged, body=jdump(data))

    def xml(self, data: str, headers: HeaderInput = None) -> Response:
        merged = {"Content-Type": ["application/xml; charset=utf-8"], **to_multi_headers(headers)}
        return Response(status_code=200, headers=merged, body=b64(data), is_base64_encoded=True)

    def html(self, data: str, headers: HeaderInput = None, status_code: int = 200) -> Response:
        merged = {"Content-Type": ["text/html; charset=utf-8"], **to_multi_headers(headers)}
        return Response(status_code=status_code, headers=merged, body=b64(data), is_base64_encoded=True)

    def redirect(self, url: str, status_code: int = 302, headers: HeaderInput = None) -> Response:
        merged = {"Location": [url], **to_multi_headers(headers)}
        return Response(status_code=status_code, headers=merged, body=None)

    def status301(self, url: str, headers: HeaderInput = None) -> Response:
        return self.redirect(url, 301, headers)

    def status404(self, data: str = "Not Found", headers: HeaderInput = None) -> Response:
        return self.html(data, headers, status_code=404)

    not_found = status404

    def file_base64(self, file_base64: str, mime_type: str, headers: HeaderInput = None) -> Response:
        merged = {"Content-Type": [mime_type or "text/html"], **to_multi_headers(headers)}
        return Response(status_code=200, headers=merged, body=file_base64, is_base64_encoded=True)

    def cors(self) -> Response:
        headers = to_multi_headers(CORS_HEADERS) if self.is_cors_enabled else {}
        return Response(status_code=200, headers=headers, body=jdump(""))

    def api(
        self,
        payload: Any = None,
        version_expired: bool = False,
        session_expired: bool = False,
        not_authorized: bool = False,
        message: Any = None,
        error_message: Any = None,
        log_list: Optional[List[Any]] = None,
        headers: HeaderInput = None,
    ) -> Response:
        """
        Uniform operation envelope.

        Signals are only included when truthy. log_list defaults to the
        entries pushed with log_to_api_response() during the request.
        """
        if log_list is None and self.ctx is not None:
            log_list = self.ctx.internal.response_log

        body: Dict[str, Any] = {"apiVersion": self.api_version, "payload": payload}
        if version_expired:
            body["versionExpired"] = True
        if session_expired:
            body["sessionExpired"] = True
        if not_authorized:
            body["notAuthorized"] = True
        if message:
            body["message"] = message
        if error_message:
            body["errorMessage"] = error_message
        if log_list:
            body["logList"] = list(log_list)
        return self.json(body, headers)

    def version_expired(self, headers: HeaderInput = None) -> Response:
        return self.api(None, version_expired=True, headers=headers)
