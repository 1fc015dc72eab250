#!/usr/bin/env python3
"""
Tests for request context building.

Tests:
- REST API (v1) and HTTP API (v2) events
- Body decoding (JSON, form, base64)
- Cookie parsing
- Operation-call detection

Run with: pytest tests/test_context.py -v
"""
import base64
import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cirrus.runtime.context import build_context, parse_body, parse_cookies


# =============================================================================
# TEST: Parsing helpers
# =============================================================================

class TestParseCookies:
    """Tests for parse_cookies()."""

    def test_single_header(self):
        cookies = parse_cookies(["a=1; b=two; c=%20x"])
        assert cookies == {"a": "1", "b": "two", "c": " x"}

    def test_first_occurrence_wins(self):
        cookies = parse_cookies(["sid=first", "sid=second"])
        assert cookies["sid"] == "first"

    def test_quoted_values_and_garbage(self):
        cookies = parse_cookies(['tok="abc:def"; ; novalue; =orphan'])
        assert cookies == {"tok": "abc:def"}

    def test_value_may_contain_equals(self):
        assert parse_cookies(["k=a=b"]) == {"k": "a=b"}


class TestParseBody:
    """Tests for parse_body()."""

    def test_json_object(self):
        assert parse_body('{"x": 1}') == {"x": 1}

    def test_json_non_object_is_empty(self):
        assert parse_body("[1, 2]") == {}

    def test_form_encoded(self):
        assert parse_body("a=1&b=hello+world") == {"a": "1", "b": "hello world"}

    def test_base64_json(self):
        raw = base64.b64encode(json.dumps({"k": "v"}).encode()).decode()
        assert parse_body(raw, is_base64_encoded=True) == {"k": "v"}

    def test_bad_base64(self):
        assert parse_body("***not base64***", is_base64_encoded=True) == {}

    def test_empty(self):
        assert parse_body(None) == {}
        assert parse_body("") == {}


# =============================================================================
# TEST: build_context
# =============================================================================

class TestBuildContext:
    """Tests for build_context()."""

    def test_rest_v1_event(self):
        """REST API proxy events use httpMethod/path/headers."""
        event = {
            "httpMethod": "get",
            "path": "/user/42",
            "headers": {"Host": "example.com", "Cookie": "CRSSESSIONTKID=a:b", "X-Trace": "t1"},
            "queryStringParameters": {"q": "search"},
            "body": None,
        }
        ctx = build_context(event)

        assert ctx.method == "GET"
        assert ctx.path == "/user/42"
        assert ctx.host == "example.com"
        assert ctx.query == {"q": "search"}
        assert ctx.cookies == {"CRSSESSIONTKID": "a:b"}
        assert ctx.get_header("x-trace") == "t1"
        assert ctx.get_header("X-TRACE") == "t1"
        assert ctx.operation_name is None
        assert ctx.is_operation_call is False
        assert ctx.path_params is None
        assert ctx.event is event

    def test_http_api_v2_event(self):
        """HTTP API events carry method/path in requestContext and a cookies array."""
        event = {
            "rawPath": "/dashboard",
            "requestContext": {"http": {"method": "GET", "path": "/dashboard"}},
            "headers": {"host": "api.example.com"},
            "cookies": ["a=1", "b=2"],
        }
        ctx = build_context(event)

        assert ctx.method == "GET"
        assert ctx.path == "/dashboard"
        assert ctx.cookies == {"a": "1", "b": "2"}

    def test_multi_value_headers(self):
        event = {
            "httpMethod": "GET",
            "path": "/",
            "multiValueHeaders": {"Accept": ["text/html", "application/json"]},
        }
        ctx = build_context(event)
        assert ctx.get_header("accept") == "application/json"

    def test_operation_call(self):
        """POST to the operation endpoint with operationName populates operation fields."""
        event = {
            "httpMethod": "POST",
            "path": "/api",
            "body": json.dumps({"operationName": "echo", "version": "3", "token": "csrf", "payload": {"x": 1}}),
        }
        ctx = build_context(event, api_path="/api")

        assert ctx.is_operation_call is True
        assert ctx.operation_name == "echo"
        assert ctx.operation_payload == {"x": 1}
        assert ctx.request_version == "3"
        assert ctx.body["token"] == "csrf"

    def test_api_name_alias(self):
        event = {"httpMethod": "POST", "path": "/api", "body": json.dumps({"apiName": "legacy"})}
        assert build_context(event).operation_name == "legacy"

    def test_operation_requires_matching_path_and_method(self):
        body = json.dumps({"operationName": "echo"})
        wrong_path = build_context({"httpMethod": "POST", "path": "/other", "body": body})
        wrong_method = build_context({"httpMethod": "PUT", "path": "/api", "body": body})
        custom_path = build_context({"httpMethod": "POST", "path": "/rpc", "body": body}, api_path="/rpc")

        assert wrong_path.operation_name is None
        assert wrong_method.operation_name is None
        assert custom_path.operation_name == "echo"

    def test_non_string_operation_name_ignored(self):
        event = {"httpMethod": "POST", "path": "/api", "body": json.dumps({"operationName": 5})}
        ctx = build_context(event)
        assert ctx.is_operation_call is False
        assert ctx.operation_name is None

    def test_fresh_accumulators_per_invocation(self):
        first = build_context({"httpMethod": "GET", "path": "/"})
        second = build_context({"httpMethod": "GET", "path": "/"})
        first.internal.add_headers.append(("X", "1"))
        assert second.internal.add_headers == []

    def test_empty_event(self):
        ctx = build_context({})
        assert ctx.path == "/"
        assert ctx.method == ""
        assert ctx.body == {}
