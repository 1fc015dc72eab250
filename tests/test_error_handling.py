#!/usr/bin/env python3
"""
Tests for the error boundary.

Run with: pytest tests/test_error_handling.py -v
"""
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cirrus import Cirrus
from cirrus.runtime.errors import SessionNotEnabled

DEFAULT_500 = {
    "statusCode": 500,
    "multiValueHeaders": {},
    "body": "Internal Server Error.",
    "isBase64Encoded": False,
}


def _get(path):
    return {"httpMethod": "GET", "path": path}


def _boom(ctx, res):
    raise RuntimeError("database on fire")


class TestErrorBoundary:
    """Every failure becomes a response."""

    def test_default_hides_details(self):
        app = Cirrus()
        app.add_route("/", _boom)

        response = app.render(_get("/"))

        assert response == DEFAULT_500
        assert "fire" not in response["body"]

    def test_custom_handler_receives_context_and_log(self):
        app = Cirrus()
        received = {}

        def handler(ctx, res):
            res.log_to_api_response("about to fail")
            raise KeyError("missing")

        def on_error(error, ctx, res, log_list):
            received.update(error=error, path=ctx.path, log_list=list(log_list))
            return res.api(None, error_message=str(error), log_list=log_list)

        app.add_route("/fail", handler)
        app.set_global_error_handler(on_error)

        response = app.render(_get("/fail"))

        assert response["statusCode"] == 200
        assert isinstance(received["error"], KeyError)
        assert received["path"] == "/fail"
        assert received["log_list"] == ["about to fail"]

    def test_custom_handler_still_logs_error(self, caplog):
        app = Cirrus()
        app.add_route("/", _boom)
        app.set_global_error_handler(lambda error, ctx, res, logs: res.status(503))

        with caplog.at_level(logging.WARNING, logger="cirrus.runtime.dispatch"):
            response = app.render(_get("/"))

        assert response["statusCode"] == 503
        assert "database on fire" in caplog.text

    def test_failing_error_handler_falls_back_to_default(self):
        app = Cirrus()
        app.add_route("/", _boom)

        def broken(error, ctx, res, log_list):
            raise ValueError("handler bug")

        app.set_global_error_handler(broken)

        assert app.render(_get("/")) == DEFAULT_500

    def test_invalid_handler_return(self):
        app = Cirrus()
        app.add_route("/", lambda ctx, res: "not a response")

        assert app.render(_get("/")) == DEFAULT_500

    def test_session_route_without_session_support(self):
        app = Cirrus()
        errors = []
        app.add_session_route("/me", lambda ctx, res: res.json({}))
        app.set_global_error_handler(lambda error, ctx, res, logs: errors.append(error) or res.status(503))

        response = app.render({"httpMethod": "GET", "path": "/me", "headers": {"Cookie": "CRSSESSIONTKID=a:b"}})

        assert response["statusCode"] == 503
        assert isinstance(errors[0], SessionNotEnabled)

    def test_error_in_fallback_handler(self):
        app = Cirrus()
        app.set_route_fallback_handler(_boom)

        assert app.render(_get("/nothing")) == DEFAULT_500

    def test_malformed_event(self):
        app = Cirrus()
        app.add_route("/", lambda ctx, res: res.json("ok"))

        response = app.render(None)

        assert response["statusCode"] == 204
