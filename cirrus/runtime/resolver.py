# =============================================================================
# Resolver - Response Builder with a Completion Channel
# =============================================================================
# Each invocation owns one Completion. The normal pipeline resolves it after
# afterRender and header post-processing; `resolver.die.<shape>(...)` resolves
# it immediately so the dispatcher returns that response as-is.
# =============================================================================

import logging
from functools import wraps
from typing import Any, Callable, Optional

from cirrus.runtime.response import Response, ResponseBuilder, as_response

logger = logging.getLogger(__name__)


class Completion:
    """One-shot completion handle; only the first resolve() counts."""

    def __init__(self):
        self._response: Optional[Response] = None
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    @property
    def response(self) -> Optional[Response]:
        return self._response

    def resolve(self, response: Any) -> bool:
        if self._done:
            logger.debug("Completion already resolved; ignoring later response")
            return False
        self._response = as_response(response)
        self._done = True
        return True


class DieMethods:
    """Builder methods that resolve the invocation as soon as they build."""

    SHAPES = (
        "raw", "status", "json", "xml", "html", "redirect", "status301",
        "status404", "not_found", "file_base64", "cors", "api", "version_expired",
    )

    def __init__(self, resolver: "Resolver"):
        self._resolver = resolver

    def __getattr__(self, name: str) -> Callable[..., Response]:
        if name not in self.SHAPES:
            raise AttributeError(f"die.{name} is not a response shape")
        method = getattr(self._resolver, name)

        @wraps(method)
        def resolving(*args, **kwargs) -> Response:
            response = method(*args, **kwargs)
            self._resolver.resolve(response)
            return response

        return resolving

    def __dir__(self):
        return list(self.SHAPES)


class Resolver(ResponseBuilder):
    """ResponseBuilder handed to hooks and actions for one invocation."""

    def __init__(self, completion: Completion, is_cors_enabled: bool = False,
                 api_version: Optional[str] = None, ctx: Any = None):
        super().__init__(is_cors_enabled=is_cors_enabled, api_version=api_version, ctx=ctx)
        self.completion = completion
        self.die = DieMethods(self)

    def resolve(self, response: Any) -> bool:
        """Complete the invocation with `response`, bypassing afterRender."""
        return self.completion.resolve(response)
