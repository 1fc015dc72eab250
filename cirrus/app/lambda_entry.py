# =============================================================================
# Lambda Entry Point
# =============================================================================
# Builds a Cirrus app from environment settings and adapts it to the Lambda
# handler signature.
# =============================================================================

import logging
from typing import Any, Callable, Dict, Optional

from cirrus.runtime.deps import Deps, Settings, create_deps
from cirrus.runtime.dispatch import Cirrus

logger = logging.getLogger(__name__)

LambdaHandler = Callable[[Dict[str, Any], Any], Dict[str, Any]]


def configure_logging(level: str = "INFO") -> None:
    """Set the root logger level; Lambda installs its own handler."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))


def create_app(settings: Optional[Settings] = None, deps: Optional[Deps] = None) -> Cirrus:
    """
    Build a Cirrus app configured from settings.

    Sessions are enabled when both SESSION_TABLE_NAME and SESSION_SALT are
    set (or a deps container is supplied).

    Args:
        settings: Configuration, read from the environment when omitted
        deps: Dependency container, created from settings when omitted
    """
    if settings is None:
        settings = deps.settings if deps is not None else Settings.from_env()

    app = Cirrus(
        api_path=settings.api_path,
        api_version=settings.api_version,
        is_cors_enabled=settings.cors_enabled,
    )
    app.set_session_cookie_keys(settings.session_token_cookie, settings.session_csrf_cookie)

    if deps is not None or settings.sessions_configured:
        deps = deps or create_deps(settings)
        app.session_manager = deps.session_manager
        logger.info(f"Sessions enabled table={settings.session_table_name or '<injected>'}")
    else:
        logger.info("Sessions disabled: SESSION_TABLE_NAME or SESSION_SALT not set")

    return app


def lambda_handler_for(app: Cirrus, log_level: Optional[str] = None) -> LambdaHandler:
    """
    Wrap app.render as a Lambda handler.

    Usage:
        app = create_app()
        app.add_route("/", home)
        lambda_handler = lambda_handler_for(app)
    """
    configure_logging(log_level or Settings.from_env().log_level)

    def lambda_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
        request_id = getattr(context, "aws_request_id", None)
        logger.debug(f"Invocation request_id={request_id} event keys: {list((event or {}).keys())}")
        return app.render(event, context)

    return lambda_handler
