# =============================================================================
# Application Entry Points
# =============================================================================
# Thin adapters between the Lambda runtime and a configured Cirrus app.
# =============================================================================

from cirrus.app.lambda_entry import create_app, lambda_handler_for

__all__ = [
    "create_app",
    "lambda_handler_for",
]
