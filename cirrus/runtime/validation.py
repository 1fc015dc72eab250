# =============================================================================
# Operation Payload Validation
# =============================================================================
# A validator is any callable taking the raw operation payload and returning
# the value the action should see, raising ValidationFailed otherwise. Failures
# go to the app's validation error handler, never to the global error handler.
# =============================================================================

from typing import Any, Callable, Type

from pydantic import BaseModel, ValidationError

from cirrus.runtime.errors import ValidationFailed

Validator = Callable[[Any], Any]


def pydantic_validator(model: Type[BaseModel], dump: bool = True) -> Validator:
    """
    Build a validator from a pydantic model.

    Args:
        model: Model class the payload must satisfy
        dump: Return a plain dict (model_dump) instead of the model instance
    """
    def validate(payload: Any) -> Any:
        try:
            instance = model.model_validate(payload if payload is not None else {})
        except ValidationError as e:
            raise ValidationFailed(
                "Input validation failed",
                errors=e.errors(include_url=False, include_context=False),
            ) from e
        return instance.model_dump() if dump else instance

    validate.__name__ = f"validate_{model.__name__}"
    return validate


def default_validation_error_response(error: ValidationFailed, ctx: Any, res: Any) -> Any:
    """400 JSON body listing what failed."""
    return res.json({"error": str(error), "details": error.errors}, status_code=400)
