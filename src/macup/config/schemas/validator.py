"""JSON Schema validation for the macup app registry file."""

from pathlib import Path
from typing import Any

import orjson
from jsonschema import Draft7Validator, ValidationError
from jsonschema.exceptions import best_match

from macup.logger import get_logger

logger = get_logger(__name__)

SCHEMA_DIR = Path(__file__).parent
APPS_STATE_V1_SCHEMA_PATH = SCHEMA_DIR / "apps_state_v1.schema.json"


class SchemaValidationError(Exception):
    """Raised when JSON schema validation fails."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        schema_type: str | None = None,
    ) -> None:
        """Initialize schema validation error.

        Args:
            message: Error message
            path: JSON path where error occurred
            schema_type: Type of schema being validated

        """
        self.path = path
        self.schema_type = schema_type
        super().__init__(message)

    def __str__(self) -> str:
        """Format error message with path information."""
        parts = []
        if self.schema_type:
            parts.append(f"[{self.schema_type}]")
        if self.path:
            parts.append(f"at '{self.path}'")
        if parts:
            return f"{' '.join(parts)}: {super().__str__()}"
        return super().__str__()


def _load_schema(schema_path: Path) -> dict[str, Any]:
    """Load a JSON schema shipped with the package.

    Raises:
        FileNotFoundError: If the schema file is missing
        ValueError: If the schema file is not valid JSON

    """
    if not schema_path.exists():
        msg = f"Schema file not found: {schema_path}"
        raise FileNotFoundError(msg)
    try:
        return orjson.loads(schema_path.read_bytes())
    except orjson.JSONDecodeError as e:
        msg = f"Invalid JSON in schema file {schema_path}: {e}"
        raise ValueError(msg) from e


def _format_validation_error(error: ValidationError) -> str:
    """Turn a jsonschema error into a one-line message."""
    path = (
        ".".join(str(p) for p in error.absolute_path)
        if error.absolute_path
        else "root"
    )
    message = error.message
    if error.validator == "required":
        missing = (
            error.message.split("'")[1] if "'" in error.message else "unknown"
        )
        message = f"Missing required field: '{missing}'"
    elif error.validator == "enum":
        message = f"Invalid value. {error.message}"
    elif error.validator == "type":
        actual = type(error.instance).__name__
        message = f"Expected type '{error.validator_value}', got '{actual}'"
    return f"{message} (at '{path}')"


class StateValidator:
    """Validates the app registry document against its schema."""

    def __init__(self) -> None:
        """Load the schema and build the validator."""
        self._validator = Draft7Validator(
            _load_schema(APPS_STATE_V1_SCHEMA_PATH)
        )

    def validate_state(self, state: dict[str, Any]) -> None:
        """Validate a full apps.json document.

        Args:
            state: Parsed document

        Raises:
            SchemaValidationError: If validation fails

        """
        errors = list(self._validator.iter_errors(state))
        if not errors:
            return

        best_error = best_match(errors)
        path = (
            ".".join(str(p) for p in best_error.absolute_path)
            if best_error.absolute_path
            else None
        )
        logger.debug(
            "apps.json failed validation with %d error(s)", len(errors)
        )
        raise SchemaValidationError(
            _format_validation_error(best_error),
            path=path,
            schema_type="apps_state",
        )
