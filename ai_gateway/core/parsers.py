"""
Response parsing and schema validation.

Model output is untrusted input: parsing never raises on malformed text.
Failures are returned as explicit result values so each caller decides
whether to fall back or to fail.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ParseError

T = TypeVar("T")

_FENCE_PATTERN = re.compile(r"```(?:[a-zA-Z0-9_-]+)?\s*\n?(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Outcome of parsing model text as JSON."""
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    def unwrap(self) -> T:
        """Return the parsed value.

        Raises:
            ParseError: If parsing failed
        """
        if not self.ok:
            raise ParseError(self.error or "Response is not valid JSON")
        return self.value

    def unwrap_or(self, default: Any) -> Any:
        return self.value if self.ok else default


@dataclass(frozen=True)
class FieldError:
    """Single schema violation."""
    path: str
    message: str


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    """Outcome of validating model output against a schema."""
    success: bool
    data: Optional[T] = None
    errors: List[FieldError] = field(default_factory=list)


def try_parse_json(content: Optional[str]) -> ParseResult:
    """Extract and parse JSON from raw model text.

    A fenced code block is preferred when present; otherwise the trimmed
    content is parsed as-is.

    Args:
        content: Raw model output

    Returns:
        ParseResult holding the decoded value, or the reason parsing failed
    """
    if content is None:
        return ParseResult(ok=False, error="Response content is empty")

    match = _FENCE_PATTERN.search(content)
    candidate = match.group(1) if match else content
    candidate = candidate.strip()
    if not candidate:
        return ParseResult(ok=False, error="Response content is empty")

    try:
        return ParseResult(ok=True, value=json.loads(candidate))
    except json.JSONDecodeError as e:
        return ParseResult(ok=False, error=f"Invalid JSON in response: {e.msg}")


def parse_structured_response(content: Optional[str], fallback: Any = None) -> Any:
    """Parse JSON from model text, returning ``fallback`` (or None) on failure."""
    return try_parse_json(content).unwrap_or(fallback)


def validate_ai_response(content: Optional[str], schema: Any) -> ValidationResult:
    """Validate raw model text against a schema.

    Args:
        content: Raw model output
        schema: A pydantic model class or any type understood by TypeAdapter

    Returns:
        ValidationResult with the validated data, or the list of violations
    """
    parsed = try_parse_json(content)
    if not parsed.ok:
        return ValidationResult(
            success=False,
            errors=[FieldError(path="", message=parsed.error or "Invalid JSON")]
        )
    return validate_data(parsed.value, schema)


def validate_data(data: Any, schema: Any) -> ValidationResult:
    """Validate already-decoded JSON against a schema."""
    try:
        validated = _adapter(schema).validate_python(data)
    except PydanticValidationError as e:
        return ValidationResult(
            success=False,
            errors=[
                FieldError(
                    path=".".join(str(part) for part in error["loc"]),
                    message=error["msg"]
                )
                for error in e.errors()
            ]
        )
    return ValidationResult(success=True, data=validated)


def schema_instruction(schema: Any) -> str:
    """Build the system prompt fragment that demands schema-conformant JSON."""
    json_schema = json.dumps(_adapter(schema).json_schema(), indent=2)
    return (
        "Respond only with a single valid JSON object that conforms to the "
        "following JSON schema. Do not include any text outside the JSON.\n\n"
        f"JSON schema:\n{json_schema}"
    )


def _adapter(schema: Any) -> TypeAdapter:
    if isinstance(schema, TypeAdapter):
        return schema
    return TypeAdapter(schema)
