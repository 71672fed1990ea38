"""
Request and response types for the gateway.

Callers build a RequestContext and ModelOptions per call; the gateway
returns an AIResponse.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

from ai_gateway.core.token_counter import TokenUsage

T = TypeVar("T")

Message = Dict[str, str]


class Vertical(Enum):
    """Product lines sharing the gateway."""
    EVENTS = "events"
    FITNESS = "fitness"
    KIDS_ENTERTAINMENT = "kids_entertainment"
    MUSICIANS = "musicians"
    PERFORMING_ARTS = "performing_arts"
    PHOTOGRAPHY = "photography"
    TEAM_BUILDING = "team_building"
    SHARED = "shared"

    @classmethod
    def parse(cls, value: Union["Vertical", str]) -> "Vertical":
        """Accept an enum member or its value in hyphen or underscore spelling.

        Raises:
            ValueError: If the value names no known vertical
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Unknown vertical: {value!r}")
        normalized = value.strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            valid = [vertical.value for vertical in cls]
            raise ValueError(f"Unknown vertical: {value!r}. Must be one of: {valid}")


class ResponseFormat(Enum):
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class RequestContext:
    """Identifies the caller for rate limiting and usage attribution."""
    tenant_id: str
    vertical: Vertical = Vertical.SHARED
    user_id: Optional[str] = None
    request_id: Optional[str] = None

    def __post_init__(self):
        """Validate tenant and normalize vertical."""
        if not self.tenant_id or not str(self.tenant_id).strip():
            raise ValueError("tenant_id is required and cannot be empty")
        object.__setattr__(self, "vertical", Vertical.parse(self.vertical))

    def log_extra(self) -> Dict[str, Any]:
        """Fields attached to log records emitted for this request."""
        return {
            "tenant_id": self.tenant_id,
            "vertical": self.vertical.value,
            "request_id": self.request_id,
            "user_id": self.user_id,
        }


@dataclass(frozen=True)
class ModelOptions:
    """Per-call model parameters. ``model=None`` means the configured default."""
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    system_prompt: Optional[str] = None
    response_format: ResponseFormat = ResponseFormat.TEXT

    def __post_init__(self):
        """Validate numeric parameters."""
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if self.temperature is not None and not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if not isinstance(self.response_format, ResponseFormat):
            object.__setattr__(self, "response_format", ResponseFormat(self.response_format))

    def cache_material(self) -> Dict[str, Any]:
        """Every field, in a JSON-serializable form, for cache key derivation."""
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system_prompt": self.system_prompt,
            "response_format": self.response_format.value,
        }


@dataclass(frozen=True)
class AIResponse(Generic[T]):
    """Result returned to every caller. ``usage`` is all-zero when ``cached``."""
    data: T
    usage: TokenUsage
    cached: bool
    latency_ms: float
