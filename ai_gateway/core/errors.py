"""
Error taxonomy for the gateway.

Every error is scoped to the call that raised it; nothing here carries
state shared between tenants.
"""

from typing import Any, List, Optional


class GatewayError(Exception):
    """Base class for all errors raised by the gateway."""


class ProviderError(GatewayError):
    """Upstream provider call failed after exhausting retries.

    Attributes:
        retryable: Whether the underlying failure was of a transient kind
            (connection, timeout, 429, 5xx)
        cause: The original exception raised by the provider SDK
        attempts: Number of attempts made before giving up
    """

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        cause: Optional[BaseException] = None,
        attempts: int = 1
    ):
        super().__init__(message)
        self.retryable = retryable
        self.cause = cause
        self.attempts = attempts


class ValidationError(GatewayError):
    """Structured response parsed as JSON but did not match the schema.

    Never retried: the provider already answered and asking again with the
    same prompt is unlikely to fix a shape mismatch.
    """

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class ParseError(GatewayError):
    """Model returned text that could not be parsed as JSON."""

    def __init__(self, message: str, content: Optional[str] = None):
        super().__init__(message)
        self.content = content


class DimensionMismatch(GatewayError, ValueError):
    """Two embedding vectors of different lengths were compared."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vector dimensions differ: {left} != {right}")
        self.left = left
        self.right = right


class RateLimitTimeout(GatewayError):
    """Caller deadline would be exceeded while waiting for rate-limit capacity."""

    def __init__(self, tenant_id: str, wait_seconds: float, timeout: float):
        super().__init__(
            f"Rate limit wait of {wait_seconds:.3f}s for tenant '{tenant_id}' "
            f"exceeds timeout of {timeout:.3f}s"
        )
        self.tenant_id = tenant_id
        self.wait_seconds = wait_seconds
        self.timeout = timeout
