"""
Token counting and usage tracking.

Normalizes the token counts reported by the provider.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for a single provider call.

    Contains exact token counts as reported by the provider, without estimation.
    """
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens

    @classmethod
    def zero(cls) -> "TokenUsage":
        """Usage reported for responses served from the cache."""
        return cls(prompt_tokens=0, completion_tokens=0)

    @classmethod
    def from_provider(cls, usage: Any) -> "TokenUsage":
        """Build from an OpenAI ``usage`` object.

        Embedding responses carry no completion tokens, so a missing
        ``completion_tokens`` attribute counts as zero.
        """
        return cls(
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0)
        )

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }
