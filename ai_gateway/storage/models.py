"""
Data models for the usage ledger.

Defines the immutable per-request usage entry.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one completed provider call.

    Append-only entries that form the per-tenant ledger used for billing.
    Once written, these records must never be modified.
    """
    tenant_id: str
    vertical: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    timestamp: datetime
    request_id: Optional[str] = None
    user_id: Optional[str] = None
    retry_count: int = 0

    def __post_init__(self):
        """Validate token counts."""
        if not self.tenant_id:
            raise ValueError("tenant_id is required")
        if self.prompt_tokens < 0 or self.completion_tokens < 0:
            raise ValueError("token counts cannot be negative")
        if self.total_tokens < 0:
            raise ValueError("total_tokens cannot be negative")
