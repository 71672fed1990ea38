"""
Usage tracking and cost aggregation.

Records token counts per completed provider call and aggregates them into
per-tenant statistics with an estimated USD cost.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from .pricing import PRICING_TABLE, PricingTable, calculate_cost
from .token_counter import TokenUsage
from ai_gateway.storage.ledger import UsageLedger
from ai_gateway.storage.models import UsageRecord

logger = logging.getLogger(__name__)


@dataclass
class ModelUsage:
    """Aggregated usage for one model within a stats window."""
    requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    estimated_cost_usd: Decimal = Decimal("0")

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class UsageStats:
    """Usage statistics for a tenant over a period."""
    tenant_id: str
    period_days: int
    total_requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: Decimal = Decimal("0")
    by_model: Dict[str, ModelUsage] = field(default_factory=dict)
    by_vertical: Dict[str, int] = field(default_factory=dict)
    unpriced_models: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "period_days": self.period_days,
            "total_requests": self.total_requests,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "estimated_cost_usd": float(self.estimated_cost_usd),
            "by_model": {
                model: {
                    "requests": usage.requests,
                    "total_tokens": usage.total_tokens,
                    "estimated_cost_usd": float(usage.estimated_cost_usd),
                }
                for model, usage in self.by_model.items()
            },
            "by_vertical": dict(self.by_vertical),
            "unpriced_models": list(self.unpriced_models),
        }


class UsageTracker:
    """Per-tenant usage ledger with cost estimation.

    Cost is derived at read time from the price table, so a price update
    applies to stats computed afterwards without rewriting any record.
    """

    def __init__(
        self,
        ledger: Optional[UsageLedger] = None,
        pricing: PricingTable = PRICING_TABLE,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.ledger = ledger if ledger is not None else UsageLedger()
        self.pricing = pricing
        self._clock = clock

    def track(self, record: UsageRecord) -> None:
        """Append a usage record."""
        self.ledger.append(record)
        logger.debug(
            "Recorded usage for tenant %s: %d tokens on %s",
            record.tenant_id, record.total_tokens, record.model,
            extra={
                "tenant_id": record.tenant_id,
                "vertical": record.vertical,
                "model": record.model,
                "prompt_tokens": record.prompt_tokens,
                "completion_tokens": record.completion_tokens,
            }
        )

    def get_stats(self, tenant_id: str, period_days: int = 30) -> UsageStats:
        """Aggregate a tenant's usage over the last ``period_days`` days.

        Args:
            tenant_id: Tenant to report on
            period_days: Window length in days, counted back from now

        Returns:
            UsageStats with token sums and estimated cost. Models missing from
            the price table add tokens but no cost and are listed in
            ``unpriced_models``.
        """
        if period_days <= 0:
            raise ValueError("period_days must be > 0")

        since = self._clock() - timedelta(days=period_days)
        records = self.ledger.query(tenant_id=tenant_id, since=since)

        stats = UsageStats(tenant_id=tenant_id, period_days=period_days)
        for record in records:
            stats.total_requests += 1
            stats.prompt_tokens += record.prompt_tokens
            stats.completion_tokens += record.completion_tokens
            stats.total_tokens += record.total_tokens
            stats.by_vertical[record.vertical] = (
                stats.by_vertical.get(record.vertical, 0) + record.total_tokens
            )

            model_usage = stats.by_model.setdefault(record.model, ModelUsage())
            model_usage.requests += 1
            model_usage.prompt_tokens += record.prompt_tokens
            model_usage.completion_tokens += record.completion_tokens

        for model, model_usage in stats.by_model.items():
            if self.pricing.find_pricing(model) is None:
                stats.unpriced_models.append(model)
                continue
            model_usage.estimated_cost_usd = calculate_cost(
                model,
                TokenUsage(
                    prompt_tokens=model_usage.prompt_tokens,
                    completion_tokens=model_usage.completion_tokens
                ),
                self.pricing
            )
            stats.estimated_cost_usd += model_usage.estimated_cost_usd

        return stats

    def clear_old_records(self, older_than_days: int) -> int:
        """Retention sweep: remove records older than ``older_than_days``.

        Returns:
            Number of records removed
        """
        if older_than_days < 0:
            raise ValueError("older_than_days cannot be negative")

        cutoff = self._clock() - timedelta(days=older_than_days)
        removed = self.ledger.remove_older_than(cutoff)
        if removed:
            logger.info("Removed %d usage records older than %d days", removed, older_than_days)
        return removed

    def records(self, tenant_id: Optional[str] = None) -> List[UsageRecord]:
        """Snapshot of the ledger, optionally for one tenant."""
        return self.ledger.query(tenant_id=tenant_id)
