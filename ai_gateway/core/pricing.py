"""
Pricing calculations and rate management.

Static per-model price table, priced per million tokens with input and
output billed separately. The table is configuration: it has to be kept in
sync with the provider's published pricing by hand.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from decimal import Decimal, ROUND_UP

from .token_counter import TokenUsage

ONE_MILLION = Decimal("1000000")
COST_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token pricing for a specific model."""
    input_per_million: Decimal  # USD per 1M prompt tokens
    output_per_million: Decimal  # USD per 1M completion tokens

    def __post_init__(self):
        """Validate prices are not negative."""
        if self.input_per_million < 0:
            raise ValueError("input_per_million cannot be negative")
        if self.output_per_million < 0:
            raise ValueError("output_per_million cannot be negative")


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            ValueError: If model is not supported
        """
        pricing = self.find_pricing(model)
        if pricing is None:
            raise ValueError(f"Unsupported model: {model}")
        return pricing

    def find_pricing(self, model: str) -> Optional[ModelPricing]:
        """Like get_pricing, but returns None for unknown models."""
        return self.prices.get(model)

    def with_overrides(self, overrides: Mapping[str, ModelPricing]) -> "PricingTable":
        """Return a new table with the given models added or replaced."""
        merged = dict(self.prices)
        merged.update(overrides)
        return PricingTable(merged)


def _pricing(input_per_million: str, output_per_million: str) -> ModelPricing:
    return ModelPricing(
        input_per_million=Decimal(input_per_million),
        output_per_million=Decimal(output_per_million)
    )


# Published list prices, USD per 1M tokens
PRICING_TABLE = PricingTable({
    "gpt-4o": _pricing("2.50", "10.00"),
    "gpt-4o-mini": _pricing("0.15", "0.60"),
    "gpt-4-turbo": _pricing("10.00", "30.00"),
    "gpt-4": _pricing("30.00", "60.00"),
    "gpt-3.5-turbo": _pricing("0.50", "1.50"),
    "text-embedding-3-small": _pricing("0.02", "0"),
    "text-embedding-3-large": _pricing("0.13", "0"),
    "text-embedding-ada-002": _pricing("0.10", "0"),
})


def calculate_cost(
    model: str,
    usage: TokenUsage,
    table: PricingTable = PRICING_TABLE
) -> Decimal:
    """Calculate total USD cost for model usage with conservative rounding.

    Args:
        model: Model identifier
        usage: Token usage data
        table: Price table to use (defaults to the built-in table)

    Returns:
        Total cost rounded UP to the nearest millionth of a dollar

    Raises:
        ValueError: If model is not supported
    """
    pricing = table.get_pricing(model)

    prompt_cost = (Decimal(usage.prompt_tokens) / ONE_MILLION) * pricing.input_per_million
    completion_cost = (Decimal(usage.completion_tokens) / ONE_MILLION) * pricing.output_per_million

    total_cost = prompt_cost + completion_cost
    return total_cost.quantize(COST_QUANTUM, rounding=ROUND_UP)
