"""
Unit tests for pricing calculations.

Tests cost accuracy, rounding behavior, and error handling.
"""

import pytest
from decimal import Decimal

from ai_gateway.core.pricing import ModelPricing, PRICING_TABLE, PricingTable, calculate_cost
from ai_gateway.core.token_counter import TokenUsage


class TestTokenUsage:
    """Test TokenUsage dataclass."""

    def test_total_tokens_calculation(self):
        """Verify total_tokens is computed correctly."""
        usage = TokenUsage(prompt_tokens=100, completion_tokens=50)
        assert usage.total_tokens == 150

    def test_zero_usage(self):
        """Verify the usage reported for cached responses."""
        usage = TokenUsage.zero()
        assert usage.prompt_tokens == 0
        assert usage.completion_tokens == 0
        assert usage.total_tokens == 0

    def test_from_provider_without_completion_tokens(self):
        """Embedding usage has no completion tokens."""
        class EmbeddingUsage:
            prompt_tokens = 12
            total_tokens = 12

        usage = TokenUsage.from_provider(EmbeddingUsage())
        assert usage.prompt_tokens == 12
        assert usage.completion_tokens == 0


class TestPricingTable:
    """Test pricing table functionality."""

    def test_get_supported_model(self):
        """Verify pricing retrieval for supported models."""
        pricing = PRICING_TABLE.get_pricing("gpt-4o")
        assert pricing.input_per_million == Decimal("2.50")
        assert pricing.output_per_million == Decimal("10.00")

    def test_unsupported_model_raises_error(self):
        """Verify error for unknown models."""
        with pytest.raises(ValueError, match="Unsupported model: unknown-model"):
            PRICING_TABLE.get_pricing("unknown-model")

    def test_find_pricing_returns_none_for_unknown(self):
        assert PRICING_TABLE.find_pricing("unknown-model") is None

    def test_with_overrides_does_not_mutate_original(self):
        """Overrides produce a new table."""
        custom = ModelPricing(input_per_million=Decimal("1"), output_per_million=Decimal("2"))
        table = PRICING_TABLE.with_overrides({"my-model": custom, "gpt-4o": custom})

        assert table.get_pricing("my-model") == custom
        assert table.get_pricing("gpt-4o") == custom
        assert PRICING_TABLE.find_pricing("my-model") is None
        assert PRICING_TABLE.get_pricing("gpt-4o").input_per_million == Decimal("2.50")

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            ModelPricing(input_per_million=Decimal("-1"), output_per_million=Decimal("0"))


class TestCostCalculation:
    """Test cost calculation accuracy and rounding."""

    def test_exact_cost_gpt4o(self):
        """Verify exact cost calculation for GPT-4o."""
        usage = TokenUsage(prompt_tokens=1000000, completion_tokens=500000)
        cost = calculate_cost("gpt-4o", usage)
        # Prompt: 1M * $2.50/M = $2.50
        # Completion: 0.5M * $10.00/M = $5.00
        assert cost == Decimal("7.50")

    def test_input_and_output_priced_separately(self):
        """Verify prompt and completion use their own rates."""
        usage = TokenUsage(prompt_tokens=100, completion_tokens=50)
        cost = calculate_cost("gpt-4o-mini", usage)
        # Prompt: 100 * 0.15/1M = 0.000015
        # Completion: 50 * 0.60/1M = 0.000030
        assert cost == Decimal("0.000045")

    def test_rounding_up_behavior(self):
        """Verify costs round UP to the nearest millionth of a dollar."""
        usage = TokenUsage(prompt_tokens=1, completion_tokens=0)
        cost = calculate_cost("gpt-4o-mini", usage)
        # 1 * 0.15/1M = 0.00000015 -> rounds UP to 0.000001
        assert cost == Decimal("0.000001")

    def test_embedding_model_has_no_output_cost(self):
        usage = TokenUsage(prompt_tokens=1000000, completion_tokens=0)
        assert calculate_cost("text-embedding-3-small", usage) == Decimal("0.02")

    def test_zero_tokens_cost(self):
        """Verify cost calculation with zero tokens."""
        assert calculate_cost("gpt-4", TokenUsage.zero()) == Decimal("0")

    def test_unknown_model_error(self):
        """Verify error handling for unknown models."""
        usage = TokenUsage(prompt_tokens=100, completion_tokens=50)
        with pytest.raises(ValueError, match="Unsupported model: unknown-model"):
            calculate_cost("unknown-model", usage)

    def test_custom_table(self):
        """Verify a caller-supplied table is used."""
        table = PricingTable({
            "in-house": ModelPricing(input_per_million=Decimal("1.00"), output_per_million=Decimal("3.00"))
        })
        usage = TokenUsage(prompt_tokens=2000000, completion_tokens=1000000)
        assert calculate_cost("in-house", usage, table) == Decimal("5.00")
