"""
Tests for the CLI interface.
"""
import logging
import os
import tempfile
from decimal import Decimal
from unittest.mock import patch, MagicMock

import pytest
import yaml
from typer.testing import CliRunner

from ai_gateway.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from ai_gateway.core.errors import ProviderError
from ai_gateway.core.token_counter import TokenUsage
from ai_gateway.core.usage import UsageStats
from ai_gateway.sdk.types import AIResponse

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo the handler swap done by the CLI callback."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file():
    """Write a valid gateway config to a temporary file."""
    temp_dir = tempfile.mkdtemp()
    path = os.path.join(temp_dir, "gateway.yaml")
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump({
            "api_key": "sk-test",
            "default_model": "gpt-4o",
            "pricing": {"house-model": {"input_per_million": 1, "output_per_million": 2}}
        }, f)
    yield path
    import shutil
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def mock_create_client():
    """Mock the gateway client factory."""
    with patch('ai_gateway.cli.main.create_ai_client') as mock:
        yield mock


class TestCLI:
    """Test CLI commands."""

    def test_check_config_valid(self, config_file):
        result = runner.invoke(app, ["check-config", config_file])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Configuration is valid" in result.output
        assert "gpt-4o" in result.output

    def test_check_config_missing_file(self):
        result = runner.invoke(app, ["check-config", "/nonexistent/gateway.yaml"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output

    def test_pricing_lists_models(self):
        result = runner.invoke(app, ["pricing"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "gpt-4o-mini" in result.output
        assert "text-embedding-3-small" in result.output

    def test_pricing_with_overrides(self, config_file):
        result = runner.invoke(app, ["pricing", "--config", config_file])

        assert result.exit_code == EXIT_CODE_PASS
        assert "house-model" in result.output

    def test_estimate(self):
        result = runner.invoke(app, ["estimate", "gpt-4o", "-p", "1000000", "-o", "0"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Estimated cost for gpt-4o: $2.500000" in result.output

    def test_estimate_unknown_model(self):
        result = runner.invoke(app, ["estimate", "mystery-model", "-p", "10"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unsupported model" in result.output

    def test_ask_prints_response_and_usage(self, config_file, mock_create_client):
        client = MagicMock()
        client.complete.return_value = AIResponse(
            data="Host a murder-mystery dinner.",
            usage=TokenUsage(prompt_tokens=20, completion_tokens=10),
            cached=False,
            latency_ms=42.0
        )
        client.get_usage_stats.return_value = UsageStats(
            tenant_id="acme",
            period_days=30,
            total_tokens=30,
            estimated_cost_usd=Decimal("0.000150")
        )
        mock_create_client.return_value = client

        result = runner.invoke(app, [
            "ask", "Team event idea?", "--tenant", "acme",
            "--vertical", "team-building", "--config", config_file
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Host a murder-mystery dinner." in result.output
        assert "$0.000150" in result.output
        prompt, context, options = client.complete.call_args.args
        assert prompt == "Team event idea?"
        assert context.tenant_id == "acme"
        assert context.vertical.value == "team_building"

    def test_ask_provider_failure(self, config_file, mock_create_client):
        client = MagicMock()
        client.complete.side_effect = ProviderError("chat completion failed after 3 attempt(s): boom")
        mock_create_client.return_value = client

        result = runner.invoke(app, ["ask", "hi", "--tenant", "acme", "--config", config_file])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "failed after 3 attempt(s)" in result.output

    def test_ask_rejects_unknown_vertical(self, config_file, mock_create_client):
        result = runner.invoke(app, [
            "ask", "hi", "--tenant", "acme", "--vertical", "astronomy", "--config", config_file
        ])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unknown vertical" in result.output
        mock_create_client.assert_not_called()
