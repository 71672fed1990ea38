"""
CLI interface for the AI gateway.

Provides command-line access to configuration checks, pricing and one-off
gateway calls.
"""

import json
import sys
from typing import Optional

import openai
import typer
from rich.console import Console
from rich.table import Table

from ai_gateway.config.loader import GatewayConfig, load_gateway_config
from ai_gateway.core.errors import GatewayError
from ai_gateway.core.logging import configure_logging
from ai_gateway.core.pricing import PRICING_TABLE, calculate_cost
from ai_gateway.core.token_counter import TokenUsage
from ai_gateway.sdk.openai_client import create_ai_client
from ai_gateway.sdk.types import ModelOptions, RequestContext, ResponseFormat

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for gateway logs")
):
    """AI Gateway CLI."""
    configure_logging(log_level)
    if ctx.invoked_subcommand is None:
        console.print("AI Gateway - Use --help to see available commands")


@app.command("check-config")
def check_config(path: str = typer.Argument(..., help="Path to gateway YAML config")):
    """Load and validate a gateway configuration file."""
    try:
        config = load_gateway_config(path)
    except Exception as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Gateway Configuration")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("api_key", "set" if config.api_key else "[yellow]missing[/]")
    table.add_row("organization", config.organization or "-")
    table.add_row("default_model", config.default_model)
    table.add_row("embedding_model", config.embedding_model)
    table.add_row("max_retries", str(config.max_retries))
    table.add_row("timeout_ms", str(config.timeout_ms))
    table.add_row(
        "cache",
        f"enabled={config.cache.enabled} ttl_ms={config.cache.ttl_ms} max_size={config.cache.max_size}"
    )
    table.add_row(
        "rate_limit",
        f"enabled={config.rate_limit.enabled} "
        f"requests_per_minute={config.rate_limit.requests_per_minute}"
    )
    table.add_row("pricing overrides", ", ".join(sorted(config.pricing)) or "-")
    console.print(table)
    console.print("[green]✓[/] Configuration is valid")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def pricing(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Apply pricing overrides from a config file")
):
    """Show the per-million-token price table."""
    table_data = PRICING_TABLE
    if config_path:
        try:
            table_data = load_gateway_config(config_path).pricing_table()
        except Exception as e:
            console.print(f"[red]Error:[/] {str(e)}")
            sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Model Pricing (USD per 1M tokens)")
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    for model in sorted(table_data.prices):
        prices = table_data.prices[model]
        table.add_row(model, f"${prices.input_per_million}", f"${prices.output_per_million}")
    console.print(table)


@app.command()
def estimate(
    model: str = typer.Argument(..., help="Model identifier"),
    prompt_tokens: int = typer.Option(0, "--prompt-tokens", "-p", min=0, help="Prompt tokens"),
    completion_tokens: int = typer.Option(0, "--completion-tokens", "-o", min=0, help="Completion tokens")
):
    """Estimate the cost of a request."""
    try:
        cost = calculate_cost(model, TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens))
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"Estimated cost for {model}: {_format_currency(float(cost))}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="User prompt"),
    tenant: str = typer.Option(..., "--tenant", "-t", help="Tenant id"),
    vertical: str = typer.Option("shared", "--vertical", "-v", help="Vertical the request belongs to"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Gateway YAML config"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override the default model"),
    json_mode: bool = typer.Option(False, "--json", help="Request a JSON response")
):
    """Send one completion through the gateway and show its usage."""
    try:
        config = load_gateway_config(config_path) if config_path else GatewayConfig.from_env()
        context = RequestContext(tenant_id=tenant, vertical=vertical)
        options = ModelOptions(
            model=model,
            response_format=ResponseFormat.JSON if json_mode else ResponseFormat.TEXT
        )
        client = create_ai_client(config)
        response = client.complete(prompt, context, options)
    except (GatewayError, openai.OpenAIError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if json_mode:
        try:
            console.print_json(response.data)
        except json.JSONDecodeError:
            console.print(response.data)
    else:
        console.print(response.data)

    stats = client.get_usage_stats(tenant)
    table = Table(title="Usage")
    table.add_column("Prompt", justify="right")
    table.add_column("Completion", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Est. cost", justify="right")
    table.add_column("Latency", justify="right")
    table.add_row(
        str(response.usage.prompt_tokens),
        str(response.usage.completion_tokens),
        str(response.usage.total_tokens),
        _format_currency(float(stats.estimated_cost_usd)),
        f"{response.latency_ms:,.0f} ms"
    )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: float) -> str:
    """Format currency with enough precision for per-request costs."""
    return f"${abs(amount):,.6f}"


if __name__ == "__main__":
    app()
