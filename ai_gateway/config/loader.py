"""
Configuration management and loading.

Handles gateway settings from YAML files and environment variables.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ai_gateway.core.pricing import ModelPricing, PRICING_TABLE, PricingTable


@dataclass(frozen=True)
class CacheConfig:
    """Response cache settings."""
    enabled: bool = True
    ttl_ms: int = 300000
    max_size: int = 1000

    def __post_init__(self):
        """Validate cache limits are positive."""
        if self.ttl_ms <= 0:
            raise ValueError("cache.ttl_ms must be > 0")
        if self.max_size <= 0:
            raise ValueError("cache.max_size must be > 0")


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-tenant rate limit settings."""
    enabled: bool = True
    requests_per_minute: int = 60
    idle_ttl_seconds: Optional[float] = None

    def __post_init__(self):
        """Validate rate limit values."""
        if self.requests_per_minute <= 0:
            raise ValueError("rate_limit.requests_per_minute must be > 0")
        if self.idle_ttl_seconds is not None and self.idle_ttl_seconds <= 0:
            raise ValueError("rate_limit.idle_ttl_seconds must be > 0")


@dataclass(frozen=True)
class GatewayConfig:
    """Complete gateway configuration."""
    api_key: Optional[str] = None
    organization: Optional[str] = None
    default_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: Optional[int] = None
    max_retries: int = 3
    timeout_ms: int = 30000
    cache: CacheConfig = field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    pricing: Dict[str, ModelPricing] = field(default_factory=dict)

    def __post_init__(self):
        """Validate top-level values."""
        if not self.default_model or not self.default_model.strip():
            raise ValueError("default_model is required and cannot be empty")
        if not self.embedding_model or not self.embedding_model.strip():
            raise ValueError("embedding_model is required and cannot be empty")
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if self.embedding_dimensions is not None and self.embedding_dimensions < 1:
            raise ValueError("embedding_dimensions must be >= 1")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def pricing_table(self) -> PricingTable:
        """Built-in price table with any configured overrides applied."""
        if not self.pricing:
            return PRICING_TABLE
        return PRICING_TABLE.with_overrides(self.pricing)

    @classmethod
    def from_env(cls, **overrides: Any) -> "GatewayConfig":
        """Build a default configuration with credentials from the environment."""
        values: Dict[str, Any] = {
            "api_key": os.environ.get("OPENAI_API_KEY"),
            "organization": os.environ.get("OPENAI_ORGANIZATION"),
        }
        values.update(overrides)
        return cls(**values)


_TOP_LEVEL_KEYS = {
    'api_key', 'organization', 'default_model', 'embedding_model',
    'embedding_dimensions', 'max_retries', 'timeout_ms', 'cache',
    'rate_limit', 'pricing'
}
_CACHE_KEYS = {'enabled', 'ttl_ms', 'max_size'}
_RATE_LIMIT_KEYS = {'enabled', 'requests_per_minute', 'idle_ttl_seconds'}
_PRICING_KEYS = {'input_per_million', 'output_per_million'}


def load_gateway_config(path: str) -> GatewayConfig:
    """Load and validate gateway configuration from a YAML file.

    Strict validation ensures no silent misconfigurations: unknown keys and
    values of the wrong type are rejected. ``api_key`` falls back to the
    ``OPENAI_API_KEY`` environment variable when absent from the file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated GatewayConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Gateway config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - _TOP_LEVEL_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values: Dict[str, Any] = {
        "api_key": _optional_str(raw_config, 'api_key') or os.environ.get("OPENAI_API_KEY"),
        "organization": _optional_str(raw_config, 'organization') or os.environ.get("OPENAI_ORGANIZATION"),
    }

    for key in ('default_model', 'embedding_model'):
        value = _optional_str(raw_config, key)
        if value is not None:
            values[key] = value

    for key in ('max_retries', 'timeout_ms', 'embedding_dimensions'):
        if key in raw_config and raw_config[key] is not None:
            values[key] = _require_int(raw_config[key], key)

    if 'cache' in raw_config:
        values['cache'] = _parse_cache_config(raw_config['cache'])
    if 'rate_limit' in raw_config:
        values['rate_limit'] = _parse_rate_limit_config(raw_config['rate_limit'])
    if 'pricing' in raw_config:
        values['pricing'] = _parse_pricing(raw_config['pricing'])

    return GatewayConfig(**values)


def _parse_cache_config(data: Any) -> CacheConfig:
    """Parse and validate the ``cache`` section."""
    _require_section(data, 'cache', _CACHE_KEYS)

    values: Dict[str, Any] = {}
    if 'enabled' in data:
        values['enabled'] = _require_bool(data['enabled'], 'cache.enabled')
    if 'ttl_ms' in data:
        values['ttl_ms'] = _require_int(data['ttl_ms'], 'cache.ttl_ms')
    if 'max_size' in data:
        values['max_size'] = _require_int(data['max_size'], 'cache.max_size')
    return CacheConfig(**values)


def _parse_rate_limit_config(data: Any) -> RateLimitConfig:
    """Parse and validate the ``rate_limit`` section."""
    _require_section(data, 'rate_limit', _RATE_LIMIT_KEYS)

    values: Dict[str, Any] = {}
    if 'enabled' in data:
        values['enabled'] = _require_bool(data['enabled'], 'rate_limit.enabled')
    if 'requests_per_minute' in data:
        values['requests_per_minute'] = _require_int(
            data['requests_per_minute'], 'rate_limit.requests_per_minute'
        )
    if data.get('idle_ttl_seconds') is not None:
        idle = data['idle_ttl_seconds']
        if isinstance(idle, bool) or not isinstance(idle, (int, float)):
            raise ValueError("'rate_limit.idle_ttl_seconds' must be a number")
        values['idle_ttl_seconds'] = float(idle)
    return RateLimitConfig(**values)


def _parse_pricing(data: Any) -> Dict[str, ModelPricing]:
    """Parse and validate the ``pricing`` section.

    Args:
        data: Mapping of model name to its per-million prices

    Returns:
        Mapping of model name to ModelPricing

    Raises:
        ValueError: If any entry is invalid
    """
    if not isinstance(data, dict):
        raise ValueError("'pricing' must be a dictionary")

    prices = {}
    for model, entry in data.items():
        path = f"pricing.{model}"
        _require_section(entry, path, _PRICING_KEYS)
        for key in _PRICING_KEYS:
            if key not in entry:
                raise ValueError(f"Missing required '{key}' in {path}")
        prices[str(model)] = ModelPricing(
            input_per_million=_require_decimal(entry['input_per_million'], f"{path}.input_per_million"),
            output_per_million=_require_decimal(entry['output_per_million'], f"{path}.output_per_million")
        )
    return prices


def _require_section(data: Any, path: str, allowed_keys: set) -> None:
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value


def _require_int(value: Any, path: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{path}' must be an integer")
    return value


def _require_bool(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{path}' must be a boolean")
    return value


def _require_decimal(value: Any, path: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"'{path}' must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")
    if amount < 0:
        raise ValueError(f"'{path}' cannot be negative")
    return amount
