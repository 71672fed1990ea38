"""
Gateway OpenAI client.

Orchestrates the cache, the per-tenant rate limiter, bounded retry, response
validation and usage recording around the OpenAI SDK.
"""

import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openai import OpenAI

from ..config.loader import GatewayConfig
from ..core.cache import ResponseCache, make_cache_key
from ..core.embeddings import EmbeddingResult, EmbeddingService
from ..core.errors import ParseError, ProviderError, RateLimitTimeout, ValidationError
from ..core.parsers import schema_instruction, try_parse_json, validate_data
from ..core.rate_limiter import TenantRateLimiter
from ..core.retry import RetryPolicy
from ..core.token_counter import TokenUsage
from ..core.usage import UsageStats, UsageTracker
from ..storage.models import UsageRecord
from .types import AIResponse, Message, ModelOptions, RequestContext, ResponseFormat

logger = logging.getLogger(__name__)


class AIClient:
    """Multi-tenant OpenAI gateway.

    One instance per process, shared by every tenant. The cache, rate limiter
    and usage tracker are owned fields, so tests can build isolated instances
    or inject their own.

    Request pipeline for ``chat``:
    cache lookup -> rate-limit admission -> provider call with retry ->
    usage record -> cache store -> response.
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        client: Optional[Any] = None,
        cache: Optional[ResponseCache] = None,
        rate_limiter: Optional[TenantRateLimiter] = None,
        usage_tracker: Optional[UsageTracker] = None,
        retry: Optional[RetryPolicy] = None
    ):
        """Initialize the gateway.

        Args:
            config: Gateway configuration (defaults to GatewayConfig.from_env())
            client: OpenAI client to use instead of building one from config
            cache: Cache to use; ignored when caching is disabled in config
            rate_limiter: Limiter to use; ignored when rate limiting is disabled
            usage_tracker: Usage tracker (defaults to one priced from config)
            retry: Retry policy (defaults to config.max_retries attempts)
        """
        self.config = config or GatewayConfig.from_env()

        # Retries are owned by the gateway so each attempt is logged
        self.client = client if client is not None else OpenAI(
            api_key=self.config.api_key,
            organization=self.config.organization,
            timeout=self.config.timeout_seconds,
            max_retries=0
        )

        self.cache: Optional[ResponseCache] = None
        if self.config.cache.enabled:
            self.cache = cache if cache is not None else ResponseCache(
                max_size=self.config.cache.max_size,
                ttl_ms=self.config.cache.ttl_ms
            )

        self.rate_limiter: Optional[TenantRateLimiter] = None
        if self.config.rate_limit.enabled:
            self.rate_limiter = rate_limiter if rate_limiter is not None else TenantRateLimiter(
                requests_per_minute=self.config.rate_limit.requests_per_minute,
                idle_ttl_seconds=self.config.rate_limit.idle_ttl_seconds
            )

        self.usage_tracker = usage_tracker if usage_tracker is not None else UsageTracker(
            pricing=self.config.pricing_table()
        )
        self.retry = retry or RetryPolicy(max_attempts=self.config.max_retries)
        self.embeddings = EmbeddingService(
            self.client,
            model=self.config.embedding_model,
            dimensions=self.config.embedding_dimensions,
            retry=self.retry
        )

    def chat(
        self,
        messages: Sequence[Message],
        context: RequestContext,
        options: Optional[ModelOptions] = None,
        timeout: Optional[float] = None
    ) -> AIResponse[str]:
        """Create a chat completion.

        Args:
            messages: Chat messages in OpenAI ``{"role", "content"}`` form
            context: Caller identity for rate limiting and usage attribution
            options: Model parameters (defaults to the configured model)
            timeout: Optional seconds for the whole call. Time spent waiting
                on the rate limit is deducted before the rest is handed to the
                provider request

        Returns:
            AIResponse with the completion text

        Raises:
            ValueError: If messages is empty
            RateLimitTimeout: If the tenant's rate-limit wait exceeds ``timeout``
            ProviderError: If the provider call fails after all retries
        """
        response, _ = self._chat(messages, context, options, timeout)
        return response

    def chat_structured(
        self,
        messages: Sequence[Message],
        schema: Any,
        context: RequestContext,
        options: Optional[ModelOptions] = None,
        timeout: Optional[float] = None
    ) -> AIResponse[Any]:
        """Create a chat completion constrained to a schema.

        A system instruction demanding JSON that matches ``schema`` is added
        and JSON mode is forced. A shape mismatch is not retried.

        Args:
            messages: Chat messages
            schema: pydantic model class, or any type accepted by TypeAdapter
            context: Caller identity
            options: Model parameters
            timeout: Optional seconds bounding the call

        Returns:
            AIResponse whose ``data`` is the validated object

        Raises:
            ParseError: If the model did not return JSON
            ValidationError: If the JSON does not match the schema
            ProviderError: If the provider call fails after all retries
        """
        options = options or ModelOptions()
        instruction = schema_instruction(schema)
        system_prompt = (
            f"{options.system_prompt}\n\n{instruction}" if options.system_prompt else instruction
        )
        structured_options = replace(
            options,
            system_prompt=system_prompt,
            response_format=ResponseFormat.JSON
        )

        response, cache_key = self._chat(messages, context, structured_options, timeout)

        parsed = try_parse_json(response.data)
        if not parsed.ok:
            self._discard(cache_key)
            raise ParseError(parsed.error or "Response is not valid JSON", content=response.data)

        result = validate_data(parsed.value, schema)
        if not result.success:
            self._discard(cache_key)
            summary = "; ".join(
                f"{error.path or '<root>'}: {error.message}" for error in result.errors
            )
            logger.warning(
                "Structured response failed validation: %s", summary,
                extra=context.log_extra()
            )
            raise ValidationError(
                f"Structured response failed schema validation: {summary}",
                errors=result.errors
            )

        return AIResponse(
            data=result.data,
            usage=response.usage,
            cached=response.cached,
            latency_ms=response.latency_ms
        )

    def complete(
        self,
        prompt: str,
        context: RequestContext,
        options: Optional[ModelOptions] = None,
        timeout: Optional[float] = None
    ) -> AIResponse[str]:
        """Single user-turn convenience form of ``chat``."""
        if not prompt:
            raise ValueError("prompt is required and cannot be empty")
        return self.chat([{"role": "user", "content": prompt}], context, options, timeout)

    def embed(
        self,
        text: str,
        context: RequestContext,
        timeout: Optional[float] = None
    ) -> EmbeddingResult:
        """Embed one text, charging the tenant's rate limit and usage."""
        return self.embed_batch([text], context, timeout)[0]

    def embed_batch(
        self,
        texts: Sequence[str],
        context: RequestContext,
        timeout: Optional[float] = None
    ) -> List[EmbeddingResult]:
        """Embed several texts in one provider call.

        Recorded as a single usage record with the batch's total tokens.
        """
        if not texts:
            return []
        remaining = self._admit(context, timeout)

        results = self.embeddings.embed_batch(texts, timeout=remaining)
        self.usage_tracker.track(UsageRecord(
            tenant_id=context.tenant_id,
            vertical=context.vertical.value,
            model=self.embeddings.model,
            prompt_tokens=sum(result.tokens for result in results),
            completion_tokens=0,
            total_tokens=sum(result.tokens for result in results),
            timestamp=datetime.now(),
            request_id=context.request_id,
            user_id=context.user_id
        ))
        return results

    def get_usage_stats(self, tenant_id: str, period_days: int = 30) -> UsageStats:
        return self.usage_tracker.get_stats(tenant_id, period_days)

    def clear_old_usage(self, older_than_days: int) -> int:
        return self.usage_tracker.clear_old_records(older_than_days)

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    def _chat(
        self,
        messages: Sequence[Message],
        context: RequestContext,
        options: Optional[ModelOptions],
        timeout: Optional[float]
    ) -> Tuple[AIResponse[str], str]:
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        started = time.perf_counter()
        options = options or ModelOptions()
        if options.model is None:
            options = replace(options, model=self.config.default_model)

        log_extra = {**context.log_extra(), "model": options.model}
        cache_key = make_cache_key(messages, options.cache_material())

        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                latency_ms = _elapsed_ms(started)
                logger.debug("Cache hit for %s", cache_key[:12], extra={**log_extra, "latency_ms": latency_ms})
                return AIResponse(
                    data=cached,
                    usage=TokenUsage.zero(),
                    cached=True,
                    latency_ms=latency_ms
                ), cache_key
            logger.debug("Cache miss for %s", cache_key[:12], extra=log_extra)

        remaining = self._admit(context, timeout)

        params = self._build_params(messages, options, remaining)
        response, retries = self.retry.call(
            lambda: self.client.chat.completions.create(**params),
            operation="chat completion",
            log_extra=log_extra
        )

        usage = response.usage
        if not usage:
            raise ProviderError("Provider response missing usage information", retryable=False)
        if not response.choices:
            raise ProviderError("Provider response contained no choices", retryable=False)
        content = response.choices[0].message.content or ""

        token_usage = TokenUsage.from_provider(usage)
        reported_total = getattr(usage, "total_tokens", None)
        total_tokens = reported_total if isinstance(reported_total, int) else token_usage.total_tokens
        response_id = getattr(response, "id", None)

        # Usage first: it must reflect real consumption even if caching is off
        self.usage_tracker.track(UsageRecord(
            tenant_id=context.tenant_id,
            vertical=context.vertical.value,
            model=options.model,
            prompt_tokens=token_usage.prompt_tokens,
            completion_tokens=token_usage.completion_tokens,
            total_tokens=total_tokens,
            timestamp=datetime.now(),
            request_id=context.request_id or (response_id if isinstance(response_id, str) else None),
            user_id=context.user_id,
            retry_count=retries
        ))

        if self.cache is not None:
            self.cache.set(cache_key, content)

        latency_ms = _elapsed_ms(started)
        logger.debug(
            "Chat completion for tenant %s took %.1fms", context.tenant_id, latency_ms,
            extra={
                **log_extra,
                "latency_ms": latency_ms,
                "prompt_tokens": token_usage.prompt_tokens,
                "completion_tokens": token_usage.completion_tokens,
            }
        )
        return AIResponse(
            data=content,
            usage=token_usage,
            cached=False,
            latency_ms=latency_ms
        ), cache_key

    def _admit(self, context: RequestContext, timeout: Optional[float]) -> Optional[float]:
        """Charge the tenant's rate limit and return what is left of ``timeout``.

        Raises:
            RateLimitTimeout: If waiting for capacity used up the whole timeout
        """
        waited = 0.0
        if self.rate_limiter is not None:
            waited = self.rate_limiter.acquire(context.tenant_id, timeout=timeout)
        if timeout is None:
            return None
        remaining = timeout - waited
        if remaining <= 0:
            raise RateLimitTimeout(context.tenant_id, waited, timeout)
        return remaining

    def _discard(self, cache_key: str) -> None:
        # Do not keep serving a response that failed validation
        if self.cache is not None:
            self.cache.delete(cache_key)

    @staticmethod
    def _build_params(
        messages: Sequence[Message],
        options: ModelOptions,
        timeout: Optional[float]
    ) -> Dict[str, Any]:
        request_messages: List[Message] = []
        if options.system_prompt:
            request_messages.append({"role": "system", "content": options.system_prompt})
        request_messages.extend(dict(message) for message in messages)

        params: Dict[str, Any] = {"model": options.model, "messages": request_messages}
        if options.max_tokens is not None:
            params["max_tokens"] = options.max_tokens
        if options.temperature is not None:
            params["temperature"] = options.temperature
        if options.response_format == ResponseFormat.JSON:
            params["response_format"] = {"type": "json_object"}
        if timeout is not None:
            params["timeout"] = timeout
        return params


def create_ai_client(config: Optional[GatewayConfig] = None, **kwargs: Any) -> AIClient:
    """Build a gateway from configuration."""
    return AIClient(config=config, **kwargs)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
