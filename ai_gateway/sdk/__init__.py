"""
SDK for the AI gateway.

Provides the tenant-aware OpenAI client and its request/response types.
"""

from .openai_client import AIClient, create_ai_client
from .types import AIResponse, ModelOptions, RequestContext, ResponseFormat, Vertical

__all__ = [
    "AIClient",
    "AIResponse",
    "ModelOptions",
    "RequestContext",
    "ResponseFormat",
    "Vertical",
    "create_ai_client",
]
