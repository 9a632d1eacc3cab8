"""LLM access through LiteLLM."""

from .client import RETRYABLE_ERRORS, LiteLLMClient, provider_retry
from .schemas import Completion, CompletionRequest

__all__ = [
    "RETRYABLE_ERRORS",
    "Completion",
    "CompletionRequest",
    "LiteLLMClient",
    "provider_retry",
]
