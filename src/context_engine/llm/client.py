"""LiteLLM access with a shared retry policy."""

from typing import Any

import litellm
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .schemas import Completion, CompletionRequest

logger = structlog.get_logger()

# Transient provider failures; anything else (bad request, auth) fails at once
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    litellm.exceptions.RateLimitError,
    litellm.exceptions.Timeout,
    litellm.exceptions.APIConnectionError,
    litellm.exceptions.ServiceUnavailableError,
)

provider_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(RETRYABLE_ERRORS),
    reraise=True,
)


class LiteLLMClient:
    """Completion client for any LiteLLM-supported provider.

    Provider keys come from the environment (OPENAI_API_KEY,
    ANTHROPIC_API_KEY, ...) unless the request carries its own.
    """

    @provider_retry
    async def complete(self, request: CompletionRequest) -> Completion:
        """Run one completion, retrying transient provider errors.

        Raises:
            litellm.exceptions.APIError: If the provider keeps failing
        """
        params: dict[str, Any] = {
            "model": request.model,
            "messages": request.to_messages(),
            "temperature": request.temperature,
        }
        optional = {
            "max_tokens": request.max_tokens,
            "api_base": request.api_base,
            "api_key": request.api_key,
        }
        params.update({k: v for k, v in optional.items() if v is not None})

        response = await litellm.acompletion(**params)

        choice = response["choices"][0]
        usage = response["usage"]
        completion = Completion(
            text=choice["message"]["content"] or "",
            model=response["model"],
            prompt_tokens=usage["prompt_tokens"] or 0,
            completion_tokens=usage["completion_tokens"] or 0,
            finish_reason=choice.get("finish_reason"),
        )
        logger.debug(
            "llm_completion",
            model=completion.model,
            total_tokens=completion.total_tokens,
            finish_reason=completion.finish_reason,
        )
        return completion
