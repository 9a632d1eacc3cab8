"""Tests for LiteLLMClient."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from context_engine.llm import Completion, CompletionRequest, LiteLLMClient


def provider_response(text: str | None, finish_reason: str = "stop") -> dict:
    return {
        "choices": [{"message": {"content": text}, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 40, "completion_tokens": 8, "total_tokens": 48},
        "model": "gpt-4o-mini",
    }


@pytest.fixture
def request_() -> CompletionRequest:
    return CompletionRequest(model="gpt-4o-mini", system="Summarize.", prompt="USER: hi")


class TestComplete:
    async def test_maps_provider_response(self, request_: CompletionRequest) -> None:
        with patch(
            "context_engine.llm.client.litellm.acompletion",
            AsyncMock(return_value=provider_response("A short summary.")),
        ) as mock_completion:
            completion = await LiteLLMClient().complete(request_)

        assert completion.text == "A short summary."
        assert completion.total_tokens == 48
        assert not completion.truncated
        mock_completion.assert_awaited_once_with(
            model="gpt-4o-mini",
            messages=[
                {"role": "system", "content": "Summarize."},
                {"role": "user", "content": "USER: hi"},
            ],
            temperature=0.2,
        )

    async def test_passes_optional_settings(self) -> None:
        request = CompletionRequest(
            model="ollama/llama3",
            system="s",
            prompt="p",
            max_tokens=256,
            api_base="http://localhost:11434",
        )
        mock_completion = AsyncMock(return_value=provider_response(None, "length"))

        with patch("context_engine.llm.client.litellm.acompletion", mock_completion):
            completion = await LiteLLMClient().complete(request)

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["max_tokens"] == 256
        assert kwargs["api_base"] == "http://localhost:11434"
        assert "api_key" not in kwargs
        assert completion.text == ""
        assert completion.truncated

    async def test_bad_request_is_not_retried(self, request_: CompletionRequest) -> None:
        mock_completion = AsyncMock(side_effect=ValueError("unknown model"))

        with patch("context_engine.llm.client.litellm.acompletion", mock_completion):
            with pytest.raises(ValueError):
                await LiteLLMClient().complete(request_)

        assert mock_completion.await_count == 1


def test_completion_token_total() -> None:
    completion = Completion(text="x", model="m", prompt_tokens=3, completion_tokens=4)

    assert completion.total_tokens == 7
    assert completion.finish_reason is None
