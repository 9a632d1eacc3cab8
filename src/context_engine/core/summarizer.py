"""Summarizer collaborator used by compaction."""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Protocol

import structlog
from pydantic import BaseModel, Field, ValidationError

from ..config import SummarizerSettings
from ..db.models.message import ChatMessage
from ..exceptions import ConfigurationError, SummarizationError
from ..llm import CompletionRequest, LiteLLMClient
from ..prompts import PromptManager, SummarizerPrompts

logger = structlog.get_logger()

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


class SummaryResult(BaseModel):
    """Summary of a replaced message range."""

    summary: str = Field(min_length=1)
    key_topics: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)


class Summarizer(Protocol):
    """Produces a summary for a range of messages.

    Implementations raise :class:`SummarizationError` on any failure.
    """

    async def summarize(
        self, messages: Sequence[ChatMessage], hint: str | None = None
    ) -> SummaryResult: ...


def format_conversation(messages: Sequence[ChatMessage]) -> str:
    """Render messages as ``ROLE: content`` lines."""
    return "\n\n".join(f"{m.role.upper()}: {m.effective_content}" for m in messages)


def parse_summary(text: str) -> SummaryResult:
    """Parse model output into a SummaryResult.

    JSON output is preferred; plain prose is accepted as the summary
    with no topics or decisions.

    Raises:
        SummarizationError: If the output is empty or malformed
    """
    cleaned = _CODE_FENCE.sub("", text.strip()).strip()
    if not cleaned:
        raise SummarizationError("Summarizer returned empty output")

    if not cleaned.startswith("{"):
        return SummaryResult(summary=cleaned)

    try:
        return SummaryResult.model_validate(json.loads(cleaned))
    except (json.JSONDecodeError, ValidationError) as e:
        raise SummarizationError(f"Malformed summarizer output: {e}", e) from e


class LLMSummarizer:
    """Summarizer backed by an LLM through LiteLLM."""

    def __init__(
        self,
        llm_client: LiteLLMClient,
        settings: SummarizerSettings,
        prompt_manager: PromptManager | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.settings = settings
        self.prompt_manager = prompt_manager or PromptManager()

    async def summarize(
        self, messages: Sequence[ChatMessage], hint: str | None = None
    ) -> SummaryResult:
        """Summarize a message range.

        Args:
            messages: Messages being replaced, oldest first
            hint: Optional extra instruction for the model

        Returns:
            Parsed summary

        Raises:
            SummarizationError: If the call fails or output is unusable
        """
        if not messages:
            raise SummarizationError("Nothing to summarize")

        logger.info(
            "summarizer_start",
            session_id=messages[0].session_id,
            message_count=len(messages),
            model=self.settings.model,
        )

        try:
            prompt = self.prompt_manager.render(
                "summarizer",
                SummarizerPrompts.SUMMARY_PROMPT,
                conversation_text=format_conversation(messages),
                message_count=len(messages),
                hint=hint,
            )
            system = self.prompt_manager.render("summarizer", SummarizerPrompts.SYSTEM_PROMPT)
        except (ConfigurationError, KeyError, ValueError) as e:
            raise SummarizationError(f"Summarizer prompt unavailable: {e}", e) from e

        request = CompletionRequest(
            model=self.settings.model,
            system=system,
            prompt=prompt,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
            api_base=self.settings.api_base,
            api_key=self.settings.api_key,
        )

        try:
            completion = await self.llm_client.complete(request)
        except Exception as e:
            logger.warning("summarizer_call_failed", error=str(e))
            raise SummarizationError(f"Summarizer call failed: {e}", e) from e

        if completion.truncated:
            logger.warning("summary_truncated", max_tokens=self.settings.max_tokens)
        result = parse_summary(completion.text)

        logger.info(
            "summarizer_complete",
            session_id=messages[0].session_id,
            summary_length=len(result.summary),
            topics=len(result.key_topics),
            decisions=len(result.decisions),
            tokens_used=completion.total_tokens,
        )
        return result
