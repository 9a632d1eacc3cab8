"""Token budget evaluation.

Decides which compression action a transcript needs from its token usage
relative to the effective context limit.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import structlog
import tiktoken

from ..config import ContextEngineConfig

logger = structlog.get_logger()

# Floor for the effective limit so misconfigured output reservations
# can never produce a zero or negative denominator
MIN_EFFECTIVE_LIMIT = 1024

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Deterministic character-length token estimate."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class TokenCounter:
    """Counts tokens with tiktoken, falling back to the character estimate."""

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        try:
            self.encoding: tiktoken.Encoding | None = tiktoken.get_encoding(encoding_name)
        except Exception as e:
            # Encoding files may be unavailable offline
            logger.warning("tiktoken_unavailable", encoding=encoding_name, error=str(e))
            self.encoding = None

    def count(self, text: str) -> int:
        if not text:
            return 0
        if self.encoding is None:
            return estimate_tokens(text)
        return len(self.encoding.encode(text, disallowed_special=()))


class CompressionAction(str, Enum):
    """Compression action chosen by the evaluator."""

    NONE = "none"
    PRUNE = "prune"
    COMPACT = "compact"
    TRUNCATE = "truncate"


class UsageLevel(str, Enum):
    """Coarse usage status for display."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class TokenCounted(Protocol):
    """Anything the evaluator can weigh."""

    token_count: int | None

    @property
    def effective_content(self) -> str: ...


@dataclass(frozen=True)
class BudgetEvaluation:
    """Result of one budget evaluation."""

    action: CompressionAction
    used_tokens: int
    effective_limit: int
    usage_ratio: float
    level: UsageLevel

    @property
    def message(self) -> str:
        percent = round(self.usage_ratio * 100)
        return (
            f"Context usage {percent}% "
            f"({self.used_tokens}/{self.effective_limit} tokens), action: {self.action.value}"
        )


def effective_limit(config: ContextEngineConfig) -> int:
    """Usable input budget: context window minus reserved output."""
    limit = min(config.max_tokens, config.model_context_limit) - config.model_output_limit
    return max(limit, MIN_EFFECTIVE_LIMIT)


class TokenBudgetEvaluator:
    """Maps transcript token usage to a compression action.

    Thresholds are tested from most to least severe, so a ratio above
    the truncate threshold always yields truncate.
    """

    def __init__(self, config: ContextEngineConfig) -> None:
        self.config = config

    @property
    def effective_limit(self) -> int:
        return effective_limit(self.config)

    @staticmethod
    def message_tokens(message: TokenCounted) -> int:
        """Stored count, or the character estimate when missing."""
        if message.token_count is not None:
            return message.token_count
        return estimate_tokens(message.effective_content)

    def used_tokens(self, messages: Sequence[TokenCounted]) -> int:
        return sum(self.message_tokens(m) for m in messages)

    def usage_ratio(self, used_tokens: int) -> float:
        return used_tokens / self.effective_limit

    def action_for_ratio(self, ratio: float) -> CompressionAction:
        if not self.config.enabled:
            return CompressionAction.NONE
        if ratio >= self.config.truncate_threshold:
            return CompressionAction.TRUNCATE
        if ratio >= self.config.compact_threshold:
            return CompressionAction.COMPACT
        if ratio >= self.config.prune_threshold:
            return CompressionAction.PRUNE
        return CompressionAction.NONE

    def evaluate(self, messages: Sequence[TokenCounted]) -> BudgetEvaluation:
        """Evaluate the active messages of a transcript.

        Args:
            messages: Active (non-condensed, non-truncated) messages

        Returns:
            Chosen action with the usage figures behind it
        """
        used = self.used_tokens(messages)
        ratio = self.usage_ratio(used)
        action = self.action_for_ratio(ratio)

        if ratio >= self.config.compact_threshold:
            level = UsageLevel.CRITICAL
        elif ratio >= self.config.prune_threshold:
            level = UsageLevel.WARNING
        else:
            level = UsageLevel.NORMAL

        return BudgetEvaluation(
            action=action,
            used_tokens=used,
            effective_limit=self.effective_limit,
            usage_ratio=ratio,
            level=level,
        )
