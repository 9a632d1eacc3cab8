"""Context management core: token budgets, compression and checkpoints."""

from .checkpoint import CheckpointManager
from .compression import CompressionEngine, CompressionResult
from .summarizer import LLMSummarizer, Summarizer, SummaryResult
from .token_budget import (
    BudgetEvaluation,
    CompressionAction,
    TokenBudgetEvaluator,
    TokenCounter,
    estimate_tokens,
)

__all__ = [
    "BudgetEvaluation",
    "CheckpointManager",
    "CompressionAction",
    "CompressionEngine",
    "CompressionResult",
    "LLMSummarizer",
    "Summarizer",
    "SummaryResult",
    "TokenBudgetEvaluator",
    "TokenCounter",
    "estimate_tokens",
]
