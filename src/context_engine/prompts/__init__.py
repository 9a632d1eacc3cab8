"""Prompt templates."""

from .keys import SummarizerPrompts
from .manager import PromptManager

__all__ = ["PromptManager", "SummarizerPrompts"]
