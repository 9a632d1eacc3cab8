"""Prompt keys for YAML templates."""

from enum import Enum


class SummarizerPrompts(str, Enum):
    """Prompt keys for the compaction summarizer."""

    SYSTEM_PROMPT = "system_prompt"
    SUMMARY_PROMPT = "summary_prompt"
