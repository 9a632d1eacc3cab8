"""Tiered conversational memory engine.

Keeps long-running chat sessions within a model's token budget and
promotes durable knowledge from compacted history into long-term memory.
"""

__version__ = "0.1.0"
