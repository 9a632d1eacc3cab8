"""Custom exceptions for the context engine."""

from __future__ import annotations


class ContextEngineError(Exception):
    """Base exception for context engine operations.

    Attributes:
        message: Error description
        cause: Original exception that caused this error
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize context engine error.

        Args:
            message: Error description
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.cause = cause


class StorageError(ContextEngineError):
    """Read or write against the persisted store failed.

    Propagated to the caller. The surrounding transaction is rolled
    back so no partial mutation is committed.
    """

    pass


class SummarizationError(ContextEngineError):
    """Summarizer call failed, timed out or returned unusable output.

    Recovered locally by the compression engine, which degrades
    the compact action to prune.
    """

    pass


class ConfigurationError(ContextEngineError):
    """Configuration values failed validation (e.g. prune > compact)."""

    pass


class CleanupPartialFailure(ContextEngineError):
    """A single cleanup pass failed.

    Collected into the cleanup report; other passes still run.

    Attributes:
        pass_name: Name of the failed pass
    """

    def __init__(
        self, pass_name: str, message: str, cause: Exception | None = None
    ) -> None:
        super().__init__(f"{pass_name}: {message}", cause)
        self.pass_name = pass_name


class NotFoundError(ContextEngineError):
    """Requested record does not exist."""

    def __init__(self, resource: str, resource_id: object) -> None:
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class CheckpointNotFoundError(NotFoundError):
    """Checkpoint id does not exist."""

    def __init__(self, checkpoint_id: object) -> None:
        super().__init__("Checkpoint", checkpoint_id)


class MemoryNotFoundError(NotFoundError):
    """Compacted session record does not exist."""

    def __init__(self, memory_id: object) -> None:
        super().__init__("Memory", memory_id)
