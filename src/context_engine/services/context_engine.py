"""Context engine service.

Each conversation session gets a single-writer worker: appends, manual
compressions, checkpoints and deletions are queued and executed one at
a time, so no two mutations of the same transcript overlap. Different
sessions run concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID

import structlog

from ..config import ContextEngineConfig
from ..core.checkpoint import CheckpointManager
from ..core.compression import CompressionEngine, CompressionResult
from ..core.schemas import MessageSnapshot
from ..core.summarizer import Summarizer
from ..core.token_budget import BudgetEvaluation, CompressionAction, TokenCounter
from ..db.errors import storage_errors
from ..db.models.checkpoint import Checkpoint
from ..db.models.message import ChatMessage
from ..db.repository.message_repo import MessageRepository
from ..db.session import DatabaseSessionManager
from ..events import CheckpointCreatedEvent, ContextCompressedEvent, EventBus
from ..memory.store import MidTermMemoryStore

logger = structlog.get_logger()

T = TypeVar("T")

# Seconds a session worker waits for work before it retires
WORKER_IDLE_SECONDS = 300.0


@dataclass
class AppendResult:
    """Outcome of appending one message."""

    message: MessageSnapshot
    compression: CompressionResult
    checkpoints: list[Checkpoint] = field(default_factory=list)


@dataclass
class _Job:
    name: str
    run: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]


class SessionWorker:
    """Single consumer of one session's job queue.

    The consumer exits once its queue has stayed empty for ``idle_timeout``
    seconds and calls ``on_idle`` so the owner can forget the worker. A
    later :meth:`submit` on the same worker starts a fresh consumer.
    """

    def __init__(
        self,
        session_id: str,
        idle_timeout: float | None = None,
        on_idle: Callable[[SessionWorker], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self.idle_timeout = idle_timeout
        self._on_idle = on_idle
        self._queue: asyncio.Queue[_Job] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._compression: asyncio.Task[CompressionResult] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_compressing(self) -> bool:
        return self._compression is not None and not self._compression.done()

    def start(self) -> None:
        if not self.is_running:
            self._task = asyncio.create_task(
                self._consume(), name=f"session-worker:{self.session_id}"
            )

    async def stop(self) -> None:
        """Cancel the consumer and fail any queued jobs."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        while not self._queue.empty():
            job = self._queue.get_nowait()
            if not job.future.done():
                job.future.cancel()

    async def submit(self, name: str, run: Callable[[], Awaitable[T]]) -> T:
        """Queue a job and wait for its result."""
        self.start()
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        await self._queue.put(_Job(name=name, run=run, future=future))
        return await future

    async def run_compression(
        self, compress: Callable[[], Awaitable[CompressionResult]]
    ) -> CompressionResult | None:
        """Run a compression as a child task that :meth:`cancel` can stop.

        Returns:
            The result, or None when the compression was cancelled
        """
        self._compression = asyncio.create_task(compress())
        try:
            return await self._compression
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                # The worker itself is stopping
                raise
            return None
        finally:
            self._compression = None

    def cancel_compression(self) -> bool:
        if self._compression is None or self._compression.done():
            return False
        self._compression.cancel()
        return True

    async def _consume(self) -> None:
        while True:
            try:
                job = await asyncio.wait_for(self._queue.get(), self.idle_timeout)
            except TimeoutError:
                if not self._queue.empty():
                    continue
                # No await past this point: a submit cannot slip in unseen
                logger.debug("session_worker_idle", session_id=self.session_id)
                if self._on_idle is not None:
                    self._on_idle(self)
                return
            try:
                if job.future.cancelled():
                    continue
                result = await job.run()
            except asyncio.CancelledError:
                if not job.future.done():
                    job.future.cancel()
                raise
            except Exception as e:
                if not job.future.done():
                    job.future.set_exception(e)
            else:
                if not job.future.done():
                    job.future.set_result(result)
            finally:
                self._queue.task_done()


class ContextEngine:
    """Entry point for transcript operations.

    Appending a message commits it first, then evaluates the token
    budget and compresses in a second transaction. Compression, and
    the checkpoints it may trigger, go through the session's worker.
    """

    def __init__(
        self,
        session_manager: DatabaseSessionManager,
        config: ContextEngineConfig,
        summarizer: Summarizer,
        token_counter: TokenCounter | None = None,
        event_bus: EventBus | None = None,
        summarizer_timeout: float = 60.0,
        worker_idle_seconds: float | None = WORKER_IDLE_SECONDS,
    ) -> None:
        """Initialize context engine.

        Args:
            session_manager: Database session manager
            config: Context engine configuration
            summarizer: Summarizer used by compaction
            token_counter: Token counter for appended messages
            event_bus: Receives compression and checkpoint events
            summarizer_timeout: Seconds before a summary call is abandoned
            worker_idle_seconds: Idle time after which a session worker is
                dropped; None keeps workers until the session is closed
        """
        self._session_manager = session_manager
        self._summarizer = summarizer
        self._token_counter = token_counter or TokenCounter()
        self._event_bus = event_bus
        self._summarizer_timeout = summarizer_timeout
        self._worker_idle_seconds = worker_idle_seconds
        self._workers: dict[str, SessionWorker] = {}
        self.configure(config)

    def configure(self, config: ContextEngineConfig) -> None:
        """Swap in a new configuration for subsequent jobs."""
        self.config = config
        self.compression = CompressionEngine(
            config,
            self._summarizer,
            token_counter=self._token_counter,
            summarizer_timeout=self._summarizer_timeout,
        )
        self.checkpoints = CheckpointManager(config)
        logger.info(
            "context_engine_configured",
            enabled=config.enabled,
            prune=config.prune_threshold,
            compact=config.compact_threshold,
            truncate=config.truncate_threshold,
        )

    def _worker(self, session_id: str) -> SessionWorker:
        worker = self._workers.get(session_id)
        if worker is None:
            worker = SessionWorker(
                session_id, idle_timeout=self._worker_idle_seconds, on_idle=self._forget_worker
            )
            self._workers[session_id] = worker
        return worker

    def _forget_worker(self, worker: SessionWorker) -> None:
        # A replacement may already be registered under the same id
        if self._workers.get(worker.session_id) is worker:
            del self._workers[worker.session_id]

    @property
    def active_sessions(self) -> list[str]:
        """Sessions that currently hold a worker."""
        return list(self._workers)

    # === Mutations (serialized per session) ===

    async def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        timestamp: datetime | None = None,
    ) -> AppendResult:
        """Append a message, then compress and checkpoint as configured.

        Raises:
            StorageError: If the message or a compression write fails
        """
        worker = self._worker(session_id)

        async def job() -> AppendResult:
            async with self._session_manager.session() as session:
                with storage_errors("append_message"):
                    message = await MessageRepository(session).append(
                        session_id,
                        role,
                        content,
                        token_count=self._token_counter.count(content),
                        timestamp=timestamp,
                    )
                    await session.commit()
            snapshot = MessageSnapshot.model_validate(message)

            compression = await self._compress_in_worker(worker, session_id)
            checkpoints = await self._auto_checkpoints(session_id, compression)
            return AppendResult(message=snapshot, compression=compression, checkpoints=checkpoints)

        return await worker.submit("append", job)

    async def compress(
        self,
        session_id: str,
        action: CompressionAction | None = None,
        hint: str | None = None,
    ) -> CompressionResult:
        """Run a compression pass now, optionally forcing the action."""
        worker = self._worker(session_id)

        async def job() -> CompressionResult:
            result = await self._compress_in_worker(worker, session_id, action, hint)
            await self._auto_checkpoints(session_id, result, interval=False)
            return result

        return await worker.submit("compress", job)

    async def create_checkpoint(self, session_id: str, name: str) -> Checkpoint:
        """Snapshot a session on demand."""

        async def job() -> Checkpoint:
            return await self._checkpoint(session_id, name, is_auto=False)

        return await self._worker(session_id).submit("checkpoint", job)

    async def delete_session(self, session_id: str) -> dict[str, int]:
        """Delete a session's messages, checkpoints and memory records."""

        async def job() -> dict[str, int]:
            async with self._session_manager.session() as session:
                with storage_errors("delete_session"):
                    messages = await MessageRepository(session).delete_by_session(session_id)
                    checkpoints = await self.checkpoints.delete_by_session(session, session_id)
                    memories = await MidTermMemoryStore(session).delete_by_session(session_id)
                    await session.commit()
            logger.info(
                "session_deleted",
                session_id=session_id,
                messages=messages,
                checkpoints=checkpoints,
                memories=memories,
            )
            return {"messages": messages, "checkpoints": checkpoints, "memories": memories}

        try:
            return await self._worker(session_id).submit("delete_session", job)
        finally:
            await self.close_session(session_id)

    def cancel(self, session_id: str) -> bool:
        """Cancel the in-flight compression of a session, if any.

        The cancelled pass rolls back and reports ``cancelled=True``.
        """
        worker = self._workers.get(session_id)
        cancelled = worker.cancel_compression() if worker else False
        if cancelled:
            logger.info("compression_cancel_requested", session_id=session_id)
        return cancelled

    async def close_session(self, session_id: str) -> None:
        """Stop a session's worker, cancelling any in-flight compression."""
        worker = self._workers.pop(session_id, None)
        if worker is not None:
            worker.cancel_compression()
            await worker.stop()

    async def shutdown(self) -> None:
        for session_id in list(self._workers):
            await self.close_session(session_id)

    # === Reads ===

    async def list_messages(self, session_id: str, active_only: bool = False) -> list[ChatMessage]:
        async with self._session_manager.session() as session:
            repo = MessageRepository(session)
            with storage_errors("list_messages"):
                if active_only:
                    return await repo.list_active(session_id)
                return await repo.list_all(session_id)

    async def evaluate(self, session_id: str) -> BudgetEvaluation:
        """Current budget status of a session without compressing."""
        active = await self.list_messages(session_id, active_only=True)
        return self.compression.evaluator.evaluate(active)

    async def list_checkpoints(self, session_id: str) -> list[Checkpoint]:
        async with self._session_manager.session() as session:
            with storage_errors("list_checkpoints"):
                return await self.checkpoints.list(session, session_id)

    async def get_checkpoint(self, checkpoint_id: UUID) -> Checkpoint:
        async with self._session_manager.session() as session:
            with storage_errors("get_checkpoint"):
                return await self.checkpoints.get(session, checkpoint_id)

    async def restore_checkpoint(self, checkpoint_id: UUID) -> list[MessageSnapshot]:
        async with self._session_manager.session() as session:
            with storage_errors("restore_checkpoint"):
                return await self.checkpoints.restore(session, checkpoint_id)

    async def messages_since_checkpoint(self, checkpoint_id: UUID) -> list[ChatMessage]:
        async with self._session_manager.session() as session:
            with storage_errors("messages_since_checkpoint"):
                return await self.checkpoints.messages_since(session, checkpoint_id)

    async def delete_checkpoint(self, checkpoint_id: UUID) -> bool:
        async with self._session_manager.session() as session:
            with storage_errors("delete_checkpoint"):
                deleted = await self.checkpoints.delete(session, checkpoint_id)
                await session.commit()
        return deleted

    async def delete_checkpoints(self, session_id: str) -> int:
        async with self._session_manager.session() as session:
            with storage_errors("delete_checkpoints"):
                count = await self.checkpoints.delete_by_session(session, session_id)
                await session.commit()
        return count

    # === Internals (run inside a worker job) ===

    async def _compress_in_worker(
        self,
        worker: SessionWorker,
        session_id: str,
        action: CompressionAction | None = None,
        hint: str | None = None,
    ) -> CompressionResult:
        async def compress() -> CompressionResult:
            async with self._session_manager.session() as session:
                with storage_errors("compress"):
                    result = await self.compression.run(session, session_id, action, hint)
                    await session.commit()
            return result

        result = await worker.run_compression(compress)
        if result is None:
            logger.info("compression_cancelled", session_id=session_id)
            result = CompressionResult(
                session_id=session_id,
                action_requested=action or CompressionAction.COMPACT,
                action_taken=CompressionAction.NONE,
                cancelled=True,
                reason="cancelled",
            )

        if self._event_bus is not None and (
            result.action_taken != CompressionAction.NONE or result.degraded or result.cancelled
        ):
            await self._event_bus.emit(
                ContextCompressedEvent(
                    session_id=session_id,
                    action=result.action_taken.value,
                    degraded=result.degraded,
                    cancelled=result.cancelled,
                    tokens_before=result.tokens_before,
                    tokens_after=result.tokens_after,
                )
            )
        return result

    async def _auto_checkpoints(
        self,
        session_id: str,
        compression: CompressionResult,
        interval: bool = True,
    ) -> list[Checkpoint]:
        created: list[Checkpoint] = []

        if (
            self.config.checkpoint_after_compression
            and compression.action_taken != CompressionAction.NONE
        ):
            name = f"Auto-{compression.action_taken.value}"
            created.append(await self._checkpoint(session_id, name, is_auto=True))

        if interval and not created:
            async with self._session_manager.session() as session:
                with storage_errors("checkpoint_due"):
                    due = await self.checkpoints.is_due(session, session_id)
            if due:
                created.append(await self._checkpoint(session_id, "Auto checkpoint", is_auto=True))

        return created

    async def _checkpoint(self, session_id: str, name: str, is_auto: bool) -> Checkpoint:
        async with self._session_manager.session() as session:
            with storage_errors("create_checkpoint"):
                checkpoint = await self.checkpoints.create(session, session_id, name, is_auto)
                await session.commit()

        if self._event_bus is not None:
            await self._event_bus.emit(
                CheckpointCreatedEvent(
                    session_id=session_id,
                    checkpoint_id=checkpoint.id,
                    name=checkpoint.name,
                    is_auto=is_auto,
                )
            )
        return checkpoint
