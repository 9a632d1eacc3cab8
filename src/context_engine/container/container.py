"""Dependency injection container for shared engine dependencies.

Provides singleton instances for:
- DatabaseSessionManager
- SettingsStore
- EventBus
- ContextEngine
- PromotionService / CleanupService
- BackgroundScheduler
"""

from __future__ import annotations

from typing import Any

import structlog

from ..config import (
    ContextEngineConfig,
    MemoryAutoUpgradeConfig,
    SettingsStore,
    get_api_settings,
    get_cleanup_config,
    get_database_settings,
    get_embedding_settings,
    get_summarizer_settings,
)
from ..core.summarizer import LLMSummarizer, Summarizer
from ..core.token_budget import TokenCounter
from ..db.session import DatabaseSessionManager
from ..events import EventBus
from ..llm import LiteLLMClient
from ..memory.cleanup import CleanupService
from ..memory.embedding_service import EmbeddingService
from ..memory.promotion import PromotionService
from ..memory.schemas import CleanupReport, PromotionReport
from ..memory.vector_store import PgVectorStore, VectorStore
from ..prompts import PromptManager
from ..services.context_engine import ContextEngine
from ..services.scheduler import BackgroundScheduler, PeriodicTask

logger = structlog.get_logger()

PROMOTION_TASK = "memory_promotion"
CLEANUP_TASK = "memory_cleanup"


class EngineContainer:
    """Singleton container for shared engine dependencies.

    Usage:
        container = get_container()
        await container.initialize()  # Call once at startup

        engine = container.engine
    """

    _instance: EngineContainer | None = None

    def __init__(self) -> None:
        self._initialized = False
        self._session_manager: DatabaseSessionManager | None = None
        self._settings: SettingsStore | None = None
        self._event_bus: EventBus | None = None
        self._engine: ContextEngine | None = None
        self._promotion: PromotionService | None = None
        self._cleanup: CleanupService | None = None
        self._scheduler: BackgroundScheduler | None = None

    @classmethod
    def get_instance(cls) -> EngineContainer:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton. Useful for testing."""
        cls._instance = None

    async def initialize(
        self,
        session_manager: DatabaseSessionManager | None = None,
        settings: SettingsStore | None = None,
        summarizer: Summarizer | None = None,
        vector_store: VectorStore | None = None,
        create_tables: bool = False,
        start_scheduler: bool = True,
    ) -> None:
        """Build all dependencies (call once at app startup).

        Args:
            session_manager: Use this instead of one built from settings
            settings: Use this settings store instead of the configured file
            summarizer: Use this summarizer instead of the LLM one
            vector_store: Use this vector store instead of pgvector
            create_tables: Create the schema directly (development/tests)
            start_scheduler: Start the periodic promotion and cleanup tasks
        """
        if self._initialized:
            return

        if session_manager is None:
            session_manager = DatabaseSessionManager.from_settings(get_database_settings())
        if create_tables:
            await session_manager.create_all()

        if settings is None:
            settings = SettingsStore(get_api_settings().settings_file)
            settings.load()

        summarizer_settings = get_summarizer_settings()
        if summarizer is None:
            summarizer = LLMSummarizer(LiteLLMClient(), summarizer_settings, PromptManager())
        if vector_store is None:
            embedding = get_embedding_settings()
            vector_store = PgVectorStore(
                session_manager, EmbeddingService(embedding.model, embedding.dimension)
            )

        event_bus = EventBus()
        engine = ContextEngine(
            session_manager,
            settings.context,
            summarizer,
            token_counter=TokenCounter(),
            event_bus=event_bus,
            summarizer_timeout=summarizer_settings.timeout_seconds,
        )
        cleanup_config = get_cleanup_config()
        promotion = PromotionService(
            session_manager, settings.auto_upgrade, vector_store, event_bus
        )
        cleanup = CleanupService(session_manager, cleanup_config, vector_store, event_bus)

        scheduler = BackgroundScheduler()
        scheduler.add(
            PeriodicTask(
                PROMOTION_TASK, promotion.run, settings.auto_upgrade.check_interval_seconds
            )
        )
        scheduler.add(
            PeriodicTask(CLEANUP_TASK, cleanup.run, cleanup_config.check_interval_seconds)
        )

        self._session_manager = session_manager
        self._settings = settings
        self._event_bus = event_bus
        self._engine = engine
        self._promotion = promotion
        self._cleanup = cleanup
        self._scheduler = scheduler

        if start_scheduler:
            scheduler.start()

        self._initialized = True
        logger.info("engine_container_initialized")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _require(self, value: Any) -> Any:
        if value is None:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return value

    @property
    def session_manager(self) -> DatabaseSessionManager:
        return self._require(self._session_manager)  # type: ignore[no-any-return]

    @property
    def settings(self) -> SettingsStore:
        return self._require(self._settings)  # type: ignore[no-any-return]

    @property
    def event_bus(self) -> EventBus:
        return self._require(self._event_bus)  # type: ignore[no-any-return]

    @property
    def engine(self) -> ContextEngine:
        return self._require(self._engine)  # type: ignore[no-any-return]

    @property
    def promotion(self) -> PromotionService:
        return self._require(self._promotion)  # type: ignore[no-any-return]

    @property
    def cleanup(self) -> CleanupService:
        return self._require(self._cleanup)  # type: ignore[no-any-return]

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._require(self._scheduler)  # type: ignore[no-any-return]

    # === Maintenance ===

    async def run_promotion(self) -> PromotionReport:
        """Promote now, waiting for a scheduled pass that is already running."""
        return await self.scheduler.run_once(PROMOTION_TASK)  # type: ignore[no-any-return]

    async def run_cleanup(self) -> CleanupReport:
        """Clean up now, waiting for a scheduled pass that is already running."""
        return await self.scheduler.run_once(CLEANUP_TASK)  # type: ignore[no-any-return]

    # === Settings ===

    def update_context_config(self, **changes: Any) -> ContextEngineConfig:
        """Validate, persist and apply context engine changes.

        Raises:
            ConfigurationError: If the merged configuration is invalid
        """
        config = self.settings.update_context(**changes)
        self.engine.configure(config)
        return config

    def update_auto_upgrade_config(self, **changes: Any) -> MemoryAutoUpgradeConfig:
        """Validate, persist and apply memory auto-upgrade changes."""
        config = self.settings.update_auto_upgrade(**changes)
        self.promotion.config = config
        self.scheduler.get(PROMOTION_TASK).interval_seconds = config.check_interval_seconds
        return config

    async def close(self) -> None:
        """Stop background work and release the database."""
        if self._scheduler is not None:
            await self._scheduler.stop()
        if self._engine is not None:
            await self._engine.shutdown()
        if self._session_manager is not None:
            await self._session_manager.close()
        self._initialized = False
        logger.info("engine_container_closed")


def get_container() -> EngineContainer:
    """Get the container singleton."""
    return EngineContainer.get_instance()
