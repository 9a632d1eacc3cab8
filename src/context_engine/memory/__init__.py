"""Mid-term memory storage, promotion and cleanup."""

from .cleanup import CleanupService
from .embedding_service import EmbeddingService
from .promotion import PromotionService
from .schemas import CleanupReport, MemoryCreate, PromotionEvent, PromotionReport
from .store import MidTermMemoryStore
from .vector_store import PgVectorStore, VectorStore

__all__ = [
    "CleanupReport",
    "CleanupService",
    "EmbeddingService",
    "MemoryCreate",
    "MidTermMemoryStore",
    "PgVectorStore",
    "PromotionEvent",
    "PromotionReport",
    "PromotionService",
    "VectorStore",
]
