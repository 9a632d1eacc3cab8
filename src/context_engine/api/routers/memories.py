"""Mid-term and long-term memory endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query

from ...exceptions import MemoryNotFoundError
from ...memory.schemas import CleanupReport, PromotionReport
from ...memory.store import MidTermMemoryStore
from ..dependencies import Container, DBSession
from ..schemas import AccessResponse, DeletedResponse, MemoryResponse, MemoryStatsResponse

router = APIRouter(tags=["memories"])


@router.get("/sessions/{session_id}/memories", response_model=list[MemoryResponse])
async def list_session_memories(session_id: str, db: DBSession) -> list[MemoryResponse]:
    records = await MidTermMemoryStore(db).list_by_session(session_id)
    return [MemoryResponse.model_validate(r) for r in records]


@router.post("/sessions/{session_id}/memories/access", response_model=AccessResponse)
async def record_memory_access(session_id: str, db: DBSession) -> AccessResponse:
    """Record that a session's memories were injected into a prompt."""
    updated = await MidTermMemoryStore(db).record_access(session_id)
    await db.commit()
    return AccessResponse(updated=updated)


@router.get("/memories/candidates", response_model=list[MemoryResponse])
async def list_promotion_candidates(
    db: DBSession,
    limit: int = Query(default=10, ge=1, le=100),
) -> list[MemoryResponse]:
    """Mid-term records in promotion order, eligible or not."""
    records = await MidTermMemoryStore(db).get_memories_for_promotion(limit)
    return [MemoryResponse.model_validate(r) for r in records]


@router.get("/memories/stats", response_model=MemoryStatsResponse)
async def get_memory_stats(container: Container) -> MemoryStatsResponse:
    stats = await container.cleanup.get_stats()
    return MemoryStatsResponse(**stats.model_dump())


@router.get("/memories/{memory_id}", response_model=MemoryResponse)
async def get_memory(memory_id: UUID, db: DBSession) -> MemoryResponse:
    return MemoryResponse.model_validate(await MidTermMemoryStore(db).get(memory_id))


@router.delete("/memories/{memory_id}", response_model=DeletedResponse)
async def delete_memory(memory_id: UUID, db: DBSession) -> DeletedResponse:
    if not await MidTermMemoryStore(db).delete(memory_id):
        raise MemoryNotFoundError(memory_id)
    await db.commit()
    return DeletedResponse(deleted=1)


@router.post("/memories/promote", response_model=PromotionReport)
async def run_promotion(container: Container) -> PromotionReport:
    """Run a promotion pass now, never alongside a scheduled one."""
    return await container.run_promotion()


@router.post("/memories/cleanup", response_model=CleanupReport)
async def run_cleanup(container: Container) -> CleanupReport:
    """Run a cleanup pass now, never alongside a scheduled one."""
    return await container.run_cleanup()
