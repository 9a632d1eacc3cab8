"""Transcript endpoints: append, list, compress, cancel."""

from fastapi import APIRouter, Query, status

from ..dependencies import Engine
from ..schemas import (
    AppendResponse,
    BudgetResponse,
    CancelResponse,
    CompressionResponse,
    CompressRequest,
    MessageCreate,
    MessageResponse,
    SessionDeleteResponse,
)

router = APIRouter(prefix="/sessions/{session_id}", tags=["messages"])


@router.post(
    "/messages",
    response_model=AppendResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Append a message",
)
async def append_message(session_id: str, request: MessageCreate, engine: Engine) -> AppendResponse:
    """Append a message and run the compression it triggers."""
    result = await engine.append_message(
        session_id, request.role, request.content, timestamp=request.timestamp
    )
    return AppendResponse(
        message=MessageResponse.model_validate(result.message),
        compression=CompressionResponse.model_validate(result.compression),
        checkpoint_ids=[c.id for c in result.checkpoints],
    )


@router.get("/messages", response_model=list[MessageResponse], summary="List messages")
async def list_messages(
    session_id: str,
    engine: Engine,
    active_only: bool = Query(default=False, description="Exclude condensed/truncated"),
) -> list[MessageResponse]:
    messages = await engine.list_messages(session_id, active_only=active_only)
    return [MessageResponse.model_validate(m) for m in messages]


@router.get("/budget", response_model=BudgetResponse, summary="Token budget status")
async def get_budget(session_id: str, engine: Engine) -> BudgetResponse:
    evaluation = await engine.evaluate(session_id)
    return BudgetResponse(
        action=evaluation.action,
        used_tokens=evaluation.used_tokens,
        effective_limit=evaluation.effective_limit,
        usage_ratio=evaluation.usage_ratio,
        level=evaluation.level.value,
        message=evaluation.message,
    )


@router.post("/compress", response_model=CompressionResponse, summary="Compress now")
async def compress(
    session_id: str, request: CompressRequest, engine: Engine
) -> CompressionResponse:
    result = await engine.compress(session_id, action=request.action, hint=request.hint)
    return CompressionResponse.model_validate(result)


@router.post("/cancel", response_model=CancelResponse, summary="Cancel compression")
async def cancel_compression(session_id: str, engine: Engine) -> CancelResponse:
    """Cancel an in-flight compaction; the transcript stays as it was."""
    return CancelResponse(cancelled=engine.cancel(session_id))


@router.delete("", response_model=SessionDeleteResponse, summary="Delete a session")
async def delete_session(session_id: str, engine: Engine) -> SessionDeleteResponse:
    """Delete messages, checkpoints and memory records of a session."""
    counts = await engine.delete_session(session_id)
    return SessionDeleteResponse(**counts)
