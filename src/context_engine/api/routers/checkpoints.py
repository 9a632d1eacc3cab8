"""Checkpoint endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from ...exceptions import CheckpointNotFoundError
from ..dependencies import Engine
from ..schemas import (
    CheckpointCreate,
    CheckpointResponse,
    DeletedResponse,
    MessageResponse,
    RestoreResponse,
)

router = APIRouter(tags=["checkpoints"])


@router.post(
    "/sessions/{session_id}/checkpoints",
    response_model=CheckpointResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_checkpoint(
    session_id: str, request: CheckpointCreate, engine: Engine
) -> CheckpointResponse:
    checkpoint = await engine.create_checkpoint(session_id, request.name)
    return CheckpointResponse.model_validate(checkpoint)


@router.get("/sessions/{session_id}/checkpoints", response_model=list[CheckpointResponse])
async def list_checkpoints(session_id: str, engine: Engine) -> list[CheckpointResponse]:
    """List checkpoints, newest first."""
    checkpoints = await engine.list_checkpoints(session_id)
    return [CheckpointResponse.model_validate(c) for c in checkpoints]


@router.delete("/sessions/{session_id}/checkpoints", response_model=DeletedResponse)
async def delete_session_checkpoints(session_id: str, engine: Engine) -> DeletedResponse:
    return DeletedResponse(deleted=await engine.delete_checkpoints(session_id))


@router.get("/checkpoints/{checkpoint_id}", response_model=CheckpointResponse)
async def get_checkpoint(checkpoint_id: UUID, engine: Engine) -> CheckpointResponse:
    return CheckpointResponse.model_validate(await engine.get_checkpoint(checkpoint_id))


@router.post("/checkpoints/{checkpoint_id}/restore", response_model=RestoreResponse)
async def restore_checkpoint(checkpoint_id: UUID, engine: Engine) -> RestoreResponse:
    """Return the transcript captured by a checkpoint.

    Stored messages are left unchanged.
    """
    messages = await engine.restore_checkpoint(checkpoint_id)
    return RestoreResponse(
        checkpoint_id=checkpoint_id,
        messages=[MessageResponse.model_validate(m) for m in messages],
    )


@router.get("/checkpoints/{checkpoint_id}/since", response_model=list[MessageResponse])
async def messages_since_checkpoint(checkpoint_id: UUID, engine: Engine) -> list[MessageResponse]:
    """Messages appended after the checkpoint was taken."""
    messages = await engine.messages_since_checkpoint(checkpoint_id)
    return [MessageResponse.model_validate(m) for m in messages]


@router.delete("/checkpoints/{checkpoint_id}", response_model=DeletedResponse)
async def delete_checkpoint(checkpoint_id: UUID, engine: Engine) -> DeletedResponse:
    if not await engine.delete_checkpoint(checkpoint_id):
        raise CheckpointNotFoundError(checkpoint_id)
    return DeletedResponse(deleted=1)
