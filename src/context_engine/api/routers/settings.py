"""User-editable settings endpoints."""

from fastapi import APIRouter

from ...config import ContextEngineConfig, MemoryAutoUpgradeConfig
from ..dependencies import Container
from ..exceptions import NoChangesError
from ..schemas import AutoUpgradeConfigUpdate, ContextConfigUpdate

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/context", response_model=ContextEngineConfig)
async def get_context_settings(container: Container) -> ContextEngineConfig:
    return container.settings.context


@router.patch("/context", response_model=ContextEngineConfig)
async def update_context_settings(
    request: ContextConfigUpdate, container: Container
) -> ContextEngineConfig:
    """Validate, persist and apply changes; invalid orderings are rejected."""
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise NoChangesError()
    return container.update_context_config(**changes)


@router.get("/memory-upgrade", response_model=MemoryAutoUpgradeConfig)
async def get_auto_upgrade_settings(container: Container) -> MemoryAutoUpgradeConfig:
    return container.settings.auto_upgrade


@router.patch("/memory-upgrade", response_model=MemoryAutoUpgradeConfig)
async def update_auto_upgrade_settings(
    request: AutoUpgradeConfigUpdate, container: Container
) -> MemoryAutoUpgradeConfig:
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise NoChangesError()
    return container.update_auto_upgrade_config(**changes)
