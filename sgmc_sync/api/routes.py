"""
Sync control routes consumed by the desktop UI.
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..scheduling.scheduler import AutoSyncScheduler
from ..sync.service import SyncService
from .models import (
    AutoSyncRequest,
    BackupEntryResponse,
    BackupListResponse,
    ConnectResponse,
    RestoreResponse,
    SyncNowResponse,
    SyncStatusResponse,
)

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def create_sync_router(service: SyncService, scheduler: AutoSyncScheduler, api_token: str) -> APIRouter:
    """Build the ``/sync`` router bound to the given service and scheduler.

    Routes that change state or reach Drive require ``api_token`` as a
    bearer token. Status stays readable without it.
    """
    router = APIRouter(prefix="/sync", tags=["sync"])

    async def require_token(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ) -> None:
        if not credentials or not secrets.compare_digest(credentials.credentials, api_token):
            raise HTTPException(
                status_code=401,
                detail={"code": "UNAUTHORIZED", "message": "Missing or invalid control token"},
            )

    protected = [Depends(require_token)]

    async def build_status() -> SyncStatusResponse:
        state = service.state
        return SyncStatusResponse(
            authenticated=await service.is_authenticated(),
            is_syncing=state.is_syncing,
            is_auto_syncing=state.is_auto_syncing,
            is_online=state.is_online,
            auto_sync_enabled=state.auto_sync_enabled,
            auto_sync_interval_minutes=scheduler.interval_minutes,
            last_sync_time=state.last_sync_time,
            last_synced_entry_id=state.last_synced_entry_id,
        )

    @router.get("/status", response_model=SyncStatusResponse)
    async def get_status():
        """Current sync flags and connection status."""
        return await build_status()

    @router.post("/connect", response_model=ConnectResponse, dependencies=protected)
    async def connect():
        """Open the browser and wait for Google authorization."""
        await service.connect()
        return ConnectResponse(authenticated=True)

    @router.delete("/connect", response_model=ConnectResponse, dependencies=protected)
    async def disconnect():
        await service.disconnect()
        return ConnectResponse(authenticated=False)

    @router.post("/now", response_model=SyncNowResponse, dependencies=protected)
    async def sync_now():
        """Back up immediately."""
        entry_id = await service.sync_now()
        attachments = service.engine.last_attachment_result
        return SyncNowResponse(
            entry_id=entry_id,
            attachments={
                "succeeded": attachments.succeeded,
                "failed": attachments.failed,
                "skipped": attachments.skipped,
            } if attachments else None,
        )

    @router.get("/backups", response_model=BackupListResponse, dependencies=protected)
    async def list_backups(
        page_token: Optional[str] = None,
        page_size: int = Query(10, ge=1, le=100),
    ):
        page = await service.list_backups(page_token=page_token, page_size=page_size)
        return BackupListResponse(
            backups=[
                BackupEntryResponse(
                    id=entry.id,
                    name=entry.name,
                    created_time=entry.created_time,
                    app_version=entry.app_version,
                    patient_count=entry.patient_count,
                )
                for entry in page.entries
            ],
            next_page_token=page.next_page_token,
        )

    @router.post("/restore/{entry_id}", response_model=RestoreResponse, dependencies=protected)
    async def restore(entry_id: str):
        """Replace local data with a backup; the application restarts afterwards."""
        await service.restore(entry_id)
        return RestoreResponse(
            entry_id=entry_id,
            restart_scheduled=service.on_restart_required is not None,
        )

    @router.put("/auto", response_model=SyncStatusResponse, dependencies=protected)
    async def configure_auto_sync(request: AutoSyncRequest):
        """Enable or disable auto-sync and optionally change its interval."""
        if request.interval_minutes is not None:
            scheduler.set_interval(request.interval_minutes)

        if request.enabled:
            scheduler.enable()
        else:
            scheduler.disable()

        logger.info(f"Auto-sync {'enabled' if request.enabled else 'disabled'} via API")
        return await build_status()

    return router
