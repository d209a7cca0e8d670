"""
Request and response schemas for the control API.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SyncStatusResponse(BaseModel):
    authenticated: bool
    is_syncing: bool
    is_auto_syncing: bool
    is_online: bool
    auto_sync_enabled: bool
    auto_sync_interval_minutes: int
    last_sync_time: Optional[int] = None
    last_synced_entry_id: Optional[str] = None


class BackupEntryResponse(BaseModel):
    id: str
    name: str
    created_time: Optional[str] = None
    app_version: Optional[str] = None
    patient_count: Optional[int] = None


class BackupListResponse(BaseModel):
    backups: List[BackupEntryResponse]
    next_page_token: Optional[str] = None


class SyncNowResponse(BaseModel):
    entry_id: str
    attachments: Optional[Dict[str, int]] = None


class RestoreResponse(BaseModel):
    entry_id: str
    restart_scheduled: bool


class AutoSyncRequest(BaseModel):
    enabled: bool
    interval_minutes: Optional[int] = Field(default=None, ge=1)


class ConnectResponse(BaseModel):
    authenticated: bool


class ErrorResponse(BaseModel):
    error_code: str
    message: str
    user_message: str
