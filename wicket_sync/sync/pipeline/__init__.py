"""Sync pipelines: catalog sync, per-person connection sync and the bulk worker."""

from .bulk_user_sync import BatchResult, BulkSyncAlreadyRunning, BulkSyncError, BulkUserSyncWorker
from .connection_sync import ConnectionSyncEngine
from .organization_sync import OrganizationSyncEngine, SyncStats

__all__ = [
    "BatchResult",
    "BulkSyncAlreadyRunning",
    "BulkSyncError",
    "BulkUserSyncWorker",
    "ConnectionSyncEngine",
    "OrganizationSyncEngine",
    "SyncStats",
]
