"""
Poll-driven bulk sync of every local user's Wicket connections.

A run is advanced one batch per ``process_batch`` call so each call stays
short regardless of population size. Mutual exclusion uses a lease stored in
the settings table; a lease past its expiry is treated as released, so a
crashed driver cannot block future runs forever.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from uuid import uuid4

from wicket_sync.models.base import utc_now

from ..adapters.wicket.resources import safe_parse_datetime
from ..metrics import record_bulk_batch, record_bulk_in_progress, record_bulk_user

LEASE_KEY = "wicket_bulk_sync_in_progress"
STATUS_KEY = "wicket_bulk_sync_status"
LAST_BULK_SYNC_KEY = "wicket_last_bulk_sync"

DEFAULT_BATCH_SIZE = 10
DEFAULT_LEASE_SECONDS = 300
DEFAULT_LOG_LIMIT = 100


class BulkSyncError(RuntimeError):
    """Base error for bulk sync state problems."""


class BulkSyncAlreadyRunning(BulkSyncError):
    """Raised when a run is started while another holds a live lease."""


@dataclass
class BatchResult:
    completed: bool
    processed: int
    success_count: int
    error_count: int
    total: int
    in_progress: bool = True
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "completed": self.completed,
            "processed": self.processed,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "total": self.total,
            "in_progress": self.in_progress,
        }
        if self.message:
            payload["message"] = self.message
        return payload


def _empty_status() -> dict[str, Any]:
    return {
        "total": 0,
        "processed": 0,
        "success_count": 0,
        "error_count": 0,
        "current_offset": 0,
        "started_at": None,
        "completed_at": None,
        "logs": [],
    }


class BulkUserSyncWorker:
    """Iterate all users in fixed-size batches, syncing each person's connections."""

    def __init__(
        self,
        connections,
        settings,
        identity,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
        log_limit: int = DEFAULT_LOG_LIMIT,
        clock=utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.connections = connections
        self.settings = settings
        self.identity = identity
        self.batch_size = max(1, int(batch_size))
        self.lease_seconds = max(1, int(lease_seconds))
        self.log_limit = max(1, int(log_limit))
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    # Lease ----------------------------------------------------------------------

    def _current_lease(self) -> dict[str, Any] | None:
        lease = self.settings.get(LEASE_KEY)
        if not isinstance(lease, dict):
            return None
        expires_at = safe_parse_datetime(lease.get("expires_at"))
        if expires_at is None or expires_at <= self.clock():
            return None
        return lease

    def _write_lease(self, holder: str, acquired_at: str) -> None:
        expires_at = self.clock() + timedelta(seconds=self.lease_seconds)
        self.settings.set(
            LEASE_KEY,
            {"holder": holder, "acquired_at": acquired_at, "expires_at": expires_at.isoformat()},
            value_type="json",
        )

    def is_running(self) -> bool:
        return self._current_lease() is not None

    # Status ---------------------------------------------------------------------

    def _load_status(self) -> dict[str, Any]:
        status = self.settings.get(STATUS_KEY)
        if not isinstance(status, dict):
            return _empty_status()
        merged = _empty_status()
        merged.update(status)
        return merged

    def _save_status(self, status: dict[str, Any]) -> None:
        self.settings.set(STATUS_KEY, status, value_type="json")

    def _log(self, status: dict[str, Any], message: str, kind: str = "info") -> None:
        logs = list(status.get("logs") or [])
        logs.append({"message": message, "type": kind, "timestamp": self.clock().isoformat()})
        status["logs"] = logs[-self.log_limit :]

    # Operations -----------------------------------------------------------------

    def start(self) -> dict[str, Any]:
        """Begin a run; the returned ``holder`` token identifies it to ``process_batch``."""
        if self.is_running():
            raise BulkSyncAlreadyRunning("Bulk sync already in progress")
        stale = self.settings.get(LEASE_KEY)
        if stale:
            self.logger.warning("Discarding expired bulk sync lease", extra={"lease": stale})

        total = self.identity.count_users()
        now = self.clock().isoformat()
        status = _empty_status()
        status.update({"total": total, "started_at": now})
        self._log(status, f"Starting bulk sync for {total} users")
        self._save_status(status)
        holder = uuid4().hex
        self._write_lease(holder=holder, acquired_at=now)
        record_bulk_in_progress(True)
        self.logger.info("Bulk user sync started", extra={"total": total, "holder": holder})
        return {"total": total, "holder": holder}

    def process_batch(self, holder: str | None = None) -> BatchResult:
        """
        Sync the next batch of users.

        Declines with ``in_progress=False`` when no run holds the lease, which
        is what a stale driver sees after a cancel. A driver that passes the
        ``holder`` token from ``start`` is also declined once a newer run has
        taken the lease; without a token the call acts on the current run.
        """
        lease = self._current_lease()
        status = self._load_status()
        message = None
        if lease is None:
            message = "Bulk sync is not running"
        elif holder is not None and lease.get("holder") != holder:
            message = "Bulk sync run was superseded"
            self.logger.warning("Declining batch for a superseded bulk sync run", extra={"holder": holder})
        if message:
            return BatchResult(
                completed=False,
                processed=status["processed"],
                success_count=status["success_count"],
                error_count=status["error_count"],
                total=status["total"],
                in_progress=False,
                message=message,
            )

        users = self.identity.get_users(status["current_offset"], self.batch_size)
        for user in users:
            label = f"user {user.id} ({user.email or user.username})"
            try:
                synced = self.connections.sync_user(user)
            except Exception as exc:
                synced = False
                self.logger.exception("Bulk sync failed for user %s", user.id, extra={"user_id": user.id})
                self._log(status, f"Error syncing {label}: {exc}", "error")
            else:
                if synced:
                    self._log(status, f"Synced {label}", "success")
                else:
                    self._log(status, f"Could not sync {label}", "error")
            if synced:
                status["success_count"] += 1
                record_bulk_user("success")
            else:
                status["error_count"] += 1
                record_bulk_user("error")

        status["processed"] += len(users)
        status["current_offset"] += self.batch_size
        record_bulk_batch()

        completed = not users or status["current_offset"] >= status["total"]
        if completed:
            now = self.clock().isoformat()
            status["completed_at"] = now
            self._log(
                status,
                f"Bulk sync completed: {status['success_count']} synced, {status['error_count']} errors",
                "success",
            )
            self._save_status(status)
            self.settings.set(LAST_BULK_SYNC_KEY, now)
            self.settings.delete(LEASE_KEY)
            record_bulk_in_progress(False)
            self.logger.info("Bulk user sync completed", extra={"processed": status["processed"]})
        else:
            self._save_status(status)
            self._write_lease(holder=lease.get("holder") or uuid4().hex, acquired_at=lease.get("acquired_at"))

        return BatchResult(
            completed=completed,
            processed=status["processed"],
            success_count=status["success_count"],
            error_count=status["error_count"],
            total=status["total"],
            in_progress=not completed,
        )

    def cancel(self) -> dict[str, bool]:
        was_running = self.is_running()
        self.settings.delete(LEASE_KEY)
        if was_running:
            status = self._load_status()
            self._log(status, "Bulk sync cancelled", "info")
            self._save_status(status)
        record_bulk_in_progress(False)
        self.logger.info("Bulk user sync cancelled", extra={"was_running": was_running})
        return {"cancelled": was_running}

    def status(self, log_tail: int = 5) -> dict[str, Any]:
        status = self._load_status()
        status["logs"] = list(status.get("logs") or [])[-max(0, log_tail) :] if log_tail else []
        status["in_progress"] = self.is_running()
        return status
