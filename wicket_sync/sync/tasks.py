"""
Wicket sync Celery tasks.

Tasks resolve their collaborators from the Flask app's sync services, so they
must run under the FlaskContextTask installed by ``create_celery_app``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from celery import shared_task
from flask import current_app

from . import get_sync_services


@shared_task(name="wicket_sync.healthcheck", bind=True)
def wicket_healthcheck(self) -> dict[str, Any]:
    """
    Simple heartbeat task used by worker health checks.
    """
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "timestamp": now.isoformat(),
        "worker_hostname": self.request.hostname,
    }


@shared_task(name="wicket_sync.sync_organizations", bind=True)
def sync_organizations(self) -> dict[str, Any]:
    """
    Run the full organization catalog sync. Also fired weekly by beat.
    """
    services = get_sync_services(current_app)
    stats = services.organizations.sync_all()
    current_app.logger.info(
        "Scheduled organization sync finished",
        extra={"wicket_sync_stats": stats.to_dict(), "task_id": self.request.id},
    )
    return stats.to_dict()


@shared_task(name="wicket_sync.sync_person", bind=True)
def sync_person(self, *, user_id: int) -> dict[str, Any]:
    """
    Sync one user's connections (by email, falling back to the stored person UUID).
    """
    services = get_sync_services(current_app)
    user = services.identity.get_user(user_id)
    if user is None:
        raise ValueError(f"User {user_id} not found.")
    synced = services.connections.sync_user(user)
    return {"user_id": user_id, "synced": synced}


@shared_task(name="wicket_sync.bulk_sync_step", bind=True)
def bulk_sync_step(self, *, chain: bool = True, holder: str | None = None) -> dict[str, Any]:
    """
    Process one bulk sync batch and, when ``chain`` is set, enqueue the next
    step until the run completes or is cancelled. A chain started with a
    ``holder`` token stops as soon as another run owns the lease.
    """
    services = get_sync_services(current_app)
    result = services.bulk.process_batch(holder=holder)
    if chain and result.in_progress and not result.completed:
        self.apply_async(kwargs={"chain": True, "holder": holder})
    return result.to_dict()
