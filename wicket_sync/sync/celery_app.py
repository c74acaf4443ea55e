"""
Celery configuration helpers for the Wicket sync worker.

The broker and result backend default to a SQLite transport in the Flask
instance folder so local development does not need Redis.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from celery import Celery
from celery.schedules import crontab
from flask import Flask
from kombu import Queue

from wicket_sync.utils.sync import is_weekly_sync_enabled

DEFAULT_QUEUE_NAME = "wicket_sync"
DEFAULT_SQLITE_FILENAME = "celery.sqlite"
WEEKLY_SCHEDULE_NAME = "wicket-weekly-org-sync"
WEEKLY_TASK_NAME = "wicket_sync.sync_organizations"


def _configure_quiet_loggers(app: Flask) -> None:
    """Keep SQLAlchemy and Celery strategy logging quiet inside the worker."""
    if not app.config.get("SQLALCHEMY_ECHO", False):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery.worker.strategy").setLevel(logging.WARNING)


def _normalize_sqlite_path(app: Flask) -> Path:
    """
    Determine the path backing the SQLite transport/result backend.

    ``CELERY_SQLITE_PATH`` overrides the default in the Flask instance folder.
    """
    configured = app.config.get("CELERY_SQLITE_PATH")
    if configured:
        sqlite_path = Path(configured)
        if not sqlite_path.is_absolute():
            sqlite_path = Path(app.instance_path) / sqlite_path
    else:
        sqlite_path = Path(app.instance_path) / DEFAULT_SQLITE_FILENAME

    sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite_path


def _determine_connection_urls(app: Flask) -> tuple[str, str]:
    broker_url = app.config.get("CELERY_BROKER_URL")
    result_backend = app.config.get("CELERY_RESULT_BACKEND")

    if broker_url and result_backend:
        return broker_url, result_backend

    # Celery expects forward slashes even on Windows.
    normalized = _normalize_sqlite_path(app).as_posix()
    default_broker = f"sqla+sqlite:///{normalized}"
    default_backend = f"db+sqlite:///{normalized}"

    return broker_url or default_broker, result_backend or default_backend


def register_weekly_schedule(celery_app: Celery) -> bool:
    """
    Add the weekly organization sync to the beat schedule.

    Returns False when the entry is already registered.
    """
    schedule = dict(celery_app.conf.beat_schedule or {})
    if WEEKLY_SCHEDULE_NAME in schedule:
        return False
    schedule[WEEKLY_SCHEDULE_NAME] = {
        "task": WEEKLY_TASK_NAME,
        "schedule": crontab(minute=0, hour=3, day_of_week="sun"),
        "options": {"queue": DEFAULT_QUEUE_NAME},
    }
    celery_app.conf.beat_schedule = schedule
    return True


def create_celery_app(app: Flask) -> Celery:
    """
    Create and configure a Celery instance bound to the given Flask app.

    Swap to Redis/Postgres by setting ``CELERY_BROKER_URL`` and
    ``CELERY_RESULT_BACKEND``.
    """
    broker_url, result_backend = _determine_connection_urls(app)
    celery_app = Celery(
        app.import_name,
        broker=broker_url,
        backend=result_backend,
        include=("wicket_sync.sync.tasks",),
    )

    celery_app.conf.update(
        task_default_queue=DEFAULT_QUEUE_NAME,
        task_queues=[Queue(DEFAULT_QUEUE_NAME)],
        task_default_exchange=DEFAULT_QUEUE_NAME,
        task_default_routing_key=DEFAULT_QUEUE_NAME,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_track_started=True,
        broker_connection_retry_on_startup=True,
        task_time_limit=app.config.get("WICKET_TASK_TIME_LIMIT", 30 * 60),
        task_soft_time_limit=app.config.get("WICKET_TASK_SOFT_TIME_LIMIT", 25 * 60),
        worker_hijack_root_logger=False,
    )

    extra_conf: Mapping[str, Any] | str | None = app.config.get("CELERY_CONFIG")
    if isinstance(extra_conf, str):
        try:
            extra_conf = json.loads(extra_conf)
        except json.JSONDecodeError:
            app.logger.warning("CELERY_CONFIG is not valid JSON; ignoring value.", exc_info=True)
            extra_conf = None
    if extra_conf:
        celery_app.conf.update(extra_conf)

    if is_weekly_sync_enabled(app):
        register_weekly_schedule(celery_app)

    app.logger.info(
        "Wicket Celery configuration resolved",
        extra={
            "wicket_celery_broker_url": broker_url,
            "wicket_celery_result_backend": result_backend,
            "wicket_weekly_sync": WEEKLY_SCHEDULE_NAME in (celery_app.conf.beat_schedule or {}),
        },
    )

    _configure_quiet_loggers(app)

    class FlaskContextTask(celery_app.Task):  # type: ignore[misc]
        """Run Celery tasks inside a Flask application context automatically."""

        def __call__(self, *args, **kwargs):
            with app.app_context():
                return super().__call__(*args, **kwargs)

    celery_app.Task = FlaskContextTask  # type: ignore[assignment]
    celery_app.loader.import_default_modules()
    return celery_app


def get_celery_app(app: Flask) -> Celery | None:
    """
    Return the Celery instance cached in the extension state, creating it on
    first use while sync is enabled.
    """
    state: dict[str, Any] | None = app.extensions.get("wicket_sync")  # type: ignore[arg-type]
    if not state:
        return None
    celery_app: Celery | None = state.get("celery_app")
    if celery_app is None and state.get("enabled"):
        celery_app = create_celery_app(app)
        state["celery_app"] = celery_app
    return celery_app
