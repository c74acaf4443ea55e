"""
CLI commands for Wicket sync: schema setup, catalog sync, person sync, bulk
sync control and the Celery worker.
"""

from __future__ import annotations

import json
from typing import Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import current_app
from flask.cli import ScriptInfo, with_appcontext

from wicket_sync.utils.sync import is_sync_enabled

from . import get_sync_services
from .adapters.wicket import WicketApiError, WicketApiUnconfigured
from .celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from .pipeline import BulkSyncAlreadyRunning
from .store import SchemaMissingError


@click.group(name="wicket", invoke_without_command=True)
@click.pass_context
def wicket_cli(ctx):
    """
    Wicket sync management commands.

    Displays adapter readiness when invoked without a subcommand.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_sync_enabled(app):
        raise click.ClickException("Wicket sync is disabled via WICKET_SYNC_ENABLED=false.")
    if ctx.invoked_subcommand is None:
        readiness = app.extensions.get("wicket_sync", {}).get("readiness", {})
        click.echo(f"Wicket adapter status: {readiness.get('status', 'unknown')}")
        for message in readiness.get("messages", []):
            click.echo(f"  - {message}")


def get_disabled_wicket_group() -> click.Group:
    """
    Return a minimal command group that informs the operator sync is disabled.
    """

    @click.group(name="wicket", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Wicket commands are unavailable because WICKET_SYNC_ENABLED=false.")

    return disabled_group


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@wicket_cli.command("create-tables")
@with_appcontext
def create_tables():
    """Create the organization and connection cache tables if missing."""
    store = get_sync_services(current_app).store
    try:
        created = store.ensure_tables()
    except SchemaMissingError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo("Cache tables created." if created else "Cache tables already exist.")


@wicket_cli.command("sync-orgs")
@click.option("--json", "as_json", is_flag=True, help="Print the run statistics as JSON.")
@with_appcontext
def sync_orgs(as_json: bool):
    """Run the full organization catalog sync inline."""
    services = get_sync_services(current_app)
    try:
        stats = services.organizations.sync_all()
    except WicketApiUnconfigured as exc:
        raise click.ClickException(str(exc)) from exc
    except SchemaMissingError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        _echo_json(stats.to_dict())
        return
    click.echo(
        f"Organization sync finished ({stats.outcome}).\n"
        f"  pages   : {stats.pages}\n"
        f"  total   : {stats.total}\n"
        f"  created : {stats.created}\n"
        f"  updated : {stats.updated}\n"
        f"  errors  : {stats.errors}"
    )


@wicket_cli.command("sync-person")
@click.argument("person_uuid", required=False)
@click.option("--user-id", type=int, help="Local user id; resolves the person by email first.")
@with_appcontext
def sync_person(user_id: Optional[int], person_uuid: Optional[str]):
    """Sync a single person's organization connections."""
    if not user_id and not person_uuid:
        raise click.ClickException("Provide a PERSON_UUID or --user-id.")
    services = get_sync_services(current_app)
    try:
        if user_id:
            user = services.identity.get_user(user_id)
            if user is None:
                raise click.ClickException(f"User {user_id} not found.")
            synced = services.connections.sync_user(user)
        else:
            synced = services.connections.sync_person_connections(person_uuid)
    except WicketApiUnconfigured as exc:
        raise click.ClickException(str(exc)) from exc
    if not synced:
        raise click.ClickException("Connection sync failed; see logs for details.")
    click.echo("Connections synced.")


@wicket_cli.command("status")
@with_appcontext
def sync_status():
    """Show the last catalog sync and cache size."""
    services = get_sync_services(current_app)
    _echo_json(
        {
            "last_sync": services.settings.get("wicket_orgs_last_sync"),
            "last_sync_stats": services.settings.get("wicket_orgs_last_sync_stats"),
            "organizations_cached": services.store.count_organizations()
            if services.store.tables_exist()
            else 0,
            "bulk_sync": services.bulk.status(),
        }
    )


@wicket_cli.group(name="bulk")
def bulk_group():
    """Control the bulk user sync worker."""


@bulk_group.command("start")
@with_appcontext
def bulk_start():
    """Start a bulk run; rejected while another run holds the lease."""
    bulk = get_sync_services(current_app).bulk
    try:
        result = bulk.start()
    except BulkSyncAlreadyRunning as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Bulk sync started for {result['total']} users.")
    click.echo(f"Run token: {result['holder']}")


@bulk_group.command("step")
@click.option("--holder", default=None, help="Run token printed by 'wicket bulk start'; a superseded run is declined.")
@with_appcontext
def bulk_step(holder: Optional[str]):
    """Process one batch of the running bulk sync."""
    _echo_json(get_sync_services(current_app).bulk.process_batch(holder=holder).to_dict())


@bulk_group.command("run")
@click.option("--max-batches", type=int, default=None, help="Stop after this many batches.")
@with_appcontext
def bulk_run(max_batches: Optional[int]):
    """Start (if idle) and drive the bulk sync to completion inline."""
    bulk = get_sync_services(current_app).bulk
    holder = None if bulk.is_running() else bulk.start()["holder"]
    batches = 0
    while True:
        result = bulk.process_batch(holder=holder)
        batches += 1
        click.echo(
            f"batch {batches}: processed={result.processed}/{result.total} "
            f"success={result.success_count} errors={result.error_count}"
        )
        if result.completed or not result.in_progress:
            break
        if max_batches is not None and batches >= max_batches:
            click.echo("Stopping at --max-batches; run 'wicket bulk step' to continue.")
            break


@bulk_group.command("cancel")
@with_appcontext
def bulk_cancel():
    """Release the bulk sync lease so the next batch call declines."""
    result = get_sync_services(current_app).bulk.cancel()
    click.echo("Bulk sync cancelled." if result["cancelled"] else "No bulk sync was running.")


@bulk_group.command("status")
@click.option("--logs", "log_tail", default=5, show_default=True, help="Number of recent log entries.")
@with_appcontext
def bulk_status(log_tail: int):
    """Show bulk sync progress."""
    _echo_json(get_sync_services(current_app).bulk.status(log_tail=log_tail))


def _resolve_celery(app) -> Celery:
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Wicket Celery app is unavailable. Ensure WICKET_SYNC_ENABLED=true and "
            "init_wicket_sync(app) has run."
        )
    return celery_app


@wicket_cli.group(name="worker")
def worker_group():
    """Manage the Wicket sync background worker."""


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--beat", is_flag=True, help="Embed the beat scheduler for the weekly sync.")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list.")
@click.pass_context
def worker_run(ctx, loglevel: str, concurrency: Optional[int], beat: bool, queues: str):
    """Start the Celery worker in the current process."""
    info = ctx.ensure_object(ScriptInfo)
    celery_app = _resolve_celery(info.load_app())
    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if beat:
        argv.append("--beat")
    click.echo(f"Starting Wicket sync worker (queues: {queues}, loglevel: {loglevel})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
@click.pass_context
def worker_ping(ctx, timeout: float):
    """Validate worker connectivity by executing the heartbeat task."""
    info = ctx.ensure_object(ScriptInfo)
    celery_app = _resolve_celery(info.load_app())
    task = celery_app.tasks.get("wicket_sync.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'wicket_sync.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc
    except WicketApiError as exc:
        raise click.ClickException(f"Worker ping failed: {exc}") from exc

    _echo_json(payload)
