"""
Wicket sync feature package.

Builds the API client, cache store and sync engines once per application and
keeps them in ``app.extensions['wicket_sync']``. Blueprint and CLI
registration follow the ``WICKET_SYNC_ENABLED`` flag.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Mapping

from flask import Flask

from wicket_sync.utils.sync import is_sync_enabled

from .adapters.wicket import WicketSettings, check_wicket_readiness
from .adapters.wicket.client import WicketApiClient
from .identity import UserIdentityProvider
from .pipeline import BulkUserSyncWorker, ConnectionSyncEngine, OrganizationSyncEngine
from .primary import PrimaryOrganizationService
from .store import OrganizationCacheStore, SettingsStore

SYNC_EXTENSION_KEY = "wicket_sync"

__all__ = [
    "SYNC_EXTENSION_KEY",
    "SyncServices",
    "build_sync_services",
    "get_sync_services",
    "init_wicket_sync",
]


@dataclass
class SyncServices:
    client: WicketApiClient
    store: OrganizationCacheStore
    settings: SettingsStore
    identity: UserIdentityProvider
    organizations: OrganizationSyncEngine
    connections: ConnectionSyncEngine
    primary: PrimaryOrganizationService
    bulk: BulkUserSyncWorker


def build_sync_services(
    config: Mapping[str, Any],
    *,
    client=None,
    http_session=None,
    sleep_fn=time.sleep,
) -> SyncServices:
    """Wire every sync collaborator from Flask config values."""

    if client is None:
        client = WicketApiClient(WicketSettings.from_config(config), session=http_session)
    store = OrganizationCacheStore()
    settings = SettingsStore()
    identity = UserIdentityProvider()
    connections = ConnectionSyncEngine(client, store, identity)
    return SyncServices(
        client=client,
        store=store,
        settings=settings,
        identity=identity,
        organizations=OrganizationSyncEngine(
            client,
            store,
            settings,
            page_size=config.get("WICKET_ORG_PAGE_SIZE", 100),
            max_pages=config.get("WICKET_ORG_MAX_PAGES", 1000),
            max_retries=config.get("WICKET_ORG_MAX_RETRIES", 3),
            backoff_base=config.get("WICKET_ORG_BACKOFF_BASE", 1.0),
            sleep_fn=sleep_fn,
        ),
        connections=connections,
        primary=PrimaryOrganizationService(client, store, connections, identity),
        bulk=BulkUserSyncWorker(
            connections,
            settings,
            identity,
            batch_size=config.get("WICKET_BULK_BATCH_SIZE", 10),
            lease_seconds=config.get("WICKET_BULK_LEASE_SECONDS", 300),
        ),
    )


def _ensure_extension_state(app: Flask) -> dict:
    return app.extensions.setdefault(
        SYNC_EXTENSION_KEY,
        {
            "enabled": False,
            "services": None,
            "celery_app": None,
            "readiness": {},
        },
    )


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    from .cli import get_disabled_wicket_group, wicket_cli

    command_name = wicket_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(wicket_cli)
    else:
        app.cli.add_command(get_disabled_wicket_group())


def init_wicket_sync(app: Flask, *, client=None, http_session=None, sleep_fn=time.sleep) -> None:
    """
    Build sync services and mount the admin blueprint and CLI.

    Calling it again rebuilds the services, which is how tests swap in a fake
    API client.
    """
    from .views import wicket_blueprint

    state = _ensure_extension_state(app)
    enabled = is_sync_enabled(app)
    state["enabled"] = enabled
    state["services"] = build_sync_services(
        app.config,
        client=client,
        http_session=http_session,
        sleep_fn=sleep_fn,
    )
    readiness = check_wicket_readiness(app.config)
    state["readiness"] = readiness.as_dict()

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Wicket sync disabled via WICKET_SYNC_ENABLED flag; skipping registration.")
        return

    if readiness.status != "ready":
        app.logger.warning(
            "Wicket adapter not ready (status=%s). %s",
            readiness.status,
            "; ".join(readiness.messages()),
            extra={"wicket_missing_settings": list(readiness.missing_settings)},
        )

    if wicket_blueprint.name not in app.blueprints and not getattr(app, "_got_first_request", False):
        app.register_blueprint(wicket_blueprint)
    _set_cli(app, enabled=True)
    app.logger.info("Wicket sync enabled for tenant %s", app.config.get("WICKET_TENANT") or "<unset>")


def get_sync_services(app: Flask) -> SyncServices:
    state = app.extensions.get(SYNC_EXTENSION_KEY) or {}
    services = state.get("services")
    if services is None:
        raise RuntimeError("Wicket sync services are not initialised; call init_wicket_sync(app) first.")
    return services
