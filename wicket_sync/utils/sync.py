"""
Utility helpers for Wicket sync feature flag checks.
"""

from __future__ import annotations

from flask import current_app


def _get_config(app=None):
    if app is not None:
        return app.config
    return current_app.config


def is_sync_enabled(app=None) -> bool:
    """Return True when the Wicket sync feature flag is enabled."""
    config = _get_config(app)
    return bool(config.get("WICKET_SYNC_ENABLED", False))


def is_weekly_sync_enabled(app=None) -> bool:
    config = _get_config(app)
    return is_sync_enabled(app) and bool(config.get("WICKET_WEEKLY_SYNC_ENABLED", False))
