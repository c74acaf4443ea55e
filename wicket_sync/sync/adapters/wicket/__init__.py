"""Wicket adapter settings, readiness checks and the API error hierarchy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Tuple

REQUIRED_SETTINGS: Tuple[str, ...] = ("WICKET_TENANT", "WICKET_API_SECRET_KEY", "WICKET_ADMIN_USER_UUID")


class WicketApiError(RuntimeError):
    """Base error for Wicket API failures."""


class WicketApiUnconfigured(WicketApiError):
    """Raised before any network call when required credentials are missing."""

    def __init__(self, missing: Tuple[str, ...]):
        self.missing = tuple(missing)
        super().__init__(
            "Wicket API is not configured. Missing settings: " + ", ".join(self.missing)
        )


class WicketApiTransportError(WicketApiError):
    """Raised when the remote API cannot be reached (network error, timeout)."""


class WicketApiRemoteError(WicketApiError):
    """Raised when the remote API answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str, payload: Any = None):
        self.status_code = status_code
        self.message = message
        self.payload = payload
        super().__init__(f"Wicket API returned {status_code}: {message}")

    @property
    def is_retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


@dataclass(frozen=True)
class WicketSettings:
    tenant: str
    secret_key: str
    admin_user_uuid: str
    staging: bool = False
    site_url: str = ""
    timeout: float = 30.0
    page_timeout: float = 60.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "WicketSettings":
        return cls(
            tenant=(config.get("WICKET_TENANT") or "").strip(),
            secret_key=config.get("WICKET_API_SECRET_KEY") or "",
            admin_user_uuid=(config.get("WICKET_ADMIN_USER_UUID") or "").strip(),
            staging=bool(config.get("WICKET_STAGING", False)),
            site_url=config.get("WICKET_SITE_URL") or "",
            timeout=float(config.get("WICKET_API_TIMEOUT", 30.0)),
            page_timeout=float(config.get("WICKET_ORG_PAGE_TIMEOUT", 60.0)),
        )

    @property
    def missing(self) -> Tuple[str, ...]:
        values = {
            "WICKET_TENANT": self.tenant,
            "WICKET_API_SECRET_KEY": self.secret_key,
            "WICKET_ADMIN_USER_UUID": self.admin_user_uuid,
        }
        return tuple(name for name in REQUIRED_SETTINGS if not values[name])

    @property
    def api_url(self) -> str:
        if self.staging:
            return f"https://{self.tenant}-api.staging.wicketcloud.com"
        return f"https://{self.tenant}-api.wicketcloud.com"


@dataclass(frozen=True)
class WicketAdapterReadiness:
    missing_settings: Tuple[str, ...]
    api_url: str | None = None

    @property
    def status(self) -> str:
        if self.missing_settings:
            return "missing-config"
        return "ready"

    def messages(self) -> Tuple[str, ...]:
        if self.missing_settings:
            return (f"Missing required Wicket settings: {', '.join(self.missing_settings)}",)
        return ()

    def as_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "missing_settings": list(self.missing_settings),
            "api_url": self.api_url,
            "messages": list(self.messages()),
        }


def check_wicket_readiness(config: Mapping[str, Any]) -> WicketAdapterReadiness:
    """Report whether the Wicket adapter has the credentials it needs."""

    settings = WicketSettings.from_config(config)
    missing = settings.missing
    return WicketAdapterReadiness(
        missing_settings=missing,
        api_url=None if "WICKET_TENANT" in missing else settings.api_url,
    )


__all__ = [
    "REQUIRED_SETTINGS",
    "WicketAdapterReadiness",
    "WicketApiError",
    "WicketApiRemoteError",
    "WicketApiTransportError",
    "WicketApiUnconfigured",
    "WicketSettings",
    "check_wicket_readiness",
]
