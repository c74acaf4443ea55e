"""
Wicket REST API client.

Wraps the JSON:API-style Wicket admin API with short-lived HS256 bearer tokens.
Every call mints a fresh token; nothing is cached between calls.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

import jwt
import requests

from . import (
    WicketApiRemoteError,
    WicketApiTransportError,
    WicketApiUnconfigured,
    WicketSettings,
)
from .resources import normalize_connection

TOKEN_TTL_SECONDS = 3600
PERSON_TO_ORGANIZATION = "person_to_organization"
DEFAULT_CONNECTION_DESCRIPTION = "Organization member"


def _extract_error_message(payload: Any, status_code: int) -> str:
    """Pull a human readable message out of a JSON:API error document."""

    if isinstance(payload, Mapping):
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0] if isinstance(errors[0], Mapping) else {}
            title = first.get("title")
            detail = first.get("detail")
            if title and detail:
                return f"{title}: {detail}"
            if title or detail:
                return str(title or detail)
        message = payload.get("message") or payload.get("error")
        if message:
            return str(message)
    return f"Status {status_code}"


class WicketApiClient:
    """Issue authenticated requests against the Wicket API."""

    def __init__(
        self,
        settings: WicketSettings,
        *,
        session: requests.Session | None = None,
        clock=time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    # Authentication -------------------------------------------------------------

    @property
    def api_url(self) -> str:
        return self.settings.api_url

    def ensure_configured(self) -> None:
        missing = self.settings.missing
        if missing:
            raise WicketApiUnconfigured(missing)

    def generate_token(self) -> str:
        """Sign a bearer token for the configured admin identity."""

        self.ensure_configured()
        now = int(self.clock())
        claims = {
            "exp": now + TOKEN_TTL_SECONDS,
            "sub": self.settings.admin_user_uuid,
            "aud": self.api_url,
            "iss": self.settings.site_url,
        }
        return jwt.encode(claims, self.settings.secret_key, algorithm="HS256")

    # Transport ------------------------------------------------------------------

    def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Mapping[str, Any] | None = None,
        *,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Perform a request and return the decoded JSON document.

        Raises:
            WicketApiUnconfigured: credentials missing; raised before any I/O.
            WicketApiTransportError: the API could not be reached.
            WicketApiRemoteError: the API answered with a non-2xx status.
        """
        token = self.generate_token()
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            response = self.session.request(
                method.upper(),
                url,
                headers=headers,
                params=dict(params) if params else None,
                json=body,
                timeout=timeout or self.settings.timeout,
            )
        except requests.RequestException as exc:
            self.logger.warning(
                "Wicket API transport failure",
                extra={"wicket_method": method.upper(), "wicket_endpoint": endpoint, "error": str(exc)},
            )
            raise WicketApiTransportError(f"Could not reach Wicket API: {exc}") from exc

        payload = self._decode(response)
        if not 200 <= response.status_code < 300:
            message = _extract_error_message(payload, response.status_code)
            self.logger.error(
                "Wicket API request failed: %s",
                message,
                extra={
                    "wicket_method": method.upper(),
                    "wicket_endpoint": endpoint,
                    "status_code": response.status_code,
                    "error_data": payload,
                },
            )
            raise WicketApiRemoteError(response.status_code, message, payload)
        return payload if isinstance(payload, dict) else {"data": payload}

    def _decode(self, response) -> Any:
        if response.status_code == 204 or not getattr(response, "text", ""):
            return {}
        try:
            return response.json()
        except ValueError:
            return {"message": response.text}

    # Organizations --------------------------------------------------------------

    def get_organizations_page(self, page: int = 1, page_size: int = 100) -> dict[str, Any]:
        return self.request(
            "/organizations",
            params={"page[number]": int(page), "page[size]": int(page_size)},
            timeout=self.settings.page_timeout,
        )

    def get_organization(self, org_uuid: str) -> dict[str, Any] | None:
        """Return the organization resource, or None when Wicket reports 404."""

        if not org_uuid:
            return None
        try:
            document = self.request(f"/organizations/{org_uuid}")
        except WicketApiRemoteError as exc:
            if exc.status_code == 404:
                return None
            raise
        return document.get("data")

    def create_organization(
        self, legal_name: str, org_type: str, alternate_name: str | None = None
    ) -> dict[str, Any]:
        """Create an organization and return the new resource; its ``id`` is the UUID."""
        legal_name = (legal_name or "").strip()
        org_type = (org_type or "").strip().lower()
        if not legal_name or not org_type:
            raise ValueError("Organization legal name and type are required.")

        attributes = {"legal_name": legal_name, "type": org_type}
        if alternate_name:
            attributes["alternate_name"] = alternate_name
        document = self.request(
            "/organizations",
            method="POST",
            body={"data": {"type": "organizations", "attributes": attributes}},
        )
        created = document.get("data") or {}
        if not created.get("id"):
            raise WicketApiRemoteError(201, "Organization created without an id")
        self.logger.info("Wicket organization created", extra={"org_uuid": created["id"], "org_type": org_type})
        return created

    # People ---------------------------------------------------------------------

    def get_person(self, person_uuid: str) -> dict[str, Any] | None:
        if not person_uuid:
            return None
        try:
            document = self.request(f"/people/{person_uuid}")
        except WicketApiRemoteError as exc:
            if exc.status_code == 404:
                return None
            raise
        return document.get("data")

    def find_person_by_email(self, email: str) -> dict[str, Any] | None:
        if not email:
            return None
        document = self.request("/people", params={"filter[emails_address_eq]": email})
        people = document.get("data") or []
        return people[0] if people else None

    # Connections ----------------------------------------------------------------

    def get_person_connections(self, person_uuid: str) -> list[dict[str, Any]]:
        """
        Return every person-to-organization connection for ``person_uuid``.

        An empty list is a successful answer; failures raise instead.
        """
        document = self.request(
            f"/people/{person_uuid}/connections",
            params={"filter[connection_type_eq]": PERSON_TO_ORGANIZATION},
        )
        return list(document.get("data") or [])

    def create_person_org_connection(
        self,
        person_uuid: str,
        org_uuid: str,
        connection_type: str = "member",
        description: str | None = None,
        starts_at: str | None = None,
        ends_at: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a connection unless one to ``org_uuid`` already exists.

        Returns ``{"success", "already_existed", "connection_uuid", "connection"}``.
        """
        if not person_uuid or not org_uuid:
            raise ValueError("Person and organization UUIDs are required.")

        for resource in self.get_person_connections(person_uuid):
            normalized = normalize_connection(resource)
            if normalized is None or normalized.organization_uuid != org_uuid:
                continue
            if starts_at or ends_at:
                changes = {key: value for key, value in (("starts_at", starts_at), ("ends_at", ends_at)) if value}
                self.update_connection(normalized.connection_uuid, changes)
            self.logger.info(
                "Wicket connection already exists",
                extra={"person_uuid": person_uuid, "org_uuid": org_uuid},
            )
            return {
                "success": True,
                "already_existed": True,
                "connection_uuid": normalized.connection_uuid,
                "connection": resource,
            }

        attributes: dict[str, Any] = {
            "type": connection_type,
            "description": description or DEFAULT_CONNECTION_DESCRIPTION,
            "connection_type": PERSON_TO_ORGANIZATION,
        }
        if starts_at:
            attributes["starts_at"] = starts_at
        if ends_at:
            attributes["ends_at"] = ends_at
        body = {
            "data": {
                "type": "connections",
                "attributes": attributes,
                "relationships": {
                    "from": {"data": {"type": "people", "id": person_uuid}},
                    "to": {"data": {"type": "organizations", "id": org_uuid}},
                },
            }
        }
        document = self.request("/connections", method="POST", body=body)
        created = document.get("data") or {}
        self.logger.info(
            "Wicket connection created",
            extra={"person_uuid": person_uuid, "org_uuid": org_uuid, "connection_uuid": created.get("id")},
        )
        return {
            "success": True,
            "already_existed": False,
            "connection_uuid": created.get("id"),
            "connection": created,
        }

    def update_connection(self, connection_uuid: str, attributes: Mapping[str, Any]) -> dict[str, Any] | None:
        if not connection_uuid:
            raise ValueError("Connection UUID is required.")
        body = {"data": {"type": "connections", "id": connection_uuid, "attributes": dict(attributes)}}
        document = self.request(f"/connections/{connection_uuid}", method="PATCH", body=body)
        return document.get("data")

    def delete_connection(self, connection_uuid: str) -> bool:
        if not connection_uuid:
            raise ValueError("Connection UUID is required.")
        self.request(f"/connections/{connection_uuid}", method="DELETE")
        return True


