"""
Helpers that turn Wicket JSON:API resources into local attribute mappings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

DEFAULT_CONNECTION_TYPE = "member"


@dataclass(frozen=True)
class NormalizedConnection:
    """A connection resource reduced to the fields the cache stores."""

    connection_uuid: str
    organization_uuid: str
    connection_type: str = DEFAULT_CONNECTION_TYPE
    description: str | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None

    def is_current(self, now: datetime) -> bool:
        """Active when ``starts_at <= now < ends_at``; an open bound always passes."""
        if self.starts_at is not None and now < self.starts_at:
            return False
        if self.ends_at is not None and now >= self.ends_at:
            return False
        return True

    def to_attributes(self) -> dict[str, Any]:
        return {
            "connection_type": self.connection_type,
            "description": self.description,
            "starts_at": self.starts_at,
            "ends_at": self.ends_at,
        }


def _relationship_id(relationships: Mapping[str, Any], name: str) -> str | None:
    relation = relationships.get(name)
    if not isinstance(relation, Mapping):
        return None
    data = relation.get("data")
    if not isinstance(data, Mapping):
        return None
    return coerce_string(data.get("id"))


def normalize_connection(resource: Mapping[str, Any]) -> NormalizedConnection | None:
    """
    Reduce a connection resource to a ``NormalizedConnection``.

    The target organization may be published under ``relationships.to`` or
    ``relationships.organization``; ``to`` wins when both are present.
    Returns None when the resource has no id or no resolvable organization.
    """
    if not isinstance(resource, Mapping):
        return None
    connection_uuid = coerce_string(resource.get("id"))
    if not connection_uuid:
        return None
    relationships = resource.get("relationships") or {}
    organization_uuid = _relationship_id(relationships, "to") or _relationship_id(
        relationships, "organization"
    )
    if not organization_uuid:
        return None
    attributes = resource.get("attributes") or {}
    return NormalizedConnection(
        connection_uuid=connection_uuid,
        organization_uuid=organization_uuid,
        connection_type=coerce_string(attributes.get("type")) or DEFAULT_CONNECTION_TYPE,
        description=coerce_string(attributes.get("description")),
        starts_at=safe_parse_datetime(attributes.get("starts_at")),
        ends_at=safe_parse_datetime(attributes.get("ends_at")),
    )


def parse_organization_resource(resource: Mapping[str, Any]) -> dict[str, Any] | None:
    """Map an organization resource onto ``Organization`` column values."""

    if not isinstance(resource, Mapping):
        return None
    uuid = coerce_string(resource.get("id"))
    if not uuid:
        return None
    attributes = resource.get("attributes") or {}
    relationships = resource.get("relationships") or {}
    if not isinstance(attributes, Mapping) or not isinstance(relationships, Mapping):
        raise ValueError(f"Organization {uuid} has malformed attributes or relationships")
    try:
        people_count = int(attributes.get("people_count") or 0)
    except (TypeError, ValueError):
        people_count = 0
    return {
        "uuid": uuid,
        "legal_name": coerce_string(attributes.get("legal_name")),
        "legal_name_en": coerce_string(attributes.get("legal_name_en")),
        "legal_name_fr": coerce_string(attributes.get("legal_name_fr")),
        "legal_name_es": coerce_string(attributes.get("legal_name_es")),
        "alternate_name": coerce_string(attributes.get("alternate_name")),
        "org_type": coerce_string(attributes.get("type")),
        "slug": coerce_string(attributes.get("slug")),
        "description": coerce_string(attributes.get("description")),
        "identifying_number": _truncate(coerce_string(attributes.get("identifying_number")), 50),
        "parent_org_uuid": _relationship_id(relationships, "parent_organization"),
        "people_count": people_count,
        "remote_created_at": safe_parse_datetime(attributes.get("created_at")),
        "remote_updated_at": safe_parse_datetime(attributes.get("updated_at")),
    }


def _truncate(value: str | None, length: int) -> str | None:
    if value is None:
        return None
    return value[:length]


def coerce_string(value: object | None) -> str | None:
    """Coerce a value to a string, returning None for empty strings."""
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def safe_parse_datetime(value: object | None) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        candidate = str(value).strip().replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
