from datetime import datetime, timezone

import pytest

from wicket_sync.sync.adapters.wicket.resources import (
    normalize_connection,
    parse_organization_resource,
    safe_parse_datetime,
)


def _connection(relationships, **attributes):
    return {"id": "conn-1", "type": "connections", "attributes": attributes, "relationships": relationships}


def _org_ref(org_uuid):
    return {"data": {"type": "organizations", "id": org_uuid}}


def test_normalize_reads_to_relationship():
    connection = normalize_connection(_connection({"to": _org_ref("org-1")}, type="owner"))

    assert connection.connection_uuid == "conn-1"
    assert connection.organization_uuid == "org-1"
    assert connection.connection_type == "owner"


def test_normalize_falls_back_to_organization_relationship():
    connection = normalize_connection(_connection({"organization": _org_ref("org-2")}))

    assert connection.organization_uuid == "org-2"
    assert connection.connection_type == "member"


def test_normalize_prefers_to_when_both_are_present():
    connection = normalize_connection(
        _connection({"to": _org_ref("org-to"), "organization": _org_ref("org-legacy")})
    )
    assert connection.organization_uuid == "org-to"


def test_normalize_skips_unresolvable_resources():
    assert normalize_connection(_connection({})) is None
    assert normalize_connection(_connection({"to": {"data": None}})) is None
    assert normalize_connection({"relationships": {"to": _org_ref("org-1")}}) is None
    assert normalize_connection(None) is None


def test_normalize_parses_dates():
    connection = normalize_connection(
        _connection({"to": _org_ref("org-1")}, starts_at="2024-02-01T00:00:00Z", ends_at="not a date")
    )

    assert connection.starts_at == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert connection.ends_at is None


def test_parse_organization_resource_maps_attributes():
    resource = {
        "id": "org-1",
        "type": "organizations",
        "attributes": {
            "legal_name": "Acme Corp",
            "alternate_name": "ACME",
            "type": "company",
            "people_count": "12",
            "identifying_number": "X" * 80,
            "updated_at": "2024-03-04T05:06:07+00:00",
        },
        "relationships": {"parent_organization": {"data": {"type": "organizations", "id": "org-parent"}}},
    }

    attributes = parse_organization_resource(resource)

    assert attributes["uuid"] == "org-1"
    assert attributes["legal_name"] == "Acme Corp"
    assert attributes["org_type"] == "company"
    assert attributes["people_count"] == 12
    assert len(attributes["identifying_number"]) == 50
    assert attributes["parent_org_uuid"] == "org-parent"
    assert attributes["remote_updated_at"] == datetime(2024, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    assert attributes["remote_created_at"] is None


def test_parse_organization_resource_requires_id():
    assert parse_organization_resource({"attributes": {"legal_name": "No Id"}}) is None


def test_parse_organization_resource_rejects_malformed_attributes():
    with pytest.raises(ValueError):
        parse_organization_resource({"id": "org-bad", "attributes": "oops"})


def test_safe_parse_datetime_assumes_utc_for_naive_values():
    assert safe_parse_datetime("2024-01-01T12:00:00") == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    assert safe_parse_datetime("") is None
