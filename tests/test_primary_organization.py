import pytest

from wicket_sync.sync.adapters.wicket import WicketApiTransportError
from wicket_sync.sync.identity import PRIMARY_ORG_KEY
from wicket_sync.sync.primary import MembershipError

PERSON = "person-1"


@pytest.fixture
def member(services, wicket, test_user):
    """Test user linked to a Wicket person with three known organizations"""
    wicket.add_organization("org-a", "Alpha Inc")
    wicket.add_organization("org-b", "Beta LLC")
    wicket.add_organization("org-s", "South Section", org_type="section")
    services.identity.set_person_uuid(test_user, PERSON)
    return test_user


def _connect_and_sync(services, wicket, *org_uuids):
    for org_uuid in org_uuids:
        wicket.connect(PERSON, org_uuid, connection_uuid=f"conn-{org_uuid}")
    services.connections.sync_person_connections(PERSON)


def test_no_person_means_no_primary(services, test_user):
    assert services.primary.get_primary_organization(test_user) is None
    assert services.primary.get_user_organizations(test_user) == []


def test_stored_primary_is_returned_while_active(services, wicket, member):
    _connect_and_sync(services, wicket, "org-a", "org-b")
    services.identity.set_primary_org_uuid(member, "org-b")

    assert services.primary.get_primary_organization(member).uuid == "org-b"


def test_stale_primary_falls_back_to_first_inserted_connection(services, wicket, member):
    _connect_and_sync(services, wicket, "org-b", "org-a")
    services.identity.set_primary_org_uuid(member, "org-gone")

    primary = services.primary.get_primary_organization(member)

    assert primary.uuid == "org-b"
    assert member.get_meta(PRIMARY_ORG_KEY) == "org-b"


def test_primary_cleared_when_no_active_connections(services, wicket, member):
    services.identity.set_primary_org_uuid(member, "org-a")

    assert services.primary.get_primary_organization(member) is None
    assert member.get_meta(PRIMARY_ORG_KEY) is None


def test_user_organizations_filter_by_type(services, wicket, member):
    _connect_and_sync(services, wicket, "org-a", "org-s")

    sections = services.primary.get_user_organizations(member, org_type="section")

    assert [row.org_uuid for row in sections] == ["org-s"]
    assert len(services.primary.get_user_organizations(member)) == 2


def test_set_primary_creates_missing_connection(services, wicket, member):
    result = services.primary.set_primary_organization(member, "org-a")

    assert result == {"success": True, "primary_org_uuid": "org-a", "connection_created": True}
    assert wicket.calls_named("create_person_org_connection") == [("create_person_org_connection", PERSON, "org-a")]
    assert services.primary.get_primary_organization(member).uuid == "org-a"


def test_set_primary_on_existing_connection_skips_remote_create(services, wicket, member):
    _connect_and_sync(services, wicket, "org-a", "org-b")

    result = services.primary.set_primary_organization(member, "org-b")

    assert result["connection_created"] is False
    assert wicket.calls_named("create_person_org_connection") == []
    assert member.get_meta(PRIMARY_ORG_KEY) == "org-b"


def test_add_organization_sets_primary_when_unset(services, wicket, member):
    first = services.primary.add_organization(member, "org-a")
    second = services.primary.add_organization(member, "org-b")
    repeat = services.primary.add_organization(member, "org-b")

    assert first["already_existed"] is False
    assert second["already_existed"] is False
    assert repeat["already_existed"] is True
    assert member.get_meta(PRIMARY_ORG_KEY) == "org-a"
    assert {row.org_uuid for row in services.primary.get_user_organizations(member)} == {"org-a", "org-b"}


def test_remove_primary_reassigns_to_first_remaining(services, wicket, member):
    _connect_and_sync(services, wicket, "org-a", "org-b", "org-s")
    services.identity.set_primary_org_uuid(member, "org-a")

    result = services.primary.remove_organization(member, "org-a")

    assert result == {"success": True, "removed": 1, "primary_org_uuid": "org-b"}
    assert wicket.calls_named("delete_connection") == [("delete_connection", "conn-org-a")]
    assert services.store.get_connection("conn-org-a").is_active is False


def test_remove_unconnected_organization_is_rejected(services, wicket, member):
    with pytest.raises(MembershipError):
        services.primary.remove_organization(member, "org-a")


def test_membership_changes_require_linked_person(services, test_user):
    with pytest.raises(MembershipError):
        services.primary.add_organization(test_user, "org-a")


def test_get_organization_reads_through_and_caches(services, wicket):
    wicket.add_organization("org-new", "Newcomer Ltd")

    assert services.store.get_organization("org-new") is None
    assert services.primary.get_organization("org-new").legal_name == "Newcomer Ltd"
    services.primary.get_organization("org-new")

    assert wicket.calls_named("get_organization") == [("get_organization", "org-new")]
    assert services.primary.get_organization("org-missing") is None


def test_get_organization_outage_is_a_miss_unless_strict(services, wicket, member, monkeypatch):
    services.identity.set_primary_org_uuid(member, "org-remote")
    wicket.connect(PERSON, "org-remote", connection_uuid="conn-remote")

    def unreachable(org_uuid):
        raise WicketApiTransportError("timeout")

    monkeypatch.setattr(wicket, "get_organization", unreachable)
    services.connections.sync_person_connections(PERSON)

    assert services.primary.get_organization("org-remote") is None
    assert services.primary.get_primary_organization(member) is None
    assert services.primary.get_primary_org_uuid(member) == "org-remote"
    with pytest.raises(WicketApiTransportError):
        services.primary.get_organization("org-remote", strict=True)


def test_create_organization_connects_and_sets_primary(services, wicket, member):
    _connect_and_sync(services, wicket, "org-a")
    services.identity.set_primary_org_uuid(member, "org-a")

    result = services.primary.create_organization(member, " Northwind ", "Company", alternate_name="NW")

    org_uuid = result["org_uuid"]
    assert wicket.calls_named("create_organization") == [("create_organization", "Northwind", "company")]
    assert result["primary_org_uuid"] == org_uuid
    assert member.get_meta(PRIMARY_ORG_KEY) == org_uuid
    cached = services.store.get_organization(org_uuid)
    assert (cached.legal_name, cached.org_type, cached.alternate_name) == ("Northwind", "company", "NW")
    assert {row.org_uuid for row in services.store.get_active_connections_for_person(PERSON)} == {"org-a", org_uuid}


def test_create_organization_requires_name_and_type(services, wicket, member):
    with pytest.raises(MembershipError):
        services.primary.create_organization(member, "Northwind", " ")
    assert wicket.calls_named("create_organization") == []
