# conftest.py

import os

import pytest
from flask import g

# Set testing environment BEFORE importing app so app.py picks TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import app as flask_app  # noqa: E402
from config import TestingConfig  # noqa: E402
from config.monitoring import TestingMonitoringConfig  # noqa: E402
from wicket_sync.models import User, db  # noqa: E402
from wicket_sync.sync import get_sync_services, init_wicket_sync  # noqa: E402
from wicket_sync.sync.adapters.wicket import WicketApiUnconfigured  # noqa: E402


class FakeWicketClient:
    """
    In-memory stand-in for WicketApiClient.

    Holds organizations, people and connections as JSON:API resources and
    records every call so tests can assert on remote traffic.
    """

    def __init__(self):
        self.organizations = []
        self.people = {}
        self.connections = {}
        self.page_errors = {}
        self.connection_errors = {}
        self.missing = ()
        self.calls = []
        self._connection_counter = 0

    # Test setup helpers

    def add_organization(self, uuid, legal_name, org_type="company", **attributes):
        resource = {
            "id": uuid,
            "type": "organizations",
            "attributes": {"legal_name": legal_name, "type": org_type, **attributes},
            "relationships": {},
        }
        self.organizations.append(resource)
        return resource

    def add_person(self, email, person_uuid):
        self.people[email] = {"id": person_uuid, "type": "people", "attributes": {"primary_email_address": email}}

    def connect(self, person_uuid, org_uuid, connection_uuid=None, relation="to", **attributes):
        if connection_uuid is None:
            self._connection_counter += 1
            connection_uuid = f"conn-{self._connection_counter}"
        resource = {
            "id": connection_uuid,
            "type": "connections",
            "attributes": {"type": "member", "connection_type": "person_to_organization", **attributes},
            "relationships": {
                "from": {"data": {"type": "people", "id": person_uuid}},
                relation: {"data": {"type": "organizations", "id": org_uuid}},
            },
        }
        self.connections.setdefault(person_uuid, []).append(resource)
        return resource

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]

    # WicketApiClient surface

    def ensure_configured(self):
        if self.missing:
            raise WicketApiUnconfigured(self.missing)

    def get_organizations_page(self, page=1, page_size=100):
        self.calls.append(("get_organizations_page", page, page_size))
        pending = self.page_errors.get(page)
        if pending:
            raise pending.pop(0)
        start = (page - 1) * page_size
        total = len(self.organizations)
        total_pages = max(1, -(-total // page_size))
        return {
            "data": self.organizations[start : start + page_size],
            "meta": {"page": {"number": page, "size": page_size, "total_pages": total_pages, "total_items": total}},
        }

    def get_organization(self, org_uuid):
        self.calls.append(("get_organization", org_uuid))
        for resource in self.organizations:
            if resource["id"] == org_uuid:
                return resource
        return None

    def create_organization(self, legal_name, org_type, alternate_name=None):
        self.calls.append(("create_organization", legal_name, org_type))
        attributes = {"alternate_name": alternate_name} if alternate_name else {}
        return self.add_organization(f"org-created-{len(self.organizations) + 1}", legal_name, org_type, **attributes)

    def get_person(self, person_uuid):
        for person in self.people.values():
            if person["id"] == person_uuid:
                return person
        return None

    def find_person_by_email(self, email):
        self.calls.append(("find_person_by_email", email))
        return self.people.get(email)

    def get_person_connections(self, person_uuid):
        self.calls.append(("get_person_connections", person_uuid))
        error = self.connection_errors.get(person_uuid)
        if error is not None:
            raise error
        return list(self.connections.get(person_uuid, []))

    def create_person_org_connection(
        self, person_uuid, org_uuid, connection_type="member", description=None, starts_at=None, ends_at=None
    ):
        self.calls.append(("create_person_org_connection", person_uuid, org_uuid))
        for resource in self.connections.get(person_uuid, []):
            relationships = resource["relationships"]
            target = relationships.get("to") or relationships.get("organization")
            if target["data"]["id"] == org_uuid:
                return {
                    "success": True,
                    "already_existed": True,
                    "connection_uuid": resource["id"],
                    "connection": resource,
                }
        created = self.connect(person_uuid, org_uuid, type=connection_type, description=description)
        return {"success": True, "already_existed": False, "connection_uuid": created["id"], "connection": created}

    def update_connection(self, connection_uuid, attributes):
        self.calls.append(("update_connection", connection_uuid))
        for resources in self.connections.values():
            for resource in resources:
                if resource["id"] == connection_uuid:
                    resource["attributes"].update(attributes)
                    return resource
        return None

    def delete_connection(self, connection_uuid):
        self.calls.append(("delete_connection", connection_uuid))
        for person_uuid, resources in self.connections.items():
            self.connections[person_uuid] = [r for r in resources if r["id"] != connection_uuid]
        return True


@pytest.fixture
def wicket():
    """Fake Wicket API shared by the sync services under test"""
    return FakeWicketClient()


@pytest.fixture
def sleep_calls():
    """Delays requested by the organization sync backoff"""
    return []


@pytest.fixture(scope="function")
def app(wicket, sleep_calls):
    """Test application wired to the fake Wicket client on a fresh schema"""
    flask_app.config.from_object(TestingConfig)
    flask_app.config.from_object(TestingMonitoringConfig)
    flask_app.config.update({"TESTING": True, "SECRET_KEY": "test-secret-key-for-testing-only"})

    init_wicket_sync(flask_app, client=wicket, sleep_fn=sleep_calls.append)

    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def services(app):
    """Sync services built for the current test"""
    return get_sync_services(app)


def _login(client, user):
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user.id)
        sess["_fresh"] = True
    # The app context is shared across test requests; drop any cached user
    g.pop("_login_user", None)


@pytest.fixture
def test_user():
    """Persisted regular user"""
    user = User(username="testuser", email="test@example.com", display_name="Test User")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin_user():
    """Persisted administrator"""
    user = User(username="admin", email="admin@example.com", display_name="Admin", is_admin=True)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def logged_in_user(client, test_user):
    """Client authenticated as the regular user"""
    _login(client, test_user)
    return client, test_user


@pytest.fixture
def logged_in_admin(client, admin_user):
    """Client authenticated as the administrator"""
    _login(client, admin_user)
    return client, admin_user
