import pytest

from wicket_sync.sync.adapters.wicket import (
    WicketApiRemoteError,
    WicketApiTransportError,
    WicketApiUnconfigured,
)
from wicket_sync.sync.pipeline import OrganizationSyncEngine
from wicket_sync.sync.pipeline.organization_sync import (
    IN_PROGRESS_KEY,
    LAST_SYNC_KEY,
    LAST_SYNC_STATS_KEY,
)
from wicket_sync.sync.store import OrganizationCacheStore, SettingsStore


def _seed(wicket, count, org_type="company"):
    for index in range(count):
        wicket.add_organization(f"org-{index:04d}", f"Organization {index:04d}", org_type=org_type)


def _engine(wicket, sleeps, **overrides):
    options = {"page_size": 100, "max_pages": 1000, "max_retries": 3, "backoff_base": 1.0}
    options.update(overrides)
    return OrganizationSyncEngine(
        wicket,
        OrganizationCacheStore(),
        SettingsStore(),
        sleep_fn=sleeps.append,
        **options,
    )


def test_sync_fetches_each_page_exactly_once(wicket, sleep_calls):
    _seed(wicket, 9)
    engine = _engine(wicket, sleep_calls, page_size=2)

    stats = engine.sync_all()

    pages = [call[1] for call in wicket.calls_named("get_organizations_page")]
    assert pages == [1, 2, 3, 4, 5]
    assert stats.pages == 5
    assert stats.total == 9
    assert stats.outcome == "success"


def test_second_run_updates_instead_of_creating(wicket, sleep_calls):
    _seed(wicket, 250)
    engine = _engine(wicket, sleep_calls)

    first = engine.sync_all()
    second = engine.sync_all()

    assert len(wicket.calls_named("get_organizations_page")) == 6
    assert (first.created, first.updated, first.pages) == (250, 0, 3)
    assert (second.created, second.updated, second.pages) == (0, 250, 3)
    assert engine.store.count_organizations() == 250


def test_page_ceiling_stops_the_run(wicket, sleep_calls):
    _seed(wicket, 10)
    engine = _engine(wicket, sleep_calls, page_size=2, max_pages=2)

    stats = engine.sync_all()

    assert len(wicket.calls_named("get_organizations_page")) == 2
    assert stats.page_ceiling_reached is True
    assert stats.total == 4
    assert stats.outcome == "partial"


def test_transient_page_failures_retry_with_backoff(wicket, sleep_calls):
    _seed(wicket, 4)
    wicket.page_errors[2] = [
        WicketApiTransportError("timeout"),
        WicketApiRemoteError(503, "unavailable"),
    ]
    engine = _engine(wicket, sleep_calls, page_size=2)

    stats = engine.sync_all()

    assert sleep_calls == [1.0, 2.0]
    assert stats.errors == 0
    assert stats.created == 4
    assert [call[1] for call in wicket.calls_named("get_organizations_page")] == [1, 2, 2, 2]


def test_exhausted_retries_abort_and_keep_committed_pages(wicket, sleep_calls):
    _seed(wicket, 4)
    wicket.page_errors[2] = [WicketApiTransportError("down") for _ in range(4)]
    engine = _engine(wicket, sleep_calls, page_size=2)

    stats = engine.sync_all()

    assert sleep_calls == [1.0, 2.0, 4.0]
    assert stats.aborted is True
    assert stats.errors == 1
    assert stats.pages == 1
    assert stats.outcome == "partial"
    assert engine.store.count_organizations() == 2


def test_client_errors_are_not_retried(wicket, sleep_calls):
    _seed(wicket, 2)
    wicket.page_errors[1] = [WicketApiRemoteError(401, "Unauthorized")]
    engine = _engine(wicket, sleep_calls)

    stats = engine.sync_all()

    assert sleep_calls == []
    assert len(wicket.calls_named("get_organizations_page")) == 1
    assert stats.outcome == "failure"
    assert engine.store.count_organizations() == 0


def test_records_without_id_count_as_errors(wicket, sleep_calls):
    _seed(wicket, 2)
    wicket.organizations.append({"type": "organizations", "attributes": {"legal_name": "Ghost"}})
    engine = _engine(wicket, sleep_calls)

    stats = engine.sync_all()

    assert stats.total == 3
    assert stats.created == 2
    assert stats.errors == 1


def test_malformed_record_does_not_roll_back_its_page(wicket, sleep_calls):
    wicket.add_organization("org-alpha", "Alpha Inc")
    wicket.organizations.append({"id": "org-bad", "type": "organizations", "attributes": "oops"})
    wicket.add_organization("org-gamma", "Gamma Ltd")
    engine = _engine(wicket, sleep_calls)

    stats = engine.sync_all()

    assert (stats.total, stats.created, stats.errors) == (3, 2, 1)
    assert stats.outcome == "partial"
    assert engine.store.get_organization("org-alpha") is not None
    assert engine.store.get_organization("org-gamma") is not None
    assert engine.store.get_organization("org-bad") is None
    assert SettingsStore().get(LAST_SYNC_STATS_KEY)["errors"] == 1


def test_run_state_is_persisted(wicket, sleep_calls):
    _seed(wicket, 3)
    engine = _engine(wicket, sleep_calls)

    stats = engine.sync_all()

    settings = SettingsStore()
    assert settings.get(LAST_SYNC_KEY)
    assert settings.get(LAST_SYNC_STATS_KEY) == stats.to_dict()
    assert settings.get(IN_PROGRESS_KEY) is None


def test_unconfigured_client_fails_before_fetching(wicket, sleep_calls):
    wicket.missing = ("WICKET_API_SECRET_KEY",)
    engine = _engine(wicket, sleep_calls)

    with pytest.raises(WicketApiUnconfigured):
        engine.sync_all()

    assert wicket.calls_named("get_organizations_page") == []


def test_services_engine_uses_configured_defaults(services, wicket):
    _seed(wicket, 1)

    stats = services.organizations.sync_all()

    assert services.organizations.page_size == 100
    assert stats.created == 1
    assert wicket.calls_named("get_organizations_page") == [("get_organizations_page", 1, 100)]
