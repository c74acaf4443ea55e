"""
Full-catalog organization sync from Wicket into the local cache.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

from wicket_sync.models.base import utc_now

from ..adapters.wicket import WicketApiError, WicketApiRemoteError, WicketApiTransportError
from ..adapters.wicket.resources import parse_organization_resource
from ..metrics import record_org_page_retry, record_org_sync_run
from ..store import UpsertResult

LAST_SYNC_KEY = "wicket_orgs_last_sync"
LAST_SYNC_STATS_KEY = "wicket_orgs_last_sync_stats"
IN_PROGRESS_KEY = "wicket_org_sync_in_progress"

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 1000


@dataclass
class SyncStats:
    total: int = 0
    created: int = 0
    updated: int = 0
    errors: int = 0
    pages: int = 0
    aborted: bool = False
    page_ceiling_reached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "errors": self.errors,
            "pages": self.pages,
            "aborted": self.aborted,
            "page_ceiling_reached": self.page_ceiling_reached,
        }

    @property
    def outcome(self) -> str:
        if self.aborted and self.pages == 0:
            return "failure"
        if self.aborted or self.errors or self.page_ceiling_reached:
            return "partial"
        return "success"


def _total_pages(document: Mapping[str, Any]) -> int:
    meta = document.get("meta") or {}
    page_meta = meta.get("page") or {}
    try:
        return max(1, int(page_meta.get("total_pages") or 1))
    except (TypeError, ValueError):
        return 1


class OrganizationSyncEngine:
    """Page through every Wicket organization and upsert it into the cache."""

    def __init__(
        self,
        client,
        store,
        settings,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        sleep_fn=time.sleep,
        clock=utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.settings = settings
        self.page_size = max(1, int(page_size))
        self.max_pages = max(1, int(max_pages))
        self.max_retries = max(0, int(max_retries))
        self.backoff_base = max(0.0, float(backoff_base))
        self.sleep = sleep_fn
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def sync_all(self) -> SyncStats:
        """
        Reconcile the whole remote catalog.

        A page that still fails after the retry budget counts one error and
        ends the run; pages already upserted stay committed.
        """
        self.client.ensure_configured()
        self.store.ensure_tables()

        stats = SyncStats()
        started = time.monotonic()
        self.logger.info("Starting Wicket organization sync", extra={"page_size": self.page_size})
        self.settings.set(IN_PROGRESS_KEY, True, value_type="boolean")
        try:
            self._run(stats)
        finally:
            self.settings.delete(IN_PROGRESS_KEY)

        self.settings.set(LAST_SYNC_KEY, self.clock().isoformat())
        self.settings.set(LAST_SYNC_STATS_KEY, stats.to_dict(), value_type="json")
        record_org_sync_run(
            outcome=stats.outcome,
            duration_seconds=time.monotonic() - started,
            counts=stats.to_dict(),
        )
        self.logger.info("Wicket organization sync finished", extra={"wicket_sync_stats": stats.to_dict()})
        return stats

    def _run(self, stats: SyncStats) -> None:
        page = 1
        while True:
            if page > self.max_pages:
                stats.page_ceiling_reached = True
                self.logger.warning(
                    "Organization sync stopped at the page ceiling",
                    extra={"max_pages": self.max_pages},
                )
                return
            try:
                document = self._fetch_page(page)
            except WicketApiError as exc:
                stats.errors += 1
                stats.aborted = True
                self.logger.error(
                    "Error fetching organization page %s: %s",
                    page,
                    exc,
                    extra={"page": page},
                )
                return

            parsed = [self._parse_record(resource, stats) for resource in document.get("data") or []]
            with self.store.transaction():
                for attributes in parsed:
                    if attributes is not None:
                        self._apply_record(attributes, stats)
            stats.pages += 1

            if page >= _total_pages(document):
                return
            page += 1

    def _parse_record(self, resource: Any, stats: SyncStats) -> dict[str, Any] | None:
        """Parse one record; a malformed record is counted and skipped, never fatal to the page."""
        stats.total += 1
        uuid = resource.get("id") if isinstance(resource, Mapping) else None
        try:
            attributes = parse_organization_resource(resource)
        except Exception as exc:
            stats.errors += 1
            self.logger.warning("Skipping malformed organization record: %s", exc, extra={"uuid": uuid})
            return None
        if attributes is None:
            stats.errors += 1
            self.logger.warning("Skipping organization record without an id")
        return attributes

    def _apply_record(self, attributes: Mapping[str, Any], stats: SyncStats) -> None:
        result = self.store.upsert_organization(attributes)
        if result is UpsertResult.CREATED:
            stats.created += 1
        else:
            stats.updated += 1

    def _fetch_page(self, page: int) -> Mapping[str, Any]:
        attempt = 0
        while True:
            try:
                return self.client.get_organizations_page(page=page, page_size=self.page_size)
            except (WicketApiTransportError, WicketApiRemoteError) as exc:
                retryable = isinstance(exc, WicketApiTransportError) or exc.is_retryable
                if not retryable or attempt >= self.max_retries:
                    raise
                delay = self.backoff_base * (2**attempt)
                attempt += 1
                record_org_page_retry()
                self.logger.warning(
                    "Retrying organization page %s in %.1fs (attempt %s/%s)",
                    page,
                    delay,
                    attempt,
                    self.max_retries,
                    extra={"page": page, "error": str(exc)},
                )
                self.sleep(delay)
