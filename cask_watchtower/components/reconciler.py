"""
Reconciliation engine for the Cask Watchtower system.

This module compares a fresh crawl against the persisted mirror, classifies
every display name as new, removed or retained, and applies the resulting
availability changes and upserts.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from ..interfaces import IPersistenceGateway
from ..models.catalog import (
    ArchiveRecord,
    CatalogRecord,
    CycleKind,
    ListingReference,
    MirrorEntry,
)
from ..models.cycle import CycleSummary, ReconciliationPlan, UpsertOutcome
from ..utils.error_handling import ErrorCategory, ErrorSeverity, get_error_tracker
from .detail_fetcher import DetailFetcher

logger = logging.getLogger(__name__)


def classify(
    crawl: Sequence[ListingReference], mirror: Sequence[MirrorEntry]
) -> ReconciliationPlan:
    """
    Partition a crawl against the mirror by display name.

    new = crawl - mirror, removed = mirror - crawl, retained = crawl & mirror.
    Repeated names keep their first occurrence, so each name lands in
    exactly one of the three lists.
    """
    mirror_names = {entry.display_name for entry in mirror}

    new: List[ListingReference] = []
    retained: List[ListingReference] = []
    crawled_names = set()
    for reference in crawl:
        if reference.display_name in crawled_names:
            continue
        crawled_names.add(reference.display_name)
        if reference.display_name in mirror_names:
            retained.append(reference)
        else:
            new.append(reference)

    removed: List[MirrorEntry] = []
    removed_names = set()
    for entry in mirror:
        if entry.display_name in crawled_names or entry.display_name in removed_names:
            continue
        removed_names.add(entry.display_name)
        removed.append(entry)

    return ReconciliationPlan(new=new, removed=removed, retained=retained)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    """Applies a crawl to the persisted mirror."""

    def __init__(
        self,
        gateway: IPersistenceGateway,
        detail_fetcher: DetailFetcher,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize reconciler.

        Args:
            gateway: Persistence gateway
            detail_fetcher: Fetcher for newly discovered references
            clock: Source of the current UTC time
        """
        self.gateway = gateway
        self.detail_fetcher = detail_fetcher
        self.clock = clock
        self.error_tracker = get_error_tracker()

    async def reconcile(
        self,
        kind: CycleKind,
        crawl: Sequence[ListingReference],
        summary: Optional[CycleSummary] = None,
    ) -> List[CatalogRecord]:
        """
        Classify the crawl and apply it.

        For the live catalog, removed names are marked unavailable before
        retained names are marked available; new references are then
        fetched and upserted one at a time. The archive catalog only
        fetches and stores new references.

        Returns:
            Live records whose upsert was a true insert, in fetch order
        """
        summary = summary or CycleSummary(kind=kind)

        mirror = self.gateway.fetch_mirror_entries(kind)
        plan = classify(crawl, mirror)

        summary.discovered = len(crawl)
        summary.new = len(plan.new)
        summary.removed = len(plan.removed)
        summary.retained = len(plan.retained)

        logger.info(
            f"Reconciling {kind.value}: {len(crawl)} crawled, {len(mirror)} in mirror, "
            f"{summary.new} new, {summary.removed} removed, {summary.retained} retained"
        )

        if kind == CycleKind.LIVE:
            self._apply_availability(plan.removed_names, False, summary)
            self._apply_availability(plan.retained_names, True, summary)

        inserted: List[CatalogRecord] = []
        async for record in self.detail_fetcher.fetch(plan.new, kind):
            summary.fetched += 1
            outcome = self._store(record, summary)
            if outcome is None:
                continue

            summary.saved += 1
            if outcome == UpsertOutcome.INSERTED:
                summary.inserted += 1
                if isinstance(record, CatalogRecord):
                    inserted.append(record)

        logger.info(
            f"Saved {summary.saved}/{summary.new} new {kind.value} items "
            f"({summary.inserted} inserted)"
        )
        return inserted

    def _apply_availability(
        self, display_names: set, available: bool, summary: CycleSummary
    ) -> None:
        if not display_names:
            return

        state = "available" if available else "unavailable"
        try:
            count = self.gateway.set_availability(sorted(display_names), available)
            logger.info(f"Marked {count} items as {state}")
        except sqlite3.Error as e:
            message = f"Failed to mark {len(display_names)} items {state}: {e}"
            summary.add_error(message)
            self.error_tracker.record_error(
                component="reconciler",
                category=ErrorCategory.PERSISTENCE,
                severity=ErrorSeverity.HIGH,
                message=message,
                exception=e,
            )

    def _store(self, record, summary: CycleSummary) -> Optional[UpsertOutcome]:
        """Upsert one fetched record, returning None when the write fails."""
        record.is_recently_added = True
        if isinstance(record, CatalogRecord):
            record.recent_since = self.clock()

        try:
            if isinstance(record, ArchiveRecord):
                return self.gateway.upsert_archive_record(record)
            return self.gateway.upsert_record(record)
        except (sqlite3.Error, ValueError) as e:
            name = record.display_name
            message = f"Failed to save {name}: {e}"
            summary.add_error(message)
            self.error_tracker.record_error(
                component="reconciler",
                category=ErrorCategory.PERSISTENCE,
                severity=ErrorSeverity.MEDIUM,
                message=message,
                exception=e,
                context={"display_name": name},
            )
            return None
