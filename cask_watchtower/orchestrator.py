"""
Cycle orchestrator for the Cask Watchtower system.

This module runs live and archive mirror cycles end to end: open a browser
session, resolve consent, crawl the listing, reconcile against the mirror,
then notify alert owners and expire stale recently-added flags. It also
drives the in-process schedule and handles graceful shutdown.
"""

import asyncio
import signal
import sqlite3
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin

from .components.alert_formatter import AlertFormatter
from .components.alert_matcher import AlertMatcher, NotificationStats
from .components.browser_session import BrowserSession
from .components.detail_fetcher import DetailFetcher
from .components.freshness_tracker import FreshnessTracker
from .components.listing_collector import ListingCollector
from .components.reconciler import Reconciler
from .interfaces import INotificationChannel, IOriginLookup, IPersistenceGateway
from .models.catalog import CatalogRecord, CycleKind
from .models.config import Configuration
from .models.cycle import CycleSummary
from .utils.error_handling import (
    ErrorCategory,
    ErrorSeverity,
    get_error_tracker,
    with_error_handling,
)
from .utils.logging import get_logger


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CycleOrchestrator:
    """
    Coordinates one cycle at a time per catalog kind.

    A cycle never raises: failures are recorded with the error tracker and
    reflected in the returned CycleSummary. A request for a kind that is
    already running returns a skipped summary immediately.
    """

    def __init__(
        self,
        config: Configuration,
        gateway: IPersistenceGateway,
        channel: Optional[INotificationChannel] = None,
        origin_lookup: Optional[IOriginLookup] = None,
        session_factory: Callable[..., Any] = BrowserSession,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Validated system configuration
            gateway: Persistence gateway
            channel: Private message channel; alerts are skipped without one
            origin_lookup: Origin code lookup for detail enrichment
            session_factory: Callable taking BrowserConfig and returning an
                async context manager that acts as a page navigator
            clock: Source of the current UTC time
        """
        self.config = config
        self.gateway = gateway
        self.channel = channel
        self.origin_lookup = origin_lookup
        self.session_factory = session_factory
        self.clock = clock

        self.logger = get_logger("orchestrator")
        self.error_tracker = get_error_tracker()
        self.formatter = AlertFormatter()

        self._locks: Dict[CycleKind, asyncio.Lock] = {
            kind: asyncio.Lock() for kind in CycleKind
        }
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._startup_time: Optional[datetime] = None
        self._channel_healthy: Optional[bool] = None
        self.last_summaries: Dict[CycleKind, CycleSummary] = {}

    async def run_live_cycle(self) -> CycleSummary:
        return await self.run_cycle(CycleKind.LIVE)

    async def run_archive_cycle(self) -> CycleSummary:
        return await self.run_cycle(CycleKind.ARCHIVE)

    async def run_cycle(self, kind: CycleKind) -> CycleSummary:
        """Run one cycle for a catalog kind unless one is already in flight."""
        lock = self._locks[kind]
        if lock.locked():
            self.logger.warning(
                f"{kind.value} cycle already running, skipping this trigger",
                extra={"kind": kind.value},
            )
            return CycleSummary(kind=kind, started_at=self.clock(), skipped=True).finish()

        async with lock:
            summary = CycleSummary(kind=kind, started_at=self.clock())
            self.logger.info(f"=== STARTING {kind.value.upper()} CYCLE ===")

            completed = await self._execute_cycle(kind, summary)
            if completed is None:
                summary.success = False
                summary.add_error(f"{kind.value} cycle aborted")

            summary.finish()
            self.last_summaries[kind] = summary
            self.logger.info(
                f"=== {kind.value.upper()} CYCLE COMPLETE ===", extra=summary.to_dict()
            )
            return summary

    @with_error_handling(
        component="orchestrator",
        category=ErrorCategory.SYSTEM,
        severity=ErrorSeverity.HIGH,
        fallback_value=None,
        suppress_exceptions=True,
    )
    async def _execute_cycle(self, kind: CycleKind, summary: CycleSummary) -> CycleSummary:
        """Crawl, reconcile and post-process; raises on an aborted cycle."""
        source = self.config.source
        start_path = (
            source.archive_start_path if kind == CycleKind.ARCHIVE else source.live_start_path
        )

        async with self.session_factory(self.config.browser) as session:
            await session.resolve_consent(
                urljoin(source.base_url, start_path),
                settle_delay=source.listing_settle_delay,
            )

            collector = ListingCollector(session, source)
            crawl = [reference async for reference in collector.collect(kind)]
            self.logger.info(f"Collected {len(crawl)} {kind.value} listing references")

            reconciler = Reconciler(
                self.gateway,
                DetailFetcher(session, source, self.origin_lookup),
                clock=self.clock,
            )
            inserted = await reconciler.reconcile(kind, crawl, summary)

        if kind == CycleKind.LIVE:
            stats = await self._notify(inserted, summary)
            summary.notifications_sent = stats.sent
            summary.notification_failures = stats.failed

            summary.expired = self._expire_recent(summary)

        return summary

    async def _notify(
        self, inserted: List[CatalogRecord], summary: CycleSummary
    ) -> NotificationStats:
        if not inserted:
            return NotificationStats()

        if self.channel is None:
            self.logger.warning(
                f"No notification channel configured, skipping alerts for "
                f"{len(inserted)} new items"
            )
            return NotificationStats()

        try:
            alerts = self.gateway.fetch_alerts()
        except sqlite3.Error as e:
            self._record_persistence_failure(
                summary, f"Failed to load alerts for {len(inserted)} new items: {e}", e
            )
            return NotificationStats()

        # Delivery blocks on HTTP and retry backoff
        matcher = AlertMatcher(self.channel, self.formatter)
        return await asyncio.to_thread(matcher.process, inserted, alerts)

    def _expire_recent(self, summary: CycleSummary) -> int:
        tracker = FreshnessTracker(self.gateway, self.config.schedule.freshness_days)
        try:
            return tracker.run(now=self.clock())
        except sqlite3.Error as e:
            self._record_persistence_failure(
                summary, f"Failed to expire recently-added flags: {e}", e
            )
            return 0

    def _record_persistence_failure(
        self, summary: CycleSummary, message: str, exception: Exception
    ) -> None:
        self.logger.error(message)
        summary.add_error(message)
        self.error_tracker.record_error(
            component="orchestrator",
            category=ErrorCategory.PERSISTENCE,
            severity=ErrorSeverity.HIGH,
            message=message,
            exception=exception,
            context={"kind": summary.kind.value},
        )

    def run_alert_test(self, deliver: bool = True) -> Dict[str, int]:
        """
        Match every available mirror record against all alerts.

        Matches are logged; with deliver set they are also sent through the
        notification channel.
        """
        self.logger.info("=== TESTING ALERTS WITH EXISTING DATA ===")
        records = self.gateway.fetch_available_records()
        alerts = self.gateway.fetch_alerts()

        matcher = AlertMatcher(self.channel, self.formatter)
        directives = matcher.match(records, alerts)
        for directive in directives:
            self.logger.info(f"MATCH: {self.formatter.format_text(directive)}")

        stats = NotificationStats()
        if deliver and directives:
            if self.channel is None:
                raise ValueError("A notification channel is required to deliver alerts")
            stats = matcher.notify(directives)

        result = {
            "checked": len(records),
            "alerts": len(alerts),
            "matched": len(directives),
            "sent": stats.sent,
            "failed": stats.failed,
        }
        self.logger.info("=== TEST COMPLETE ===", extra=result)
        return result

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        signal.signal(signal.SIGINT, self._signal_handler)
        if sys.platform != "win32":
            signal.signal(signal.SIGTERM, self._signal_handler)
        else:
            signal.signal(signal.SIGBREAK, self._signal_handler)

    def _signal_handler(self, signum: int, frame) -> None:
        """Handle shutdown signals."""
        self.logger.info(
            "Received shutdown signal, initiating graceful shutdown",
            extra={"signal": signum},
        )
        self.shutdown()

    def shutdown(self) -> None:
        """Stop the schedule loop after the cycle in progress finishes."""
        if not self._running:
            return
        self.logger.info("Initiating graceful shutdown...")
        self._running = False
        self._shutdown_event.set()

    async def run_forever(self, run_immediately: bool = True) -> None:
        """
        Run live and archive cycles on their configured intervals until shutdown.

        Args:
            run_immediately: Run both cycles at startup instead of waiting a
                full interval first
        """
        if self._running:
            self.logger.warning("Scheduler is already running")
            return

        self._setup_signal_handlers()
        self._running = True
        self._shutdown_event.clear()
        self._startup_time = self.clock()

        if self.channel is not None:
            self._channel_healthy = await asyncio.to_thread(self.channel.test_connection)
            if not self._channel_healthy:
                self.logger.warning(
                    "Notification channel connection test failed, alerts may not be delivered"
                )

        schedule = self.config.schedule
        intervals = {
            CycleKind.LIVE: timedelta(hours=schedule.live_interval_hours),
            CycleKind.ARCHIVE: timedelta(hours=schedule.archive_interval_hours),
        }
        now = self.clock()
        next_run = {
            kind: now if run_immediately else now + interval
            for kind, interval in intervals.items()
        }

        self.logger.info(
            "Scheduler started",
            extra={k.value: v.isoformat() for k, v in next_run.items()},
        )

        try:
            while self._running:
                for kind in CycleKind:
                    if not self._running:
                        break
                    if self.clock() >= next_run[kind]:
                        await self.run_cycle(kind)
                        next_run[kind] = self.clock() + intervals[kind]
                        self.logger.info(
                            f"Next {kind.value} cycle at {next_run[kind].isoformat()}"
                        )

                wait_seconds = max(
                    0.0, (min(next_run.values()) - self.clock()).total_seconds()
                )
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=wait_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            uptime = self.clock() - self._startup_time
            self.logger.info(
                f"Scheduler stopped. Uptime: {uptime}", extra=self.get_system_status()
            )

    def get_system_status(self) -> Dict[str, Any]:
        """Get current scheduler status and last cycle results."""
        return {
            "running": self._running,
            "startup_time": self._startup_time.isoformat() if self._startup_time else None,
            "channel_healthy": self._channel_healthy,
            "cycles_in_flight": [
                kind.value for kind, lock in self._locks.items() if lock.locked()
            ],
            "last_summaries": {
                kind.value: summary.to_dict()
                for kind, summary in self.last_summaries.items()
            },
            "errors": self.error_tracker.get_error_stats(),
        }
