"""
Tests for the cycle orchestrator.
"""

import asyncio
import sqlite3
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from cask_watchtower.components.browser_session import NavigationError
from cask_watchtower.models.alert import AlertDefinition, AlertKind
from cask_watchtower.models.catalog import CycleKind
from cask_watchtower.orchestrator import CycleOrchestrator

from catalog_fixtures import (
    BASE_URL,
    FIXED_NOW,
    FakeBrowserSession,
    FakeNavigator,
    archive_listing_url,
    live_listing_url,
    render_detail_page,
    render_listing_page,
)

LIVE_START = f"{BASE_URL}/all-whisky"


@pytest.fixture
def live_pages():
    """A two-item live catalog with one Ardbeg cask."""
    return {
        live_listing_url(1): render_listing_page(
            [
                {"name": "Smoky bacon butty", "href": "/smoky-bacon-butty"},
                {"name": "Medicine cabinet", "href": "/medicine-cabinet"},
            ]
        ),
        live_listing_url(2): render_listing_page([]),
        f"{BASE_URL}/smoky-bacon-butty": render_detail_page(
            "Smoky bacon butty",
            code="33.123",
            info={"Distillery": "Ardbeg", "Region": "Islay", "Age": "18 years"},
        ),
        f"{BASE_URL}/medicine-cabinet": render_detail_page(
            "Medicine cabinet",
            code="29.301",
            info={"Distillery": "Laphroaig", "Region": "Islay", "Age": "10 years"},
        ),
    }


def build_orchestrator(config, gateway, pages, channel=None):
    navigator = FakeNavigator(pages)
    session = FakeBrowserSession(navigator)
    orchestrator = CycleOrchestrator(
        config=config,
        gateway=gateway,
        channel=channel,
        session_factory=session,
        clock=lambda: FIXED_NOW,
    )
    return orchestrator, session, navigator


class TestCycleOrchestrator:
    """Test cases for CycleOrchestrator."""

    @pytest.mark.asyncio
    async def test_live_cycle_end_to_end(
        self, sample_configuration, gateway, live_pages, mock_channel
    ):
        gateway.add_alert(AlertDefinition("1001", "555", AlertKind.ORIGIN, "Ardbeg"))
        orchestrator, session, navigator = build_orchestrator(
            sample_configuration, gateway, live_pages, mock_channel
        )

        summary = await orchestrator.run_live_cycle()

        assert summary.success is True
        assert summary.skipped is False
        assert (summary.discovered, summary.new, summary.saved, summary.inserted) == (
            2,
            2,
            2,
            2,
        )
        assert summary.notifications_sent == 1
        assert summary.notification_failures == 0
        assert summary.finished_at is not None

        assert navigator.consent_urls == [LIVE_START]
        assert (session.entered, session.closed) == (1, 1)

        recipient, scope, payload = mock_channel.deliver_private_message.call_args[0]
        assert (recipient, scope) == ("1001", "555")
        assert payload["embeds"][0]["url"] == f"{BASE_URL}/smoky-bacon-butty"

        stored = gateway.get_record("33.123")
        assert stored.is_recently_added is True
        assert stored.recent_since == FIXED_NOW
        assert orchestrator.last_summaries[CycleKind.LIVE] is summary

    @pytest.mark.asyncio
    async def test_second_cycle_sends_nothing(
        self, sample_configuration, gateway, live_pages, mock_channel
    ):
        gateway.add_alert(AlertDefinition("1001", "555", AlertKind.REGION, "Islay"))
        orchestrator, _, _ = build_orchestrator(
            sample_configuration, gateway, live_pages, mock_channel
        )

        first = await orchestrator.run_cycle(CycleKind.LIVE)
        second = await orchestrator.run_cycle(CycleKind.LIVE)

        assert first.notifications_sent == 2
        assert second.new == 0
        assert second.retained == 2
        assert second.notifications_sent == 0
        assert mock_channel.deliver_private_message.call_count == 2

    @pytest.mark.asyncio
    async def test_consent_failure_aborts_cycle(
        self, sample_configuration, gateway, live_pages, mock_channel
    ):
        live_pages[LIVE_START] = NavigationError("Consent dialog never settled")
        orchestrator, session, navigator = build_orchestrator(
            sample_configuration, gateway, live_pages, mock_channel
        )

        summary = await orchestrator.run_cycle(CycleKind.LIVE)

        assert summary.success is False
        assert "live cycle aborted" in summary.errors
        assert navigator.visited == []
        assert session.closed == 1
        assert gateway.fetch_available_records() == []

    @pytest.mark.asyncio
    async def test_busy_kind_is_skipped(self, sample_configuration, gateway, live_pages):
        orchestrator, session, _ = build_orchestrator(sample_configuration, gateway, live_pages)

        async with orchestrator._locks[CycleKind.LIVE]:
            assert "live" in orchestrator.get_system_status()["cycles_in_flight"]
            summary = await orchestrator.run_cycle(CycleKind.LIVE)

        assert summary.skipped is True
        assert summary.success is True
        assert session.entered == 0

    @pytest.mark.asyncio
    async def test_other_kind_runs_while_one_is_busy(
        self, sample_configuration, gateway, live_pages
    ):
        live_pages[archive_listing_url(1)] = render_listing_page([])
        orchestrator, session, _ = build_orchestrator(sample_configuration, gateway, live_pages)

        async with orchestrator._locks[CycleKind.LIVE]:
            summary = await orchestrator.run_archive_cycle()

        assert summary.skipped is False
        assert session.entered == 1

    @pytest.mark.asyncio
    async def test_archive_cycle_stores_without_alerts(
        self, sample_configuration, gateway, mock_channel
    ):
        gateway.add_alert(AlertDefinition("1001", "555", AlertKind.ORIGIN, "Ardbeg"))
        pages = {
            archive_listing_url(1): render_listing_page([{"name": "Old friend", "href": "/old"}]),
            archive_listing_url(2): render_listing_page([]),
            f"{BASE_URL}/old": render_detail_page(
                "Old friend", code="33.5", info={"Distillery": "Ardbeg"}, bc_price="£140.00"
            ),
        }
        orchestrator, _, navigator = build_orchestrator(
            sample_configuration, gateway, pages, mock_channel
        )

        summary = await orchestrator.run_cycle(CycleKind.ARCHIVE)

        assert summary.success is True
        assert summary.inserted == 1
        assert navigator.consent_urls == [f"{BASE_URL}/archive"]
        assert gateway.get_archive_record("33.5").price_text == "£140.00"
        mock_channel.deliver_private_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_live_cycle_without_channel(self, sample_configuration, gateway, live_pages):
        gateway.add_alert(AlertDefinition("1001", "555", AlertKind.ORIGIN, "Ardbeg"))
        orchestrator, _, _ = build_orchestrator(sample_configuration, gateway, live_pages)

        summary = await orchestrator.run_cycle(CycleKind.LIVE)

        assert summary.success is True
        assert summary.inserted == 2
        assert summary.notifications_sent == 0

    @pytest.mark.asyncio
    async def test_live_cycle_expires_stale_flags(
        self, sample_configuration, gateway, live_pages, sample_record
    ):
        sample_record.is_recently_added = True
        sample_record.recent_since = FIXED_NOW - timedelta(days=5)
        gateway.upsert_record(sample_record)
        orchestrator, _, _ = build_orchestrator(sample_configuration, gateway, live_pages)

        summary = await orchestrator.run_cycle(CycleKind.LIVE)

        assert summary.retained == 1
        assert summary.new == 1
        assert summary.expired == 1
        assert gateway.get_record("33.123").is_recently_added is False
        assert gateway.get_record("29.301").is_recently_added is True

    @pytest.mark.asyncio
    async def test_listing_timeout_still_reconciles(
        self, sample_configuration, gateway, live_pages, sample_record
    ):
        gateway.upsert_record(sample_record)
        live_pages[live_listing_url(1)] = NavigationError("Timed out waiting for listing")
        orchestrator, _, _ = build_orchestrator(sample_configuration, gateway, live_pages)

        summary = await orchestrator.run_cycle(CycleKind.LIVE)

        assert summary.success is True
        assert summary.discovered == 0
        assert summary.removed == 1
        assert gateway.get_record("33.123").available is False

    @pytest.mark.asyncio
    async def test_alert_read_failure_keeps_cycle_running(
        self, sample_configuration, gateway, live_pages, mock_channel
    ):
        orchestrator, _, _ = build_orchestrator(
            sample_configuration, gateway, live_pages, mock_channel
        )

        with patch.object(
            gateway,
            "fetch_alerts",
            side_effect=sqlite3.OperationalError("database is locked"),
        ), patch.object(gateway, "expire_recent", wraps=gateway.expire_recent) as expire:
            summary = await orchestrator.run_cycle(CycleKind.LIVE)

        assert summary.success is True
        assert summary.inserted == 2
        assert summary.notifications_sent == 0
        assert "live cycle aborted" not in summary.errors
        assert any("database is locked" in error for error in summary.errors)
        expire.assert_called_once()
        mock_channel.deliver_private_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_expiry_failure_is_recorded(
        self, sample_configuration, gateway, live_pages
    ):
        orchestrator, _, _ = build_orchestrator(sample_configuration, gateway, live_pages)

        with patch.object(
            gateway, "expire_recent", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            summary = await orchestrator.run_cycle(CycleKind.LIVE)

        assert summary.success is True
        assert summary.inserted == 2
        assert summary.expired == 0
        assert any("disk I/O error" in error for error in summary.errors)


class TestAlertTest:
    """Test cases for matching alerts against the existing mirror."""

    def _seed(self, gateway, sample_record):
        gateway.upsert_record(sample_record)
        gateway.add_alert(AlertDefinition("1001", "555", AlertKind.MIN_AGE, "15"))
        gateway.add_alert(AlertDefinition("1002", "555", AlertKind.REGION, "Speyside"))

    def test_dry_run(self, sample_configuration, gateway, sample_record, mock_channel):
        self._seed(gateway, sample_record)
        orchestrator, _, _ = build_orchestrator(
            sample_configuration, gateway, {}, mock_channel
        )

        result = orchestrator.run_alert_test(deliver=False)

        assert result == {"checked": 1, "alerts": 2, "matched": 1, "sent": 0, "failed": 0}
        mock_channel.deliver_private_message.assert_not_called()

    def test_deliver(self, sample_configuration, gateway, sample_record, mock_channel):
        self._seed(gateway, sample_record)
        orchestrator, _, _ = build_orchestrator(
            sample_configuration, gateway, {}, mock_channel
        )

        result = orchestrator.run_alert_test()

        assert result["sent"] == 1
        mock_channel.deliver_private_message.assert_called_once()

    def test_deliver_requires_channel(self, sample_configuration, gateway, sample_record):
        self._seed(gateway, sample_record)
        orchestrator, _, _ = build_orchestrator(sample_configuration, gateway, {})

        with pytest.raises(ValueError, match="notification channel is required"):
            orchestrator.run_alert_test(deliver=True)

    def test_unavailable_records_ignored(
        self, sample_configuration, gateway, sample_record, mock_channel
    ):
        self._seed(gateway, sample_record)
        gateway.set_availability([sample_record.display_name], False)
        orchestrator, _, _ = build_orchestrator(
            sample_configuration, gateway, {}, mock_channel
        )

        result = orchestrator.run_alert_test()

        assert result["checked"] == 0
        assert result["matched"] == 0


class TestScheduler:
    """Test cases for the in-process schedule loop."""

    @pytest.mark.asyncio
    async def test_runs_both_kinds_then_stops(self, sample_configuration, gateway):
        orchestrator, _, _ = build_orchestrator(sample_configuration, gateway, {})
        kinds = []

        async def fake_cycle(kind):
            kinds.append(kind)
            if kind == CycleKind.ARCHIVE:
                orchestrator.shutdown()

        with patch.object(orchestrator, "_setup_signal_handlers"), patch.object(
            orchestrator, "run_cycle", AsyncMock(side_effect=fake_cycle)
        ):
            await orchestrator.run_forever()

        assert kinds == [CycleKind.LIVE, CycleKind.ARCHIVE]
        assert orchestrator.get_system_status()["running"] is False

    @pytest.mark.asyncio
    async def test_no_initial_run_waits(self, sample_configuration, gateway):
        orchestrator, _, _ = build_orchestrator(sample_configuration, gateway, {})
        run_cycle = AsyncMock()
        asyncio.get_running_loop().call_soon(orchestrator.shutdown)

        with patch.object(orchestrator, "_setup_signal_handlers"), patch.object(
            orchestrator, "run_cycle", run_cycle
        ):
            await orchestrator.run_forever(run_immediately=False)

        run_cycle.assert_not_called()

    @pytest.mark.asyncio
    async def test_channel_checked_at_startup(
        self, sample_configuration, gateway, mock_channel
    ):
        mock_channel.test_connection.return_value = False
        orchestrator, _, _ = build_orchestrator(
            sample_configuration, gateway, {}, mock_channel
        )
        asyncio.get_running_loop().call_soon(orchestrator.shutdown)

        with patch.object(orchestrator, "_setup_signal_handlers"), patch.object(
            orchestrator, "run_cycle", AsyncMock()
        ):
            await orchestrator.run_forever(run_immediately=False)

        mock_channel.test_connection.assert_called_once()
        assert orchestrator.get_system_status()["channel_healthy"] is False

    def test_shutdown_when_idle_is_a_no_op(self, sample_configuration, gateway):
        orchestrator, _, _ = build_orchestrator(sample_configuration, gateway, {})

        orchestrator.shutdown()

        assert orchestrator.get_system_status()["running"] is False
