"""
Tests for the listing collector.
"""

from unittest.mock import patch

import pytest

from cask_watchtower.components.browser_session import NavigationError
from cask_watchtower.components.listing_collector import (
    ListingCollector,
    parse_listing_page,
)
from cask_watchtower.models.catalog import CycleKind, ListingReference
from cask_watchtower.utils.error_handling import ErrorCategory

from catalog_fixtures import (
    BASE_URL,
    FakeNavigator,
    archive_listing_url,
    live_listing_url,
    render_listing_page,
)


async def collect_all(collector, kind):
    return [reference async for reference in collector.collect(kind)]


class TestParseListingPage:
    """Test cases for listing page parsing."""

    def test_cards_become_references(self):
        html = render_listing_page(
            [
                {"name": "Smoky  bacon\nbutty", "href": "/smoky-bacon-butty"},
                {"name": "Orchard fruit", "href": "https://smws.eu/orchard-fruit"},
            ]
        )

        references = parse_listing_page(html, BASE_URL)

        assert references == [
            ListingReference("Smoky bacon butty", f"{BASE_URL}/smoky-bacon-butty"),
            ListingReference("Orchard fruit", f"{BASE_URL}/orchard-fruit"),
        ]

    def test_cards_without_name_skipped(self):
        html = render_listing_page(
            [{"name": "", "href": "/blank"}, {"name": "Named", "href": "/named"}]
        )

        references = parse_listing_page(html, BASE_URL)

        assert [r.display_name for r in references] == ["Named"]

    def test_missing_container_is_empty(self):
        assert parse_listing_page("<html><body><p>Nothing</p></body></html>", BASE_URL) == []


class TestListingCollector:
    """Test cases for paginated crawling."""

    def test_listing_urls(self, source_config):
        collector = ListingCollector(FakeNavigator(), source_config)

        assert collector.listing_url(CycleKind.LIVE, 3) == live_listing_url(3)
        assert collector.listing_url(CycleKind.ARCHIVE, 2) == archive_listing_url(2)

    @pytest.mark.asyncio
    async def test_crawls_until_empty_page(self, source_config):
        navigator = FakeNavigator(
            {
                live_listing_url(1): render_listing_page(
                    [{"name": "A", "href": "/a"}, {"name": "B", "href": "/b"}]
                ),
                live_listing_url(2): render_listing_page([{"name": "C", "href": "/c"}]),
                live_listing_url(3): render_listing_page([]),
            }
        )
        collector = ListingCollector(navigator, source_config)

        references = await collect_all(collector, CycleKind.LIVE)

        assert [r.display_name for r in references] == ["A", "B", "C"]
        assert navigator.visited == [
            live_listing_url(1),
            live_listing_url(2),
            live_listing_url(3),
        ]

    @pytest.mark.asyncio
    async def test_duplicates_across_pages_kept(self, source_config):
        navigator = FakeNavigator(
            {
                archive_listing_url(1): render_listing_page([{"name": "A", "href": "/a"}]),
                archive_listing_url(2): render_listing_page([{"name": "A", "href": "/a"}]),
                archive_listing_url(3): render_listing_page([]),
            }
        )
        collector = ListingCollector(navigator, source_config)

        references = await collect_all(collector, CycleKind.ARCHIVE)

        assert [r.display_name for r in references] == ["A", "A"]

    @pytest.mark.asyncio
    async def test_navigation_failure_halts_with_partial_results(self, source_config):
        navigator = FakeNavigator(
            {
                live_listing_url(1): render_listing_page([{"name": "A", "href": "/a"}]),
                live_listing_url(2): NavigationError("Timed out waiting for listing"),
                live_listing_url(3): render_listing_page([{"name": "Z", "href": "/z"}]),
            }
        )
        collector = ListingCollector(navigator, source_config)

        references = await collect_all(collector, CycleKind.LIVE)

        assert [r.display_name for r in references] == ["A"]
        assert live_listing_url(3) not in navigator.visited

    @pytest.mark.asyncio
    async def test_halt_is_recorded(self, source_config):
        navigator = FakeNavigator(
            {live_listing_url(1): NavigationError("Timed out waiting for listing")}
        )
        with patch(
            "cask_watchtower.components.listing_collector.get_error_tracker"
        ) as mock_get_tracker:
            collector = ListingCollector(navigator, source_config)
            assert await collect_all(collector, CycleKind.LIVE) == []

        kwargs = mock_get_tracker.return_value.record_error.call_args.kwargs
        assert kwargs["category"] == ErrorCategory.NAVIGATION
        assert kwargs["context"] == {"url": live_listing_url(1), "references": 0}

    @pytest.mark.asyncio
    async def test_first_page_failure_yields_nothing(self, source_config):
        collector = ListingCollector(FakeNavigator(), source_config)

        assert await collect_all(collector, CycleKind.LIVE) == []

    @pytest.mark.asyncio
    async def test_page_limit(self, source_config):
        source_config.max_pages = 2
        navigator = FakeNavigator(
            {
                live_listing_url(page): render_listing_page(
                    [{"name": f"Item {page}", "href": f"/item-{page}"}]
                )
                for page in range(1, 5)
            }
        )
        collector = ListingCollector(navigator, source_config)

        references = await collect_all(collector, CycleKind.LIVE)

        assert [r.display_name for r in references] == ["Item 1", "Item 2"]
        assert len(navigator.visited) == 2
