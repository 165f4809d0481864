"""
Catalog listing collection for the Cask Watchtower system.

This module walks the paginated catalog listing one page at a time and
yields lightweight listing references until a page comes back empty.
"""

import logging
from typing import AsyncIterator, List
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..interfaces import IPageNavigator
from ..models.catalog import CycleKind, ListingReference
from ..models.config import SourceSiteConfig
from ..utils.error_handling import ErrorCategory, ErrorSeverity, get_error_tracker
from .browser_session import NavigationError

logger = logging.getLogger(__name__)

LISTING_CONTAINER_SELECTOR = "#product-listing-container"
LISTING_CARD_SELECTOR = ".card-title a"


def parse_listing_page(html: str, base_url: str) -> List[ListingReference]:
    """
    Extract listing cards from one catalog page.

    Cards without a display name are skipped. Links are made absolute
    against base_url.
    """
    soup = BeautifulSoup(html, "html.parser")
    container = soup.select_one(LISTING_CONTAINER_SELECTOR)
    if container is None:
        return []

    references = []
    for anchor in container.select(LISTING_CARD_SELECTOR):
        display_name = " ".join(anchor.get_text().split())
        if not display_name:
            logger.debug("Skipping listing card without a title")
            continue
        href = (anchor.get("href") or "").strip()
        references.append(
            ListingReference(
                display_name=display_name,
                link=urljoin(base_url, href) if href else "",
            )
        )
    return references


class ListingCollector:
    """Crawls paginated listing pages for one catalog kind."""

    def __init__(self, navigator: IPageNavigator, source_config: SourceSiteConfig):
        """
        Initialize listing collector.

        Args:
            navigator: Open browser tab with consent already resolved
            source_config: Source site configuration
        """
        self.navigator = navigator
        self.source_config = source_config
        self.error_tracker = get_error_tracker()

    def listing_url(self, kind: CycleKind, page: int) -> str:
        """Build the listing URL for a catalog kind and 1-based page number."""
        if kind == CycleKind.ARCHIVE:
            path = self.source_config.archive_listing_path
        else:
            path = self.source_config.live_listing_path
        return urljoin(self.source_config.base_url, path.format(page=page))

    async def collect(self, kind: CycleKind) -> AsyncIterator[ListingReference]:
        """
        Lazily yield listing references for every page until one is empty.

        A page that fails to load ends the crawl early; references already
        yielded stand. No deduplication is done across pages.
        """
        page = 1
        total = 0

        while page <= self.source_config.max_pages:
            url = self.listing_url(kind, page)
            logger.info(f"Scraping {kind.value} page {page}...")

            try:
                html = await self.navigator.fetch_html(
                    url,
                    LISTING_CONTAINER_SELECTOR,
                    timeout=self.source_config.listing_selector_timeout,
                    settle_delay=self.source_config.listing_settle_delay,
                )
            except NavigationError as e:
                logger.error(
                    f"Error on {kind.value} page {page}, halting crawl with "
                    f"{total} references: {e}"
                )
                self.error_tracker.record_error(
                    component="listing_collector",
                    category=ErrorCategory.NAVIGATION,
                    severity=ErrorSeverity.MEDIUM,
                    message=f"Crawl halted on {kind.value} page {page}",
                    exception=e,
                    context={"url": url, "references": total},
                )
                break

            references = parse_listing_page(html, self.source_config.base_url)
            if not references:
                logger.info(f"No products found on {kind.value} page {page}. Reached end.")
                break

            logger.info(f"Found {len(references)} items on {kind.value} page {page}")
            for reference in references:
                total += 1
                yield reference

            page += 1
        else:
            logger.warning(
                f"Stopped {kind.value} crawl at the page limit "
                f"({self.source_config.max_pages})"
            )

        logger.info(f"Listing complete: {total} {kind.value} references collected")
