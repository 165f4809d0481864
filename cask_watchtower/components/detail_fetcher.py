"""
Detail page fetching and parsing for the Cask Watchtower system.

This module turns listing references into structured catalog records by
visiting each detail page in turn. A reference that fails to load or to
parse is skipped without affecting the rest of the batch.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Sequence, Union

from bs4 import BeautifulSoup

from ..interfaces import IOriginLookup, IPageNavigator
from ..models.catalog import (
    ArchiveRecord,
    CatalogRecord,
    CycleKind,
    ListingReference,
    split_natural_code,
)
from ..models.config import SourceSiteConfig
from ..utils.error_handling import ErrorCategory, ErrorSeverity, get_error_tracker
from .browser_session import NavigationError

logger = logging.getLogger(__name__)

DETAIL_MARKER_SELECTOR = ".productView-details"
CASK_CODE_SELECTOR = ".caskNo"
TITLE_SELECTOR = ".productView-title"
PRICE_SELECTOR = ".price--withTax"
DESCRIPTION_SELECTOR = ".productView-description"
INFO_ITEM_SELECTOR = ".productView-info li"
INFO_NAME_SELECTOR = ".productView-info-name"
INFO_VALUE_SELECTOR = ".productView-info-value"

CASK_PREFIX_PATTERN = re.compile(r"^\s*cask\s+no\.?\s*", re.IGNORECASE)
BCDATA_PATTERN = re.compile(r"var\s+BCData\s*=\s*(\{.*?\});", re.DOTALL)


class DetailParseError(ValueError):
    """A detail page is missing a field every record needs."""


def _clean(text: Optional[str]) -> str:
    return " ".join((text or "").split())


def _select_text(soup: BeautifulSoup, selector: str) -> str:
    element = soup.select_one(selector)
    return _clean(element.get_text()) if element is not None else ""


def _info_values(soup: BeautifulSoup) -> Dict[str, str]:
    """Map upper-cased info labels (ABV, AGE, REGION, ...) to their values."""
    values: Dict[str, str] = {}
    for item in soup.select(INFO_ITEM_SELECTOR):
        name = item.select_one(INFO_NAME_SELECTOR)
        value = item.select_one(INFO_VALUE_SELECTOR)
        if name is None:
            continue
        label = _clean(name.get_text()).upper().rstrip(":")
        if label and label not in values:
            values[label] = _clean(value.get_text()) if value is not None else ""
    return values


def _strip_cask_prefix(code_text: str) -> str:
    return CASK_PREFIX_PATTERN.sub("", code_text).strip()


def _or_none(value: Optional[str]) -> Optional[str]:
    return value if value else None


class LiveDetailParser:
    """Parses live catalog detail pages into CatalogRecord candidates."""

    def parse(self, html: str, url: str) -> Optional[CatalogRecord]:
        """
        Parse one detail page.

        Returns:
            CatalogRecord, or None when the page is not an individually
            coded cask (no cask code marker)

        Raises:
            DetailParseError: If the title or cask code is missing
        """
        soup = BeautifulSoup(html, "html.parser")

        code_element = soup.select_one(CASK_CODE_SELECTOR)
        if code_element is None:
            return None

        natural_code = _strip_cask_prefix(_clean(code_element.get_text()))
        if not natural_code:
            raise DetailParseError("cask code marker is empty")

        display_name = _select_text(soup, TITLE_SELECTOR)
        if not display_name:
            raise DetailParseError(f"no title on page for {natural_code}")

        origin_group_id, sequence_no = split_natural_code(natural_code)
        info = _info_values(soup)

        return CatalogRecord(
            natural_code=natural_code,
            display_name=display_name,
            source_url=url,
            origin_group_id=origin_group_id,
            sequence_no=sequence_no,
            price_text=_or_none(_select_text(soup, PRICE_SELECTOR)),
            strength=_or_none(info.get("ABV")),
            age_years=_or_none(info.get("AGE")),
            cask_type=_or_none(info.get("CASK TYPE")),
            flavour_profile=_or_none(info.get("PROFILE")),
            origin_group_name=_or_none(info.get("DISTILLERY")),
            region_name=_or_none(info.get("REGION")),
            available=True,
        )


class ArchiveDetailParser:
    """Parses archive detail pages into ArchiveRecord candidates."""

    def parse(self, html: str, url: str) -> Optional[ArchiveRecord]:
        """
        Parse one archive detail page.

        Raises:
            DetailParseError: If the page has no title
        """
        soup = BeautifulSoup(html, "html.parser")

        display_name = _select_text(soup, TITLE_SELECTOR)
        if not display_name:
            raise DetailParseError("no title on archive page")

        code = _strip_cask_prefix(_select_text(soup, CASK_CODE_SELECTOR)) or display_name
        info = _info_values(soup)

        description = _select_text(soup, DESCRIPTION_SELECTOR)
        if not description:
            description = _select_text(soup, INFO_VALUE_SELECTOR)

        return ArchiveRecord(
            code=code,
            display_name=display_name,
            source_url=url,
            price_text=_or_none(self._extract_price(soup)),
            description=_or_none(description),
            strength=_or_none(info.get("ABV")),
            age_years=_or_none(info.get("AGE")),
            cask_type=_or_none(info.get("CASK TYPE")),
            origin_group_name=_or_none(info.get("DISTILLERY")),
            region_name=_or_none(info.get("REGION")),
            bottle_size=info.get("BOTTLE SIZE") or "700ml",
        )

    def _extract_price(self, soup: BeautifulSoup) -> str:
        """Read the formatted price from the inline BCData script."""
        for script in soup.find_all("script"):
            content = script.string or script.get_text() or ""
            if "BCData" not in content:
                continue
            match = BCDATA_PATTERN.search(content)
            if not match:
                continue
            try:
                bc_data = json.loads(match.group(1))
            except json.JSONDecodeError as e:
                logger.warning(f"Could not parse BCData: {e}")
                continue
            price = (
                bc_data.get("product_attributes", {})
                .get("price", {})
                .get("with_tax", {})
                .get("formatted")
            )
            if price:
                return price
        return _select_text(soup, PRICE_SELECTOR)


@dataclass
class FetchStats:
    """Counters for one detail fetch batch."""

    requested: int = 0
    parsed: int = 0
    not_applicable: int = 0
    failed: int = 0


class DetailFetcher:
    """Fetches and parses detail pages for newly discovered references."""

    def __init__(
        self,
        navigator: IPageNavigator,
        source_config: SourceSiteConfig,
        origin_lookup: Optional[IOriginLookup] = None,
    ):
        """
        Initialize detail fetcher.

        Args:
            navigator: Open browser tab
            source_config: Source site configuration
            origin_lookup: Resolves origin codes to display names
        """
        self.navigator = navigator
        self.source_config = source_config
        self.origin_lookup = origin_lookup
        self.live_parser = LiveDetailParser()
        self.archive_parser = ArchiveDetailParser()
        self.stats = FetchStats()
        self.error_tracker = get_error_tracker()

    async def fetch(
        self, references: Sequence[ListingReference], kind: CycleKind = CycleKind.LIVE
    ) -> AsyncIterator[Union[CatalogRecord, ArchiveRecord]]:
        """
        Lazily yield parsed records for the given references, in order.

        Pages that are not individually coded items are dropped; pages that
        time out or lack a required field are logged and skipped.
        """
        self.stats = FetchStats(requested=len(references))
        parser = self.archive_parser if kind == CycleKind.ARCHIVE else self.live_parser
        total = len(references)

        for index, reference in enumerate(references, start=1):
            logger.info(f"[{index}/{total}] Scraping: {reference.display_name}")

            if not reference.link:
                logger.warning(f"Skipped {reference.display_name} - listing has no link")
                self.stats.failed += 1
                continue

            try:
                html = await self.navigator.fetch_html(
                    reference.link,
                    DETAIL_MARKER_SELECTOR,
                    timeout=self.source_config.detail_selector_timeout,
                    settle_delay=self.source_config.detail_settle_delay,
                )
                record = parser.parse(html, self.navigator.current_url or reference.link)
            except NavigationError as e:
                logger.error(f"Error scraping {reference.display_name}: {e}")
                self._record_failure(reference, ErrorCategory.NAVIGATION, e)
                self.stats.failed += 1
                continue
            except DetailParseError as e:
                logger.error(f"Error parsing {reference.display_name}: {e}")
                self._record_failure(reference, ErrorCategory.PARSING, e)
                self.stats.failed += 1
                continue

            if record is None:
                logger.info(f"Skipped {reference.display_name} - not a single cask")
                self.stats.not_applicable += 1
                continue

            self._enrich(record)
            self.stats.parsed += 1
            yield record

        logger.info(
            f"Detail scraping complete: {self.stats.parsed}/{total} parsed, "
            f"{self.stats.not_applicable} not applicable, {self.stats.failed} failed"
        )

    def _record_failure(
        self, reference: ListingReference, category: ErrorCategory, exception: Exception
    ) -> None:
        self.error_tracker.record_error(
            component="detail_fetcher",
            category=category,
            severity=ErrorSeverity.LOW,
            message=f"Skipped {reference.display_name}: {exception}",
            exception=exception,
            context={"link": reference.link},
        )

    def _enrich(self, record: Union[CatalogRecord, ArchiveRecord]) -> None:
        """Fill the origin display name from the lookup when the page lacks it."""
        if self.origin_lookup is None or record.origin_group_name:
            return

        if isinstance(record, CatalogRecord):
            origin_group_id = record.origin_group_id
        else:
            origin_group_id, _ = split_natural_code(record.code)

        if origin_group_id:
            record.origin_group_name = self.origin_lookup.resolve(origin_group_id)
