"""
Catalog data models for the Cask Watchtower system.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import urlparse

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?\d+(?:[.,]\d+)?)")
_CODE_TOKEN = re.compile(r"^[A-Za-z0-9]+$")
_SEQUENCE = re.compile(r"^\d+$")


def parse_optional_int(value: Optional[object]) -> Optional[int]:
    """
    Parse the leading integer of a value, or return None.

    "18 years" -> 18, "18" -> 18, "unknown" -> None, None -> None.
    Never raises.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value

    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1))


def parse_optional_float(value: Optional[object]) -> Optional[float]:
    """
    Parse the leading decimal number of a value, or return None.

    "58.9%" -> 58.9, "61,2% ABV" -> 61.2, "n/a" -> None. Never raises.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    match = _LEADING_FLOAT.match(str(value))
    if not match:
        return None
    return float(match.group(1).replace(",", "."))


def split_natural_code(code: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a natural code on its first "." into (origin_group_id, sequence_no).

    Numeric origin tokens are normalised ("059" -> "59"); alphanumeric
    tokens such as "B1" or "G14" are kept as-is. Returns (None, None) when
    the code does not have the <token>.<digits> shape.
    """
    token, sep, sequence = (code or "").strip().partition(".")
    token = token.strip()
    sequence = sequence.strip()

    if not sep or not _CODE_TOKEN.match(token) or not _SEQUENCE.match(sequence):
        return None, None

    if token.isdigit():
        token = str(int(token))
    return token, sequence


class CycleKind(Enum):
    """Which catalog a cycle mirrors."""

    LIVE = "live"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class ListingReference:
    """Lightweight listing card scraped from a catalog page."""

    display_name: str
    link: str


@dataclass(frozen=True)
class MirrorEntry:
    """Minimal projection of a persisted record used for reconciliation."""

    display_name: str
    source_url: Optional[str] = None


@dataclass
class CatalogRecord:
    """A live catalog item as parsed from its detail page and persisted."""

    natural_code: str
    display_name: str
    source_url: str
    origin_group_id: Optional[str] = None
    sequence_no: Optional[str] = None
    price_text: Optional[str] = None
    strength: Optional[str] = None
    age_years: Optional[str] = None
    cask_type: Optional[str] = None
    flavour_profile: Optional[str] = None
    origin_group_name: Optional[str] = None
    region_name: Optional[str] = None
    available: bool = True
    is_recently_added: bool = False
    recent_since: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def age_value(self) -> Optional[int]:
        return parse_optional_int(self.age_years)

    def validate(self) -> bool:
        """Validate the record before it is written."""
        if not self.natural_code or not self.natural_code.strip():
            raise ValueError("Natural code cannot be empty")

        if not self.display_name or not self.display_name.strip():
            raise ValueError("Display name cannot be empty")

        if len(self.display_name) > 255:
            raise ValueError("Display name too long (max 255 characters)")

        parsed_url = urlparse(self.source_url or "")
        if not parsed_url.scheme or not parsed_url.netloc:
            raise ValueError(f"Invalid URL format: {self.source_url}")

        if self.is_recently_added and self.recent_since is None:
            raise ValueError("recent_since is required while is_recently_added is set")

        return True


@dataclass
class ArchiveRecord:
    """A past bottling from the archive catalog."""

    code: str
    display_name: str
    source_url: str
    price_text: Optional[str] = None
    description: Optional[str] = None
    strength: Optional[str] = None
    age_years: Optional[str] = None
    cask_type: Optional[str] = None
    origin_group_name: Optional[str] = None
    region_name: Optional[str] = None
    bottle_size: str = "700ml"
    is_recently_added: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def validate(self) -> bool:
        """Validate the archive record before it is written."""
        if not self.code or not self.code.strip():
            raise ValueError("Archive code cannot be empty")

        if not self.display_name or not self.display_name.strip():
            raise ValueError("Display name cannot be empty")

        parsed_url = urlparse(self.source_url or "")
        if not parsed_url.scheme or not parsed_url.netloc:
            raise ValueError(f"Invalid URL format: {self.source_url}")

        return True
