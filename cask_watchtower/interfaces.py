"""
Protocol interfaces for the Cask Watchtower system.

This module defines the protocol interfaces that establish system
boundaries between the crawling core and its collaborators (browser,
persistence, messaging), enabling dependency injection throughout the
application.
"""

from datetime import datetime
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
)

from .models.alert import AlertDefinition, AlertKind
from .models.catalog import (
    ArchiveRecord,
    CatalogRecord,
    CycleKind,
    MirrorEntry,
)
from .models.cycle import UpsertOutcome
from .models.delivery import DeliveryResult


class IPageNavigator(Protocol):
    """Protocol for a browser tab that can load pages and return their HTML."""

    async def fetch_html(
        self, url: str, wait_for: str, timeout: float, settle_delay: float = 0.0
    ) -> str:
        """Navigate to url, wait for a selector and return the page HTML.

        Raises NavigationError on timeouts or a missing selector.
        """
        ...

    @property
    def current_url(self) -> str:
        """URL of the page currently loaded."""
        ...


class IOriginLookup(Protocol):
    """Protocol for resolving origin codes to display names."""

    def resolve(self, origin_group_id: str) -> Optional[str]:
        """Return the origin display name for a code, if known."""
        ...


class IPersistenceGateway(Protocol):
    """Protocol for the persisted mirror and alert definitions."""

    def fetch_mirror_entries(self, kind: CycleKind) -> List[MirrorEntry]:
        """Fetch the (display_name, source_url) projection of a mirror."""
        ...

    def fetch_alerts(self) -> List[AlertDefinition]:
        """Fetch all alert definitions."""
        ...

    def upsert_record(self, record: CatalogRecord) -> UpsertOutcome:
        """Insert or refresh a live record keyed by natural code."""
        ...

    def upsert_archive_record(self, record: ArchiveRecord) -> UpsertOutcome:
        """Insert or refresh an archive record keyed by code."""
        ...

    def set_availability(self, display_names: Iterable[str], available: bool) -> int:
        """Bulk update availability for live records with these names."""
        ...

    def expire_recent(self, older_than: datetime) -> int:
        """Clear the recently-added flag where recent_since < older_than."""
        ...

    def fetch_available_records(self) -> List[CatalogRecord]:
        """Fetch all live records currently available."""
        ...

    def fetch_live_records(self) -> List[CatalogRecord]:
        """Fetch all live records, newest first."""
        ...

    def add_alert(self, alert: AlertDefinition) -> Optional[AlertDefinition]:
        """Store an alert; None when an identical one already exists."""
        ...

    def find_alert(
        self, owner_user_id: str, scope_id: str, kind: AlertKind, value: str
    ) -> Optional[AlertDefinition]:
        """Look up an alert by its unique tuple."""
        ...

    def list_alerts(self, owner_user_id: str, scope_id: str) -> List[AlertDefinition]:
        """List a user's alerts, newest first."""
        ...

    def remove_alert(self, alert_id: int, owner_user_id: str, scope_id: str) -> bool:
        """Remove one of the user's own alerts."""
        ...


class INotificationChannel(Protocol):
    """Protocol for delivering private alert messages."""

    def deliver_private_message(
        self, recipient_id: str, scope_id: str, payload: Dict[str, Any]
    ) -> DeliveryResult:
        """Deliver a structured payload to one user."""
        ...

    def test_connection(self) -> bool:
        """Test connection to the messaging platform."""
        ...

