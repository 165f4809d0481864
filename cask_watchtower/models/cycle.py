"""
Reconciliation and cycle result models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .catalog import CycleKind, ListingReference, MirrorEntry


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UpsertOutcome(Enum):
    """What an upsert did to the mirror."""

    INSERTED = "inserted"
    UPDATED = "updated"


@dataclass
class ReconciliationPlan:
    """
    Classification of one crawl against the persisted mirror.

    The three name sets are disjoint and together cover every display name
    seen in either the crawl or the mirror.
    """

    new: List[ListingReference]
    removed: List[MirrorEntry]
    retained: List[ListingReference]

    @property
    def new_names(self) -> Set[str]:
        return {ref.display_name for ref in self.new}

    @property
    def removed_names(self) -> Set[str]:
        return {entry.display_name for entry in self.removed}

    @property
    def retained_names(self) -> Set[str]:
        return {ref.display_name for ref in self.retained}


@dataclass
class CycleSummary:
    """Outcome of one live or archive cycle."""

    kind: CycleKind
    started_at: datetime = field(default_factory=_utc_now)
    finished_at: Optional[datetime] = None
    discovered: int = 0
    new: int = 0
    removed: int = 0
    retained: int = 0
    fetched: int = 0
    saved: int = 0
    inserted: int = 0
    notifications_sent: int = 0
    notification_failures: int = 0
    expired: int = 0
    success: bool = True
    skipped: bool = False
    errors: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def finish(self) -> "CycleSummary":
        self.finished_at = _utc_now()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "discovered": self.discovered,
            "new": self.new,
            "removed": self.removed,
            "retained": self.retained,
            "fetched": self.fetched,
            "saved": self.saved,
            "inserted": self.inserted,
            "notifications_sent": self.notifications_sent,
            "notification_failures": self.notification_failures,
            "expired": self.expired,
            "success": self.success,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }
