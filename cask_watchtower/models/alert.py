"""
Alert definition and notification models.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .catalog import CatalogRecord


class AlertKind(Enum):
    """Predicate kinds a user can subscribe to."""

    ORIGIN = "origin"
    REGION = "region"
    MIN_AGE = "min_age"

    @classmethod
    def from_value(cls, value: str) -> "AlertKind":
        """Resolve a kind from its stored value, accepting a few aliases."""
        aliases = {
            "distillery": cls.ORIGIN,
            "age": cls.MIN_AGE,
            "minage": cls.MIN_AGE,
            "min-age": cls.MIN_AGE,
        }
        normalized = (value or "").strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)

    @property
    def label(self) -> str:
        return {
            AlertKind.ORIGIN: "Distillery",
            AlertKind.REGION: "Region",
            AlertKind.MIN_AGE: "Minimum age",
        }[self]


@dataclass
class AlertDefinition:
    """A user-owned predicate that triggers a notification on match."""

    owner_user_id: str
    scope_id: str
    kind: AlertKind
    value: str
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def validate(self) -> bool:
        """Validate alert definition data."""
        if not self.owner_user_id or not str(self.owner_user_id).strip():
            raise ValueError("owner_user_id cannot be empty")

        if not self.scope_id or not str(self.scope_id).strip():
            raise ValueError("scope_id cannot be empty")

        if not isinstance(self.kind, AlertKind):
            raise ValueError("kind must be an AlertKind enum")

        if not self.value or not self.value.strip():
            raise ValueError("value cannot be empty")

        if len(self.value) > 255:
            raise ValueError("value too long (max 255 characters)")

        return True

    def describe(self) -> str:
        if self.kind == AlertKind.MIN_AGE:
            return f"Age over {self.value} years"
        return f"{self.kind.label}: {self.value}"


@dataclass(frozen=True)
class NotificationDirective:
    """One matching (record, alert) pair awaiting delivery."""

    record: CatalogRecord
    alert: AlertDefinition

    @property
    def recipient_id(self) -> str:
        return self.alert.owner_user_id

    @property
    def scope_id(self) -> str:
        return self.alert.scope_id
