"""
Recently-added flag expiry for the live catalog.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..interfaces import IPersistenceGateway

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_DAYS = 3


class FreshnessTracker:
    """Clears the recently-added flag once a record is past the window."""

    def __init__(
        self, gateway: IPersistenceGateway, freshness_days: int = DEFAULT_FRESHNESS_DAYS
    ):
        self.gateway = gateway
        self.window = timedelta(days=freshness_days)

    def cutoff(self, now: Optional[datetime] = None) -> datetime:
        return (now or datetime.now(timezone.utc)) - self.window

    def run(self, now: Optional[datetime] = None) -> int:
        """Expire stale flags and return how many records changed."""
        cutoff = self.cutoff(now)
        expired = self.gateway.expire_recent(cutoff)
        logger.info(f"Cleared recently-added flag on {expired} records older than {cutoff}")
        return expired
