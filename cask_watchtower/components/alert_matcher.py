"""
Alert matching engine for the Cask Watchtower system.

This module evaluates newly inserted catalog records against every stored
alert definition and delivers one private message per matching pair.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ..interfaces import INotificationChannel
from ..models.alert import AlertDefinition, AlertKind, NotificationDirective
from ..models.catalog import CatalogRecord, parse_optional_int
from ..utils.error_handling import ErrorCategory, ErrorSeverity, get_error_tracker
from .alert_formatter import AlertFormatter

logger = logging.getLogger(__name__)


def _same_text(left, right) -> bool:
    if left is None or right is None:
        return False
    return str(left).strip().lower() == str(right).strip().lower()


def matches(record: CatalogRecord, alert: AlertDefinition) -> bool:
    """
    Check whether a record satisfies one alert predicate.

    - origin: case-insensitive equality with the origin name or origin code
    - region: case-insensitive equality with the region name
    - min_age: record age >= alert value, both parsed as integers; a value
      that does not parse never matches
    """
    if alert.kind == AlertKind.ORIGIN:
        return _same_text(record.origin_group_name, alert.value) or _same_text(
            record.origin_group_id, alert.value
        )

    if alert.kind == AlertKind.REGION:
        return _same_text(record.region_name, alert.value)

    if alert.kind == AlertKind.MIN_AGE:
        age = record.age_value
        minimum = parse_optional_int(alert.value)
        if age is None or minimum is None:
            return False
        return age >= minimum

    return False


@dataclass
class NotificationStats:
    """Delivery counters for one notify pass."""

    sent: int = 0
    failed: int = 0


class AlertMatcher:
    """Matches records to alerts and hands directives to the channel."""

    def __init__(
        self,
        channel: INotificationChannel,
        formatter: Optional[AlertFormatter] = None,
    ):
        """
        Initialize alert matcher.

        Args:
            channel: Private message channel
            formatter: Payload formatter
        """
        self.channel = channel
        self.formatter = formatter or AlertFormatter()
        self.error_tracker = get_error_tracker()

    def match(
        self, records: Iterable[CatalogRecord], alerts: Sequence[AlertDefinition]
    ) -> List[NotificationDirective]:
        """Emit one directive per matching (record, alert) pair, in record order."""
        directives = []
        for record in records:
            for alert in alerts:
                if matches(record, alert):
                    directives.append(NotificationDirective(record=record, alert=alert))
        return directives

    def notify(self, directives: Sequence[NotificationDirective]) -> NotificationStats:
        """
        Deliver each directive independently.

        A failed delivery is logged and counted; it never stops the rest.
        """
        stats = NotificationStats()

        for directive in directives:
            try:
                payload = self.formatter.format_match(directive)
                result = self.channel.deliver_private_message(
                    directive.recipient_id, directive.scope_id, payload
                )
            except Exception as e:
                self._record_failure(directive, str(e), e)
                stats.failed += 1
                continue

            if result.success:
                logger.info(
                    f"Sent alert to user {directive.recipient_id} for "
                    f"{directive.record.display_name}"
                )
                stats.sent += 1
            else:
                self._record_failure(directive, result.error_message or "unknown error")
                stats.failed += 1

        return stats

    def process(
        self, records: Sequence[CatalogRecord], alerts: Sequence[AlertDefinition]
    ) -> NotificationStats:
        """Match records against alerts and deliver the results."""
        if not records or not alerts:
            logger.info(
                f"No alert checks needed ({len(records)} records, {len(alerts)} alerts)"
            )
            return NotificationStats()

        directives = self.match(records, alerts)
        logger.info(
            f"Checked {len(records)} records against {len(alerts)} alerts: "
            f"{len(directives)} matches"
        )
        return self.notify(directives)

    def _record_failure(self, directive: NotificationDirective, message: str, exception=None):
        logger.error(
            f"Failed to send alert to user {directive.recipient_id}: {message}"
        )
        self.error_tracker.record_error(
            component="alert_matcher",
            category=ErrorCategory.NOTIFICATION,
            severity=ErrorSeverity.LOW,
            message=f"Delivery failed for user {directive.recipient_id}: {message}",
            exception=exception,
            context={
                "alert_id": directive.alert.id,
                "natural_code": directive.record.natural_code,
            },
        )
