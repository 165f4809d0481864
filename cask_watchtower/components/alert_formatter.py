"""
Alert formatting component for the Cask Watchtower system.

This module turns notification directives into Discord message payloads
with rich embeds.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models.alert import NotificationDirective

MATCH_COLOR = 0x00FF00
MAX_FIELD_LENGTH = 1024
MAX_TITLE_LENGTH = 256


def _field(name: str, value: Optional[str], inline: bool = True, default: str = "N/A"):
    text = (value or "").strip() or default
    if len(text) > MAX_FIELD_LENGTH:
        text = text[: MAX_FIELD_LENGTH - 3] + "..."
    return {"name": name, "value": text, "inline": inline}


class AlertFormatter:
    """Formats alert matches for Discord."""

    def format_match(self, directive: NotificationDirective) -> Dict[str, Any]:
        """
        Build the private message payload for one (record, alert) match.

        Args:
            directive: Matching record and the alert it satisfied

        Returns:
            Discord message payload with a single embed
        """
        record = directive.record
        alert = directive.alert

        fields: List[Dict[str, Any]] = [
            _field("🥃 Whisky", record.display_name, inline=False),
            _field("🏭 Distillery", record.origin_group_name, default="Unknown"),
            _field("🌍 Region", record.region_name, default="Unknown"),
            _field("📅 Age", record.age_years),
            _field("💰 Price", record.price_text),
            _field("🔥 ABV", record.strength),
        ]
        if record.cask_type:
            fields.append(_field("🛢️ Cask", record.cask_type))
        if record.flavour_profile:
            fields.append(_field("👃 Profile", record.flavour_profile))
        fields.append(
            _field("🔗 Link", f"[View Product]({record.source_url})", inline=False)
        )

        embed = {
            "title": "🎉 Whisky Alert Match!",
            "description": "A new whisky matching your alert has been found!",
            "url": record.source_url,
            "color": MATCH_COLOR,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "fields": fields,
            "footer": {
                "text": f"Matched your {alert.kind.label.lower()} alert: {alert.value}"
            },
        }
        return {"embeds": [embed]}

    def format_text(self, directive: NotificationDirective) -> str:
        """Plain-text rendering of a match, for console output."""
        record = directive.record
        title = record.display_name
        if len(title) > MAX_TITLE_LENGTH:
            title = title[: MAX_TITLE_LENGTH - 3] + "..."
        return (
            f"{title} ({record.natural_code}) -> user {directive.recipient_id}: "
            f"{directive.alert.describe()}"
        )
