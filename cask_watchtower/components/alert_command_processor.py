"""
Alert command processor for user alert management.

This module processes alert management commands (add, list, remove),
validating and normalising values before they reach the persistence
gateway.
"""

import re
import sqlite3

from ..interfaces import IPersistenceGateway
from ..models.alert import AlertDefinition, AlertKind
from ..models.catalog import parse_optional_int
from ..models.command import AlertCommand, CommandResult
from ..utils.logging import get_logger

logger = get_logger("alert_command_processor")

_WORD_START = re.compile(r"\b\w")


def normalize_alert_value(kind: AlertKind, value: str) -> str:
    """
    Canonicalise an alert value.

    Minimum ages become their integer text ("15 years" -> "15"); origin and
    region names are title-cased ("glen grant" -> "Glen Grant").

    Raises:
        ValueError: If a minimum age is not a non-negative integer
    """
    value = (value or "").strip()
    if not value:
        raise ValueError("Alert value cannot be empty")

    if kind == AlertKind.MIN_AGE:
        age = parse_optional_int(value)
        if age is None or age < 0:
            raise ValueError("Age must be a positive number.")
        return str(age)

    return _WORD_START.sub(lambda m: m.group(0).upper(), value.lower())


class AlertCommandProcessor:
    """Processes alert management commands."""

    def __init__(self, gateway: IPersistenceGateway):
        """
        Initialize alert command processor.

        Args:
            gateway: Persistence gateway holding alert definitions
        """
        self.gateway = gateway

    def process_command(self, command: AlertCommand) -> CommandResult:
        """
        Route command to appropriate handler.

        Args:
            command: Alert command to process

        Returns:
            CommandResult with execution status and message
        """
        if not command.validate():
            return CommandResult(success=False, message="❌ Invalid command format")

        handlers = {
            "add": self.add_alert,
            "list": self.list_alerts,
            "remove": self.remove_alert,
            "help": self.help_command,
        }
        handler = handlers[command.command]

        try:
            result = handler(command)
        except sqlite3.Error as e:
            logger.error(f"Error processing command {command.command}: {e}")
            return CommandResult(
                success=False,
                message=f"❌ Failed to {command.command} alert. Please try again.",
            )

        logger.info(
            f"Command executed: {command.command} by user {command.user_id}, "
            f"success: {result.success}"
        )
        return result

    def add_alert(self, command: AlertCommand) -> CommandResult:
        """Add a new alert: args are <kind> <value...>."""
        if len(command.args) < 2:
            return CommandResult(
                success=False,
                message="❌ **Usage:** `alerts add <distillery|region|age> <value>`\n\n"
                "**Example:** `alerts add distillery Ardbeg`",
            )

        try:
            kind = AlertKind.from_value(command.args[0])
        except ValueError:
            return CommandResult(
                success=False,
                message=f"❌ Unknown alert type: `{command.args[0]}`. "
                "Use distillery, region or age.",
            )

        try:
            value = normalize_alert_value(kind, " ".join(command.args[1:]))
        except ValueError as e:
            return CommandResult(success=False, message=f"❌ {e}")

        if self.gateway.find_alert(command.user_id, command.scope_id, kind, value):
            return CommandResult(
                success=False, message="⚠️ You already have this alert registered."
            )

        alert = AlertDefinition(
            owner_user_id=command.user_id,
            scope_id=command.scope_id,
            kind=kind,
            value=value,
        )
        alert.validate()

        stored = self.gateway.add_alert(alert)
        if stored is None:
            return CommandResult(
                success=False, message="⚠️ You already have this alert registered."
            )

        return CommandResult(
            success=True,
            message=f"✅ Alert added successfully!\n**Type:** {stored.describe()}\n"
            f"**ID:** {stored.id}",
            data={"alert_id": stored.id},
        )

    def list_alerts(self, command: AlertCommand) -> CommandResult:
        """List the user's alerts, newest first."""
        alerts = self.gateway.list_alerts(command.user_id, command.scope_id)
        if not alerts:
            return CommandResult(
                success=True, message="📭 You don't have any active alerts.", data={"alerts": []}
            )

        lines = ["🔔 **Your Active Alerts**", ""]
        lines.extend(f"**ID {alert.id}:** {alert.describe()}" for alert in alerts)
        return CommandResult(
            success=True,
            message="\n".join(lines),
            data={"alerts": [alert.id for alert in alerts]},
        )

    def remove_alert(self, command: AlertCommand) -> CommandResult:
        """Remove one of the user's alerts by id."""
        if not command.args:
            return CommandResult(success=False, message="❌ **Usage:** `alerts remove <id>`")

        try:
            alert_id = int(command.args[0])
        except ValueError:
            return CommandResult(
                success=False, message=f"❌ Invalid alert id: `{command.args[0]}`"
            )

        if not self.gateway.remove_alert(alert_id, command.user_id, command.scope_id):
            return CommandResult(
                success=False,
                message="❌ Alert not found or you don't have permission to remove it.",
            )

        return CommandResult(success=True, message=f"✅ Alert #{alert_id} removed successfully!")

    def help_command(self, command: AlertCommand) -> CommandResult:
        """Show alert command usage."""
        return CommandResult(
            success=True,
            message="🥃 **Whisky Alerts**\n\n"
            "`alerts add distillery <name|code>` - alert on a distillery\n"
            "`alerts add region <name>` - alert on a region\n"
            "`alerts add age <years>` - alert on a minimum age\n"
            "`alerts list` - show your alerts\n"
            "`alerts remove <id>` - remove an alert",
        )
