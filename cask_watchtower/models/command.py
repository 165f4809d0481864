"""
Alert command models.
"""

from dataclasses import dataclass, field
from typing import List, Optional

VALID_COMMANDS = ["add", "list", "remove", "help"]


@dataclass
class AlertCommand:
    """A parsed alert management command issued by a user."""

    command: str
    user_id: str
    scope_id: str
    args: List[str] = field(default_factory=list)

    def validate(self) -> bool:
        """Validate command structure."""
        return (
            self.command in VALID_COMMANDS
            and isinstance(self.args, list)
            and bool(self.user_id and str(self.user_id).strip())
            and bool(self.scope_id and str(self.scope_id).strip())
        )


@dataclass
class CommandResult:
    """Result of a command execution."""

    success: bool
    message: str
    data: Optional[dict] = None

    def validate(self) -> bool:
        """Validate command result."""
        return (
            isinstance(self.success, bool)
            and isinstance(self.message, str)
            and bool(self.message.strip())
        )
