"""
Data models for the Cask Watchtower system.

This module contains all data classes and type definitions used throughout
the application for representing catalog items, alerts, configuration and
cycle results.
"""

from .alert import AlertDefinition, AlertKind, NotificationDirective
from .catalog import (
    ArchiveRecord,
    CatalogRecord,
    CycleKind,
    ListingReference,
    MirrorEntry,
    parse_optional_float,
    parse_optional_int,
    split_natural_code,
)
from .command import AlertCommand, CommandResult
from .config import (
    BrowserConfig,
    Configuration,
    DatabaseConfig,
    DiscordConfig,
    LoggingConfig,
    ScheduleConfig,
    SourceSiteConfig,
)
from .cycle import CycleSummary, ReconciliationPlan, UpsertOutcome
from .delivery import DeliveryResult

__all__ = [
    "AlertDefinition",
    "AlertKind",
    "NotificationDirective",
    "AlertCommand",
    "CommandResult",
    "ArchiveRecord",
    "CatalogRecord",
    "CycleKind",
    "ListingReference",
    "MirrorEntry",
    "parse_optional_float",
    "parse_optional_int",
    "split_natural_code",
    "BrowserConfig",
    "Configuration",
    "DatabaseConfig",
    "DiscordConfig",
    "LoggingConfig",
    "ScheduleConfig",
    "SourceSiteConfig",
    "CycleSummary",
    "ReconciliationPlan",
    "UpsertOutcome",
    "DeliveryResult",
]
