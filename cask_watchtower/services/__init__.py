"""
Service layer for the Cask Watchtower system.

This module contains configuration loading, the SQLite persistence gateway
and the origin code lookup.
"""

from .config_manager import ConfigurationManager
from .origin_lookup import OriginLookup
from .persistence import SQLitePersistenceGateway

__all__ = [
    "ConfigurationManager",
    "OriginLookup",
    "SQLitePersistenceGateway",
]
