"""
Core components for the Cask Watchtower system.

This module contains the components that crawl the catalog, reconcile it
against the mirror, match alerts and dispatch messages.
"""

from .alert_command_processor import AlertCommandProcessor
from .alert_formatter import AlertFormatter
from .alert_matcher import AlertMatcher
from .browser_session import BrowserSession, NavigationError
from .detail_fetcher import DetailFetcher
from .freshness_tracker import FreshnessTracker
from .listing_collector import ListingCollector
from .message_dispatcher import DiscordDirectMessageDispatcher
from .reconciler import Reconciler, classify

__all__ = [
    "AlertCommandProcessor",
    "AlertFormatter",
    "AlertMatcher",
    "BrowserSession",
    "NavigationError",
    "DetailFetcher",
    "FreshnessTracker",
    "ListingCollector",
    "DiscordDirectMessageDispatcher",
    "Reconciler",
    "classify",
]
