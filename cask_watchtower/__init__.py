"""
Cask Watchtower

Mirrors the Scotch Malt Whisky Society live and archive catalogs into a
local database, tracks what is new, available or gone, and sends Discord
direct messages when a new cask matches a member's alert.
"""

__version__ = "0.1.0"
__author__ = "Cask Watchtower Team"
