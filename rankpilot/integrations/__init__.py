"""
External integrations beyond DataForSEO.

Google Search Console: OAuth2 flow and search analytics.
"""

from .gsc import GSCClient, GSCError, GSCTokens, parse_analytics_row

__all__ = [
    "GSCClient",
    "GSCError",
    "GSCTokens",
    "parse_analytics_row",
]
