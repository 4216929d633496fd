"""
DataForSEO collection layer.

Usage:
    from rankpilot.collector import DataForSEOClient, DataForSEOError

    async with DataForSEOClient(login, password) as client:
        serp = await client.get_serp_results("seo tools", depth=20)
"""

from .client import DataForSEOClient, DataForSEOError
from .schemas import (
    DataForSEOResponse,
    SerpItem,
    ReferringDomainItem,
    BacklinkItem,
    RankedKeywordItem,
    KeywordMetricsItem,
)

__all__ = [
    "DataForSEOClient",
    "DataForSEOError",
    "DataForSEOResponse",
    "SerpItem",
    "ReferringDomainItem",
    "BacklinkItem",
    "RankedKeywordItem",
    "KeywordMetricsItem",
]
