"""
On-page SEO analysis.

Usage:
    from rankpilot.pages import PageAnalyzer

    async with PageAnalyzer() as analyzer:
        analysis = await analyzer.analyze("https://example.com", target_keyword="seo tools")
        print(analysis.issues)
"""

from .analyzer import (
    PageAnalyzer,
    PageAnalysis,
    PageFetchError,
    PageImage,
    PageLink,
    KeywordAnalysis,
    parse_page,
    count_keyword,
)
from .audits import save_page_audit, list_page_audits

__all__ = [
    "PageAnalyzer",
    "PageAnalysis",
    "PageFetchError",
    "PageImage",
    "PageLink",
    "KeywordAnalysis",
    "parse_page",
    "count_keyword",
    "save_page_audit",
    "list_page_audits",
]
