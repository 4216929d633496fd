"""
RankPilot SEO Manager

A multi-tenant SEO workspace that:
1. Tracks projects, keywords, rankings and backlinks
2. Finds keyword gaps against competitors (DataForSEO)
3. Prospects link-building targets and hands campaigns to n8n
4. Syncs Google Search Console performance data
5. Answers questions about the data through a Claude chat assistant
"""

__version__ = "0.1.0"
