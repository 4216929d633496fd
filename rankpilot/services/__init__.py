"""
RankPilot Services

Workflows that combine upstream clients with persistence:
- rankings: rank checks and the daily sweep
- backlinks: backlink ingestion
- gsc_sync: Search Console token refresh and analytics ingestion
- keyword_research: keyword gap, gap tracking, hybrid ideas, metric refresh
"""

from .rankings import (
    RankCheckResult,
    check_rank,
    record_ranking,
    get_ranking_history,
    ranking_to_dict,
    run_daily_rank_check,
)
from .backlinks import (
    fetch_and_store_backlinks,
    list_backlinks,
    backlink_to_dict,
)
from .gsc_sync import (
    sync_date_range,
    get_project_token,
    save_token,
    ensure_fresh_token,
    sync_project,
    sync_all_projects,
)
from .keyword_research import (
    NoCompetitorKeywordsError,
    KeywordIdea,
    map_ranked_keyword,
    fetch_competitor_keywords,
    run_keyword_gap,
    track_gap_keyword,
    merge_keyword_sources,
    get_hybrid_keywords,
    refresh_keyword_metrics,
    keyword_to_dict,
)

__all__ = [
    "RankCheckResult",
    "check_rank",
    "record_ranking",
    "get_ranking_history",
    "ranking_to_dict",
    "run_daily_rank_check",
    "fetch_and_store_backlinks",
    "list_backlinks",
    "backlink_to_dict",
    "sync_date_range",
    "get_project_token",
    "save_token",
    "ensure_fresh_token",
    "sync_project",
    "sync_all_projects",
    "NoCompetitorKeywordsError",
    "KeywordIdea",
    "map_ranked_keyword",
    "fetch_competitor_keywords",
    "run_keyword_gap",
    "track_gap_keyword",
    "merge_keyword_sources",
    "get_hybrid_keywords",
    "refresh_keyword_metrics",
    "keyword_to_dict",
]
