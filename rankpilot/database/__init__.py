"""
RankPilot Database Layer

Usage:
    from rankpilot.database import (
        # Session management
        init_db, get_db,

        # Models
        Project, Keyword, Ranking, OutreachCampaign,

        # Repository helpers
        record_api_usage, upsert_rows, get_or_create_keyword,
    )
"""

from .models import (
    Base,
    JSONType,
    # Enums
    CampaignStatus,
    TargetStatus,
    OutreachAngle,
    LinkType,
    ChatRole,
    Competition,
    # Tables
    Project,
    Competitor,
    Keyword,
    Ranking,
    Backlink,
    GSCToken,
    GSCData,
    APIUsage,
    OutreachCampaign,
    OutreachTargetRecord,
    OutreachTemplate,
    ChatMessage,
    PageAudit,
)

from .session import (
    build_engine,
    enable_sqlite_foreign_keys,
    get_engine,
    get_session_factory,
    get_db,
    init_db,
    check_db_connection,
    get_db_info,
)

from .repository import (
    record_api_usage,
    get_credits_used,
    upsert_rows,
    upsert_in_batches,
    normalize_keyword,
    parse_competition,
    get_keyword_by_text,
    get_or_create_keyword,
    get_project_keyword_set,
    get_latest_rankings,
    summarize_positions,
    get_dashboard_counts,
    get_project_counts,
)

__all__ = [
    "Base",
    "JSONType",
    "CampaignStatus",
    "TargetStatus",
    "OutreachAngle",
    "LinkType",
    "ChatRole",
    "Competition",
    "Project",
    "Competitor",
    "Keyword",
    "Ranking",
    "Backlink",
    "GSCToken",
    "GSCData",
    "APIUsage",
    "OutreachCampaign",
    "OutreachTargetRecord",
    "OutreachTemplate",
    "ChatMessage",
    "PageAudit",
    "build_engine",
    "enable_sqlite_foreign_keys",
    "get_engine",
    "get_session_factory",
    "get_db",
    "init_db",
    "check_db_connection",
    "get_db_info",
    "record_api_usage",
    "get_credits_used",
    "upsert_rows",
    "upsert_in_batches",
    "normalize_keyword",
    "parse_competition",
    "get_keyword_by_text",
    "get_or_create_keyword",
    "get_project_keyword_set",
    "get_latest_rankings",
    "summarize_positions",
    "get_dashboard_counts",
    "get_project_counts",
]
