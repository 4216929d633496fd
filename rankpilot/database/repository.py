"""
Repository Layer - Clean Interface for Data Operations

Provides small functions shared by routes, services and cron jobs:
- Usage metering (api_usage rows)
- Dialect-aware bulk upserts on natural keys
- Tracked keyword creation with case-insensitive identity
- Dashboard count queries
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from rankpilot.scoring.gap import keyword_key

from .models import (
    APIUsage,
    Backlink,
    Competition,
    Competitor,
    Keyword,
    OutreachCampaign,
    Project,
    Ranking,
)

logger = logging.getLogger(__name__)


# =============================================================================
# USAGE METERING
# =============================================================================

def record_api_usage(
    db: Session,
    user_id: UUID,
    api_name: str,
    endpoint: str,
    credits_used: int = 1,
    request_data: Optional[Dict[str, Any]] = None,
    cost: Optional[float] = None,
) -> APIUsage:
    """
    Record credits consumed against an upstream API.

    The row is added and flushed; committing is left to the caller so the
    usage record lands in the same transaction as the data it paid for.
    """
    usage = APIUsage(
        user_id=user_id,
        api_name=api_name,
        endpoint=endpoint,
        credits_used=credits_used,
        cost=cost,
        request_data=request_data,
    )
    db.add(usage)
    db.flush()
    logger.debug(f"Recorded {credits_used} {api_name} credits for {endpoint}")
    return usage


def get_credits_used(db: Session, user_id: UUID, days: int = 30) -> int:
    """Total credits a user consumed over the last N days."""
    since = datetime.utcnow() - timedelta(days=days)
    total = (
        db.query(func.coalesce(func.sum(APIUsage.credits_used), 0))
        .filter(APIUsage.user_id == user_id, APIUsage.created_at >= since)
        .scalar()
    )
    return int(total or 0)


# =============================================================================
# UPSERTS
# =============================================================================

def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")
    return insert


def upsert_rows(
    db: Session,
    model,
    rows: Sequence[Dict[str, Any]],
    conflict_columns: Sequence[str],
    update_columns: Optional[Sequence[str]] = None,
) -> int:
    """
    INSERT ... ON CONFLICT DO UPDATE for a batch of rows.

    Args:
        db: Database session
        model: Mapped class (its table must have a unique constraint on
            conflict_columns)
        rows: Column dicts; every row must carry the same keys
        conflict_columns: Natural key columns
        update_columns: Columns overwritten on conflict (default: every
            supplied column that is not part of the key or the primary key)

    Returns:
        Number of rows submitted
    """
    if not rows:
        return 0

    insert = _dialect_insert(db)
    stmt = insert(model).values(list(rows))

    if update_columns is None:
        update_columns = [
            column for column in rows[0]
            if column not in conflict_columns and column != "id"
        ]

    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )
    db.execute(stmt)
    return len(rows)


def upsert_in_batches(
    db: Session,
    model,
    rows: Sequence[Dict[str, Any]],
    conflict_columns: Sequence[str],
    batch_size: int = 1000,
) -> int:
    """Upsert rows in chunks, committing after each chunk."""
    total = 0
    for i in range(0, len(rows), batch_size):
        batch = rows[i:i + batch_size]
        total += upsert_rows(db, model, batch, conflict_columns)
        db.commit()
        logger.debug(f"Upserted batch of {len(batch)} {model.__tablename__} rows")
    return total


# =============================================================================
# KEYWORDS
# =============================================================================

def normalize_keyword(keyword: str) -> str:
    """Stored identity: the trimmed text under the gap engine's matching rule."""
    return keyword_key(keyword.strip())


def parse_competition(value: Optional[str]) -> Optional[Competition]:
    """Map DataForSEO competition strings ("LOW", "medium") to the enum."""
    if not value:
        return None
    try:
        return Competition(str(value).lower())
    except ValueError:
        return None


def get_keyword_by_text(db: Session, project_id: UUID, keyword: str) -> Optional[Keyword]:
    return (
        db.query(Keyword)
        .filter(
            Keyword.project_id == project_id,
            Keyword.keyword_normalized == normalize_keyword(keyword),
        )
        .first()
    )


def get_or_create_keyword(
    db: Session,
    project_id: UUID,
    keyword: str,
    **metrics,
) -> tuple[Keyword, bool]:
    """
    Return the tracked keyword, creating it when absent.

    Identity is case-insensitive, so "SEO Tools" and "seo tools" resolve
    to the same row; inner whitespace still counts. Metrics are only applied on creation.

    Returns:
        (keyword, created)
    """
    existing = get_keyword_by_text(db, project_id, keyword)
    if existing:
        return existing, False

    record = Keyword(
        project_id=project_id,
        keyword=keyword.strip(),
        keyword_normalized=normalize_keyword(keyword),
        **metrics,
    )
    db.add(record)
    db.flush()
    return record, True


def get_project_keyword_set(db: Session, project_id: UUID) -> set:
    """Lower-cased tracked keyword texts for a project."""
    rows = db.query(Keyword.keyword_normalized).filter(Keyword.project_id == project_id).all()
    return {row[0] for row in rows}


# =============================================================================
# RANKINGS
# =============================================================================

def get_latest_rankings(db: Session, keyword_ids: List[UUID]) -> Dict[UUID, Ranking]:
    """Most recent ranking per keyword."""
    if not keyword_ids:
        return {}

    rankings = (
        db.query(Ranking)
        .filter(Ranking.keyword_id.in_(keyword_ids))
        .order_by(Ranking.checked_at.desc())
        .all()
    )

    latest: Dict[UUID, Ranking] = {}
    for ranking in rankings:
        latest.setdefault(ranking.keyword_id, ranking)
    return latest


def summarize_positions(rankings: List[Ranking]) -> Dict[str, Any]:
    """Average position and top-3 / top-10 counts for a set of rankings."""
    if not rankings:
        return {"average_position": 0, "top_3": 0, "top_10": 0}

    positions = [r.rank_position for r in rankings]
    return {
        "average_position": round(sum(positions) / len(positions), 1),
        "top_3": len([p for p in positions if p <= 3]),
        "top_10": len([p for p in positions if p <= 10]),
    }


# =============================================================================
# DASHBOARD
# =============================================================================

def get_user_project_ids(db: Session, user_id: UUID) -> List[UUID]:
    return [row[0] for row in db.query(Project.id).filter(Project.user_id == user_id).all()]


def get_dashboard_counts(db: Session, user_id: UUID) -> Dict[str, int]:
    """Headline counts for the user's dashboard."""
    project_ids = get_user_project_ids(db, user_id)

    if project_ids:
        keywords = db.query(func.count(Keyword.id)).filter(Keyword.project_id.in_(project_ids)).scalar()
        competitors = db.query(func.count(Competitor.id)).filter(Competitor.project_id.in_(project_ids)).scalar()
        backlinks = (
            db.query(func.count(Backlink.id))
            .filter(Backlink.project_id.in_(project_ids), Backlink.is_lost.is_(False))
            .scalar()
        )
        campaigns = (
            db.query(func.count(OutreachCampaign.id))
            .filter(OutreachCampaign.project_id.in_(project_ids))
            .scalar()
        )
    else:
        keywords = competitors = backlinks = campaigns = 0

    return {
        "projects": len(project_ids),
        "keywords": keywords or 0,
        "competitors": competitors or 0,
        "backlinks": backlinks or 0,
        "campaigns": campaigns or 0,
        "credits_used_30d": get_credits_used(db, user_id, days=30),
    }


def get_project_counts(db: Session, project_id: UUID) -> Dict[str, Any]:
    """Per-project counts plus latest-position summary."""
    keyword_ids = [row[0] for row in db.query(Keyword.id).filter(Keyword.project_id == project_id).all()]
    latest = get_latest_rankings(db, keyword_ids)

    return {
        "keywords": len(keyword_ids),
        "ranked_keywords": len(latest),
        "competitors": db.query(func.count(Competitor.id)).filter(Competitor.project_id == project_id).scalar() or 0,
        "backlinks": (
            db.query(func.count(Backlink.id))
            .filter(Backlink.project_id == project_id, Backlink.is_lost.is_(False))
            .scalar() or 0
        ),
        **summarize_positions(list(latest.values())),
    }
