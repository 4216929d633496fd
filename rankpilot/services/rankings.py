"""
Rank Tracking Service

Checks where a domain ranks for a keyword and records the observation:
1. Single on-demand check (POST /api/rankings/check)
2. Daily sweep over every project keyword (cron)

A keyword the domain does not rank for in the top 100 produces no
Ranking row; rankings only record observed positions.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from rankpilot.collector.client import DataForSEOClient
from rankpilot.database.models import Keyword, Project, Ranking
from rankpilot.utils.domain_filter import normalize_domain, url_contains_domain

logger = logging.getLogger(__name__)

SERP_DEPTH = 100


@dataclass
class RankCheckResult:
    keyword: str
    domain: str
    position: Optional[int] = None
    rank_url: Optional[str] = None
    total_results: int = 0

    @property
    def found(self) -> bool:
        return self.position is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "domain": self.domain,
            "position": self.position,
            "rankUrl": self.rank_url,
            "totalResults": self.total_results,
        }


async def check_rank(
    client: DataForSEOClient,
    keyword: str,
    domain: str,
    location_code: int = 2840,
    language_code: str = "en",
    device: str = "desktop",
) -> RankCheckResult:
    """
    First SERP element whose URL contains the domain wins.

    Raises:
        DataForSEOError: SERP request failed
    """
    cleaned = normalize_domain(domain)
    items = await client.get_serp_results(
        keyword,
        location_code=location_code,
        language_code=language_code,
        device=device,
        depth=SERP_DEPTH,
    )

    result = RankCheckResult(keyword=keyword, domain=cleaned, total_results=len(items))
    for item in items:
        if url_contains_domain(item.url, cleaned):
            result.position = item.rank_absolute
            result.rank_url = item.url
            break

    logger.debug(f"Rank check '{keyword}' for {cleaned}: {result.position}")
    return result


def record_ranking(
    db: Session,
    keyword: Keyword,
    result: RankCheckResult,
    location_code: int = 2840,
    language_code: str = "en",
    device: str = "desktop",
) -> Optional[Ranking]:
    """Insert a Ranking row for a found position. Flushes; caller commits."""
    if not result.found:
        return None

    ranking = Ranking(
        keyword_id=keyword.id,
        project_id=keyword.project_id,
        rank_position=result.position,
        rank_url=result.rank_url,
        rank_absolute=result.position,
        search_engine="google",
        device=device,
        location_code=location_code,
        language_code=language_code,
    )
    db.add(ranking)
    db.flush()
    return ranking


def get_ranking_history(db: Session, keyword_id: UUID, days: int = 30) -> List[Ranking]:
    """Rankings for a keyword over the last N days, oldest first."""
    since = datetime.utcnow() - timedelta(days=days)
    return (
        db.query(Ranking)
        .filter(Ranking.keyword_id == keyword_id, Ranking.checked_at >= since)
        .order_by(Ranking.checked_at.asc())
        .all()
    )


def ranking_to_dict(ranking: Ranking) -> Dict[str, Any]:
    return {
        "id": str(ranking.id),
        "keyword_id": str(ranking.keyword_id),
        "rank_position": ranking.rank_position,
        "rank_url": ranking.rank_url,
        "device": ranking.device,
        "location_code": ranking.location_code,
        "checked_at": ranking.checked_at.isoformat() if ranking.checked_at else None,
    }


async def run_daily_rank_check(
    db: Session,
    client: DataForSEOClient,
    delay_seconds: float = 1.0,
) -> Dict[str, Any]:
    """
    Check every keyword of every project, sequentially.

    Each keyword is committed on its own so a later failure never loses
    earlier observations. Per-keyword errors are counted and skipped.

    Returns:
        {"success", "totalChecked", "totalErrors", "timestamp"}
    """
    logger.info("Starting daily rank check...")

    total_checked = 0
    total_errors = 0

    projects = db.query(Project).all()
    for project in projects:
        keywords = db.query(Keyword).filter(Keyword.project_id == project.id).all()
        if not keywords:
            continue

        location_code = project.location_code or 2840
        language_code = project.language_code or "en"

        for keyword in keywords:
            try:
                result = await check_rank(
                    client,
                    keyword.keyword,
                    project.domain,
                    location_code=location_code,
                    language_code=language_code,
                )
                if record_ranking(db, keyword, result, location_code, language_code):
                    db.commit()
                    total_checked += 1
            except Exception as e:
                db.rollback()
                logger.error(f"Error checking keyword '{keyword.keyword}': {e}")
                total_errors += 1

            if delay_seconds:
                await asyncio.sleep(delay_seconds)

    logger.info(f"Daily rank check complete: {total_checked} checked, {total_errors} errors")

    return {
        "success": True,
        "totalChecked": total_checked,
        "totalErrors": total_errors,
        "timestamp": datetime.utcnow().isoformat(),
    }
