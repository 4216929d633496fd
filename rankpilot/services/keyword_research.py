"""
Keyword Research Service

Glue between DataForSEO keyword endpoints, the gap engine and the
keywords table:

1. Keyword gap against a competitor domain
2. "Track" a gap keyword (idempotent on the normalized text)
3. Hybrid keyword ideas merged from several sources
4. Metric refresh for a project's tracked keywords
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from rankpilot.collector.client import DataForSEOClient
from rankpilot.collector.schemas import KeywordMetricsItem, RankedKeywordItem
from rankpilot.database.models import Keyword, Project
from rankpilot.database.repository import get_or_create_keyword, get_project_keyword_set, parse_competition
from rankpilot.scoring.gap import CompetitorKeywordRecord, compute_keyword_gap
from rankpilot.utils.domain_filter import normalize_domain

logger = logging.getLogger(__name__)

MAX_GAP_LIMIT = 100

SOURCE_SEO = "seo"
SOURCE_ADS = "ads"
SOURCE_RELATED = "related"


class NoCompetitorKeywordsError(Exception):
    """The competitor domain has no ranked keywords in the requested market."""
    pass


# =============================================================================
# KEYWORD GAP
# =============================================================================

def map_ranked_keyword(item: RankedKeywordItem) -> CompetitorKeywordRecord:
    """DataForSEO ranked_keywords row -> CompetitorKeywordRecord."""
    data = item.keyword_data
    info = data.keyword_info
    serp_item = item.ranked_serp_element.serp_item

    return CompetitorKeywordRecord(
        keyword=data.keyword,
        position=serp_item.rank_absolute,
        search_volume=info.search_volume or 0,
        competition=info.competition_level.lower() if info.competition_level else None,
        cpc=info.cpc or 0.0,
        keyword_difficulty=data.keyword_properties.keyword_difficulty,
        url=serp_item.url,
        title=serp_item.title,
        etv=serp_item.etv or 0.0,
    )


async def fetch_competitor_keywords(
    client: DataForSEOClient,
    competitor_domain: str,
    location_code: int = 2840,
    language_code: str = "en",
    limit: int = 20,
) -> List[CompetitorKeywordRecord]:
    """Competitor's ranked keywords, highest search volume first."""
    items = await client.get_ranked_keywords(
        competitor_domain,
        location_code=location_code,
        language_code=language_code,
        limit=min(limit, MAX_GAP_LIMIT),
        order_by=["keyword_data.keyword_info.search_volume,desc"],
    )
    return [map_ranked_keyword(item) for item in items if item.keyword_data.keyword]


async def run_keyword_gap(
    db: Session,
    client: DataForSEOClient,
    project: Project,
    competitor_domain: str,
    location_code: int = 2840,
    limit: int = 20,
) -> Dict[str, Any]:
    """
    Compare a project's tracked keywords against a competitor's rankings.

    Raises:
        NoCompetitorKeywordsError: The competitor has no ranked keywords
        DataForSEOError: Upstream request failed
    """
    clean_domain = normalize_domain(competitor_domain)
    logger.info(f"Starting keyword gap analysis for project {project.id} vs {clean_domain}")

    user_keywords = get_project_keyword_set(db, project.id)
    logger.info(f"Found {len(user_keywords)} keywords in database")

    competitor_keywords = await fetch_competitor_keywords(
        client,
        clean_domain,
        location_code=location_code,
        language_code=project.language_code or "en",
        limit=limit,
    )
    if not competitor_keywords:
        raise NoCompetitorKeywordsError(f"No keywords found for competitor domain {clean_domain}")

    result = compute_keyword_gap(user_keywords, competitor_keywords)
    logger.info(f"Gap analysis complete: {result.gaps_count} gaps, {result.overlaps_count} overlaps")

    return {
        "competitor_domain": clean_domain,
        "your_keywords_count": len(user_keywords),
        "competitor_keywords_count": len(competitor_keywords),
        "gaps_count": result.gaps_count,
        "overlaps_count": result.overlaps_count,
        "gaps": [record.to_dict() for record in result.gaps],
        "overlaps": [record.to_dict() for record in result.overlaps],
        "timestamp": datetime.utcnow().isoformat(),
    }


def track_gap_keyword(db: Session, project: Project, record: CompetitorKeywordRecord) -> Tuple[Keyword, bool]:
    """
    Start tracking a gap keyword with the metrics it was discovered with.

    Tracking the same keyword twice (any casing) returns the existing row.
    """
    keyword, created = get_or_create_keyword(
        db,
        project.id,
        record.keyword,
        search_volume=record.search_volume or 0,
        keyword_difficulty=record.keyword_difficulty,
        cpc=record.cpc or 0.0,
        competition=parse_competition(record.competition),
        metrics_updated_at=datetime.utcnow(),
    )
    db.commit()

    if created:
        logger.info(f"Tracking gap keyword '{record.keyword}' for project {project.id}")
    return keyword, created


# =============================================================================
# HYBRID IDEAS
# =============================================================================

@dataclass
class KeywordIdea:
    keyword: str
    search_volume: int = 0
    competition: Optional[str] = None
    cpc: float = 0.0
    keyword_difficulty: Optional[int] = None
    monthly_searches: List[Dict[str, Any]] = field(default_factory=list)
    source: str = SOURCE_SEO
    sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "search_volume": self.search_volume,
            "competition": self.competition or "N/A",
            "cpc": self.cpc,
            "keyword_difficulty": self.keyword_difficulty,
            "monthly_searches": self.monthly_searches,
            "source": self.source,
            "sources": list(self.sources),
        }


def merge_keyword_sources(
    batches: List[Tuple[str, List[KeywordMetricsItem]]],
    limit: int = 100,
) -> List[KeywordIdea]:
    """
    Merge keyword lists from several sources, case-insensitively.

    The first source to report a keyword fixes its display text; later
    sources can only raise search volume and CPC, and are appended to
    `sources`. First-seen order is kept.
    """
    merged: Dict[str, KeywordIdea] = {}

    for source, items in batches:
        for item in items:
            text = item.text
            if not text:
                continue
            key = text.lower()

            existing = merged.get(key)
            if existing is None:
                merged[key] = KeywordIdea(
                    keyword=text,
                    search_volume=item.volume,
                    competition=item.competition_label,
                    cpc=item.cost_per_click,
                    keyword_difficulty=item.difficulty,
                    monthly_searches=item.monthly,
                    source=source,
                    sources=[source],
                )
                continue

            existing.sources.append(source)
            if item.volume > existing.search_volume:
                existing.search_volume = item.volume
            if item.cost_per_click > existing.cpc:
                existing.cpc = item.cost_per_click
            if existing.keyword_difficulty is None and item.difficulty is not None:
                existing.keyword_difficulty = item.difficulty

    return list(merged.values())[:limit]


async def get_hybrid_keywords(
    client: DataForSEOClient,
    keyword: str,
    include_seo: bool = True,
    include_ads: bool = False,
    include_related: bool = True,
    location_code: int = 2840,
    language_code: str = "en",
    limit: int = 100,
) -> Tuple[List[KeywordIdea], int]:
    """
    Fetch the selected sources concurrently and merge them.

    A failing source is logged and contributes nothing.

    Returns:
        (ideas, credits_used) where credits is one per requested source
    """
    calls = []
    if include_seo:
        calls.append((SOURCE_SEO, client.get_similar_keywords(keyword, location_code, language_code, limit=limit)))
    if include_ads:
        calls.append((SOURCE_ADS, client.get_keyword_ideas(keyword, location_code, language_code)))
    if include_related:
        calls.append((SOURCE_RELATED, client.get_related_keywords(keyword, location_code, language_code, depth=1, limit=limit)))

    results = await asyncio.gather(*(call for _, call in calls), return_exceptions=True)

    batches = []
    for (source, _), result in zip(calls, results):
        if isinstance(result, BaseException):
            logger.warning(f"{source} keywords error for '{keyword}': {result}")
            continue
        batches.append((source, result))

    ideas = merge_keyword_sources(batches, limit=limit)
    logger.info(f"Found {len(ideas)} hybrid keywords for '{keyword}'")
    return ideas, len(calls)


# =============================================================================
# METRIC REFRESH
# =============================================================================

async def refresh_keyword_metrics(
    db: Session,
    client: DataForSEOClient,
    project: Project,
) -> Dict[str, Any]:
    """
    Refresh volume, CPC, competition and difficulty of every tracked keyword.

    Difficulty is best effort: when that call fails the other metrics are
    still written and existing difficulty values are kept.

    Raises:
        DataForSEOError: The search volume request failed
    """
    keywords = db.query(Keyword).filter(Keyword.project_id == project.id).all()
    if not keywords:
        return {"success": True, "updated": 0, "credits_used": 0}

    texts = [keyword.keyword for keyword in keywords]
    location_code = project.location_code or 2840
    language_code = project.language_code or "en"

    metrics = await client.get_search_volume(texts, location_code, language_code)
    credits = len(texts)

    difficulty: Dict[str, Optional[int]] = {}
    try:
        difficulty = await client.get_keyword_difficulty(texts, location_code, language_code)
        credits += 1
    except Exception as e:
        logger.warning(f"Keyword difficulty refresh failed for project {project.id}: {e}")

    by_text = {item.text.lower(): item for item in metrics if item.text}
    now = datetime.utcnow()
    updated = 0

    for keyword in keywords:
        key = keyword.keyword.lower()
        item = by_text.get(key)
        if item:
            keyword.search_volume = item.volume
            keyword.cpc = item.cost_per_click
            keyword.competition = parse_competition(item.competition_label)
            keyword.monthly_searches = item.monthly
        if difficulty.get(key) is not None:
            keyword.keyword_difficulty = difficulty[key]
        if item or key in difficulty:
            keyword.metrics_updated_at = now
            updated += 1

    db.flush()
    logger.info(f"Refreshed metrics for {updated}/{len(keywords)} keywords in project {project.id}")

    return {"success": True, "updated": updated, "credits_used": credits}


def keyword_to_dict(keyword: Keyword) -> Dict[str, Any]:
    return {
        "id": str(keyword.id),
        "project_id": str(keyword.project_id),
        "keyword": keyword.keyword,
        "search_volume": keyword.search_volume or 0,
        "keyword_difficulty": keyword.keyword_difficulty,
        "cpc": keyword.cpc or 0.0,
        "competition": keyword.competition.value if keyword.competition else None,
        "tags": keyword.tags or [],
        "category": keyword.category,
        "metrics_updated_at": keyword.metrics_updated_at.isoformat() if keyword.metrics_updated_at else None,
        "created_at": keyword.created_at.isoformat() if keyword.created_at else None,
    }
