"""
API Endpoints for Keyword Research and Tracked Keywords

Handles:
1. Keyword gap against a competitor domain
2. Search volume lookups, hybrid keyword ideas, ranked keywords for a site
3. Tracked keyword CRUD per project, gap tracking, metric refresh
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_dataforseo_client, upstream_error
from rankpilot.auth.dependencies import get_current_user, get_owned_project, load_owned_project
from rankpilot.auth.models import User
from rankpilot.collector.client import DataForSEOClient, DataForSEOError
from rankpilot.database.models import Keyword, Project
from rankpilot.database.repository import (
    get_latest_rankings,
    get_or_create_keyword,
    record_api_usage,
)
from rankpilot.database.session import get_db
from rankpilot.scoring.gap import CompetitorKeywordRecord
from rankpilot.services.keyword_research import (
    MAX_GAP_LIMIT,
    NoCompetitorKeywordsError,
    fetch_competitor_keywords,
    get_hybrid_keywords,
    keyword_to_dict,
    refresh_keyword_metrics,
    run_keyword_gap,
    track_gap_keyword,
)
from rankpilot.utils.domain_filter import normalize_domain

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/keywords",
    tags=["Keywords"],
    dependencies=[Depends(get_current_user)],
)

project_keywords_router = APIRouter(
    prefix="/api/projects/{project_id}/keywords",
    tags=["Keywords"],
    dependencies=[Depends(get_current_user)],
)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class KeywordGapRequest(BaseModel):
    project_id: UUID = Field(..., alias="projectId")
    competitor_domain: str = Field(..., alias="competitorDomain", min_length=3)
    location_code: int = Field(2840, alias="locationCode")
    limit: int = Field(20, ge=1)

    class Config:
        populate_by_name = True


class SearchVolumeRequest(BaseModel):
    keywords: List[str] = Field(..., min_length=1, max_length=1000)
    location_code: int = Field(2840, alias="locationCode")
    language_code: str = Field("en", alias="languageCode")

    class Config:
        populate_by_name = True


class KeywordIdeasRequest(BaseModel):
    keyword: str = Field(..., min_length=1)
    include_seo: bool = Field(True, alias="includeSeo")
    include_ads: bool = Field(False, alias="includeAds")
    include_related: bool = Field(True, alias="includeRelated")
    location_code: int = Field(2840, alias="locationCode")
    language_code: str = Field("en", alias="languageCode")
    limit: int = Field(100, ge=1, le=1000)

    class Config:
        populate_by_name = True


class SiteKeywordsRequest(BaseModel):
    domain: str = Field(..., min_length=3)
    location_code: int = Field(2840, alias="locationCode")
    language_code: str = Field("en", alias="languageCode")
    limit: int = Field(100, ge=1, le=1000)

    class Config:
        populate_by_name = True


class AddKeywordsRequest(BaseModel):
    """Keywords to start tracking; existing ones (any casing) are skipped."""
    keywords: List[str] = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)
    category: Optional[str] = None


class UpdateKeywordRequest(BaseModel):
    tags: Optional[List[str]] = None
    category: Optional[str] = None


class TrackGapRequest(BaseModel):
    """A gap row as returned by the keyword gap endpoint."""
    keyword: str = Field(..., min_length=1)
    position: Optional[int] = None
    search_volume: int = 0
    competition: Optional[str] = None
    cpc: float = 0.0
    keyword_difficulty: Optional[int] = None
    url: Optional[str] = None
    title: Optional[str] = None
    etv: float = 0.0


# =============================================================================
# RESEARCH ENDPOINTS
# =============================================================================

@router.post("/gap")
async def keyword_gap(
    request: KeywordGapRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: DataForSEOClient = Depends(get_dataforseo_client),
):
    """
    Keywords the competitor ranks for that the project does not track.

    Gaps come back sorted by opportunity score; overlaps keep the
    competitor's search volume order.
    """
    project = load_owned_project(db, request.project_id, current_user)

    try:
        result = await run_keyword_gap(
            db,
            client,
            project,
            request.competitor_domain,
            location_code=request.location_code,
            limit=min(request.limit, MAX_GAP_LIMIT),
        )
    except NoCompetitorKeywordsError as e:
        raise HTTPException(
            status_code=404,
            detail={"error": str(e), "details": "The domain may be too new or have very low traffic"},
        )
    except DataForSEOError as e:
        raise upstream_error("DataForSEO", e)

    record_api_usage(
        db,
        current_user.id,
        api_name="dataforseo",
        endpoint="keyword_gap",
        credits_used=1,
        request_data={
            "project_id": str(project.id),
            "competitor_domain": result["competitor_domain"],
            "location_code": request.location_code,
        },
    )
    db.commit()

    return result


@router.post("/metrics")
async def keyword_metrics(
    request: SearchVolumeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: DataForSEOClient = Depends(get_dataforseo_client),
):
    """Search volume, CPC and competition for a list of keywords."""
    keywords = [k.strip() for k in request.keywords if k.strip()]
    if not keywords:
        raise HTTPException(status_code=400, detail="At least one keyword is required")

    try:
        items = await client.get_search_volume(keywords, request.location_code, request.language_code)
    except DataForSEOError as e:
        raise upstream_error("DataForSEO", e)

    record_api_usage(
        db,
        current_user.id,
        api_name="dataforseo",
        endpoint="search_volume",
        credits_used=len(keywords),
        request_data={"keywords": keywords, "location_code": request.location_code},
    )
    db.commit()

    return {
        "keywords": [
            {
                "keyword": item.text,
                "search_volume": item.volume,
                "competition": item.competition_label,
                "cpc": item.cost_per_click,
                "monthly_searches": item.monthly,
            }
            for item in items
            if item.text
        ],
        "credits_used": len(keywords),
    }


@router.post("/ideas")
async def keyword_ideas(
    request: KeywordIdeasRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: DataForSEOClient = Depends(get_dataforseo_client),
):
    """
    Keyword ideas merged from Labs ideas, related searches and (optionally)
    Google Ads. A failing source is skipped.
    """
    if not (request.include_seo or request.include_ads or request.include_related):
        raise HTTPException(status_code=400, detail="Select at least one keyword source")

    ideas, credits = await get_hybrid_keywords(
        client,
        request.keyword.strip(),
        include_seo=request.include_seo,
        include_ads=request.include_ads,
        include_related=request.include_related,
        location_code=request.location_code,
        language_code=request.language_code,
        limit=request.limit,
    )

    record_api_usage(
        db,
        current_user.id,
        api_name="dataforseo",
        endpoint="hybrid_keywords",
        credits_used=credits,
        request_data={
            "keyword": request.keyword,
            "include_seo": request.include_seo,
            "include_ads": request.include_ads,
            "include_related": request.include_related,
        },
    )
    db.commit()

    return {
        "keyword": request.keyword.strip(),
        "total": len(ideas),
        "keywords": [idea.to_dict() for idea in ideas],
        "credits_used": credits,
    }


@router.post("/for-site")
async def keywords_for_site(
    request: SiteKeywordsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: DataForSEOClient = Depends(get_dataforseo_client),
):
    """Organic keywords a domain ranks for, highest search volume first."""
    domain = normalize_domain(request.domain)

    try:
        records = await fetch_competitor_keywords(
            client,
            domain,
            location_code=request.location_code,
            language_code=request.language_code,
            limit=request.limit,
        )
    except DataForSEOError as e:
        raise upstream_error("DataForSEO", e)

    record_api_usage(
        db,
        current_user.id,
        api_name="dataforseo",
        endpoint="ranked_keywords",
        credits_used=1,
        request_data={"domain": domain, "location_code": request.location_code},
    )
    db.commit()

    return {
        "domain": domain,
        "total": len(records),
        "keywords": [record.to_dict() for record in records],
    }


# =============================================================================
# TRACKED KEYWORDS
# =============================================================================

def get_project_keyword(db: Session, project: Project, keyword_id: UUID) -> Keyword:
    keyword = db.get(Keyword, keyword_id)
    if not keyword or keyword.project_id != project.id:
        raise HTTPException(status_code=404, detail="Keyword not found")
    return keyword


@project_keywords_router.get("")
async def list_project_keywords(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    """Tracked keywords with their most recent position."""
    keywords = (
        db.query(Keyword)
        .filter(Keyword.project_id == project.id)
        .order_by(Keyword.search_volume.desc(), Keyword.created_at)
        .all()
    )
    latest = get_latest_rankings(db, [k.id for k in keywords])

    items = []
    for keyword in keywords:
        data = keyword_to_dict(keyword)
        ranking = latest.get(keyword.id)
        data["latest_position"] = ranking.rank_position if ranking else None
        data["latest_checked_at"] = ranking.checked_at.isoformat() if ranking and ranking.checked_at else None
        items.append(data)

    return {"project_id": str(project.id), "total": len(items), "keywords": items}


@project_keywords_router.post("", status_code=201)
async def add_project_keywords(
    request: AddKeywordsRequest,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    added = []
    existing = []

    for text in request.keywords:
        if not text.strip():
            continue
        keyword, created = get_or_create_keyword(
            db,
            project.id,
            text,
            tags=list(request.tags),
            category=request.category,
        )
        (added if created else existing).append(keyword)

    db.commit()
    logger.info(f"Project {project.id}: tracking {len(added)} new keywords, {len(existing)} already tracked")

    return {
        "added": [keyword_to_dict(k) for k in added],
        "existing": [keyword_to_dict(k) for k in existing],
    }


@project_keywords_router.patch("/{keyword_id}")
async def update_project_keyword(
    keyword_id: UUID,
    request: UpdateKeywordRequest,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    keyword = get_project_keyword(db, project, keyword_id)

    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(keyword, field, value)

    db.commit()
    db.refresh(keyword)
    return keyword_to_dict(keyword)


@project_keywords_router.delete("/{keyword_id}", status_code=204)
async def delete_project_keyword(
    keyword_id: UUID,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    keyword = get_project_keyword(db, project, keyword_id)
    db.delete(keyword)
    db.commit()


@project_keywords_router.post("/track-gap")
async def track_gap(
    request: TrackGapRequest,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    """Start tracking a keyword found by the gap analysis."""
    record = CompetitorKeywordRecord(**request.model_dump())
    keyword, created = track_gap_keyword(db, project, record)

    return {
        "success": True,
        "created": created,
        "keyword": keyword_to_dict(keyword),
    }


@project_keywords_router.post("/refresh-metrics")
async def refresh_metrics(
    project: Project = Depends(get_owned_project),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: DataForSEOClient = Depends(get_dataforseo_client),
):
    """Refresh search volume, CPC, competition and difficulty of every tracked keyword."""
    try:
        result = await refresh_keyword_metrics(db, client, project)
    except DataForSEOError as e:
        db.rollback()
        raise upstream_error("DataForSEO", e)

    if result["credits_used"]:
        record_api_usage(
            db,
            current_user.id,
            api_name="dataforseo",
            endpoint="refresh_metrics",
            credits_used=result["credits_used"],
            request_data={"project_id": str(project.id)},
        )
    db.commit()

    return result
