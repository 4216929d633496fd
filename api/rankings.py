"""
API Endpoints for Rank Tracking

Handles:
1. On-demand rank check for a tracked keyword
2. Ranking history per keyword
"""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_dataforseo_client, upstream_error
from rankpilot.auth.dependencies import get_current_user, load_owned_project
from rankpilot.auth.models import User
from rankpilot.collector.client import DataForSEOClient, DataForSEOError
from rankpilot.database.models import Keyword
from rankpilot.database.repository import record_api_usage
from rankpilot.database.session import get_db
from rankpilot.services.rankings import (
    check_rank,
    get_ranking_history,
    ranking_to_dict,
    record_ranking,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/rankings",
    tags=["Rankings"],
    dependencies=[Depends(get_current_user)],
)


class RankCheckRequest(BaseModel):
    keyword_id: UUID = Field(..., alias="keywordId")
    device: str = Field("desktop", pattern="^(desktop|mobile)$")

    class Config:
        populate_by_name = True


def load_owned_keyword(db: Session, keyword_id: UUID, user: User) -> Keyword:
    """Load a tracked keyword whose project the user may access."""
    keyword = db.get(Keyword, keyword_id)
    if not keyword:
        raise HTTPException(status_code=404, detail="Keyword not found")
    load_owned_project(db, keyword.project_id, user)
    return keyword


@router.post("/check")
async def check_keyword_rank(
    request: RankCheckRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: DataForSEOClient = Depends(get_dataforseo_client),
):
    """
    Check where the project's domain ranks for a tracked keyword.

    A position inside the top 100 is stored as a Ranking row; outside it
    nothing is stored and position comes back null.
    """
    keyword = load_owned_keyword(db, request.keyword_id, current_user)
    project = keyword.project
    location_code = project.location_code or 2840
    language_code = project.language_code or "en"

    try:
        result = await check_rank(
            client,
            keyword.keyword,
            project.domain,
            location_code=location_code,
            language_code=language_code,
            device=request.device,
        )
    except DataForSEOError as e:
        raise upstream_error("DataForSEO", e)

    ranking = record_ranking(
        db,
        keyword,
        result,
        location_code=location_code,
        language_code=language_code,
        device=request.device,
    )
    record_api_usage(
        db,
        current_user.id,
        api_name="dataforseo",
        endpoint="serp_check",
        credits_used=1,
        request_data={"keyword": keyword.keyword, "domain": project.domain},
    )
    db.commit()

    return {
        **result.to_dict(),
        "keywordId": str(keyword.id),
        "rankingId": str(ranking.id) if ranking else None,
    }


@router.get("/keywords/{keyword_id}/history")
async def keyword_ranking_history(
    keyword_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    days: int = Query(30, ge=1, le=365),
):
    """Rankings of a keyword over the last N days, oldest first."""
    keyword = load_owned_keyword(db, keyword_id, current_user)
    rankings = get_ranking_history(db, keyword.id, days=days)

    return {
        "keyword_id": str(keyword.id),
        "keyword": keyword.keyword,
        "days": days,
        "rankings": [ranking_to_dict(r) for r in rankings],
    }
