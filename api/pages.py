"""
API Endpoints for On-page SEO Analysis
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_page_analyzer
from rankpilot.auth.dependencies import get_current_user, load_owned_project
from rankpilot.auth.models import User
from rankpilot.database.repository import record_api_usage
from rankpilot.database.session import get_db
from rankpilot.pages import PageAnalyzer, PageFetchError, list_page_audits, save_page_audit

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["Page Analysis"],
    dependencies=[Depends(get_current_user)],
)


class AnalyzePageRequest(BaseModel):
    url: str = Field(..., pattern=r"^https?://")
    project_id: Optional[UUID] = Field(None, alias="projectId")
    target_keyword: Optional[str] = Field(None, alias="targetKeyword")

    class Config:
        populate_by_name = True


@router.post("/analyze-page")
async def analyze_page(
    request: AnalyzePageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    analyzer: PageAnalyzer = Depends(get_page_analyzer),
):
    """Fetch a page, analyze its on-page SEO and store the audit."""
    project = load_owned_project(db, request.project_id, current_user) if request.project_id else None

    try:
        analysis = await analyzer.analyze(request.url, request.target_keyword or None)
    except PageFetchError as e:
        raise HTTPException(
            status_code=502,
            detail={"error": "Failed to analyze page", "details": str(e)},
        )

    audit = save_page_audit(db, analysis, current_user.id, project.id if project else None)
    record_api_usage(
        db,
        current_user.id,
        api_name="page_analyzer",
        endpoint="analyze_page",
        credits_used=1,
        request_data={"url": request.url, "target_keyword": request.target_keyword},
    )
    db.commit()

    return {"success": True, "audit": analysis.to_summary(str(audit.id))}


@router.get("/page-audits")
async def get_page_audits(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    project_id: Optional[UUID] = Query(None, alias="projectId"),
    limit: int = Query(50, ge=1, le=200),
):
    """Stored audits, newest first."""
    if project_id:
        load_owned_project(db, project_id, current_user)

    audits = list_page_audits(db, current_user.id, project_id=project_id, limit=limit)
    return {
        "audits": [
            {
                "id": str(audit.id),
                "project_id": str(audit.project_id) if audit.project_id else None,
                "url": audit.url,
                "title": audit.title,
                "word_count": audit.word_count,
                "target_keyword": audit.target_keyword,
                "keyword_density": audit.keyword_density,
                "issues": audit.issues or [],
                "created_at": audit.created_at.isoformat() if audit.created_at else None,
            }
            for audit in audits
        ]
    }
