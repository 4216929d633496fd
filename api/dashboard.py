"""
API Endpoints for Dashboard Data
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rankpilot.auth.dependencies import get_current_user, get_owned_project
from rankpilot.auth.models import User
from rankpilot.database.models import OutreachCampaign, Project
from rankpilot.database.repository import get_dashboard_counts, get_project_counts
from rankpilot.database.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/dashboard",
    tags=["Dashboard"],
    dependencies=[Depends(get_current_user)],
)


@router.get("/stats")
async def dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Headline counts across the user's projects."""
    return get_dashboard_counts(db, current_user.id)


@router.get("/projects/{project_id}")
async def project_dashboard(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    """Per-project counts, latest-position summary and recent campaigns."""
    recent_campaigns = (
        db.query(OutreachCampaign)
        .filter(OutreachCampaign.project_id == project.id)
        .order_by(OutreachCampaign.created_at.desc())
        .limit(5)
        .all()
    )

    return {
        "project_id": str(project.id),
        "domain": project.domain,
        **get_project_counts(db, project.id),
        "recent_campaigns": [
            {
                "id": str(c.id),
                "campaign_name": c.campaign_name,
                "status": c.status.value,
                "target_count": c.target_count or 0,
                "link_acquired_count": c.link_acquired_count or 0,
            }
            for c in recent_campaigns
        ],
    }
