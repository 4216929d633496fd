"""
API Endpoints for Backlink Ingestion
"""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_dataforseo_client, upstream_error
from rankpilot.auth.dependencies import get_current_user, load_owned_project
from rankpilot.auth.models import User
from rankpilot.collector.client import DataForSEOClient, DataForSEOError
from rankpilot.database.repository import record_api_usage
from rankpilot.database.session import get_db
from rankpilot.services.backlinks import fetch_and_store_backlinks
from rankpilot.utils.domain_filter import normalize_domain

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/backlinks",
    tags=["Backlinks"],
    dependencies=[Depends(get_current_user)],
)


class FetchBacklinksRequest(BaseModel):
    project_id: UUID = Field(..., alias="projectId")
    domain: str = Field(..., min_length=3)

    class Config:
        populate_by_name = True


@router.post("/fetch")
async def fetch_backlinks(
    request: FetchBacklinksRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: DataForSEOClient = Depends(get_dataforseo_client),
):
    """
    Pull backlinks for a domain from DataForSEO and upsert them into the
    project on (source_url, target_url).
    """
    project = load_owned_project(db, request.project_id, current_user)
    domain = normalize_domain(request.domain)
    if not domain:
        raise HTTPException(status_code=400, detail="Invalid domain")

    try:
        result = await fetch_and_store_backlinks(db, client, project.id, domain)
    except DataForSEOError as e:
        db.rollback()
        raise upstream_error("DataForSEO", e)

    record_api_usage(
        db,
        current_user.id,
        api_name="dataforseo",
        endpoint="backlinks",
        credits_used=1,
        request_data={"project_id": str(project.id), "domain": domain},
    )
    db.commit()

    logger.info(f"Stored {result['stored']} backlinks for project {project.id}")
    return result
