"""
API Endpoints for Project Management

Handles:
1. List / create / update / delete projects
2. Competitor domains per project
3. Stored backlinks per project
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rankpilot.auth.dependencies import get_current_user, get_owned_project
from rankpilot.auth.models import User
from rankpilot.database.models import Competitor, Project
from rankpilot.database.session import get_db
from rankpilot.services.backlinks import backlink_to_dict, list_backlinks
from rankpilot.utils.domain_filter import normalize_domain

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/projects",
    tags=["Projects"],
    dependencies=[Depends(get_current_user)],
)


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class ProjectResponse(BaseModel):
    """Single project response."""
    id: str
    name: str
    domain: str
    target_location: Optional[str] = None
    location_code: int
    language_code: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class ProjectListResponse(BaseModel):
    projects: List[ProjectResponse]
    total: int


class CreateProjectRequest(BaseModel):
    """Request to create a project."""
    name: str = Field(..., min_length=1, max_length=255)
    domain: str = Field(..., min_length=3, max_length=255)
    target_location: Optional[str] = "United States"
    location_code: int = 2840
    language_code: str = "en"


class UpdateProjectRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    domain: Optional[str] = Field(None, min_length=3, max_length=255)
    target_location: Optional[str] = None
    location_code: Optional[int] = None
    language_code: Optional[str] = None


class CompetitorResponse(BaseModel):
    id: str
    project_id: str
    domain: str
    name: Optional[str] = None
    created_at: datetime


class CreateCompetitorRequest(BaseModel):
    domain: str = Field(..., min_length=3, max_length=255)
    name: Optional[str] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def project_to_response(project: Project) -> ProjectResponse:
    return ProjectResponse(
        id=str(project.id),
        name=project.name,
        domain=project.domain,
        target_location=project.target_location,
        location_code=project.location_code or 2840,
        language_code=project.language_code or "en",
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


def competitor_to_response(competitor: Competitor) -> CompetitorResponse:
    return CompetitorResponse(
        id=str(competitor.id),
        project_id=str(competitor.project_id),
        domain=competitor.domain,
        name=competitor.name,
        created_at=competitor.created_at,
    )


def clean_domain_or_400(domain: str) -> str:
    clean = normalize_domain(domain)
    if not clean:
        raise HTTPException(status_code=400, detail="Invalid domain")
    return clean


def ensure_unique_project_domain(db: Session, user_id: UUID, domain: str, exclude_id: Optional[UUID] = None) -> None:
    query = db.query(Project).filter(Project.user_id == user_id, Project.domain == domain)
    if exclude_id:
        query = query.filter(Project.id != exclude_id)
    if query.first():
        raise HTTPException(
            status_code=409,
            detail=f"Project for domain '{domain}' already exists",
        )


# =============================================================================
# PROJECT ENDPOINTS
# =============================================================================

@router.get("", response_model=ProjectListResponse)
async def list_projects(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """
    List projects for the current user, newest first.

    Admins see every project.
    """
    query = db.query(Project)
    if not current_user.is_admin:
        query = query.filter(Project.user_id == current_user.id)

    total = query.count()
    projects = query.order_by(Project.created_at.desc()).offset(offset).limit(limit).all()

    return ProjectListResponse(
        projects=[project_to_response(p) for p in projects],
        total=total,
    )


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    request: CreateProjectRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a project.

    The domain is stored normalized (no scheme, no www., no trailing
    slash); a second project for the same domain is rejected with 409.
    """
    domain = clean_domain_or_400(request.domain)
    ensure_unique_project_domain(db, current_user.id, domain)

    project = Project(
        user_id=current_user.id,
        name=request.name.strip(),
        domain=domain,
        target_location=request.target_location,
        location_code=request.location_code,
        language_code=request.language_code,
    )
    db.add(project)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=f"Project for domain '{domain}' already exists")

    db.refresh(project)
    logger.info(f"Created project {project.id} ({domain}) for user {current_user.email}")

    return project_to_response(project)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project: Project = Depends(get_owned_project)):
    return project_to_response(project)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    request: UpdateProjectRequest,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    """Update project settings. Only provided fields are changed."""
    update_data = request.model_dump(exclude_unset=True)

    if update_data.get("domain"):
        update_data["domain"] = clean_domain_or_400(update_data["domain"])
        ensure_unique_project_domain(db, project.user_id, update_data["domain"], exclude_id=project.id)

    for field, value in update_data.items():
        if value is not None:
            setattr(project, field, value)

    db.commit()
    db.refresh(project)

    logger.info(f"Updated project {project.id}: {list(update_data.keys())}")
    return project_to_response(project)


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    """Delete a project with its keywords, rankings, backlinks and campaigns."""
    logger.info(f"Deleting project {project.id} ({project.domain})")
    db.delete(project)
    db.commit()


# =============================================================================
# COMPETITOR ENDPOINTS
# =============================================================================

@router.get("/{project_id}/competitors", response_model=List[CompetitorResponse])
async def list_competitors(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    competitors = (
        db.query(Competitor)
        .filter(Competitor.project_id == project.id)
        .order_by(Competitor.created_at)
        .all()
    )
    return [competitor_to_response(c) for c in competitors]


@router.post("/{project_id}/competitors", response_model=CompetitorResponse, status_code=201)
async def add_competitor(
    request: CreateCompetitorRequest,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    domain = clean_domain_or_400(request.domain)

    if domain == project.domain:
        raise HTTPException(status_code=400, detail="A project cannot compete with itself")

    existing = (
        db.query(Competitor)
        .filter(Competitor.project_id == project.id, Competitor.domain == domain)
        .first()
    )
    if existing:
        raise HTTPException(status_code=409, detail=f"Competitor '{domain}' already tracked")

    competitor = Competitor(project_id=project.id, domain=domain, name=request.name)
    db.add(competitor)
    db.commit()
    db.refresh(competitor)

    return competitor_to_response(competitor)


@router.delete("/{project_id}/competitors/{competitor_id}", status_code=204)
async def delete_competitor(
    competitor_id: UUID,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    competitor = db.get(Competitor, competitor_id)
    if not competitor or competitor.project_id != project.id:
        raise HTTPException(status_code=404, detail="Competitor not found")

    db.delete(competitor)
    db.commit()


# =============================================================================
# BACKLINKS
# =============================================================================

@router.get("/{project_id}/backlinks")
async def get_project_backlinks(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
    include_lost: bool = Query(False),
    limit: int = Query(500, ge=1, le=1000),
):
    """Stored backlinks of a project, lost links excluded by default."""
    backlinks = list_backlinks(db, project.id, include_lost=include_lost, limit=limit)
    return {
        "project_id": str(project.id),
        "total": len(backlinks),
        "backlinks": [backlink_to_dict(b) for b in backlinks],
    }
