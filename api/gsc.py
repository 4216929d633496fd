"""
API Endpoints for Google Search Console

Handles:
1. OAuth connect (redirect to Google consent)
2. OAuth callback (store tokens for the first verified site)
3. Manual analytics sync for a project
"""

import logging
from typing import Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_gsc_client, upstream_error
from rankpilot.auth.dependencies import get_current_user, get_current_user_optional, load_owned_project
from rankpilot.auth.models import User
from rankpilot.database.models import Project
from rankpilot.database.session import get_db
from rankpilot.integrations.gsc import GSCClient, GSCError
from rankpilot.services.gsc_sync import get_project_token, save_token, sync_project
from rankpilot.utils.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/gsc",
    tags=["Search Console"],
)

INTEGRATIONS_PATH = "/settings/integrations"


class GSCSyncRequest(BaseModel):
    project_id: UUID = Field(..., alias="projectId")

    class Config:
        populate_by_name = True


def integrations_redirect(error: Optional[str] = None) -> RedirectResponse:
    """Send the browser back to the frontend integrations page."""
    base = f"{get_settings().APP_URL.rstrip('/')}{INTEGRATIONS_PATH}"
    if error:
        return RedirectResponse(f"{base}?error={quote(error)}", status_code=302)
    return RedirectResponse(f"{base}?success=true", status_code=302)


def verified_sites(sites):
    return [
        site for site in sites
        if site.get("siteUrl") and site.get("permissionLevel") != "siteUnverifiedUser"
    ]


@router.get("/auth")
async def gsc_auth(
    project_id: UUID = Query(..., alias="projectId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    gsc: GSCClient = Depends(get_gsc_client),
):
    """Redirect to Google's consent screen; the project id travels as state."""
    project = load_owned_project(db, project_id, current_user)
    return RedirectResponse(gsc.get_auth_url(state=str(project.id)), status_code=302)


@router.get("/callback")
async def gsc_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
    gsc: GSCClient = Depends(get_gsc_client),
):
    """
    Finish the OAuth flow.

    The connection is stored for the owner of the project named in state.
    When the request carries a session, that user must be allowed to
    access the project.
    """
    if error:
        return integrations_redirect(error)
    if not code or not state:
        return integrations_redirect("missing_parameters")

    try:
        project = db.get(Project, UUID(state))
    except ValueError:
        project = None
    if not project:
        return integrations_redirect("invalid_state")

    if current_user and project.user_id != current_user.id and not current_user.is_admin:
        return integrations_redirect("access_denied")

    try:
        tokens = await gsc.exchange_code(code)
        sites = verified_sites(await gsc.list_sites(tokens.access_token))
    except GSCError as e:
        logger.error(f"GSC callback error: {e}")
        return integrations_redirect(str(e))

    if not sites:
        return integrations_redirect("no_verified_sites")

    site_url = sites[0]["siteUrl"]
    save_token(db, project.user_id, project.id, tokens, site_url)

    return integrations_redirect()


@router.post("/sync")
async def gsc_sync(
    request: GSCSyncRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    gsc: GSCClient = Depends(get_gsc_client),
):
    """Pull the last 30 days (ending yesterday) of analytics for a project."""
    project = load_owned_project(db, request.project_id, current_user)

    token = get_project_token(db, project.user_id, project.id)
    if not token:
        raise HTTPException(status_code=404, detail="GSC not connected for this project")

    settings = get_settings()
    try:
        return await sync_project(
            db,
            gsc,
            token,
            days=settings.GSC_SYNC_DAYS,
            batch_size=settings.GSC_BATCH_SIZE,
        )
    except GSCError as e:
        db.rollback()
        raise upstream_error("Search Console", e)
