"""
API Endpoints for Link-Building Outreach

Handles:
1. Finding outreach targets for a tracked keyword
2. Launching campaigns to n8n and retrying failed webhooks
3. Campaign / target listing and campaign status updates
4. The n8n progress callback (shared-secret, no user session)
5. Outreach email templates
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.dependencies import get_dataforseo_client, get_webhook_client
from rankpilot.auth.dependencies import get_current_user, load_owned_project, verify_webhook_secret
from rankpilot.auth.models import User
from rankpilot.collector.client import DataForSEOClient
from rankpilot.database.models import Keyword, OutreachCampaign, OutreachTemplate
from rankpilot.database.repository import record_api_usage
from rankpilot.database.session import get_db
from rankpilot.outreach import (
    CampaignNotFoundError,
    InvalidStatusError,
    OutreachTargetFinder,
    TargetFinderConfig,
    TargetNotFoundError,
    WebhookClient,
    apply_callback,
    campaign_to_dict,
    launch_campaign,
    list_campaigns,
    list_targets,
    retry_campaign_webhook,
    target_record_to_dict,
    update_campaign_status,
)
from rankpilot.utils.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/outreach",
    tags=["Outreach"],
)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class FindTargetsRequest(BaseModel):
    keyword_id: UUID = Field(..., alias="keywordId")
    project_id: UUID = Field(..., alias="projectId")
    your_domain: Optional[str] = Field(None, alias="yourDomain")

    class Config:
        populate_by_name = True


class LaunchCampaignRequest(BaseModel):
    project_id: UUID = Field(..., alias="projectId")
    keyword_id: Optional[UUID] = Field(None, alias="keywordId")
    keyword: Optional[str] = None
    targets: List[Dict[str, Any]] = Field(..., min_length=1)
    webhook_url: str = Field(..., alias="webhookUrl", pattern=r"^https?://")
    your_domain: Optional[str] = Field(None, alias="yourDomain")
    campaign_name: Optional[str] = Field(None, alias="campaignName")

    class Config:
        populate_by_name = True


class CampaignStatusRequest(BaseModel):
    status: str


class WebhookCallbackRequest(BaseModel):
    """Progress report posted by n8n for one campaign target."""
    campaign_id: UUID
    target_id: Optional[UUID] = None
    target_domain: Optional[str] = None
    status: Optional[str] = None
    contact_info: Optional[Dict[str, Any]] = None
    research_data: Optional[Dict[str, Any]] = None
    outreach_email: Optional[str] = None
    response_data: Optional[Dict[str, Any]] = None
    campaign_status: Optional[str] = None


class TemplateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    is_default: bool = False


class UpdateTemplateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    subject: Optional[str] = Field(None, min_length=1, max_length=500)
    body: Optional[str] = Field(None, min_length=1)
    is_default: Optional[bool] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def load_project_keyword(db: Session, keyword_id: UUID, project_id: UUID) -> Keyword:
    keyword = db.get(Keyword, keyword_id)
    if not keyword or keyword.project_id != project_id:
        raise HTTPException(status_code=404, detail="Keyword not found")
    return keyword


def load_owned_campaign(db: Session, campaign_id: UUID, user: User) -> OutreachCampaign:
    campaign = db.get(OutreachCampaign, campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    load_owned_project(db, campaign.project_id, user)
    return campaign


def load_owned_template(db: Session, template_id: UUID, user: User) -> OutreachTemplate:
    template = db.get(OutreachTemplate, template_id)
    if not template or (template.user_id != user.id and not user.is_admin):
        raise HTTPException(status_code=404, detail="Template not found")
    return template


def clear_default_templates(db: Session, user_id: UUID, keep_id: Optional[UUID] = None) -> None:
    query = db.query(OutreachTemplate).filter(
        OutreachTemplate.user_id == user_id,
        OutreachTemplate.is_default.is_(True),
    )
    for template in query.all():
        if template.id != keep_id:
            template.is_default = False


def template_to_dict(template: OutreachTemplate) -> Dict[str, Any]:
    return {
        "id": str(template.id),
        "name": template.name,
        "subject": template.subject,
        "body": template.body,
        "is_default": template.is_default,
        "created_at": template.created_at.isoformat() if template.created_at else None,
        "updated_at": template.updated_at.isoformat() if template.updated_at else None,
    }


# =============================================================================
# TARGETS & CAMPAIGNS
# =============================================================================

@router.post("/find-targets")
async def find_targets(
    request: FindTargetsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: DataForSEOClient = Depends(get_dataforseo_client),
):
    """
    Find link-building prospects for a tracked keyword.

    Upstream failures degrade to fewer (or zero) targets rather than an
    error response.
    """
    project = load_owned_project(db, request.project_id, current_user)
    keyword = load_project_keyword(db, request.keyword_id, project.id)

    logger.info(f"Finding outreach targets for keyword {keyword.id} ('{keyword.keyword}')")

    finder = OutreachTargetFinder(client, TargetFinderConfig.from_settings(get_settings()))
    result = await finder.find_targets(
        keyword.keyword,
        your_domain=request.your_domain or project.domain,
        location_code=project.location_code,
        language_code=project.language_code,
    )

    record_api_usage(
        db,
        current_user.id,
        api_name="dataforseo",
        endpoint="outreach_target_finder",
        credits_used=result.credits_used,
        request_data={
            "keyword": keyword.keyword,
            "competitors_analyzed": len(result.competitor_domains),
            "targets_found": result.total_targets_found,
        },
    )
    db.commit()

    data = result.to_dict()
    return {
        "keyword": keyword.keyword,
        "keyword_id": str(keyword.id),
        "project_id": str(project.id),
        "your_domain": data["your_domain"],
        "competitors_analyzed": data["competitors_analyzed"],
        "total_targets_found": data["total_targets_found"],
        "targets": data["targets"],
        "timestamp": data["timestamp"],
    }


@router.post("/launch-campaign")
async def launch_outreach_campaign(
    request: LaunchCampaignRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    webhook_client: WebhookClient = Depends(get_webhook_client),
):
    """
    Create a campaign with its targets and hand it to n8n.

    The campaign is kept even when the webhook fails; it stays pending
    and can be retried.
    """
    project = load_owned_project(db, request.project_id, current_user)

    keyword_text = request.keyword
    if request.keyword_id:
        keyword = load_project_keyword(db, request.keyword_id, project.id)
        keyword_text = keyword_text or keyword.keyword
    if not keyword_text:
        raise HTTPException(status_code=400, detail="keyword or keywordId is required")

    return await launch_campaign(
        db,
        webhook_client,
        user_id=current_user.id,
        project=project,
        keyword=keyword_text,
        targets=request.targets,
        webhook_url=request.webhook_url,
        callback_url=get_settings().webhook_callback_url,
        keyword_id=request.keyword_id,
        your_domain=request.your_domain,
        campaign_name=request.campaign_name,
    )


@router.get("/campaigns")
async def get_campaigns(
    project_id: UUID = Query(..., alias="projectId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    project = load_owned_project(db, project_id, current_user)
    campaigns = list_campaigns(db, project.id)
    return {"campaigns": [campaign_to_dict(c) for c in campaigns], "total": len(campaigns)}


@router.get("/campaigns/{campaign_id}")
async def get_campaign(
    campaign_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Campaign with its targets, best prospects first."""
    campaign = load_owned_campaign(db, campaign_id, current_user)
    return {
        **campaign_to_dict(campaign),
        "targets": [target_record_to_dict(t) for t in list_targets(db, campaign.id)],
    }


@router.patch("/campaigns/{campaign_id}/status")
async def set_campaign_status(
    campaign_id: UUID,
    request: CampaignStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = load_owned_campaign(db, campaign_id, current_user)
    try:
        campaign = update_campaign_status(db, campaign, request.status)
    except InvalidStatusError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return campaign_to_dict(campaign)


@router.post("/campaigns/{campaign_id}/retry-webhook")
async def retry_webhook(
    campaign_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    webhook_client: WebhookClient = Depends(get_webhook_client),
):
    campaign = load_owned_campaign(db, campaign_id, current_user)
    try:
        return await retry_campaign_webhook(
            db,
            campaign,
            webhook_client,
            callback_url=get_settings().webhook_callback_url,
        )
    except InvalidStatusError as e:
        raise HTTPException(status_code=409, detail=str(e))


# =============================================================================
# N8N CALLBACK
# =============================================================================

@router.post("/webhook-callback", dependencies=[Depends(verify_webhook_secret)])
async def webhook_callback(
    request: WebhookCallbackRequest,
    db: Session = Depends(get_db),
):
    """
    Progress report from n8n for one target.

    Safe to repeat: campaign counts are recomputed from target statuses.
    """
    if not request.target_id and not request.target_domain:
        raise HTTPException(status_code=422, detail="target_id or target_domain is required")

    try:
        result = apply_callback(
            db,
            campaign_id=request.campaign_id,
            target_domain=request.target_domain,
            target_id=request.target_id,
            status=request.status,
            contact_info=request.contact_info,
            research_data=request.research_data,
            outreach_email=request.outreach_email,
            response_data=request.response_data,
            campaign_status=request.campaign_status,
        )
    except (CampaignNotFoundError, TargetNotFoundError) as e:
        logger.warning(f"Webhook callback rejected: {e}")
        raise HTTPException(status_code=404, detail="Target not found")
    except InvalidStatusError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {**result, "message": "Target updated successfully"}


@router.get("/webhook-callback")
async def webhook_callback_info():
    """Lets n8n verify the callback endpoint is reachable."""
    return {
        "service": "RankPilot - Outreach Webhook Callback",
        "status": "active",
        "version": "1.0",
        "timestamp": datetime.utcnow().isoformat(),
    }


# =============================================================================
# TEMPLATES
# =============================================================================

@router.get("/templates")
async def list_templates(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    templates = (
        db.query(OutreachTemplate)
        .filter(OutreachTemplate.user_id == current_user.id)
        .order_by(OutreachTemplate.is_default.desc(), OutreachTemplate.created_at.desc())
        .all()
    )
    return {"templates": [template_to_dict(t) for t in templates]}


@router.post("/templates", status_code=201)
async def create_template(
    request: TemplateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a template. A new default replaces the previous default."""
    if request.is_default:
        clear_default_templates(db, current_user.id)

    template = OutreachTemplate(user_id=current_user.id, **request.model_dump())
    db.add(template)
    db.commit()
    db.refresh(template)
    return template_to_dict(template)


@router.patch("/templates/{template_id}")
async def update_template(
    template_id: UUID,
    request: UpdateTemplateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    template = load_owned_template(db, template_id, current_user)
    update_data = request.model_dump(exclude_unset=True)

    if update_data.get("is_default"):
        clear_default_templates(db, template.user_id, keep_id=template.id)

    for field, value in update_data.items():
        if value is not None:
            setattr(template, field, value)

    db.commit()
    db.refresh(template)
    return template_to_dict(template)


@router.delete("/templates/{template_id}", status_code=204)
async def delete_template(
    template_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    template = load_owned_template(db, template_id, current_user)
    db.delete(template)
    db.commit()
