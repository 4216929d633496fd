"""
Outreach Campaign Lifecycle

Campaign states:
    pending -> running     webhook accepted by n8n
    running -> completed   explicit status update (user or n8n)
    pending stays pending  webhook failed; retry_campaign_webhook re-fires

Target states are only ever set by n8n callbacks:
    pending -> researching -> drafted -> sent -> opened -> replied
            -> link_acquired | declined

Callbacks are at-least-once. Payload fields are last-write-wins, the
contacted/replied/link-acquired timestamps are set once, and campaign
counts are recomputed from target statuses on every callback, so a
repeated callback leaves the campaign unchanged.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from rankpilot.database.models import (
    CampaignStatus,
    OutreachAngle,
    OutreachCampaign,
    OutreachTargetRecord,
    Project,
    TargetStatus,
)
from rankpilot.utils.domain_filter import normalize_domain

from .webhook import WebhookClient, WebhookDeliveryError

logger = logging.getLogger(__name__)

SENT_STATUSES = {
    TargetStatus.SENT,
    TargetStatus.OPENED,
    TargetStatus.REPLIED,
    TargetStatus.LINK_ACQUIRED,
    TargetStatus.DECLINED,
}
REPLIED_STATUSES = {TargetStatus.REPLIED, TargetStatus.LINK_ACQUIRED}

CALLBACK_FIELDS = ("contact_info", "research_data", "outreach_email", "response_data")


class CampaignError(Exception):
    """Base class for campaign lifecycle errors."""
    pass


class CampaignNotFoundError(CampaignError):
    pass


class TargetNotFoundError(CampaignError):
    pass


class InvalidStatusError(CampaignError):
    pass


# =============================================================================
# STATUS PARSING
# =============================================================================

def parse_target_status(value: str) -> TargetStatus:
    try:
        return TargetStatus(str(value).lower())
    except ValueError:
        allowed = ", ".join(status.value for status in TargetStatus)
        raise InvalidStatusError(f"Invalid target status '{value}'. Expected one of: {allowed}")


def parse_campaign_status(value: str) -> CampaignStatus:
    try:
        return CampaignStatus(str(value).lower())
    except ValueError:
        allowed = ", ".join(status.value for status in CampaignStatus)
        raise InvalidStatusError(f"Invalid campaign status '{value}'. Expected one of: {allowed}")


def _parse_angle(value: Optional[str]) -> Optional[OutreachAngle]:
    if not value:
        return None
    try:
        return OutreachAngle(value)
    except ValueError:
        return None


# =============================================================================
# CREATION & WEBHOOK
# =============================================================================

def create_campaign(
    db: Session,
    user_id: UUID,
    project: Project,
    keyword: str,
    targets: List[Dict[str, Any]],
    webhook_url: str,
    keyword_id: Optional[UUID] = None,
    your_domain: Optional[str] = None,
    campaign_name: Optional[str] = None,
) -> OutreachCampaign:
    """
    Insert the campaign and one target record per prospect in one commit.

    Targets are dicts in the shape returned by the target finder
    (OutreachTarget.to_dict()). Duplicate domains keep the first entry.
    """
    campaign = OutreachCampaign(
        project_id=project.id,
        keyword_id=keyword_id,
        user_id=user_id,
        campaign_name=campaign_name or f"{keyword} - Outreach",
        keyword=keyword,
        your_domain=normalize_domain(your_domain or project.domain),
        status=CampaignStatus.PENDING,
        targets=targets,
        webhook_url=webhook_url,
    )
    db.add(campaign)

    seen = set()
    for target in targets:
        domain = normalize_domain(target.get("domain"))
        if not domain or domain in seen:
            continue
        seen.add(domain)

        metrics = target.get("metrics") or {}
        campaign.target_records.append(OutreachTargetRecord(
            project_id=project.id,
            domain=domain,
            target_url=target.get("target_url") or f"https://{domain}",
            target_score=target.get("target_score") or 0,
            domain_rating=metrics.get("domain_rating"),
            monthly_traffic=metrics.get("monthly_traffic") or 0,
            referring_domains=metrics.get("referring_domains") or 0,
            why_targeted=target.get("why_targeted"),
            outreach_angle=_parse_angle(target.get("outreach_angle")),
            pitch_hook=target.get("pitch_hook"),
            research_prompts=target.get("research_prompts") or [],
            status=TargetStatus.PENDING,
        ))

    campaign.target_count = len(campaign.target_records)
    db.commit()
    db.refresh(campaign)

    logger.info(f"Created campaign {campaign.id} with {len(campaign.target_records)} targets")
    return campaign


def build_webhook_payload(campaign: OutreachCampaign, callback_url: str) -> Dict[str, Any]:
    """Payload n8n receives: one entry per stored target, keyed by its record id."""
    targets = []
    for record in campaign.target_records:
        targets.append({
            "target_id": str(record.id),
            "domain": record.domain,
            "target_url": record.target_url,
            "target_score": record.target_score,
            "metrics": {
                "domain_rating": record.domain_rating,
                "monthly_traffic": record.monthly_traffic,
                "referring_domains": record.referring_domains,
            },
            "why_targeted": record.why_targeted,
            "outreach_angle": record.outreach_angle.value if record.outreach_angle else None,
            "pitch_hook": record.pitch_hook,
            "research_prompts": record.research_prompts or [],
        })

    return {
        "campaign_id": str(campaign.id),
        "keyword": campaign.keyword,
        "keyword_id": str(campaign.keyword_id) if campaign.keyword_id else None,
        "project_id": str(campaign.project_id),
        "your_domain": campaign.your_domain,
        "callback_url": callback_url,
        "targets": targets,
        "created_at": campaign.created_at.isoformat() if campaign.created_at else None,
    }


async def fire_campaign_webhook(
    db: Session,
    campaign: OutreachCampaign,
    webhook_client: WebhookClient,
    callback_url: str,
) -> Dict[str, Any]:
    """
    Deliver the campaign to n8n and record the outcome on the campaign.

    A 2xx answer moves the campaign to running; anything else, including a
    delivery failure, leaves it pending. The campaign row is never deleted
    here: once created it survives a failed webhook.

    Returns:
        {"fired": bool, "status_code": int | None, "error": str | None}
    """
    payload = build_webhook_payload(campaign, callback_url)

    try:
        result = await webhook_client.fire(campaign.webhook_url, payload)
    except WebhookDeliveryError as e:
        campaign.status = CampaignStatus.PENDING
        campaign.webhook_response = {"error": str(e)}
        db.commit()
        logger.warning(f"Campaign {campaign.id} webhook failed to fire: {e}")
        return {"fired": False, "status_code": None, "error": str(e)}

    campaign.webhook_fired_at = datetime.utcnow()
    campaign.webhook_response = result.body
    campaign.status = CampaignStatus.RUNNING if result.ok else CampaignStatus.PENDING
    db.commit()

    logger.info(f"Campaign {campaign.id} webhook answered {result.status_code}, status {campaign.status.value}")
    return {"fired": result.ok, "status_code": result.status_code, "error": None}


async def launch_campaign(
    db: Session,
    webhook_client: WebhookClient,
    user_id: UUID,
    project: Project,
    keyword: str,
    targets: List[Dict[str, Any]],
    webhook_url: str,
    callback_url: str,
    keyword_id: Optional[UUID] = None,
    your_domain: Optional[str] = None,
    campaign_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Create the campaign, fire its webhook, and describe the outcome."""
    logger.info(f"Launching outreach campaign for keyword '{keyword}'")

    campaign = create_campaign(
        db,
        user_id=user_id,
        project=project,
        keyword=keyword,
        targets=targets,
        webhook_url=webhook_url,
        keyword_id=keyword_id,
        your_domain=your_domain,
        campaign_name=campaign_name,
    )

    outcome = await fire_campaign_webhook(db, campaign, webhook_client, callback_url)

    if outcome["error"]:
        return {
            "success": False,
            "campaign_id": str(campaign.id),
            "error": "Campaign created but webhook failed to fire",
            "details": outcome["error"],
        }

    return {
        "success": True,
        "campaign_id": str(campaign.id),
        "campaign_name": campaign.campaign_name,
        "targets_count": len(targets),
        "webhook_status": outcome["status_code"],
        "webhook_fired": outcome["fired"],
        "message": (
            "Campaign launched and webhook sent to n8n"
            if outcome["fired"]
            else "Campaign created but webhook failed. You can retry manually."
        ),
    }


async def retry_campaign_webhook(
    db: Session,
    campaign: OutreachCampaign,
    webhook_client: WebhookClient,
    callback_url: str,
) -> Dict[str, Any]:
    """Re-fire the webhook of a campaign that is still pending."""
    if campaign.status != CampaignStatus.PENDING:
        raise InvalidStatusError(
            f"Only pending campaigns can be retried (campaign is {campaign.status.value})"
        )

    logger.info(f"Retrying webhook for campaign {campaign.id}")
    outcome = await fire_campaign_webhook(db, campaign, webhook_client, callback_url)

    return {
        "success": outcome["fired"],
        "campaign_id": str(campaign.id),
        "status": campaign.status.value,
        "webhook_status": outcome["status_code"],
        "error": outcome["error"],
    }


# =============================================================================
# CALLBACKS
# =============================================================================

def recount_campaign(db: Session, campaign: OutreachCampaign) -> OutreachCampaign:
    """Recompute denormalized counts from the current target statuses."""
    statuses = [
        row[0] for row in
        db.query(OutreachTargetRecord.status)
        .filter(OutreachTargetRecord.campaign_id == campaign.id)
        .all()
    ]

    campaign.target_count = len(statuses)
    campaign.sent_count = len([s for s in statuses if s in SENT_STATUSES])
    campaign.replied_count = len([s for s in statuses if s in REPLIED_STATUSES])
    campaign.link_acquired_count = len([s for s in statuses if s == TargetStatus.LINK_ACQUIRED])
    return campaign


def update_campaign_status(db: Session, campaign: OutreachCampaign, status: str) -> OutreachCampaign:
    """Set the campaign status. Any transition is allowed; callers decide."""
    new_status = parse_campaign_status(status)
    if campaign.status != new_status:
        logger.info(f"Campaign {campaign.id}: {campaign.status.value} -> {new_status.value}")
    campaign.status = new_status
    db.commit()
    db.refresh(campaign)
    return campaign


def _find_target(
    db: Session,
    campaign: OutreachCampaign,
    target_id: Optional[UUID],
    target_domain: Optional[str],
) -> Optional[OutreachTargetRecord]:
    """By record id first (scoped to the campaign), then by normalized domain."""
    query = db.query(OutreachTargetRecord).filter(OutreachTargetRecord.campaign_id == campaign.id)
    if target_id:
        target = query.filter(OutreachTargetRecord.id == target_id).first()
        if target:
            return target
    if target_domain:
        return query.filter(OutreachTargetRecord.domain == normalize_domain(target_domain)).first()
    return None


def apply_callback(
    db: Session,
    campaign_id: UUID,
    target_domain: Optional[str] = None,
    status: Optional[str] = None,
    contact_info: Optional[Dict[str, Any]] = None,
    research_data: Optional[Dict[str, Any]] = None,
    outreach_email: Optional[str] = None,
    response_data: Optional[Dict[str, Any]] = None,
    campaign_status: Optional[str] = None,
    target_id: Optional[UUID] = None,
) -> Dict[str, Any]:
    """
    Apply one n8n progress report to a campaign target.

    The target is addressed by target_id (as sent in the webhook payload)
    or by domain; an unknown id falls back to the domain.

    Raises:
        CampaignNotFoundError: Unknown campaign
        TargetNotFoundError: Neither the id nor the domain matches a target
        InvalidStatusError: Unknown status value
    """
    logger.info(f"Webhook callback for campaign {campaign_id}, target {target_id or target_domain}, status {status}")

    campaign = db.get(OutreachCampaign, campaign_id)
    if not campaign:
        raise CampaignNotFoundError(f"Campaign {campaign_id} not found")

    target = _find_target(db, campaign, target_id, target_domain)
    if not target:
        raise TargetNotFoundError(f"Target {target_id or target_domain} not found in campaign {campaign_id}")

    # Validate before mutating anything
    new_status = parse_target_status(status) if status else None
    new_campaign_status = parse_campaign_status(campaign_status) if campaign_status else None

    now = datetime.utcnow()
    if new_status:
        target.status = new_status
        if new_status == TargetStatus.SENT and not target.contacted_at:
            target.contacted_at = now
        if new_status == TargetStatus.REPLIED and not target.replied_at:
            target.replied_at = now
        if new_status == TargetStatus.LINK_ACQUIRED and not target.link_acquired_at:
            target.link_acquired_at = now

    updates = {
        "contact_info": contact_info,
        "research_data": research_data,
        "outreach_email": outreach_email,
        "response_data": response_data,
    }
    for field_name in CALLBACK_FIELDS:
        value = updates[field_name]
        if value:
            setattr(target, field_name, value)

    target.updated_at = now
    db.flush()

    recount_campaign(db, campaign)
    if new_campaign_status:
        campaign.status = new_campaign_status
    db.commit()

    logger.info(f"Updated target {target.domain} to status {target.status.value}")

    return {
        "success": True,
        "target_id": str(target.id),
        "campaign_id": str(campaign.id),
        "status": target.status.value,
    }


# =============================================================================
# QUERIES
# =============================================================================

def list_campaigns(db: Session, project_id: UUID) -> List[OutreachCampaign]:
    return (
        db.query(OutreachCampaign)
        .filter(OutreachCampaign.project_id == project_id)
        .order_by(OutreachCampaign.created_at.desc())
        .all()
    )


def list_targets(db: Session, campaign_id: UUID) -> List[OutreachTargetRecord]:
    return (
        db.query(OutreachTargetRecord)
        .filter(OutreachTargetRecord.campaign_id == campaign_id)
        .order_by(OutreachTargetRecord.target_score.desc())
        .all()
    )


def campaign_to_dict(campaign: OutreachCampaign) -> Dict[str, Any]:
    return {
        "id": str(campaign.id),
        "project_id": str(campaign.project_id),
        "keyword_id": str(campaign.keyword_id) if campaign.keyword_id else None,
        "campaign_name": campaign.campaign_name,
        "keyword": campaign.keyword,
        "your_domain": campaign.your_domain,
        "status": campaign.status.value,
        "target_count": campaign.target_count or 0,
        "sent_count": campaign.sent_count or 0,
        "replied_count": campaign.replied_count or 0,
        "link_acquired_count": campaign.link_acquired_count or 0,
        "webhook_url": campaign.webhook_url,
        "webhook_fired_at": campaign.webhook_fired_at.isoformat() if campaign.webhook_fired_at else None,
        "webhook_response": campaign.webhook_response,
        "created_at": campaign.created_at.isoformat() if campaign.created_at else None,
    }


def target_record_to_dict(record: OutreachTargetRecord) -> Dict[str, Any]:
    return {
        "id": str(record.id),
        "campaign_id": str(record.campaign_id),
        "domain": record.domain,
        "target_url": record.target_url,
        "target_score": record.target_score,
        "metrics": {
            "domain_rating": record.domain_rating,
            "monthly_traffic": record.monthly_traffic or 0,
            "referring_domains": record.referring_domains or 0,
        },
        "why_targeted": record.why_targeted,
        "outreach_angle": record.outreach_angle.value if record.outreach_angle else None,
        "pitch_hook": record.pitch_hook,
        "status": record.status.value,
        "contact_info": record.contact_info,
        "research_data": record.research_data,
        "outreach_email": record.outreach_email,
        "response_data": record.response_data,
        "contacted_at": record.contacted_at.isoformat() if record.contacted_at else None,
        "replied_at": record.replied_at.isoformat() if record.replied_at else None,
        "link_acquired_at": record.link_acquired_at.isoformat() if record.link_acquired_at else None,
    }
