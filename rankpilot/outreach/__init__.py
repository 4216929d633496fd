"""
Outreach Module

1. **Target Finder** - SERP competitors -> referring domains -> scored prospects
2. **Campaigns** - hand prospects to n8n, track per-target progress via callbacks
3. **Webhook** - outbound n8n delivery

Example Usage:
    from rankpilot.outreach import OutreachTargetFinder, TargetFinderConfig

    finder = OutreachTargetFinder(client, TargetFinderConfig.from_settings(settings))
    result = await finder.find_targets("seo tools", your_domain="mysite.com")
"""

from .targets import (
    OutreachTargetFinder,
    TargetFinderConfig,
    TargetSearchResult,
    build_link_map,
)
from .webhook import WebhookClient, WebhookDeliveryError, WebhookResult
from .campaigns import (
    CampaignError,
    CampaignNotFoundError,
    TargetNotFoundError,
    InvalidStatusError,
    create_campaign,
    build_webhook_payload,
    fire_campaign_webhook,
    launch_campaign,
    retry_campaign_webhook,
    recount_campaign,
    update_campaign_status,
    apply_callback,
    list_campaigns,
    list_targets,
    campaign_to_dict,
    target_record_to_dict,
)

__all__ = [
    "OutreachTargetFinder",
    "TargetFinderConfig",
    "TargetSearchResult",
    "build_link_map",
    "WebhookClient",
    "WebhookDeliveryError",
    "WebhookResult",
    "CampaignError",
    "CampaignNotFoundError",
    "TargetNotFoundError",
    "InvalidStatusError",
    "create_campaign",
    "build_webhook_payload",
    "fire_campaign_webhook",
    "launch_campaign",
    "retry_campaign_webhook",
    "recount_campaign",
    "update_campaign_status",
    "apply_callback",
    "list_campaigns",
    "list_targets",
    "campaign_to_dict",
    "target_record_to_dict",
]
