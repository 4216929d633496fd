"""
Outreach Tests

Target finder (SERP -> competitors -> referring domains -> scored
prospects), the n8n webhook client, and the campaign lifecycle including
at-least-once callbacks.
"""

import json
from datetime import datetime
from uuid import UUID, uuid4

import httpx
import pytest

from rankpilot.database.models import (
    CampaignStatus,
    OutreachAngle,
    OutreachCampaign,
    OutreachTargetRecord,
    TargetStatus,
)
from rankpilot.outreach import (
    CampaignNotFoundError,
    InvalidStatusError,
    OutreachTargetFinder,
    TargetFinderConfig,
    TargetNotFoundError,
    WebhookClient,
    WebhookDeliveryError,
    apply_callback,
    build_link_map,
    build_webhook_payload,
    create_campaign,
    launch_campaign,
    list_targets,
    retry_campaign_webhook,
    update_campaign_status,
)
from rankpilot.collector.schemas import ReferringDomainItem

from conftest import DataForSEOStub, dataforseo_envelope, serp_item

SERP = "serp/google/organic/live/advanced"
REFERRING = "backlinks/referring_domains/live"
CALLBACK_URL = "http://localhost:3000/api/outreach/webhook-callback"
N8N_URL = "https://n8n.example.com/webhook/outreach"


def referring(*rows):
    return dataforseo_envelope(items=[{"domain": domain, "backlinks": links, "rank": rank} for domain, links, rank in rows])


def finder_config(**overrides):
    config = TargetFinderConfig(blacklist=["youtube.com", "wikipedia.org"], max_competitors=3, max_targets=10)
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def target_dict(domain, score=60, angle="guest_post"):
    return {
        "domain": domain,
        "target_url": f"https://{domain}",
        "target_score": score,
        "metrics": {"domain_rating": 35.0, "monthly_traffic": 0, "referring_domains": 4},
        "why_targeted": "Links to a.com and b.com",
        "outreach_angle": angle,
        "pitch_hook": "They recommend 2 competitors but are missing your unique value prop",
        "research_prompts": [f"What are the main topics and categories covered on {domain}?"],
    }


def campaign_id(result):
    return UUID(result["campaign_id"])


def webhook_client(status=200, body=None, fail=False, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(json.loads(request.content))
        if fail:
            raise httpx.ConnectError("n8n unreachable", request=request)
        return httpx.Response(status, json=body if body is not None else {"accepted": True})

    return WebhookClient(transport=httpx.MockTransport(handler))


# =============================================================================
# TARGET FINDER
# =============================================================================

class TestTargetFinder:

    @pytest.mark.asyncio
    async def test_full_pipeline(self):
        def referring_route(payload):
            target = payload[0]["target"]
            return {
                "a.com": referring(("reviews.net", 3, 400), ("blog.org", 1, 100), ("mysite.com", 5, 900)),
                "b.com": referring(("reviews.net", 2, 200), ("m.youtube.com", 9, 990)),
                "c.com": referring(("blog.org", 1, 300)),
            }[target]

        stub = DataForSEOStub({
            SERP: dataforseo_envelope(items=[
                serp_item("a.com", 1),
                serp_item("www.youtube.com", 2),
                serp_item("mysite.com", 3),
                serp_item("a.com", 4, path="other"),
                serp_item("b.com", 5, item_type="featured_snippet"),
                serp_item("b.com", 6),
                serp_item("c.com", 7),
                serp_item("d.com", 8),
            ]),
            REFERRING: referring_route,
        })

        async with stub.client() as client:
            result = await OutreachTargetFinder(client, finder_config()).find_targets("crm", your_domain="https://mysite.com")

        assert result.competitor_domains == ["a.com", "b.com", "c.com"]
        assert result.credits_used == 4
        assert result.total_targets_found == 2
        assert [t.domain for t in result.targets] == ["reviews.net", "blog.org"]

        top = result.targets[0]
        assert top.linked_competitors == ["a.com", "b.com"]
        assert top.score == 70.0
        assert top.angle == "guest_post"
        assert result.targets[1].score == 60.0

        data = result.to_dict()
        assert data["competitors_analyzed"] == 3
        assert data["targets"][0]["why_targeted"] == "Links to a.com and b.com"

    @pytest.mark.asyncio
    async def test_serp_depth_limits_competitors(self):
        stub = DataForSEOStub({
            SERP: dataforseo_envelope(items=[serp_item(f"site{i}.com", i) for i in range(1, 6)]),
            REFERRING: referring(),
        })

        async with stub.client() as client:
            result = await OutreachTargetFinder(client, finder_config(serp_depth=2)).find_targets("crm")

        assert result.competitor_domains == ["site1.com", "site2.com"]
        assert stub.requests[0]["payload"][0]["depth"] == 100

    @pytest.mark.asyncio
    async def test_serp_failure_degrades_to_empty(self):
        stub = DataForSEOStub({SERP: 500})

        async with stub.client() as client:
            result = await OutreachTargetFinder(client, finder_config()).find_targets("crm")

        assert result.targets == []
        assert result.competitor_domains == []
        assert stub.endpoints() == [SERP]

    @pytest.mark.asyncio
    async def test_failed_competitor_is_dropped(self):
        def referring_route(payload):
            if payload[0]["target"] == "a.com":
                return 500
            return referring(("blog.org", 1, 100))

        stub = DataForSEOStub({
            SERP: dataforseo_envelope(items=[serp_item("a.com", 1), serp_item("b.com", 2)]),
            REFERRING: referring_route,
        })

        async with stub.client() as client:
            result = await OutreachTargetFinder(client, finder_config()).find_targets("crm")

        assert result.failed_competitors == ["a.com"]
        assert [t.domain for t in result.targets] == ["blog.org"]
        assert result.targets[0].linked_competitors == ["b.com"]

    @pytest.mark.asyncio
    async def test_every_competitor_failing_returns_no_targets(self):
        stub = DataForSEOStub({
            SERP: dataforseo_envelope(items=[serp_item("a.com", 1), serp_item("b.com", 2)]),
            REFERRING: 500,
        })

        async with stub.client() as client:
            result = await OutreachTargetFinder(client, finder_config()).find_targets("crm")

        assert result.targets == []
        assert result.total_targets_found == 0
        assert result.failed_competitors == ["a.com", "b.com"]
        assert result.credits_used == 1 + len(result.competitor_domains)

    @pytest.mark.asyncio
    async def test_default_config_applies_platform_blacklist(self):
        stub = DataForSEOStub({
            SERP: dataforseo_envelope(items=[serp_item("www.youtube.com", 1), serp_item("a.com", 2)]),
            REFERRING: referring(("youtube.com", 9, 990), ("en.wikipedia.org", 4, 950), ("blog.org", 1, 100)),
        })

        async with stub.client() as client:
            result = await OutreachTargetFinder(client).find_targets("crm")

        assert result.competitor_domains == ["a.com"]
        assert [t.domain for t in result.targets] == ["blog.org"]

    @pytest.mark.asyncio
    async def test_max_targets(self):
        stub = DataForSEOStub({
            SERP: dataforseo_envelope(items=[serp_item("a.com", 1)]),
            REFERRING: referring(*[(f"ref{i}.com", 1, i * 10) for i in range(6)]),
        })

        async with stub.client() as client:
            result = await OutreachTargetFinder(client, finder_config(max_targets=2)).find_targets("crm")

        assert result.total_targets_found == 6
        assert [t.domain for t in result.targets] == ["ref5.com", "ref4.com"]

    def test_link_map_follows_competitor_order(self):
        link_map = build_link_map(
            ["b.com", "a.com"],
            {
                "a.com": [ReferringDomainItem(domain_from="shared.com", backlinks=1, rank=10)],
                "b.com": [ReferringDomainItem(domain_from="shared.com", backlinks=2, rank=20)],
            },
        )
        assert [link.competitor for link in link_map["shared.com"]] == ["b.com", "a.com"]


# =============================================================================
# WEBHOOK CLIENT
# =============================================================================

class TestWebhookClient:

    @pytest.mark.asyncio
    async def test_json_body_kept(self):
        async with webhook_client(body={"executionId": "42"}) as webhooks:
            result = await webhooks.fire(N8N_URL, {"campaign_id": "x"})

        assert result.ok is True
        assert result.body == {"executionId": "42"}

    @pytest.mark.asyncio
    async def test_non_json_body_becomes_empty_dict(self):
        def handler(request):
            return httpx.Response(200, text="Workflow was started")

        async with WebhookClient(transport=httpx.MockTransport(handler)) as webhooks:
            result = await webhooks.fire(N8N_URL, {})

        assert result.body == {}

    @pytest.mark.asyncio
    async def test_error_status_is_not_an_exception(self):
        async with webhook_client(status=500, body={"message": "boom"}) as webhooks:
            result = await webhooks.fire(N8N_URL, {})

        assert result.ok is False
        assert result.status_code == 500

    @pytest.mark.asyncio
    async def test_unreachable(self):
        async with webhook_client(fail=True) as webhooks:
            with pytest.raises(WebhookDeliveryError):
                await webhooks.fire(N8N_URL, {})


# =============================================================================
# CAMPAIGNS
# =============================================================================

@pytest.fixture
def campaign(db_session, user, project):
    return create_campaign(
        db_session,
        user_id=user.id,
        project=project,
        keyword="crm software",
        targets=[target_dict("reviews.net", 70), target_dict("blog.org", 30, "resource_update")],
        webhook_url=N8N_URL,
    )


class TestCreateCampaign:

    def test_creates_campaign_and_target_records(self, db_session, campaign):
        assert campaign.status == CampaignStatus.PENDING
        assert campaign.campaign_name == "crm software - Outreach"
        assert campaign.your_domain == "mysite.com"
        assert campaign.target_count == 2

        records = list_targets(db_session, campaign.id)
        assert [record.domain for record in records] == ["reviews.net", "blog.org"]
        assert records[0].status == TargetStatus.PENDING
        assert records[1].outreach_angle == OutreachAngle.RESOURCE_UPDATE
        assert records[0].referring_domains == 4

    def test_duplicate_domains_keep_first(self, db_session, user, project):
        campaign = create_campaign(
            db_session, user.id, project, "crm",
            targets=[target_dict("WWW.Reviews.net", 70), target_dict("reviews.net", 10)],
            webhook_url=N8N_URL,
        )

        records = list_targets(db_session, campaign.id)
        assert len(records) == 1
        assert records[0].domain == "reviews.net"
        assert records[0].target_score == 70
        assert campaign.target_count == 1

        payload = build_webhook_payload(campaign, CALLBACK_URL)
        assert [target["target_id"] for target in payload["targets"]] == [str(records[0].id)]
        assert payload["targets"][0]["domain"] == "reviews.net"

    def test_payload_carries_record_ids(self, db_session, campaign):
        payload = build_webhook_payload(campaign, CALLBACK_URL)
        records = {record.domain: str(record.id) for record in list_targets(db_session, campaign.id)}

        assert payload["campaign_id"] == str(campaign.id)
        assert payload["callback_url"] == CALLBACK_URL
        assert payload["your_domain"] == "mysite.com"
        assert [target["target_id"] for target in payload["targets"]] == [records["reviews.net"], records["blog.org"]]


class TestLaunchCampaign:

    @pytest.mark.asyncio
    async def test_accepted_webhook_starts_campaign(self, db_session, user, project):
        calls = []
        async with webhook_client(body={"executionId": "42"}, calls=calls) as webhooks:
            result = await launch_campaign(
                db_session, webhooks, user.id, project, "crm",
                targets=[target_dict("reviews.net")],
                webhook_url=N8N_URL,
                callback_url=CALLBACK_URL,
            )

        assert result["success"] is True
        assert result["webhook_fired"] is True
        assert result["targets_count"] == 1

        campaign = db_session.get(OutreachCampaign, campaign_id(result))
        assert campaign.status == CampaignStatus.RUNNING
        assert campaign.webhook_fired_at is not None
        assert campaign.webhook_response == {"executionId": "42"}
        assert calls[0]["keyword"] == "crm"
        assert calls[0]["targets"][0]["domain"] == "reviews.net"

    @pytest.mark.asyncio
    async def test_rejected_webhook_leaves_campaign_pending(self, db_session, user, project):
        async with webhook_client(status=503) as webhooks:
            result = await launch_campaign(
                db_session, webhooks, user.id, project, "crm",
                targets=[target_dict("reviews.net")],
                webhook_url=N8N_URL,
                callback_url=CALLBACK_URL,
            )

        assert result["success"] is True
        assert result["webhook_fired"] is False
        assert "retry" in result["message"]
        assert db_session.get(OutreachCampaign, campaign_id(result)).status == CampaignStatus.PENDING

    @pytest.mark.asyncio
    async def test_unreachable_webhook_keeps_campaign(self, db_session, user, project):
        async with webhook_client(fail=True) as webhooks:
            result = await launch_campaign(
                db_session, webhooks, user.id, project, "crm",
                targets=[target_dict("reviews.net")],
                webhook_url=N8N_URL,
                callback_url=CALLBACK_URL,
            )

        assert result["success"] is False
        assert result["error"] == "Campaign created but webhook failed to fire"
        campaign = db_session.get(OutreachCampaign, campaign_id(result))
        assert campaign is not None
        assert campaign.status == CampaignStatus.PENDING
        assert "n8n unreachable" in campaign.webhook_response["error"]

    @pytest.mark.asyncio
    async def test_retry_only_for_pending(self, db_session, campaign):
        async with webhook_client() as webhooks:
            result = await retry_campaign_webhook(db_session, campaign, webhooks, CALLBACK_URL)
            assert result["success"] is True
            assert result["status"] == "running"

            with pytest.raises(InvalidStatusError):
                await retry_campaign_webhook(db_session, campaign, webhooks, CALLBACK_URL)


class TestCallbacks:

    def test_status_progression_updates_counts(self, db_session, campaign):
        apply_callback(db_session, campaign.id, "reviews.net", status="sent",
                       contact_info={"email": "editor@reviews.net"})
        apply_callback(db_session, campaign.id, "blog.org", status="replied")

        assert campaign.sent_count == 2
        assert campaign.replied_count == 1
        assert campaign.link_acquired_count == 0

        record = db_session.query(OutreachTargetRecord).filter_by(domain="reviews.net").one()
        assert record.contact_info == {"email": "editor@reviews.net"}
        assert record.contacted_at is not None

    def test_repeated_callback_is_idempotent(self, db_session, campaign):
        apply_callback(db_session, campaign.id, "reviews.net", status="link_acquired")
        record = db_session.query(OutreachTargetRecord).filter_by(domain="reviews.net").one()
        acquired_at = record.link_acquired_at
        counts = (campaign.sent_count, campaign.replied_count, campaign.link_acquired_count)

        apply_callback(db_session, campaign.id, "reviews.net", status="link_acquired")

        assert record.link_acquired_at == acquired_at
        assert (campaign.sent_count, campaign.replied_count, campaign.link_acquired_count) == counts
        assert counts == (1, 1, 1)

    def test_timestamps_set_once(self, db_session, campaign):
        record = db_session.query(OutreachTargetRecord).filter_by(domain="reviews.net").one()
        record.contacted_at = datetime(2025, 1, 1)
        db_session.commit()

        apply_callback(db_session, campaign.id, "reviews.net", status="sent")

        assert record.contacted_at == datetime(2025, 1, 1)

    def test_empty_fields_do_not_overwrite(self, db_session, campaign):
        apply_callback(db_session, campaign.id, "reviews.net", outreach_email="Hi there")
        apply_callback(db_session, campaign.id, "reviews.net", outreach_email="", research_data=None)

        record = db_session.query(OutreachTargetRecord).filter_by(domain="reviews.net").one()
        assert record.outreach_email == "Hi there"
        assert record.status == TargetStatus.PENDING

    def test_domain_is_normalized(self, db_session, campaign):
        result = apply_callback(db_session, campaign.id, "https://www.Reviews.net/", status="researching")
        assert result["status"] == "researching"

    def test_campaign_status_from_callback(self, db_session, campaign):
        apply_callback(db_session, campaign.id, "reviews.net", status="declined", campaign_status="completed")
        assert campaign.status == CampaignStatus.COMPLETED

    def test_unknown_campaign(self, db_session):
        with pytest.raises(CampaignNotFoundError):
            apply_callback(db_session, uuid4(), "reviews.net", status="sent")

    def test_target_addressed_by_record_id(self, db_session, campaign):
        record = db_session.query(OutreachTargetRecord).filter_by(domain="blog.org").one()

        result = apply_callback(db_session, campaign.id, target_id=record.id, status="sent")

        assert result["target_id"] == str(record.id)
        assert record.status == TargetStatus.SENT
        assert record.contacted_at is not None

    def test_unknown_record_id_falls_back_to_domain(self, db_session, campaign):
        result = apply_callback(db_session, campaign.id, "reviews.net", status="researching", target_id=uuid4())

        record = db_session.query(OutreachTargetRecord).filter_by(domain="reviews.net").one()
        assert result["target_id"] == str(record.id)
        assert record.status == TargetStatus.RESEARCHING

    def test_record_id_scoped_to_campaign(self, db_session, user, project, campaign):
        other = create_campaign(
            db_session, user.id, project, "crm tools",
            targets=[target_dict("elsewhere.io")],
            webhook_url=N8N_URL,
        )
        foreign_id = other.target_records[0].id

        with pytest.raises(TargetNotFoundError):
            apply_callback(db_session, campaign.id, target_id=foreign_id, status="sent")

    def test_unknown_target(self, db_session, campaign):
        with pytest.raises(TargetNotFoundError):
            apply_callback(db_session, campaign.id, "stranger.com", status="sent")

    def test_invalid_status_changes_nothing(self, db_session, campaign):
        with pytest.raises(InvalidStatusError):
            apply_callback(db_session, campaign.id, "reviews.net", status="ghosted", outreach_email="Hi")

        record = db_session.query(OutreachTargetRecord).filter_by(domain="reviews.net").one()
        assert record.status == TargetStatus.PENDING
        assert record.outreach_email is None


class TestCampaignStatus:

    def test_any_transition_allowed(self, db_session, campaign):
        update_campaign_status(db_session, campaign, "completed")
        assert campaign.status == CampaignStatus.COMPLETED

        update_campaign_status(db_session, campaign, "RUNNING")
        assert campaign.status == CampaignStatus.RUNNING

    def test_invalid_status(self, db_session, campaign):
        with pytest.raises(InvalidStatusError, match="pending, running, completed"):
            update_campaign_status(db_session, campaign, "paused")
