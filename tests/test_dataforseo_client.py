"""
DataForSEO Client Tests

The client is exercised end to end through httpx.MockTransport: request
shape, both error levels, and the typed endpoint helpers.
"""

import json

import httpx
import pytest

from rankpilot.collector.client import DataForSEOClient, DataForSEOError
from rankpilot.collector.schemas import DataForSEOResponse, KeywordMetricsItem

from conftest import DataForSEOStub, dataforseo_envelope, ranked_keyword_item, serp_item


class TestPost:

    @pytest.mark.asyncio
    async def test_sends_basic_auth_and_task_list(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            seen["body"] = request.content
            return httpx.Response(200, json=dataforseo_envelope())

        async with DataForSEOClient("login@example.com", "pw", transport=httpx.MockTransport(handler)) as client:
            await client.post("/serp/google/organic/live/advanced", [{"keyword": "crm"}])

        # base64("login@example.com:pw")
        assert seen["auth"] == "Basic bG9naW5AZXhhbXBsZS5jb206cHc="
        assert seen["path"] == "/v3/serp/google/organic/live/advanced"
        assert json.loads(seen["body"]) == [{"keyword": "crm"}]

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self):
        stub = DataForSEOStub({"backlinks/summary/live": 401})

        async with stub.client() as client:
            with pytest.raises(DataForSEOError) as exc_info:
                await client.post("backlinks/summary/live", [{}])

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_embedded_error_code_raises(self):
        stub = DataForSEOStub({
            "backlinks/summary/live": dataforseo_envelope(
                status_code=40104, status_message="Please visit the account dashboard."
            ),
        })

        async with stub.client() as client:
            with pytest.raises(DataForSEOError, match="account dashboard") as exc_info:
                await client.post("backlinks/summary/live", [{}])

        assert exc_info.value.status_code == 40104
        assert exc_info.value.response["status_code"] == 40104

    @pytest.mark.asyncio
    async def test_task_level_error_is_only_logged(self):
        stub = DataForSEOStub({
            "backlinks/summary/live": dataforseo_envelope(task_status_code=40501, result=[]),
        })

        async with stub.client() as client:
            result = await client.post("backlinks/summary/live", [{}])

        assert result["tasks"][0]["status_code"] == 40501

    @pytest.mark.asyncio
    async def test_transport_failure_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with DataForSEOClient("l", "p", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(DataForSEOError, match="HTTP error"):
                await client.post("serp/google/organic/live/advanced", [{}])

    @pytest.mark.asyncio
    async def test_closed_client_refuses_requests(self):
        client = DataForSEOStub().client()
        await client.close()

        with pytest.raises(DataForSEOError, match="closed"):
            await client.post("anything", [{}])


class TestEnvelope:

    def test_empty_and_null_results(self):
        response = DataForSEOResponse.model_validate({"tasks": [{"status_code": 20000, "result": None}]})
        assert response.results() == []
        assert response.first_result() == {}
        assert response.result_items() == []

    def test_null_items_are_dropped(self):
        response = DataForSEOResponse.model_validate(dataforseo_envelope(items=[{"a": 1}, None]))
        assert response.result_items() == [{"a": 1}]


class TestKeywordMetricsItem:
    """Every endpoint shape resolves to the same accessors."""

    def test_google_ads_flat_row(self):
        item = KeywordMetricsItem.model_validate({
            "keyword": "crm", "search_volume": 1000, "cpc": 2.5, "competition": "HIGH",
        })
        assert (item.text, item.volume, item.cost_per_click, item.competition_label) == ("crm", 1000, 2.5, "high")
        assert item.difficulty is None

    def test_labs_keyword_info(self):
        item = KeywordMetricsItem.model_validate({
            "keyword": "crm",
            "keyword_info": {"search_volume": 500, "competition_level": "MEDIUM", "cpc": 1.2},
            "keyword_properties": {"keyword_difficulty": 37},
        })
        assert (item.volume, item.competition_label, item.difficulty) == (500, "medium", 37)

    def test_related_keywords_nested_data(self):
        item = KeywordMetricsItem.model_validate({
            "keyword_data": {
                "keyword": "best crm",
                "keyword_info": {"search_volume": 90, "monthly_searches": [{"year": 2024, "month": 1}]},
                "keyword_properties": {"keyword_difficulty": 12},
            },
        })
        assert item.text == "best crm"
        assert item.volume == 90
        assert item.difficulty == 12
        assert item.monthly == [{"year": 2024, "month": 1}]


class TestEndpointHelpers:

    @pytest.mark.asyncio
    async def test_ranked_keywords(self):
        stub = DataForSEOStub({
            "dataforseo_labs/google/ranked_keywords/live": dataforseo_envelope(items=[
                ranked_keyword_item("crm software", search_volume=5000, difficulty=70),
            ]),
        })

        async with stub.client() as client:
            items = await client.get_ranked_keywords("competitor.com", limit=10)

        assert items[0].keyword_data.keyword == "crm software"
        assert items[0].ranked_serp_element.serp_item.etv == 12.5
        task = stub.requests[0]["payload"][0]
        assert task["target"] == "competitor.com"
        assert task["limit"] == 10
        assert task["item_types"] == ["organic"]

    @pytest.mark.asyncio
    async def test_serp_results(self):
        stub = DataForSEOStub({
            "serp/google/organic/live/advanced": dataforseo_envelope(items=[
                serp_item("a.com", 1),
                serp_item("b.com", 2, item_type="featured_snippet"),
            ]),
        })

        async with stub.client() as client:
            items = await client.get_serp_results("crm", device="mobile")

        assert [item.is_organic for item in items] == [True, False]
        assert stub.requests[0]["payload"][0]["device"] == "mobile"
        assert stub.requests[0]["payload"][0]["depth"] == 100

    @pytest.mark.asyncio
    async def test_backlinks_skip_rows_without_urls(self):
        stub = DataForSEOStub({
            "backlinks/backlinks/live": dataforseo_envelope(items=[
                {"url_from": "https://blog.com/post", "url_to": "https://mysite.com/", "rank": 40},
                {"url_from": None, "url_to": "https://mysite.com/"},
            ]),
        })

        async with stub.client() as client:
            items = await client.get_backlinks("mysite.com")

        assert len(items) == 1
        assert items[0].dofollow is True

    @pytest.mark.asyncio
    async def test_referring_domains_accepts_domain_alias(self):
        stub = DataForSEOStub({
            "backlinks/referring_domains/live": dataforseo_envelope(items=[
                {"domain": "blog.com", "backlinks": 4, "rank": 310},
                {"domain_from": "news.com", "backlinks": 1, "rank": 120},
                {"backlinks": 9},
            ]),
        })

        async with stub.client() as client:
            items = await client.get_referring_domains("competitor.com", limit=50)

        assert [item.domain_from for item in items] == ["blog.com", "news.com"]
        assert stub.requests[0]["payload"][0]["order_by"] == ["rank,desc"]

    @pytest.mark.asyncio
    async def test_backlink_summary(self):
        stub = DataForSEOStub({
            "backlinks/summary/live": dataforseo_envelope(result=[
                {"rank": 42, "backlinks": 1200, "referring_domains": 80},
            ]),
        })

        async with stub.client() as client:
            summary = await client.get_backlink_summary("mysite.com")

        assert summary["domain_rank"] == 42
        assert summary["referring_domains"] == 80
        assert summary["broken_backlinks"] == 0

    @pytest.mark.asyncio
    async def test_keyword_difficulty_keyed_by_lowercase(self):
        stub = DataForSEOStub({
            "dataforseo_labs/google/bulk_keyword_difficulty/live": dataforseo_envelope(items=[
                {"keyword": "CRM Software", "keyword_difficulty": 64},
            ]),
        })

        async with stub.client() as client:
            difficulty = await client.get_keyword_difficulty(["CRM Software"])

        assert difficulty == {"crm software": 64}
