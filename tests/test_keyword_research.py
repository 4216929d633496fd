"""
Keyword Research Service Tests

Gap analysis against tracked keywords, gap tracking, hybrid idea merging
and the metric refresh, with DataForSEO served by MockTransport.
"""

import pytest

from rankpilot.collector.client import DataForSEOError
from rankpilot.collector.schemas import KeywordMetricsItem
from rankpilot.database.models import Competition, Keyword
from rankpilot.database.repository import get_project_keyword_set
from rankpilot.scoring.gap import CompetitorKeywordRecord
from rankpilot.services.keyword_research import (
    NoCompetitorKeywordsError,
    get_hybrid_keywords,
    merge_keyword_sources,
    refresh_keyword_metrics,
    run_keyword_gap,
    track_gap_keyword,
)

from conftest import DataForSEOStub, dataforseo_envelope, ranked_keyword_item

RANKED = "dataforseo_labs/google/ranked_keywords/live"
SIMILAR = "dataforseo_labs/google/keyword_ideas/live"
RELATED = "dataforseo_labs/google/related_keywords/live"
ADS_IDEAS = "keywords_data/google_ads/keywords_for_keywords/live"
SEARCH_VOLUME = "keywords_data/google_ads/search_volume/live"
DIFFICULTY = "dataforseo_labs/google/bulk_keyword_difficulty/live"


def metrics(keyword, volume=0, cpc=0.0, difficulty=None):
    return KeywordMetricsItem(keyword=keyword, search_volume=volume, cpc=cpc, keyword_difficulty=difficulty)


class TestRunKeywordGap:

    @pytest.mark.asyncio
    async def test_gap_against_tracked_keywords(self, db_session, project, add_keyword):
        add_keyword(project, "CRM Software")
        stub = DataForSEOStub({
            RANKED: dataforseo_envelope(items=[
                ranked_keyword_item("crm software", search_volume=5000, difficulty=80),
                ranked_keyword_item("free crm", search_volume=2000, difficulty=20),
                ranked_keyword_item("crm for startups", search_volume=900),
            ]),
        })

        async with stub.client() as client:
            result = await run_keyword_gap(db_session, client, project, "https://www.Competitor.com/", limit=50)

        assert result["competitor_domain"] == "competitor.com"
        assert result["your_keywords_count"] == 1
        assert result["competitor_keywords_count"] == 3
        assert [gap["keyword"] for gap in result["gaps"]] == ["free crm", "crm for startups"]
        assert result["gaps"][0]["opportunity_score"] == 1600.0
        assert result["gaps"][0]["competition"] == "low"
        assert [overlap["keyword"] for overlap in result["overlaps"]] == ["crm software"]

        task = stub.requests[0]["payload"][0]
        assert task["target"] == "competitor.com"
        assert task["order_by"] == ["keyword_data.keyword_info.search_volume,desc"]

    @pytest.mark.asyncio
    async def test_inner_whitespace_is_not_folded(self, db_session, project, add_keyword):
        add_keyword(project, "seo  tools")
        add_keyword(project, "Rank Tracker")
        stub = DataForSEOStub({
            RANKED: dataforseo_envelope(items=[
                ranked_keyword_item("seo tools", search_volume=400),
                ranked_keyword_item("rank tracker", search_volume=300),
            ]),
        })

        async with stub.client() as client:
            result = await run_keyword_gap(db_session, client, project, "competitor.com")

        assert result["your_keywords_count"] == 2
        assert [gap["keyword"] for gap in result["gaps"]] == ["seo tools"]
        assert [overlap["keyword"] for overlap in result["overlaps"]] == ["rank tracker"]

    @pytest.mark.asyncio
    async def test_limit_is_capped(self, db_session, project):
        stub = DataForSEOStub({RANKED: dataforseo_envelope(items=[ranked_keyword_item("crm")])})

        async with stub.client() as client:
            await run_keyword_gap(db_session, client, project, "competitor.com", limit=5000)

        assert stub.requests[0]["payload"][0]["limit"] == 100

    @pytest.mark.asyncio
    async def test_no_competitor_keywords(self, db_session, project):
        stub = DataForSEOStub({RANKED: dataforseo_envelope(items=[])})

        async with stub.client() as client:
            with pytest.raises(NoCompetitorKeywordsError, match="competitor.com"):
                await run_keyword_gap(db_session, client, project, "competitor.com")

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates(self, db_session, project):
        stub = DataForSEOStub({RANKED: 500})

        async with stub.client() as client:
            with pytest.raises(DataForSEOError):
                await run_keyword_gap(db_session, client, project, "competitor.com")


class TestTrackGapKeyword:

    def test_creates_keyword_with_discovery_metrics(self, db_session, project):
        record = CompetitorKeywordRecord(
            keyword="Free CRM", search_volume=2000, keyword_difficulty=20, cpc=3.1, competition="LOW",
        )

        keyword, created = track_gap_keyword(db_session, project, record)

        assert created is True
        assert keyword.keyword == "Free CRM"
        assert keyword.keyword_normalized == "free crm"
        assert keyword.search_volume == 2000
        assert keyword.competition == Competition.LOW
        assert keyword.metrics_updated_at is not None

    def test_tracking_twice_is_idempotent(self, db_session, project):
        first, _ = track_gap_keyword(db_session, project, CompetitorKeywordRecord(keyword="free crm", search_volume=10))
        second, created = track_gap_keyword(db_session, project, CompetitorKeywordRecord(keyword="FREE CRM", search_volume=99))

        assert created is False
        assert second.id == first.id
        assert second.search_volume == 10
        assert db_session.query(Keyword).count() == 1

    def test_identity_matches_gap_matching(self, db_session, project):
        spaced, _ = track_gap_keyword(db_session, project, CompetitorKeywordRecord(keyword="seo  tools"))
        single, created = track_gap_keyword(db_session, project, CompetitorKeywordRecord(keyword="SEO Tools"))
        again, repeated = track_gap_keyword(db_session, project, CompetitorKeywordRecord(keyword=" seo tools "))

        assert created is True
        assert single.id != spaced.id
        assert repeated is False
        assert again.id == single.id
        assert get_project_keyword_set(db_session, project.id) == {"seo  tools", "seo tools"}


class TestHybridKeywords:

    def test_merge_first_source_fixes_text(self):
        ideas = merge_keyword_sources([
            ("seo", [metrics("CRM Tools", volume=100, cpc=1.0)]),
            ("ads", [metrics("crm tools", volume=300, cpc=0.5, difficulty=40)]),
        ])

        assert len(ideas) == 1
        idea = ideas[0]
        assert idea.keyword == "CRM Tools"
        assert idea.search_volume == 300
        assert idea.cpc == 1.0
        assert idea.keyword_difficulty == 40
        assert idea.source == "seo"
        assert idea.sources == ["seo", "ads"]

    def test_merge_keeps_first_seen_order_and_limit(self):
        ideas = merge_keyword_sources(
            [("seo", [metrics("a"), metrics("b")]), ("related", [metrics("c"), metrics("a")])],
            limit=2,
        )
        assert [idea.keyword for idea in ideas] == ["a", "b"]

    def test_blank_keywords_skipped(self):
        assert merge_keyword_sources([("seo", [metrics("")])]) == []

    def test_to_dict_marks_missing_competition(self):
        idea = merge_keyword_sources([("seo", [metrics("crm")])])[0]
        assert idea.to_dict()["competition"] == "N/A"

    @pytest.mark.asyncio
    async def test_failing_source_is_skipped(self):
        stub = DataForSEOStub({
            SIMILAR: dataforseo_envelope(items=[
                {"keyword": "crm app", "keyword_info": {"search_volume": 400}},
            ]),
            RELATED: 500,
            ADS_IDEAS: dataforseo_envelope(result=[
                {"keyword": "crm app", "search_volume": 450, "competition": "LOW"},
                {"keyword": "crm pricing", "search_volume": 700},
            ]),
        })

        async with stub.client() as client:
            ideas, credits = await get_hybrid_keywords(
                client, "crm", include_seo=True, include_ads=True, include_related=True,
            )

        assert credits == 3
        assert [idea.keyword for idea in ideas] == ["crm app", "crm pricing"]
        assert ideas[0].search_volume == 450
        assert ideas[0].sources == ["seo", "ads"]

    @pytest.mark.asyncio
    async def test_only_selected_sources_called(self):
        stub = DataForSEOStub({SIMILAR: dataforseo_envelope(items=[])})

        async with stub.client() as client:
            ideas, credits = await get_hybrid_keywords(client, "crm", include_related=False)

        assert credits == 1
        assert ideas == []
        assert stub.endpoints() == [SIMILAR]


class TestRefreshKeywordMetrics:

    @pytest.mark.asyncio
    async def test_updates_metrics_and_difficulty(self, db_session, project, add_keyword):
        crm = add_keyword(project, "CRM Software", keyword_difficulty=10)
        stale = add_keyword(project, "unknown keyword", search_volume=5)
        stub = DataForSEOStub({
            SEARCH_VOLUME: dataforseo_envelope(result=[
                {"keyword": "crm software", "search_volume": 8100, "cpc": 12.4, "competition": "HIGH",
                 "monthly_searches": [{"year": 2025, "month": 1, "search_volume": 8000}]},
            ]),
            DIFFICULTY: dataforseo_envelope(items=[{"keyword": "crm software", "keyword_difficulty": 71}]),
        })

        async with stub.client() as client:
            result = await refresh_keyword_metrics(db_session, client, project)

        assert result == {"success": True, "updated": 1, "credits_used": 3}
        assert crm.search_volume == 8100
        assert crm.cpc == 12.4
        assert crm.competition == Competition.HIGH
        assert crm.keyword_difficulty == 71
        assert crm.metrics_updated_at is not None
        assert stale.search_volume == 5
        assert stale.metrics_updated_at is None

    @pytest.mark.asyncio
    async def test_difficulty_failure_keeps_old_value(self, db_session, project, add_keyword):
        crm = add_keyword(project, "crm software", keyword_difficulty=33)
        stub = DataForSEOStub({
            SEARCH_VOLUME: dataforseo_envelope(result=[{"keyword": "crm software", "search_volume": 100}]),
            DIFFICULTY: 502,
        })

        async with stub.client() as client:
            result = await refresh_keyword_metrics(db_session, client, project)

        assert result["credits_used"] == 1
        assert crm.search_volume == 100
        assert crm.keyword_difficulty == 33

    @pytest.mark.asyncio
    async def test_no_keywords_makes_no_calls(self, db_session, project):
        stub = DataForSEOStub()

        async with stub.client() as client:
            result = await refresh_keyword_metrics(db_session, client, project)

        assert result == {"success": True, "updated": 0, "credits_used": 0}
        assert stub.requests == []
