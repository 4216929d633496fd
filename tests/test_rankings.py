"""
Rank Tracking and Backlink Ingestion Tests
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from rankpilot.collector.client import DataForSEOError
from rankpilot.database.models import Backlink, LinkType, Project, Ranking
from rankpilot.services.backlinks import fetch_and_store_backlinks, list_backlinks
from rankpilot.services.rankings import (
    RankCheckResult,
    check_rank,
    get_ranking_history,
    record_ranking,
    run_daily_rank_check,
)

from conftest import DataForSEOStub, dataforseo_envelope, serp_item

SERP = "serp/google/organic/live/advanced"
BACKLINKS = "backlinks/backlinks/live"


def serp_with(*items):
    return dataforseo_envelope(items=list(items))


class TestCheckRank:

    @pytest.mark.asyncio
    async def test_first_matching_url_wins(self):
        stub = DataForSEOStub({
            SERP: serp_with(
                serp_item("competitor.com", 1),
                serp_item("blog.mysite.com", 4, path="guide"),
                serp_item("mysite.com", 7, path="pricing"),
            ),
        })

        async with stub.client() as client:
            result = await check_rank(client, "crm software", "https://www.MySite.com/")

        assert result.found
        assert result.position == 4
        assert result.rank_url == "https://blog.mysite.com/guide"
        assert result.domain == "mysite.com"
        assert result.total_results == 3
        assert result.to_dict()["rankUrl"] == "https://blog.mysite.com/guide"

    @pytest.mark.asyncio
    async def test_not_ranking(self):
        stub = DataForSEOStub({SERP: serp_with(serp_item("competitor.com", 1))})

        async with stub.client() as client:
            result = await check_rank(client, "crm software", "mysite.com", device="mobile")

        assert not result.found
        assert result.position is None
        assert stub.requests[0]["payload"][0]["device"] == "mobile"

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self):
        stub = DataForSEOStub({SERP: 500})

        async with stub.client() as client:
            with pytest.raises(DataForSEOError):
                await check_rank(client, "crm", "mysite.com")


class TestRecordRanking:

    def test_found_position_is_stored(self, db_session, project, add_keyword):
        keyword = add_keyword(project, "crm software")
        result = RankCheckResult(keyword="crm software", domain="mysite.com", position=3, rank_url="https://mysite.com/")

        ranking = record_ranking(db_session, keyword, result, device="mobile")
        db_session.commit()

        assert ranking.rank_position == 3
        assert ranking.project_id == project.id
        assert ranking.device == "mobile"
        assert db_session.query(Ranking).count() == 1

    def test_not_found_stores_nothing(self, db_session, project, add_keyword):
        keyword = add_keyword(project, "crm software")

        assert record_ranking(db_session, keyword, RankCheckResult(keyword="crm software", domain="mysite.com")) is None
        assert db_session.query(Ranking).count() == 0

    def test_history_window_oldest_first(self, db_session, project, add_keyword):
        keyword = add_keyword(project, "crm software")
        now = datetime.utcnow()
        for days_ago, position in [(2, 8), (45, 20), (1, 5)]:
            db_session.add(Ranking(
                keyword_id=keyword.id,
                project_id=project.id,
                rank_position=position,
                checked_at=now - timedelta(days=days_ago),
            ))
        db_session.commit()

        history = get_ranking_history(db_session, keyword.id, days=30)

        assert [ranking.rank_position for ranking in history] == [8, 5]


class TestDailyRankCheck:

    @pytest.mark.asyncio
    async def test_checks_every_keyword_and_counts_errors(self, db_session, user, project, add_keyword):
        second_project = Project(id=uuid4(), user_id=user.id, name="Shop", domain="shop.io")
        db_session.add(second_project)
        db_session.commit()

        add_keyword(project, "crm software")
        add_keyword(project, "broken keyword")
        add_keyword(project, "not ranking")
        add_keyword(second_project, "buy widgets")

        def serp(payload):
            keyword = payload[0]["keyword"]
            if keyword == "broken keyword":
                return 500
            if keyword == "not ranking":
                return serp_with(serp_item("competitor.com", 1))
            return serp_with(serp_item("competitor.com", 1), serp_item("mysite.com", 2), serp_item("shop.io", 3))

        stub = DataForSEOStub({SERP: serp})

        async with stub.client() as client:
            result = await run_daily_rank_check(db_session, client, delay_seconds=0)

        assert result["success"] is True
        assert result["totalChecked"] == 2
        assert result["totalErrors"] == 1
        assert len(stub.requests) == 4

        positions = {
            (ranking.project_id, ranking.rank_position)
            for ranking in db_session.query(Ranking).all()
        }
        assert positions == {(project.id, 2), (second_project.id, 3)}

    @pytest.mark.asyncio
    async def test_no_projects(self, db_session):
        stub = DataForSEOStub()

        async with stub.client() as client:
            result = await run_daily_rank_check(db_session, client, delay_seconds=0)

        assert result["totalChecked"] == 0
        assert stub.requests == []


class TestBacklinkIngestion:

    @pytest.mark.asyncio
    async def test_upsert_refreshes_existing_links(self, db_session, project):
        stub = DataForSEOStub({
            BACKLINKS: dataforseo_envelope(items=[
                {"url_from": "https://blog.com/a", "url_to": "https://mysite.com/", "anchor": "my site",
                 "rank": 40, "dofollow": True, "first_seen": "2024-03-01 10:00:00 +00:00"},
                {"url_from": "https://news.com/b", "url_to": "https://mysite.com/pricing",
                 "rank": 70, "dofollow": False},
                {"url_from": "https://blog.com/a", "url_to": "https://mysite.com/", "rank": 40},
            ]),
        })

        async with stub.client() as client:
            first = await fetch_and_store_backlinks(db_session, client, project.id, "mysite.com")
            db_session.commit()
            second = await fetch_and_store_backlinks(db_session, client, project.id, "mysite.com")
            db_session.commit()

        assert first == {"success": True, "count": 3, "stored": 2}
        assert second["stored"] == 2
        assert db_session.query(Backlink).count() == 2

        backlinks = list_backlinks(db_session, project.id)
        assert [backlink.domain_rank for backlink in backlinks] == [70, 40]
        assert backlinks[0].link_type == LinkType.NOFOLLOW
        assert backlinks[1].first_seen == datetime(2024, 3, 1, 10, 0, 0)

    @pytest.mark.asyncio
    async def test_lost_links_hidden_by_default(self, db_session, project):
        db_session.add(Backlink(
            project_id=project.id,
            source_url="https://gone.com/",
            target_url="https://mysite.com/",
            is_lost=True,
        ))
        db_session.commit()

        assert list_backlinks(db_session, project.id) == []
        assert len(list_backlinks(db_session, project.id, include_lost=True)) == 1
