"""
Google Search Console Tests

OAuth URL and token exchange, refresh-only-when-expired, the sync date
window, and batched upserts of analytics rows.
"""

from datetime import date, datetime, timedelta
from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import httpx
import pytest

from rankpilot.database.models import GSCData, GSCToken, Project
from rankpilot.integrations.gsc import GSCClient, GSCError, GSCTokens, parse_analytics_row
from rankpilot.services.gsc_sync import (
    ensure_fresh_token,
    save_token,
    sync_all_projects,
    sync_date_range,
    sync_project,
)


class GoogleStub:
    """Token endpoint plus Search Console API over MockTransport."""

    def __init__(self, rows=None, sites=None, token_status=200):
        self.rows = rows or []
        self.sites = sites or []
        self.token_status = token_status
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == "oauth2.googleapis.com":
            if self.token_status != 200:
                return httpx.Response(self.token_status, text="invalid_grant")
            return httpx.Response(200, json={"access_token": "fresh-access", "expires_in": 3600})

        if request.url.path.endswith("/sites"):
            return httpx.Response(200, json={"siteEntry": self.sites})

        if request.url.path.endswith("/searchAnalytics/query"):
            return httpx.Response(200, json={"rows": self.rows})

        return httpx.Response(404)

    def client(self) -> GSCClient:
        return GSCClient(
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="http://localhost:8000/api/gsc/callback",
            transport=httpx.MockTransport(self.handler),
        )

    def token_requests(self):
        return [r for r in self.requests if r.url.host == "oauth2.googleapis.com"]


def analytics_row(query, page="https://mysite.com/", day="2025-01-10", device="DESKTOP", country="usa", clicks=3):
    return {
        "keys": [query, page, day, device, country],
        "clicks": clicks,
        "impressions": 40,
        "ctr": 0.075,
        "position": 4.2,
    }


@pytest.fixture
def token(db_session, user, project):
    token = GSCToken(
        id=uuid4(),
        user_id=user.id,
        project_id=project.id,
        access_token="stored-access",
        refresh_token="stored-refresh",
        token_expiry=datetime.utcnow() + timedelta(hours=1),
        site_url="sc-domain:mysite.com",
    )
    db_session.add(token)
    db_session.commit()
    return token


class TestOAuth:

    def test_auth_url_requests_offline_access(self):
        url = GoogleStub().client().get_auth_url(state="project-123")
        params = parse_qs(urlparse(url).query)

        assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert params["state"] == ["project-123"]
        assert params["scope"] == ["https://www.googleapis.com/auth/webmasters.readonly"]

    @pytest.mark.asyncio
    async def test_exchange_code(self):
        stub = GoogleStub()

        async with stub.client() as gsc:
            tokens = await gsc.exchange_code("auth-code")

        assert tokens.access_token == "fresh-access"
        assert tokens.refresh_token is None
        assert tokens.expiry > datetime.utcnow() + timedelta(minutes=59)
        assert b"grant_type=authorization_code" in stub.token_requests()[0].content

    @pytest.mark.asyncio
    async def test_token_error(self):
        stub = GoogleStub(token_status=400)

        async with stub.client() as gsc:
            with pytest.raises(GSCError) as exc_info:
                await gsc.refresh_access_token("revoked")

        assert exc_info.value.status_code == 400


class TestAnalyticsRows:

    def test_parse_row(self):
        project_id = uuid4()
        row = parse_analytics_row(project_id, analytics_row("crm software"))

        assert row["project_id"] == project_id
        assert row["date"] == date(2025, 1, 10)
        assert row["query"] == "crm software"
        assert row["device"] == "DESKTOP"
        assert row["clicks"] == 3
        assert row["position"] == 4.2

    def test_date_range_ends_yesterday(self):
        assert sync_date_range(30, today=date(2025, 3, 31)) == ("2025-02-28", "2025-03-30")
        assert sync_date_range(7, today=date(2025, 1, 1)) == ("2024-12-24", "2024-12-31")


class TestTokenRefresh:

    @pytest.mark.asyncio
    async def test_valid_token_not_refreshed(self, db_session, token):
        stub = GoogleStub()

        async with stub.client() as gsc:
            access = await ensure_fresh_token(db_session, gsc, token)

        assert access == "stored-access"
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_and_refresh_token_kept(self, db_session, token):
        token.token_expiry = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()
        stub = GoogleStub()

        async with stub.client() as gsc:
            access = await ensure_fresh_token(db_session, gsc, token)

        assert access == "fresh-access"
        assert len(stub.token_requests()) == 1
        assert b"grant_type=refresh_token" in stub.token_requests()[0].content

        db_session.refresh(token)
        assert token.access_token == "fresh-access"
        assert token.refresh_token == "stored-refresh"
        assert token.token_expiry > datetime.utcnow()


class TestSaveToken:

    def test_reconnect_replaces_connection(self, db_session, user, project):
        expiry = datetime.utcnow() + timedelta(hours=1)
        save_token(db_session, user.id, project.id, GSCTokens("a1", "r1", expiry), "https://mysite.com/")
        save_token(db_session, user.id, project.id, GSCTokens("a2", None, expiry), "sc-domain:mysite.com")

        tokens = db_session.query(GSCToken).all()
        assert len(tokens) == 1
        assert tokens[0].access_token == "a2"
        assert tokens[0].refresh_token == "r1"
        assert tokens[0].site_url == "sc-domain:mysite.com"


class TestSyncProject:

    @pytest.mark.asyncio
    async def test_rows_upserted_in_batches(self, db_session, token):
        rows = [analytics_row(f"query {i}") for i in range(5)]
        rows.append(analytics_row("query 0", clicks=9))
        stub = GoogleStub(rows=rows)

        async with stub.client() as gsc:
            result = await sync_project(db_session, gsc, token, days=30, batch_size=2)

        assert result["success"] is True
        assert result["rowsInserted"] == 5
        assert db_session.query(GSCData).count() == 5
        assert db_session.query(GSCData).filter(GSCData.query == "query 0").one().clicks == 9

        body = stub.requests[-1].content
        assert b'"rowLimit"' in body
        assert result["dateRange"]["end"] == (datetime.utcnow().date() - timedelta(days=1)).isoformat()

    @pytest.mark.asyncio
    async def test_resync_updates_instead_of_duplicating(self, db_session, token):
        async with GoogleStub(rows=[analytics_row("crm", clicks=1)]).client() as gsc:
            await sync_project(db_session, gsc, token)
        async with GoogleStub(rows=[analytics_row("crm", clicks=7)]).client() as gsc:
            await sync_project(db_session, gsc, token)

        rows = db_session.query(GSCData).all()
        assert len(rows) == 1
        assert rows[0].clicks == 7

    @pytest.mark.asyncio
    async def test_site_url_is_path_encoded(self, db_session, token):
        stub = GoogleStub()

        async with stub.client() as gsc:
            await sync_project(db_session, gsc, token)

        assert "sc-domain%3Amysite.com" in str(stub.requests[-1].url)


class TestSyncAllProjects:

    @pytest.mark.asyncio
    async def test_errors_counted_per_connection(self, db_session, user, token):
        broken_project = Project(id=uuid4(), user_id=user.id, name="Broken", domain="broken.io")
        db_session.add(broken_project)
        db_session.add(GSCToken(
            id=uuid4(),
            user_id=user.id,
            project_id=broken_project.id,
            access_token="old",
            refresh_token="revoked",
            token_expiry=datetime.utcnow() - timedelta(days=1),
            site_url="https://broken.io/",
        ))
        db_session.commit()

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(400, text="invalid_grant")
            return httpx.Response(200, json={"rows": [analytics_row("crm")]})

        gsc = GSCClient("id", "secret", "http://localhost/callback", transport=httpx.MockTransport(handler))
        try:
            result = await sync_all_projects(db_session, gsc, days=7)
        finally:
            await gsc.close()

        assert result["totalSynced"] == 1
        assert result["totalErrors"] == 1
        assert result["rowsInserted"] == 1
