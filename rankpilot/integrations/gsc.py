"""
Google Search Console Client

OAuth2 authorization-code flow plus the two Search Console endpoints the
sync needs (sites list, search analytics query), spoken directly over
httpx.

Token refresh is driven by the caller: the stored expiry is compared to
the current time and refresh_access_token() is only called when expired.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

import httpx

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
API_BASE_URL = "https://www.googleapis.com/webmasters/v3"

SCOPES = ["https://www.googleapis.com/auth/webmasters.readonly"]
DIMENSIONS = ["query", "page", "date", "device", "country"]
ROW_LIMIT = 25000


class GSCError(Exception):
    """Raised when Google rejects an OAuth or Search Console request."""
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class GSCTokens:
    """OAuth token set as returned by Google's token endpoint."""
    access_token: str
    refresh_token: Optional[str]
    expiry: datetime

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "GSCTokens":
        expires_in = int(data.get("expires_in") or 3600)
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expiry=datetime.utcnow() + timedelta(seconds=expires_in),
        )


class GSCClient:
    """
    Async Search Console client.

    Usage:
        async with GSCClient.from_settings(settings) as gsc:
            url = gsc.get_auth_url(state=str(project_id))
            tokens = await gsc.exchange_code(code)
            sites = await gsc.list_sites(tokens.access_token)
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "GSCClient":
        return cls(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
            timeout=float(settings.API_TIMEOUT),
            **kwargs,
        )

    # ========================================================================
    # OAUTH
    # ========================================================================

    def get_auth_url(self, state: Optional[str] = None) -> str:
        """Consent URL requesting offline access so a refresh token is issued."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> GSCTokens:
        """Exchange an authorization code for tokens."""
        data = await self._token_request({
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        })
        return GSCTokens.from_response(data)

    async def refresh_access_token(self, refresh_token: str) -> GSCTokens:
        """
        Obtain a fresh access token.

        Google usually omits refresh_token here; callers keep the old one.
        """
        data = await self._token_request({
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        })
        return GSCTokens.from_response(data)

    async def _token_request(self, form: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = await self._client.post(TOKEN_URL, data=form)
        except httpx.HTTPError as e:
            raise GSCError(f"Token request failed: {e}")

        if response.status_code != 200:
            logger.error(f"Google token endpoint returned {response.status_code} ({form['grant_type']})")
            raise GSCError(f"Token request failed: {response.text}", status_code=response.status_code)

        return response.json()

    # ========================================================================
    # SEARCH CONSOLE
    # ========================================================================

    async def list_sites(self, access_token: str) -> List[Dict[str, Any]]:
        """Verified properties for the authorized account."""
        data = await self._api_request("GET", "/sites", access_token)
        return data.get("siteEntry") or []

    async def get_search_analytics(
        self,
        site_url: str,
        access_token: str,
        start_date: str,
        end_date: str,
    ) -> List[Dict[str, Any]]:
        """
        Search analytics rows for a date range (YYYY-MM-DD, inclusive).

        Each row carries keys in DIMENSIONS order plus clicks, impressions,
        ctr and position.
        """
        data = await self._api_request(
            "POST",
            f"/sites/{quote(site_url, safe='')}/searchAnalytics/query",
            access_token,
            json={
                "startDate": start_date,
                "endDate": end_date,
                "dimensions": DIMENSIONS,
                "rowLimit": ROW_LIMIT,
            },
        )
        return data.get("rows") or []

    async def _api_request(
        self,
        method: str,
        path: str,
        access_token: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(
                method,
                f"{API_BASE_URL}{path}",
                headers={"Authorization": f"Bearer {access_token}"},
                json=json,
            )
        except httpx.HTTPError as e:
            raise GSCError(f"Search Console request failed: {e}")

        if not response.is_success:
            logger.error(f"Search Console {method} {path} returned {response.status_code}")
            raise GSCError(
                f"Search Console request failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

        return response.json() if response.content else {}

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def parse_analytics_row(project_id, row: Dict[str, Any]) -> Dict[str, Any]:
    """Map one searchAnalytics row to a gsc_data column dict."""
    keys = row.get("keys") or []
    keys = list(keys) + [""] * (len(DIMENSIONS) - len(keys))
    query, page, date_str, device, country = keys[:5]

    return {
        "project_id": project_id,
        "date": datetime.strptime(date_str, "%Y-%m-%d").date(),
        "page": page,
        "query": query,
        "device": device,
        "country": country,
        "clicks": int(row.get("clicks") or 0),
        "impressions": int(row.get("impressions") or 0),
        "ctr": float(row.get("ctr") or 0.0),
        "position": float(row.get("position") or 0.0),
    }
