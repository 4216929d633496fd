"""
DataForSEO v3 over httpx.

Every call is a POST of a task list. A call fails when the HTTP status is
not 2xx or when the envelope's own status_code is 40000 or above; task
level errors are only logged because partial results are still useful.
Nothing is retried here; callers decide how to degrade.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .schemas import (
    BacklinkItem,
    DataForSEOResponse,
    KeywordMetricsItem,
    RankedKeywordItem,
    ReferringDomainItem,
    SerpItem,
)

logger = logging.getLogger(__name__)

API_ROOT = "https://api.dataforseo.com/v3"

# DataForSEO reports failures inside a 200 response with codes 40000 and up
ERROR_STATUS_THRESHOLD = 40000
TASK_OK_CODES = (20000, 20100)


class DataForSEOError(Exception):
    """Transport failure, non-2xx response, or an error envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class DataForSEOClient:
    """
    One pooled connection set per instance; use as an async context manager.

        async with DataForSEOClient(login, password) as client:
            items = await client.get_ranked_keywords("example.com", limit=20)

    `transport` lets tests swap in httpx.MockTransport.
    """

    def __init__(
        self,
        login: str,
        password: str,
        max_connections: int = 50,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.login = login
        self._client = httpx.AsyncClient(
            base_url=API_ROOT,
            auth=httpx.BasicAuth(login, password),
            headers={"Content-Type": "application/json"},
            limits=httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections // 2),
            timeout=timeout,
            transport=transport,
        )
        self._closed = False

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "DataForSEOClient":
        return cls(
            login=settings.DATAFORSEO_LOGIN,
            password=settings.DATAFORSEO_PASSWORD,
            timeout=float(settings.API_TIMEOUT),
            **kwargs,
        )

    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    async def post(self, endpoint: str, data: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        POST a task list and return the decoded envelope.

        Raises:
            DataForSEOError: closed client, transport failure, non-2xx status,
                or envelope status_code >= 40000
        """
        if self._closed:
            raise DataForSEOError("Client is closed")

        path = "/" + endpoint.lstrip("/")
        logger.debug(f"DataForSEO POST {path} ({len(data)} task(s))")

        try:
            response = await self._client.post(path, json=data)
        except httpx.TimeoutException as e:
            raise DataForSEOError(f"Request timed out: {e}")
        except httpx.HTTPError as e:
            raise DataForSEOError(f"HTTP error: {e}")

        body = self._decode(response)

        if not response.is_success:
            logger.error(f"DataForSEO HTTP {response.status_code} for {path}")
            raise DataForSEOError(
                f"API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                response=body,
            )

        envelope_status = body.get("status_code")
        if envelope_status and envelope_status >= ERROR_STATUS_THRESHOLD:
            message = body.get("status_message") or "Unknown error"
            logger.error(f"DataForSEO rejected {path}: {message} ({envelope_status})")
            raise DataForSEOError(f"API error: {message}", status_code=envelope_status, response=body)

        for task in body.get("tasks") or []:
            if task.get("status_code") not in TASK_OK_CODES:
                logger.error(
                    f"DataForSEO task {task.get('id')} in {path} failed: "
                    f"{task.get('status_message', 'Task error')} ({task.get('status_code')})"
                )

        return body

    async def request(self, endpoint: str, data: List[Dict[str, Any]]) -> DataForSEOResponse:
        """post() plus envelope validation."""
        return DataForSEOResponse.model_validate(await self.post(endpoint, data))

    async def close(self):
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    # ========================================================================
    # KEYWORD DATA
    # ========================================================================

    async def get_search_volume(
        self,
        keywords: List[str],
        location_code: int = 2840,
        language_code: str = "en",
    ) -> List[KeywordMetricsItem]:
        """Google Ads search volume, CPC and competition for up to 1000 keywords."""
        response = await self.request(
            "keywords_data/google_ads/search_volume/live",
            [{
                "keywords": keywords[:1000],
                "location_code": location_code,
                "language_code": language_code,
            }],
        )
        return [KeywordMetricsItem.model_validate(row) for row in response.results()]

    async def get_keyword_ideas(
        self,
        keyword: str,
        location_code: int = 2840,
        language_code: str = "en",
    ) -> List[KeywordMetricsItem]:
        """Google Ads keywords_for_keywords suggestions."""
        response = await self.request(
            "keywords_data/google_ads/keywords_for_keywords/live",
            [{
                "keywords": [keyword],
                "location_code": location_code,
                "language_code": language_code,
                "include_adult_keywords": False,
                "sort_by": "search_volume",
            }],
        )
        return [KeywordMetricsItem.model_validate(row) for row in response.results()]

    async def get_similar_keywords(
        self,
        keyword: str,
        location_code: int = 2840,
        language_code: str = "en",
        limit: int = 100,
    ) -> List[KeywordMetricsItem]:
        """Labs keyword_ideas: semantically similar keywords with SEO metrics."""
        response = await self.request(
            "dataforseo_labs/google/keyword_ideas/live",
            [{
                "keywords": [keyword],
                "location_code": location_code,
                "language_code": language_code,
                "limit": limit,
                "include_serp_info": False,
            }],
        )
        return [KeywordMetricsItem.model_validate(row) for row in response.result_items()]

    async def get_related_keywords(
        self,
        keyword: str,
        location_code: int = 2840,
        language_code: str = "en",
        depth: int = 1,
        limit: int = 100,
    ) -> List[KeywordMetricsItem]:
        """Labs related_keywords ("searches related to"). Depth 1-3."""
        response = await self.request(
            "dataforseo_labs/google/related_keywords/live",
            [{
                "keyword": keyword,
                "location_code": location_code,
                "language_code": language_code,
                "depth": depth,
                "limit": limit,
            }],
        )
        return [KeywordMetricsItem.model_validate(row) for row in response.result_items()]

    async def get_keyword_difficulty(
        self,
        keywords: List[str],
        location_code: int = 2840,
        language_code: str = "en",
    ) -> Dict[str, Optional[int]]:
        """Bulk keyword difficulty, keyed by lower-cased keyword."""
        response = await self.request(
            "dataforseo_labs/google/bulk_keyword_difficulty/live",
            [{
                "keywords": keywords[:1000],
                "location_code": location_code,
                "language_code": language_code,
            }],
        )
        difficulty = {}
        for row in response.result_items():
            item = KeywordMetricsItem.model_validate(row)
            if item.text:
                difficulty[item.text.lower()] = item.difficulty
        return difficulty

    async def get_ranked_keywords(
        self,
        target: str,
        location_code: int = 2840,
        language_code: str = "en",
        limit: int = 100,
        offset: int = 0,
        order_by: Optional[List[str]] = None,
        filters: Optional[List[Any]] = None,
    ) -> List[RankedKeywordItem]:
        """Keywords a domain ranks for (organic only)."""
        task: Dict[str, Any] = {
            "target": target,
            "location_code": location_code,
            "language_code": language_code,
            "limit": limit,
            "offset": offset,
            "item_types": ["organic"],
            "order_by": order_by or ["keyword_data.keyword_info.search_volume,desc"],
        }
        if filters:
            task["filters"] = filters

        response = await self.request("dataforseo_labs/google/ranked_keywords/live", [task])
        return [RankedKeywordItem.model_validate(row) for row in response.result_items()]

    # ========================================================================
    # SERP
    # ========================================================================

    async def get_serp_results(
        self,
        keyword: str,
        location_code: int = 2840,
        language_code: str = "en",
        device: str = "desktop",
        depth: int = 100,
    ) -> List[SerpItem]:
        """Google organic SERP (advanced). Returns every element type in SERP order."""
        response = await self.request(
            "serp/google/organic/live/advanced",
            [{
                "keyword": keyword,
                "location_code": location_code,
                "language_code": language_code,
                "device": device,
                "depth": depth,
            }],
        )
        return [SerpItem.model_validate(row) for row in response.result_items()]

    # ========================================================================
    # BACKLINKS
    # ========================================================================

    async def get_backlinks(
        self,
        target: str,
        mode: str = "as_is",
        limit: int = 1000,
    ) -> List[BacklinkItem]:
        """Individual backlinks pointing at a domain."""
        response = await self.request(
            "backlinks/backlinks/live",
            [{
                "target": target,
                "mode": mode,
                "limit": limit,
            }],
        )
        items = []
        for row in response.result_items():
            if row.get("url_from") and row.get("url_to"):
                items.append(BacklinkItem.model_validate(row))
        return items

    async def get_backlink_summary(self, target: str) -> Dict[str, Any]:
        """
        Backlink totals for a domain.

        rank_scale "one_hundred" returns rank on a 0-100 scale instead of
        the default 0-1000.
        """
        response = await self.request(
            "backlinks/summary/live",
            [{
                "target": target,
                "internal_list_limit": 0,
                "backlinks_status_type": "all",
                "rank_scale": "one_hundred",
            }],
        )
        item = response.first_result()
        return {
            "domain_rank": int(item.get("rank") or 0),
            "backlinks": item.get("backlinks") or 0,
            "referring_domains": item.get("referring_domains") or 0,
            "referring_main_domains": item.get("referring_main_domains") or 0,
            "broken_backlinks": item.get("broken_backlinks") or 0,
        }

    async def get_referring_domains(
        self,
        target: str,
        limit: int = 1000,
    ) -> List[ReferringDomainItem]:
        """Domains linking to target, highest authority first."""
        response = await self.request(
            "backlinks/referring_domains/live",
            [{
                "target": target,
                "limit": limit,
                "order_by": ["rank,desc"],
            }],
        )
        items = []
        for row in response.result_items():
            item = ReferringDomainItem.model_validate(row)
            if item.domain_from:
                items.append(item)
        return items
