"""
DataForSEO Response Schemas

Pydantic models for the parts of DataForSEO responses this service reads.
Every payload is validated here before any scoring or persistence code
touches it, so missing or null fields surface as defaults instead of
KeyErrors deep inside a route.

Envelope shape shared by every endpoint:
    {
        "status_code": 20000,
        "status_message": "Ok.",
        "tasks": [
            {"status_code": 20000, "result": [{"items": [...]}]}
        ]
    }
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


# =============================================================================
# ENVELOPE
# =============================================================================

class DataForSEOTask(BaseModel):
    id: Optional[str] = None
    status_code: Optional[int] = None
    status_message: Optional[str] = None
    cost: Optional[float] = None
    result: Optional[List[Optional[Dict[str, Any]]]] = None

    class Config:
        extra = "ignore"


class DataForSEOResponse(BaseModel):
    status_code: Optional[int] = None
    status_message: Optional[str] = None
    cost: Optional[float] = None
    tasks: List[DataForSEOTask] = Field(default_factory=list)

    class Config:
        extra = "ignore"

    def results(self) -> List[Dict[str, Any]]:
        """The first task's result list (flat-result endpoints like Google Ads)."""
        if not self.tasks or not self.tasks[0].result:
            return []
        return [result for result in self.tasks[0].result if result]

    def first_result(self) -> Dict[str, Any]:
        results = self.results()
        return results[0] if results else {}

    def result_items(self) -> List[Dict[str, Any]]:
        """The first task's first result's items (Labs, SERP, Backlinks endpoints)."""
        items = self.first_result().get("items")
        return [item for item in items if item] if isinstance(items, list) else []


# =============================================================================
# SERP
# =============================================================================

class SerpItem(BaseModel):
    """One SERP element from serp/google/organic/live/advanced."""
    type: str = "organic"
    rank_group: Optional[int] = None
    rank_absolute: Optional[int] = None
    domain: Optional[str] = None
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None

    class Config:
        extra = "ignore"

    @property
    def is_organic(self) -> bool:
        return self.type == "organic"


# =============================================================================
# BACKLINKS
# =============================================================================

class ReferringDomainItem(BaseModel):
    """One row from backlinks/referring_domains/live."""
    domain_from: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("domain_from", "domain"),
    )
    backlinks: Optional[int] = 0
    rank: Optional[float] = None

    class Config:
        extra = "ignore"


class BacklinkItem(BaseModel):
    """One row from backlinks/backlinks/live."""
    url_from: str
    url_to: str
    anchor: Optional[str] = None
    rank: Optional[int] = None
    dofollow: bool = True
    first_seen: Optional[str] = None
    last_seen: Optional[str] = None
    is_lost: bool = False

    class Config:
        extra = "ignore"


# =============================================================================
# KEYWORDS
# =============================================================================

class KeywordInfo(BaseModel):
    search_volume: Optional[int] = None
    competition: Optional[Any] = None
    competition_level: Optional[str] = None
    cpc: Optional[float] = None
    monthly_searches: Optional[List[Dict[str, Any]]] = None

    class Config:
        extra = "ignore"


class KeywordProperties(BaseModel):
    keyword_difficulty: Optional[int] = None

    class Config:
        extra = "ignore"


class KeywordData(BaseModel):
    keyword: str = ""
    keyword_info: KeywordInfo = Field(default_factory=KeywordInfo)
    keyword_properties: KeywordProperties = Field(default_factory=KeywordProperties)

    class Config:
        extra = "ignore"


class RankedSerpItem(BaseModel):
    rank_absolute: Optional[int] = None
    url: Optional[str] = None
    title: Optional[str] = None
    etv: Optional[float] = None

    class Config:
        extra = "ignore"


class RankedSerpElement(BaseModel):
    serp_item: RankedSerpItem = Field(default_factory=RankedSerpItem)

    class Config:
        extra = "ignore"


class RankedKeywordItem(BaseModel):
    """One row from dataforseo_labs/google/ranked_keywords/live."""
    keyword_data: KeywordData = Field(default_factory=KeywordData)
    ranked_serp_element: RankedSerpElement = Field(default_factory=RankedSerpElement)

    class Config:
        extra = "ignore"


class KeywordMetricsItem(BaseModel):
    """
    Keyword metrics in any of the shapes DataForSEO returns them.

    Google Ads endpoints return flat rows (search_volume, cpc on the row),
    Labs keyword_ideas nests them under keyword_info, and Labs
    related_keywords nests everything under keyword_data.
    """
    keyword: Optional[str] = None
    search_volume: Optional[int] = None
    competition: Optional[Any] = None
    competition_level: Optional[str] = None
    cpc: Optional[float] = None
    keyword_difficulty: Optional[int] = None
    monthly_searches: Optional[List[Dict[str, Any]]] = None
    keyword_info: Optional[KeywordInfo] = None
    keyword_properties: Optional[KeywordProperties] = None
    keyword_data: Optional[KeywordData] = None

    class Config:
        extra = "ignore"

    def _info(self) -> Optional[KeywordInfo]:
        if self.keyword_info:
            return self.keyword_info
        if self.keyword_data:
            return self.keyword_data.keyword_info
        return None

    def _properties(self) -> Optional[KeywordProperties]:
        if self.keyword_properties:
            return self.keyword_properties
        if self.keyword_data:
            return self.keyword_data.keyword_properties
        return None

    @property
    def text(self) -> str:
        if self.keyword:
            return self.keyword
        return self.keyword_data.keyword if self.keyword_data else ""

    @property
    def volume(self) -> int:
        info = self._info()
        return self.search_volume or (info.search_volume if info else None) or 0

    @property
    def cost_per_click(self) -> float:
        info = self._info()
        return self.cpc or (info.cpc if info else None) or 0.0

    @property
    def difficulty(self) -> Optional[int]:
        if self.keyword_difficulty is not None:
            return self.keyword_difficulty
        properties = self._properties()
        return properties.keyword_difficulty if properties else None

    @property
    def competition_label(self) -> Optional[str]:
        """low / medium / high, whichever field the endpoint filled."""
        info = self._info()
        for value in (
            self.competition_level,
            self.competition if isinstance(self.competition, str) else None,
            info.competition_level if info else None,
            info.competition if info and isinstance(info.competition, str) else None,
        ):
            if value:
                return value.lower()
        return None

    @property
    def monthly(self) -> List[Dict[str, Any]]:
        info = self._info()
        return self.monthly_searches or (info.monthly_searches if info else None) or []
