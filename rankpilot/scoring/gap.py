"""
Keyword Gap Engine

Partitions a competitor's ranking keywords into:
- gaps: keywords the competitor ranks for that the user does not track
- overlaps: keywords both sides have

Gaps are ranked by opportunity score, which rewards volume and penalizes
difficulty:

    opportunity = search_volume * (100 - difficulty) / 100

Unknown difficulty counts as 50. Matching is exact, case-insensitive string
equality; no stemming or fuzzy matching ("seo tool" != "seo tools").

The engine is pure: no I/O, no error states, deterministic output.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

DEFAULT_DIFFICULTY = 50


def keyword_key(keyword: str) -> str:
    """Identity used for matching keywords: case-insensitive, nothing else."""
    return keyword.lower()


@dataclass
class CompetitorKeywordRecord:
    """A keyword the competitor ranks for, as reported by DataForSEO."""
    keyword: str
    position: Optional[int] = None
    search_volume: int = 0
    competition: Optional[str] = None  # low / medium / high
    cpc: float = 0.0
    keyword_difficulty: Optional[int] = None
    url: Optional[str] = None
    title: Optional[str] = None
    etv: float = 0.0

    @property
    def opportunity_score(self) -> float:
        return opportunity_score(self.search_volume, self.keyword_difficulty)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["opportunity_score"] = round(self.opportunity_score, 2)
        return data


@dataclass
class GapResult:
    """Partition of competitor keywords against the user's tracked set."""
    gaps: List[CompetitorKeywordRecord] = field(default_factory=list)
    overlaps: List[CompetitorKeywordRecord] = field(default_factory=list)

    @property
    def gaps_count(self) -> int:
        return len(self.gaps)

    @property
    def overlaps_count(self) -> int:
        return len(self.overlaps)


def opportunity_score(search_volume: Optional[int], keyword_difficulty: Optional[int]) -> float:
    """
    Volume weighted by ease of ranking.

    A difficulty of 0 is a real value and is kept; only a missing
    difficulty falls back to 50.
    """
    difficulty = DEFAULT_DIFFICULTY if keyword_difficulty is None else keyword_difficulty
    return (search_volume or 0) * (100 - difficulty) / 100


def compute_keyword_gap(
    user_keywords: Iterable[str],
    competitor_keywords: Iterable[CompetitorKeywordRecord],
) -> GapResult:
    """
    Split competitor keywords into gaps and overlaps.

    Args:
        user_keywords: Keywords the user tracks (any case)
        competitor_keywords: Competitor ranking records, in upstream order

    Returns:
        GapResult where gaps are sorted by descending opportunity score
        (ties keep input order) and overlaps keep input order
    """
    tracked = {keyword_key(keyword) for keyword in user_keywords}

    result = GapResult()
    for record in competitor_keywords:
        if keyword_key(record.keyword) in tracked:
            result.overlaps.append(record)
        else:
            result.gaps.append(record)

    # list.sort is stable, so equal scores stay in input order
    result.gaps.sort(key=lambda record: record.opportunity_score, reverse=True)

    return result
