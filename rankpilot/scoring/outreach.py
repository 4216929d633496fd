"""
Outreach Target Scoring (Link Intersect)

Scores referring domains that link to several of the user's SERP
competitors. A site already linking to three competitors is a far warmer
prospect than one linking to a single competitor.

Score = linked_competitor_count * 20 + min(avg_authority_rank / 10, 50)

Angle:
- guest_post when score >= 40
- resource_update otherwise

Rationale, pitch hook and research prompts are deterministic templates
so the same link graph always produces the same prospect list.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from rankpilot.utils.config import DEFAULT_BLACKLIST_DOMAINS
from rankpilot.utils.domain_filter import is_blacklisted, is_own_domain

logger = logging.getLogger(__name__)

POINTS_PER_COMPETITOR = 20
MAX_RANK_POINTS = 50
RANK_DIVISOR = 10
GUEST_POST_THRESHOLD = 40

ANGLE_GUEST_POST = "guest_post"
ANGLE_RESOURCE_UPDATE = "resource_update"


@dataclass
class CompetitorLink:
    """One referring-domain -> competitor edge."""
    competitor: str
    backlink_count: int = 0
    authority_rank: Optional[float] = None


@dataclass
class OutreachTarget:
    """A scored link-building prospect."""
    domain: str
    score: float
    linked_competitors: List[str]
    referring_domain_count: int
    avg_authority_rank: float
    rationale: str
    angle: str
    pitch_hook: str
    research_prompts: List[str] = field(default_factory=list)
    monthly_traffic: int = 0

    @property
    def linked_competitor_count(self) -> int:
        return len(self.linked_competitors)

    @property
    def target_url(self) -> str:
        return f"https://{self.domain}"

    @property
    def target_score(self) -> int:
        return round(self.score)

    def to_dict(self) -> Dict[str, Any]:
        """Shape shared by the find-targets response and the n8n payload."""
        return {
            "domain": self.domain,
            "target_url": self.target_url,
            "target_score": self.target_score,
            "score": round(self.score, 2),
            "metrics": {
                "domain_rating": round(self.avg_authority_rank, 2),
                "monthly_traffic": self.monthly_traffic,
                "referring_domains": self.referring_domain_count,
            },
            "linked_competitors": list(self.linked_competitors),
            "linked_competitor_count": self.linked_competitor_count,
            "why_targeted": self.rationale,
            "outreach_angle": self.angle,
            "pitch_hook": self.pitch_hook,
            "research_prompts": list(self.research_prompts),
        }


# =============================================================================
# SCORE COMPONENTS
# =============================================================================

def calculate_target_score(linked_competitor_count: int, avg_authority_rank: float) -> float:
    """Link-intersect points plus capped authority points."""
    rank_points = min((avg_authority_rank or 0) / RANK_DIVISOR, MAX_RANK_POINTS)
    return linked_competitor_count * POINTS_PER_COMPETITOR + rank_points


def choose_angle(score: float) -> str:
    return ANGLE_GUEST_POST if score >= GUEST_POST_THRESHOLD else ANGLE_RESOURCE_UPDATE


def build_rationale(competitors: List[str], keyword: str) -> str:
    if len(competitors) >= 3:
        return f"Links to {len(competitors)} of your competitors ({', '.join(competitors)})"
    if len(competitors) == 2:
        return f"Links to {' and '.join(competitors)}"
    return f'Links to {competitors[0]} (top ranker for "{keyword}")'


def build_pitch_hook(competitors: List[str]) -> str:
    if len(competitors) >= 2:
        return f"They recommend {len(competitors)} competitors but are missing your unique value prop"
    return f"They mention {competitors[0]}, would benefit from your alternative perspective"


def build_research_prompts(domain: str, keyword: str) -> List[str]:
    """Questions n8n feeds to its research step for each prospect."""
    return [
        f"What are the main topics and categories covered on {domain}?",
        f"Who writes content for {domain} and what is their typical writing style?",
        f"What tools, products, or resources does {domain} currently recommend in the {keyword} niche?",
        f"Are there any content gaps or missing topics on {domain} related to {keyword}?",
        f"What is the contact information for editorial team or content submissions at {domain}?",
    ]


# =============================================================================
# RANKING
# =============================================================================

def score_referring_domain(
    domain: str,
    links: List[CompetitorLink],
    keyword: str,
) -> OutreachTarget:
    """Turn one referring domain's competitor links into a scored target."""
    competitors = [link.competitor for link in links]
    avg_rank = sum((link.authority_rank or 0) for link in links) / len(links)
    score = calculate_target_score(len(links), avg_rank)

    return OutreachTarget(
        domain=domain,
        score=score,
        linked_competitors=competitors,
        referring_domain_count=sum((link.backlink_count or 0) for link in links),
        avg_authority_rank=avg_rank,
        rationale=build_rationale(competitors, keyword),
        angle=choose_angle(score),
        pitch_hook=build_pitch_hook(competitors),
        research_prompts=build_research_prompts(domain, keyword),
    )


def rank_outreach_targets(
    link_map: Dict[str, List[CompetitorLink]],
    keyword: str,
    blacklist: Optional[Iterable[str]] = None,
    own_domain: Optional[str] = None,
) -> List[OutreachTarget]:
    """
    Score every referring domain in the link map.

    Args:
        link_map: referring domain -> competitor links, in discovery order
        keyword: The keyword being prospected (used in templates)
        blacklist: Substring-matched domains to skip; None means the
            default platform list, () disables filtering
        own_domain: The user's domain, never a prospect

    Returns:
        All eligible targets, sorted by descending score (ties keep
        discovery order)
    """
    blacklist = list(DEFAULT_BLACKLIST_DOMAINS if blacklist is None else blacklist)
    targets = []

    for domain, links in link_map.items():
        if not links:
            continue
        if is_blacklisted(domain, blacklist) or is_own_domain(domain, own_domain):
            continue
        targets.append(score_referring_domain(domain, links, keyword))

    targets.sort(key=lambda target: target.score, reverse=True)

    logger.debug(f"Scored {len(targets)} outreach targets for '{keyword}'")
    return targets
