"""
Outreach Target Finder

Link-intersect prospecting for a keyword:

1. Fetch the SERP and keep the top organic results
2. Drop the user's own domain and blacklisted platforms
3. Take the first N remaining domains as competitors
4. Fetch each competitor's referring domains concurrently
5. Build referring domain -> [competitor links] and score it

Upstream failures degrade instead of failing: a failed SERP call yields an
empty result, a failed referring-domains call drops that competitor.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from rankpilot.collector.client import DataForSEOClient, DataForSEOError
from rankpilot.collector.schemas import ReferringDomainItem
from rankpilot.scoring.outreach import CompetitorLink, OutreachTarget, rank_outreach_targets
from rankpilot.utils.config import DEFAULT_BLACKLIST_DOMAINS, Settings
from rankpilot.utils.domain_filter import filter_domains, normalize_domain

logger = logging.getLogger(__name__)

# SERP depth requested upstream; organic results are picked out of it
SERP_FETCH_DEPTH = 100


@dataclass
class TargetFinderConfig:
    """Tunable limits for a prospecting run."""
    blacklist: List[str] = field(default_factory=lambda: list(DEFAULT_BLACKLIST_DOMAINS))
    serp_depth: int = 20
    max_competitors: int = 5
    referring_domains_limit: int = 500
    max_targets: int = 10
    location_code: int = 2840
    language_code: str = "en"

    @classmethod
    def from_settings(cls, settings: Settings) -> "TargetFinderConfig":
        return cls(
            blacklist=settings.outreach_blacklist,
            serp_depth=settings.OUTREACH_SERP_DEPTH,
            max_competitors=settings.OUTREACH_MAX_COMPETITORS,
            referring_domains_limit=settings.OUTREACH_REFERRING_DOMAINS_LIMIT,
            max_targets=settings.OUTREACH_MAX_TARGETS,
            location_code=settings.DEFAULT_LOCATION_CODE,
            language_code=settings.DEFAULT_LANGUAGE_CODE,
        )


@dataclass
class TargetSearchResult:
    """Outcome of one prospecting run."""
    keyword: str
    your_domain: str
    competitor_domains: List[str] = field(default_factory=list)
    targets: List[OutreachTarget] = field(default_factory=list)
    total_targets_found: int = 0
    failed_competitors: List[str] = field(default_factory=list)

    @property
    def credits_used(self) -> int:
        """One SERP call plus one referring-domains call per competitor."""
        return 1 + len(self.competitor_domains)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "your_domain": self.your_domain,
            "competitors_analyzed": len(self.competitor_domains),
            "competitor_domains": list(self.competitor_domains),
            "total_targets_found": self.total_targets_found,
            "targets": [target.to_dict() for target in self.targets],
            "timestamp": datetime.utcnow().isoformat(),
        }


class OutreachTargetFinder:
    """
    Finds link-building prospects for a keyword.

    Usage:
        finder = OutreachTargetFinder(client, TargetFinderConfig.from_settings(settings))
        result = await finder.find_targets("seo tools", your_domain="mysite.com")
    """

    def __init__(self, client: DataForSEOClient, config: Optional[TargetFinderConfig] = None):
        self.client = client
        self.config = config or TargetFinderConfig()

    async def find_targets(
        self,
        keyword: str,
        your_domain: Optional[str] = None,
        location_code: Optional[int] = None,
        language_code: Optional[str] = None,
    ) -> TargetSearchResult:
        """
        Run the full prospecting pipeline.

        Never raises for upstream failures; an empty target list is the
        degraded outcome.
        """
        own_domain = normalize_domain(your_domain)
        result = TargetSearchResult(keyword=keyword, your_domain=own_domain)

        competitors = await self.find_competitors(
            keyword,
            own_domain,
            location_code or self.config.location_code,
            language_code or self.config.language_code,
        )
        result.competitor_domains = competitors

        if not competitors:
            logger.info(f"No competitor domains for '{keyword}', nothing to prospect")
            return result

        logger.info(f"Analyzing {len(competitors)} competitor domains for backlinks")

        responses = await asyncio.gather(
            *(self._fetch_referring_domains(competitor) for competitor in competitors),
            return_exceptions=True,
        )

        referring: Dict[str, List[ReferringDomainItem]] = {}
        for competitor, response in zip(competitors, responses):
            if isinstance(response, BaseException):
                logger.warning(f"Failed to get referring domains for {competitor}: {response}")
                result.failed_competitors.append(competitor)
                continue
            referring[competitor] = response

        link_map = build_link_map(competitors, referring)
        logger.info(f"Found {len(link_map)} unique referring domains")

        ranked = rank_outreach_targets(
            link_map,
            keyword,
            blacklist=self.config.blacklist,
            own_domain=own_domain,
        )
        result.total_targets_found = len(ranked)
        result.targets = ranked[:self.config.max_targets]

        logger.info(f"Returning top {len(result.targets)} of {len(ranked)} targets for '{keyword}'")
        return result

    async def find_competitors(
        self,
        keyword: str,
        own_domain: str,
        location_code: int,
        language_code: str,
    ) -> List[str]:
        """Top organic SERP domains minus own domain and blacklist, deduplicated."""
        try:
            serp_items = await self.client.get_serp_results(
                keyword,
                location_code=location_code,
                language_code=language_code,
                depth=SERP_FETCH_DEPTH,
            )
        except DataForSEOError as e:
            logger.warning(f"SERP query failed for '{keyword}': {e}")
            return []

        organic = [item for item in serp_items if item.is_organic and item.domain]
        organic = organic[:self.config.serp_depth]
        logger.info(f"Found {len(organic)} organic SERP results for '{keyword}'")

        seen = set()
        domains = []
        for item in organic:
            domain = item.domain.lower()
            if domain not in seen:
                seen.add(domain)
                domains.append(domain)

        candidates = filter_domains(
            domains,
            self.config.blacklist,
            own_domain=own_domain,
            source="outreach SERP",
        )
        return candidates[:self.config.max_competitors]

    async def _fetch_referring_domains(self, competitor: str) -> List[ReferringDomainItem]:
        return await self.client.get_referring_domains(
            competitor,
            limit=self.config.referring_domains_limit,
        )


def build_link_map(
    competitors: List[str],
    referring: Dict[str, List[ReferringDomainItem]],
) -> Dict[str, List[CompetitorLink]]:
    """
    Invert competitor -> referring domains into referring domain -> links.

    Competitors are merged in the given order, so each domain's link list
    (and the rationale built from it) follows SERP order regardless of
    which fetch finished first.
    """
    link_map: Dict[str, List[CompetitorLink]] = {}

    for competitor in competitors:
        for item in referring.get(competitor, []):
            link_map.setdefault(item.domain_from, []).append(
                CompetitorLink(
                    competitor=competitor,
                    backlink_count=item.backlinks or 0,
                    authority_rank=item.rank,
                )
            )

    return link_map
