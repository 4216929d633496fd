"""
Scoring Module

Pure, deterministic calculations with no I/O:

1. **Keyword Gap** - partition competitor keywords into gaps and overlaps,
   rank gaps by opportunity (volume weighted by ease)

2. **Outreach Targets** - link-intersect scoring of referring domains,
   with templated rationale, pitch hook and research prompts

Example Usage:
    from rankpilot.scoring import compute_keyword_gap, CompetitorKeywordRecord

    result = compute_keyword_gap(
        {"seo tools"},
        [CompetitorKeywordRecord(keyword="keyword research", search_volume=1000)],
    )
    print(result.gaps[0].opportunity_score)  # 500.0
"""

from .gap import (
    CompetitorKeywordRecord,
    GapResult,
    compute_keyword_gap,
    keyword_key,
    opportunity_score,
)
from .outreach import (
    CompetitorLink,
    OutreachTarget,
    calculate_target_score,
    choose_angle,
    build_rationale,
    build_pitch_hook,
    build_research_prompts,
    score_referring_domain,
    rank_outreach_targets,
    ANGLE_GUEST_POST,
    ANGLE_RESOURCE_UPDATE,
)

__all__ = [
    "CompetitorKeywordRecord",
    "GapResult",
    "compute_keyword_gap",
    "keyword_key",
    "opportunity_score",
    "CompetitorLink",
    "OutreachTarget",
    "calculate_target_score",
    "choose_angle",
    "build_rationale",
    "build_pitch_hook",
    "build_research_prompts",
    "score_referring_domain",
    "rank_outreach_targets",
    "ANGLE_GUEST_POST",
    "ANGLE_RESOURCE_UPDATE",
]
