"""
Domain Utilities

Normalization and blacklist matching shared by the keyword gap route,
rank tracking and the outreach target finder.

Platform domains (social networks, video sites, encyclopedias) never make
useful outreach prospects or competitors, so every discovery path runs its
candidates through the same blacklist check.
"""

import logging
import re
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_domain(domain: Optional[str]) -> str:
    """
    Reduce a user supplied domain or URL to a bare host name.

    "https://www.Example.com/" -> "example.com"

    Only the scheme, a leading "www." and a trailing slash are stripped;
    paths are kept so callers can spot malformed input.
    """
    if not domain:
        return ""

    cleaned = _SCHEME_RE.sub("", domain.strip())
    if cleaned.lower().startswith("www."):
        cleaned = cleaned[4:]
    cleaned = cleaned.rstrip("/")

    return cleaned.lower()


def is_blacklisted(domain: Optional[str], blacklist: Iterable[str]) -> bool:
    """
    Check a domain against the outreach blacklist.

    A domain matches when it contains any blacklist entry, so
    "m.youtube.com" and "youtube.com.br" are both caught by "youtube.com".
    """
    if not domain:
        return True

    domain_lower = domain.lower()
    return any(entry and entry in domain_lower for entry in blacklist)


def is_own_domain(domain: Optional[str], own_domain: Optional[str]) -> bool:
    """Case-insensitive comparison after normalizing both sides."""
    if not domain or not own_domain:
        return False
    return normalize_domain(domain) == normalize_domain(own_domain)


def filter_domains(
    domains: Iterable[str],
    blacklist: Iterable[str],
    own_domain: Optional[str] = None,
    source: str = "unknown",
) -> List[str]:
    """
    Drop blacklisted domains and the user's own domain, keeping order.

    Args:
        domains: Candidate domains
        blacklist: Blacklist entries (substring matched)
        own_domain: The user's domain, excluded from results
        source: Label used in log messages

    Returns:
        Filtered list in input order
    """
    blacklist = list(blacklist)
    filtered = []
    excluded_count = 0

    for domain in domains:
        if is_blacklisted(domain, blacklist) or is_own_domain(domain, own_domain):
            excluded_count += 1
            logger.debug(f"Excluded domain from {source}: {domain}")
            continue
        filtered.append(domain)

    if excluded_count > 0:
        logger.info(f"Filtered {excluded_count} domains from {source}")

    return filtered


def url_contains_domain(url: Optional[str], domain: Optional[str]) -> bool:
    """True when a result URL belongs to the given (normalized) domain."""
    if not url or not domain:
        return False
    return normalize_domain(domain) in url.lower()
