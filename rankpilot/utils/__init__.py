"""Shared utilities: settings and domain helpers."""

from .config import Settings, get_settings
from .domain_filter import (
    normalize_domain,
    is_blacklisted,
    is_own_domain,
    filter_domains,
    url_contains_domain,
)

__all__ = [
    "Settings",
    "get_settings",
    "normalize_domain",
    "is_blacklisted",
    "is_own_domain",
    "filter_domains",
    "url_contains_domain",
]
