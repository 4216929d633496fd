"""
On-page SEO Analyzer

Fetches a page over HTTP and extracts the on-page signals an SEO audit
looks at:
- title, meta description, canonical, H1/H2
- word and paragraph counts
- images and alt coverage
- internal vs external links
- viewport / robots / OpenGraph / Twitter meta tags
- JSON-LD schema types
- optional target keyword placement and density

Plain HTML only; client-side rendered content is not executed.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from html import unescape
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; RankPilotBot/1.0; +https://rankpilot.app)"

MAX_STORED_IMAGES = 50
MAX_STORED_LINKS = 20

_TAG_ATTR_RE = re.compile(
    r'([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*(?:"([^"]*)"|\'([^\']*)\'|([^\s"\'>]+))'
)
_SKIPPED_LINK_SCHEMES = ("javascript:", "mailto:", "tel:", "#")


class PageFetchError(Exception):
    """Raised when the page cannot be fetched."""
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class PageImage:
    src: str
    alt: str = ""


@dataclass
class PageLink:
    href: str
    text: str = ""
    rel: str = ""


@dataclass
class KeywordAnalysis:
    keyword: str
    in_title: bool = False
    in_h1: bool = False
    in_meta: bool = False
    in_url: bool = False
    density: float = 0.0
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "inTitle": self.in_title,
            "inH1": self.in_h1,
            "inMeta": self.in_meta,
            "inUrl": self.in_url,
            "density": self.density,
            "count": self.count,
        }


@dataclass
class PageAnalysis:
    url: str
    title: str = ""
    meta_description: str = ""
    canonical_url: str = ""
    h1: List[str] = field(default_factory=list)
    h2: List[str] = field(default_factory=list)
    word_count: int = 0
    paragraph_count: int = 0
    images: List[PageImage] = field(default_factory=list)
    internal_links: List[PageLink] = field(default_factory=list)
    external_links: List[PageLink] = field(default_factory=list)
    has_meta_viewport: bool = False
    has_meta_robots: bool = False
    meta_robots: str = ""
    has_og_tags: bool = False
    has_twitter_tags: bool = False
    schema_types: List[str] = field(default_factory=list)
    keyword: Optional[KeywordAnalysis] = None

    @property
    def images_without_alt(self) -> int:
        return len([image for image in self.images if not image.alt])

    @property
    def has_schema_markup(self) -> bool:
        return len(self.schema_types) > 0

    @property
    def issues(self) -> List[str]:
        issues = []
        if self.images_without_alt > 0:
            issues.append(f"{self.images_without_alt} images missing alt text")
        if not self.meta_description:
            issues.append("Missing meta description")
        if not self.has_meta_viewport:
            issues.append("Missing viewport meta tag")
        if len(self.h1) == 0:
            issues.append("No H1 heading found")
        if len(self.h1) > 1:
            issues.append("Multiple H1 headings (should be one)")
        if not self.canonical_url:
            issues.append("No canonical URL set")
        if not self.has_schema_markup:
            issues.append("No Schema.org markup found")
        return issues

    def to_audit_row(self, user_id, project_id=None) -> Dict[str, Any]:
        """Column values for a page_audits row."""
        keyword = self.keyword
        return {
            "user_id": user_id,
            "project_id": project_id,
            "url": self.url,
            "title": self.title,
            "meta_description": self.meta_description,
            "h1": self.h1,
            "h2": self.h2,
            "canonical_url": self.canonical_url,
            "word_count": self.word_count,
            "paragraph_count": self.paragraph_count,
            "images_total": len(self.images),
            "images_without_alt": self.images_without_alt,
            "images_data": [
                {"src": image.src, "alt": image.alt} for image in self.images[:MAX_STORED_IMAGES]
            ],
            "internal_links_count": len(self.internal_links),
            "external_links_count": len(self.external_links),
            "links_data": {
                "internal": [
                    {"href": link.href, "text": link.text} for link in self.internal_links[:MAX_STORED_LINKS]
                ],
                "external": [
                    {"href": link.href, "text": link.text} for link in self.external_links[:MAX_STORED_LINKS]
                ],
            },
            "has_meta_viewport": self.has_meta_viewport,
            "has_meta_robots": self.has_meta_robots,
            "meta_robots": self.meta_robots,
            "has_og_tags": self.has_og_tags,
            "has_twitter_tags": self.has_twitter_tags,
            "has_schema_markup": self.has_schema_markup,
            "schema_types": self.schema_types,
            "target_keyword": keyword.keyword if keyword else None,
            "keyword_in_title": keyword.in_title if keyword else False,
            "keyword_in_h1": keyword.in_h1 if keyword else False,
            "keyword_in_meta": keyword.in_meta if keyword else False,
            "keyword_in_url": keyword.in_url if keyword else False,
            "keyword_density": keyword.density if keyword else 0.0,
            "issues": self.issues,
        }

    def to_summary(self, audit_id: Optional[str] = None) -> Dict[str, Any]:
        """Compact shape returned by the API and the chat tool."""
        return {
            "id": audit_id,
            "url": self.url,
            "title": self.title,
            "metaDescription": self.meta_description,
            "h1": self.h1,
            "wordCount": self.word_count,
            "imagesTotal": len(self.images),
            "imagesWithoutAlt": self.images_without_alt,
            "internalLinks": len(self.internal_links),
            "externalLinks": len(self.external_links),
            "hasSchemaMarkup": self.has_schema_markup,
            "schemaTypes": self.schema_types,
            "keywordAnalysis": self.keyword.to_dict() if self.keyword else None,
            "issues": self.issues,
            "analyzedAt": datetime.utcnow().isoformat(),
        }


# =============================================================================
# HTML EXTRACTION
# =============================================================================

def _parse_attrs(tag: str) -> Dict[str, str]:
    attrs = {}
    for match in _TAG_ATTR_RE.finditer(tag):
        name = match.group(1).lower()
        value = next((group for group in match.groups()[1:] if group is not None), "")
        attrs[name] = unescape(value)
    return attrs


def _find_tags(html: str, name: str) -> List[Dict[str, str]]:
    """Attribute dicts of every opening <name ...> tag."""
    return [_parse_attrs(tag) for tag in re.findall(rf"<{name}\b[^>]*>", html, flags=re.IGNORECASE)]


def _strip_tags(fragment: str) -> str:
    text = re.sub(r"<[^>]+>", " ", fragment)
    return re.sub(r"\s+", " ", unescape(text)).strip()


def _element_texts(html: str, name: str) -> List[str]:
    pattern = rf"<{name}\b[^>]*>(.*?)</{name}\s*>"
    return [_strip_tags(inner) for inner in re.findall(pattern, html, flags=re.DOTALL | re.IGNORECASE)]


def _body_text(html: str) -> str:
    body_match = re.search(r"<body\b[^>]*>(.*)</body\s*>", html, flags=re.DOTALL | re.IGNORECASE)
    body = body_match.group(1) if body_match else html
    body = re.sub(r"<script[^>]*>.*?</script>", " ", body, flags=re.DOTALL | re.IGNORECASE)
    body = re.sub(r"<style[^>]*>.*?</style>", " ", body, flags=re.DOTALL | re.IGNORECASE)
    body = re.sub(r"<noscript[^>]*>.*?</noscript>", " ", body, flags=re.DOTALL | re.IGNORECASE)
    return _strip_tags(body)


def _meta_content(metas: List[Dict[str, str]], name: str) -> Optional[str]:
    for meta in metas:
        if meta.get("name", "").lower() == name:
            return meta.get("content", "")
    return None


def _schema_types(html: str) -> List[str]:
    """Distinct @type values from JSON-LD blocks, first type of each list."""
    types: List[str] = []
    scripts = re.findall(
        r"<script\b[^>]*type=[\"']application/ld\+json[\"'][^>]*>(.*?)</script\s*>",
        html,
        flags=re.DOTALL | re.IGNORECASE,
    )
    for script in scripts:
        try:
            data = json.loads(script.strip())
        except ValueError:
            continue

        nodes = data if isinstance(data, list) else [data]
        for node in nodes:
            if not isinstance(node, dict):
                continue
            # @graph containers hold the actual typed nodes
            candidates = node.get("@graph") if isinstance(node.get("@graph"), list) else [node]
            for candidate in candidates:
                if not isinstance(candidate, dict):
                    continue
                schema_type = candidate.get("@type")
                if isinstance(schema_type, list):
                    schema_type = schema_type[0] if schema_type else None
                if schema_type and schema_type not in types:
                    types.append(schema_type)
    return types


def _host(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def _same_site(host: str, page_host: str) -> bool:
    bare = page_host[4:] if page_host.startswith("www.") else page_host
    return host in (page_host, bare, f"www.{bare}")


def count_keyword(text: str, keyword: str) -> int:
    if not keyword or not text:
        return 0
    return len(re.findall(re.escape(keyword), text, flags=re.IGNORECASE))


def analyze_keyword(
    keyword: str,
    url: str,
    title: str,
    h1: List[str],
    meta_description: str,
    body_text: str,
) -> KeywordAnalysis:
    words = len(body_text.split())
    count = count_keyword(body_text, keyword)
    slug_variants = {keyword, keyword.replace(" ", "-"), keyword.replace(" ", "_")}

    return KeywordAnalysis(
        keyword=keyword,
        in_title=count_keyword(title, keyword) > 0,
        in_h1=any(count_keyword(heading, keyword) > 0 for heading in h1),
        in_meta=count_keyword(meta_description, keyword) > 0,
        in_url=any(count_keyword(url, variant) > 0 for variant in slug_variants),
        density=round(count / words * 100, 2) if words else 0.0,
        count=count,
    )


def parse_page(url: str, html: str, target_keyword: Optional[str] = None) -> PageAnalysis:
    """Extract on-page signals from raw HTML."""
    metas = _find_tags(html, "meta")

    title_texts = _element_texts(html, "title")
    title = title_texts[0] if title_texts else ""

    canonical = ""
    for link in _find_tags(html, "link"):
        if "canonical" in link.get("rel", "").lower().split():
            canonical = link.get("href", "")
            break

    images = [
        PageImage(src=urljoin(url, attrs.get("src", "")), alt=attrs.get("alt", "").strip())
        for attrs in _find_tags(html, "img")
    ]

    page_host = _host(url)
    internal_links: List[PageLink] = []
    external_links: List[PageLink] = []
    anchors = re.findall(r"<a\b([^>]*)>(.*?)</a\s*>", html, flags=re.DOTALL | re.IGNORECASE)
    for attr_text, inner in anchors:
        attrs = _parse_attrs(attr_text)
        href = attrs.get("href", "").strip()
        if not href or href.lower().startswith(_SKIPPED_LINK_SCHEMES):
            continue

        link = PageLink(href=urljoin(url, href), text=_strip_tags(inner), rel=attrs.get("rel", ""))
        if _same_site(_host(link.href), page_host):
            internal_links.append(link)
        else:
            external_links.append(link)

    meta_description = _meta_content(metas, "description") or ""
    meta_robots = _meta_content(metas, "robots")
    h1 = _element_texts(html, "h1")
    body_text = _body_text(html)

    analysis = PageAnalysis(
        url=url,
        title=title,
        meta_description=meta_description,
        canonical_url=canonical,
        h1=h1,
        h2=_element_texts(html, "h2"),
        word_count=len(body_text.split()),
        paragraph_count=len(re.findall(r"<p\b", html, flags=re.IGNORECASE)),
        images=images,
        internal_links=internal_links,
        external_links=external_links,
        has_meta_viewport=_meta_content(metas, "viewport") is not None,
        has_meta_robots=meta_robots is not None,
        meta_robots=meta_robots or "",
        has_og_tags=any(meta.get("property", "").lower().startswith("og:") for meta in metas),
        has_twitter_tags=any(meta.get("name", "").lower().startswith("twitter:") for meta in metas),
        schema_types=_schema_types(html),
    )

    if target_keyword:
        analysis.keyword = analyze_keyword(
            target_keyword, url, title, h1, meta_description, body_text
        )

    return analysis


# =============================================================================
# FETCHER
# =============================================================================

class PageAnalyzer:
    """
    Fetches pages and analyzes them.

    Usage:
        async with PageAnalyzer(timeout=30) as analyzer:
            analysis = await analyzer.analyze("https://example.com", "seo tools")
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            },
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "PageAnalyzer":
        return cls(timeout=float(settings.PAGE_FETCH_TIMEOUT), **kwargs)

    async def fetch(self, url: str) -> str:
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"HTTP error fetching {url}: {e.response.status_code}")
            raise PageFetchError(
                f"Page returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            )
        except httpx.RequestError as e:
            logger.warning(f"Request error fetching {url}: {e}")
            raise PageFetchError(f"Could not fetch page: {e}")
        return response.text

    async def analyze(self, url: str, target_keyword: Optional[str] = None) -> PageAnalysis:
        """
        Raises:
            PageFetchError: The page could not be fetched
        """
        logger.info(f"Analyzing page {url}")
        html = await self.fetch(url)
        analysis = parse_page(url, html, target_keyword)
        logger.info(f"Analysis complete for {url}: {len(analysis.issues)} issues")
        return analysis

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
