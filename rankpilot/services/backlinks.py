"""
Backlink Ingestion Service

Fetches a domain's backlinks from DataForSEO and upserts them onto the
project keyed by (source_url, target_url). Re-fetching refreshes
last_seen and clears is_lost for links that are still live.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from rankpilot.collector.client import DataForSEOClient
from rankpilot.collector.schemas import BacklinkItem
from rankpilot.database.models import Backlink, LinkType
from rankpilot.database.repository import upsert_rows

logger = logging.getLogger(__name__)

MAX_STORED_BACKLINKS = 100


def _parse_seen(value: Optional[str]) -> Optional[datetime]:
    """DataForSEO timestamps look like "2023-04-01 10:20:30 +00:00"."""
    if not value:
        return None
    for fmt in ("%Y-%m-%d %H:%M:%S %z", "%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%d"):
        try:
            parsed = datetime.strptime(value, fmt)
            return parsed.replace(tzinfo=None)
        except ValueError:
            continue
    return None


def backlink_row(project_id: UUID, item: BacklinkItem, now: datetime) -> Dict[str, Any]:
    return {
        "id": uuid4(),
        "project_id": project_id,
        "source_url": item.url_from,
        "target_url": item.url_to,
        "anchor_text": item.anchor,
        "domain_rank": item.rank,
        "link_type": LinkType.DOFOLLOW if item.dofollow else LinkType.NOFOLLOW,
        "first_seen": _parse_seen(item.first_seen) or now,
        "last_seen": now,
        "is_lost": False,
    }


async def fetch_and_store_backlinks(
    db: Session,
    client: DataForSEOClient,
    project_id: UUID,
    domain: str,
) -> Dict[str, Any]:
    """
    Fetch backlinks for a domain and store up to 100 of them.

    Returns:
        {"success": True, "count": <backlinks returned upstream>, "stored": <rows upserted>}

    Raises:
        DataForSEOError: Upstream request failed
    """
    items = await client.get_backlinks(domain)
    logger.info(f"Fetched {len(items)} backlinks for {domain}")

    now = datetime.utcnow()

    # (source_url, target_url) must be unique within one statement
    rows: List[Dict[str, Any]] = []
    seen = set()
    for item in items[:MAX_STORED_BACKLINKS]:
        key = (item.url_from, item.url_to)
        if key in seen:
            continue
        seen.add(key)
        rows.append(backlink_row(project_id, item, now))

    stored = upsert_rows(db, Backlink, rows, conflict_columns=["source_url", "target_url"])
    db.flush()

    return {"success": True, "count": len(items), "stored": stored}


def list_backlinks(db: Session, project_id: UUID, include_lost: bool = False, limit: int = 500) -> List[Backlink]:
    query = db.query(Backlink).filter(Backlink.project_id == project_id)
    if not include_lost:
        query = query.filter(Backlink.is_lost.is_(False))
    return query.order_by(Backlink.domain_rank.desc()).limit(limit).all()


def backlink_to_dict(backlink: Backlink) -> Dict[str, Any]:
    return {
        "id": str(backlink.id),
        "source_url": backlink.source_url,
        "target_url": backlink.target_url,
        "anchor_text": backlink.anchor_text,
        "domain_rank": backlink.domain_rank,
        "link_type": backlink.link_type.value if backlink.link_type else None,
        "first_seen": backlink.first_seen.isoformat() if backlink.first_seen else None,
        "last_seen": backlink.last_seen.isoformat() if backlink.last_seen else None,
        "is_lost": backlink.is_lost,
    }
