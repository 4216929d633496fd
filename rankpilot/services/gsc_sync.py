"""
Search Console Sync Service

Pulls search analytics for a connected project into gsc_data:
1. Refresh the access token when the stored expiry has passed
2. Query a window of days ending yesterday (GSC data lags a day)
3. Upsert rows in batches on (project_id, date, page, query, device, country)

Used by the manual sync route (30 days) and the cron sweep (7 days).
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from rankpilot.database.models import GSCData, GSCToken
from rankpilot.database.repository import upsert_in_batches
from rankpilot.integrations.gsc import GSCClient, GSCTokens, parse_analytics_row

logger = logging.getLogger(__name__)

GSC_CONFLICT_COLUMNS = ["project_id", "date", "page", "query", "device", "country"]


def sync_date_range(days: int, today: Optional[date] = None) -> Tuple[str, str]:
    """(start, end) as YYYY-MM-DD; end is yesterday, start is `days` before it."""
    today = today or datetime.utcnow().date()
    end = today - timedelta(days=1)
    start = end - timedelta(days=days)
    return start.isoformat(), end.isoformat()


def get_project_token(db: Session, user_id: UUID, project_id: UUID) -> Optional[GSCToken]:
    return (
        db.query(GSCToken)
        .filter(GSCToken.user_id == user_id, GSCToken.project_id == project_id)
        .first()
    )


def save_token(
    db: Session,
    user_id: UUID,
    project_id: UUID,
    tokens: GSCTokens,
    site_url: str,
) -> GSCToken:
    """Create or replace the connection for a user/project pair."""
    token = get_project_token(db, user_id, project_id)
    if token is None:
        token = GSCToken(id=uuid4(), user_id=user_id, project_id=project_id)
        db.add(token)

    token.access_token = tokens.access_token
    token.refresh_token = tokens.refresh_token or token.refresh_token
    token.token_expiry = tokens.expiry
    token.site_url = site_url

    db.commit()
    db.refresh(token)
    logger.info(f"Saved GSC connection for project {project_id} ({site_url})")
    return token


async def ensure_fresh_token(
    db: Session,
    gsc: GSCClient,
    token: GSCToken,
    now: Optional[datetime] = None,
) -> str:
    """
    Return a usable access token, refreshing only when expired.

    The rotated tokens are persisted; the existing refresh token is kept
    when Google does not return a new one.
    """
    now = now or datetime.utcnow()
    if token.token_expiry and token.token_expiry > now:
        return token.access_token

    logger.info(f"GSC token for project {token.project_id} expired, refreshing...")
    refreshed = await gsc.refresh_access_token(token.refresh_token)

    token.access_token = refreshed.access_token
    token.refresh_token = refreshed.refresh_token or token.refresh_token
    token.token_expiry = refreshed.expiry
    db.commit()

    return token.access_token


async def sync_project(
    db: Session,
    gsc: GSCClient,
    token: GSCToken,
    days: int = 30,
    batch_size: int = 1000,
) -> Dict[str, Any]:
    """
    Sync one connected project.

    Returns:
        {"success": True, "rowsInserted": int, "dateRange": {"start", "end"}}

    Raises:
        GSCError: OAuth or Search Console failure
    """
    access_token = await ensure_fresh_token(db, gsc, token)
    start, end = sync_date_range(days)

    logger.info(f"Fetching GSC data for project {token.project_id} from {start} to {end}")
    rows = await gsc.get_search_analytics(token.site_url, access_token, start, end)
    logger.info(f"Fetched {len(rows)} rows from GSC")

    # Deduplicate on the natural key so one batch never conflicts with itself
    records: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        record = parse_analytics_row(token.project_id, row)
        key = tuple(record[column] for column in GSC_CONFLICT_COLUMNS)
        record["id"] = uuid4()
        records[key] = record

    inserted = upsert_in_batches(
        db,
        GSCData,
        list(records.values()),
        conflict_columns=GSC_CONFLICT_COLUMNS,
        batch_size=batch_size,
    )

    logger.info(f"Successfully synced {inserted} rows")
    return {
        "success": True,
        "rowsInserted": inserted,
        "dateRange": {"start": start, "end": end},
    }


async def sync_all_projects(
    db: Session,
    gsc: GSCClient,
    days: int = 7,
    batch_size: int = 1000,
) -> Dict[str, Any]:
    """Cron sweep over every stored connection. Per-token errors are counted."""
    logger.info("Starting GSC sync...")

    total_synced = 0
    total_errors = 0
    rows_inserted = 0

    for token in db.query(GSCToken).all():
        try:
            result = await sync_project(db, gsc, token, days=days, batch_size=batch_size)
            rows_inserted += result["rowsInserted"]
            total_synced += 1
        except Exception as e:
            db.rollback()
            logger.error(f"Error syncing GSC for token {token.id}: {e}")
            total_errors += 1

    logger.info(f"GSC sync complete: {total_synced} synced, {total_errors} errors")

    return {
        "success": True,
        "totalSynced": total_synced,
        "totalErrors": total_errors,
        "rowsInserted": rows_inserted,
        "timestamp": datetime.utcnow().isoformat(),
    }
