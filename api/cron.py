"""
Scheduler-triggered Endpoints

Both sweeps are called by an external scheduler with
"Authorization: Bearer <CRON_SECRET>" and run over every project.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.dependencies import get_dataforseo_client, get_gsc_client
from rankpilot.auth.dependencies import verify_cron_secret
from rankpilot.collector.client import DataForSEOClient
from rankpilot.database.session import get_db
from rankpilot.integrations.gsc import GSCClient
from rankpilot.services.gsc_sync import sync_all_projects
from rankpilot.services.rankings import run_daily_rank_check
from rankpilot.utils.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/cron",
    tags=["Cron"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.get("/daily-rank-check")
async def daily_rank_check(
    db: Session = Depends(get_db),
    client: DataForSEOClient = Depends(get_dataforseo_client),
):
    """Check and record the position of every tracked keyword."""
    return await run_daily_rank_check(
        db,
        client,
        delay_seconds=get_settings().RANK_CHECK_DELAY_SECONDS,
    )


@router.get("/gsc-sync")
async def gsc_sync_all(
    db: Session = Depends(get_db),
    gsc: GSCClient = Depends(get_gsc_client),
):
    """Sync the last week of Search Console data for every connection."""
    settings = get_settings()
    return await sync_all_projects(
        db,
        gsc,
        days=settings.GSC_CRON_SYNC_DAYS,
        batch_size=settings.GSC_BATCH_SIZE,
    )
