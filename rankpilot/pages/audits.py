"""
Page audit persistence.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from rankpilot.database.models import PageAudit

from .analyzer import PageAnalysis

logger = logging.getLogger(__name__)


def save_page_audit(
    db: Session,
    analysis: PageAnalysis,
    user_id: UUID,
    project_id: Optional[UUID] = None,
) -> PageAudit:
    """Store an analysis as a page_audits row. Flushes; caller commits."""
    audit = PageAudit(**analysis.to_audit_row(user_id, project_id))
    db.add(audit)
    db.flush()
    logger.info(f"Audit saved with ID: {audit.id}")
    return audit


def list_page_audits(db: Session, user_id: UUID, project_id: Optional[UUID] = None, limit: int = 50) -> List[PageAudit]:
    query = db.query(PageAudit).filter(PageAudit.user_id == user_id)
    if project_id:
        query = query.filter(PageAudit.project_id == project_id)
    return query.order_by(PageAudit.created_at.desc()).limit(limit).all()
