"""
Mirror Supabase users into the local users table.

Each authenticated request upserts the caller by the token's sub claim.
Addresses listed in ADMIN_EMAILS are promoted to admin; admins are never
demoted here.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from rankpilot.auth.config import get_auth_config
from rankpilot.auth.jwt import extract_user_info
from rankpilot.auth.models import User, UserRole

logger = logging.getLogger(__name__)


def _apply_profile(user: User, info: Dict[str, Any], now: datetime) -> None:
    """Email always follows Supabase; name and avatar only when provided."""
    user.email = info["email"]
    user.full_name = info.get("full_name") or user.full_name
    user.avatar_url = info.get("avatar_url") or user.avatar_url
    user.provider = info.get("provider") or user.provider
    user.last_sign_in_at = now
    user.synced_at = now


def sync_user_from_supabase(db: Session, jwt_payload: Dict[str, Any]) -> User:
    """Create or refresh the local user for verified token claims."""
    info = extract_user_info(jwt_payload)
    is_admin_email = get_auth_config().is_admin_email(info["email"])
    now = datetime.utcnow()

    user = db.get(User, UUID(info["id"]))
    if user is None:
        logger.info(f"First sign-in for {info['email']}, creating local user")
        user = User(id=UUID(info["id"]), role=UserRole.USER, is_active=True)
        db.add(user)

    _apply_profile(user, info, now)

    if is_admin_email and user.role != UserRole.ADMIN:
        logger.info(f"Promoting {user.email} to admin (listed in ADMIN_EMAILS)")
        user.role = UserRole.ADMIN

    db.commit()
    db.refresh(user)
    return user


def get_user_by_id(db: Session, user_id: UUID) -> Optional[User]:
    return db.get(User, user_id)
