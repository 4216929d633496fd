"""
Account endpoints.

Anyone signed in can read and rename their own profile and see what their
DataForSEO and Claude calls have cost. Admins can browse every account,
change roles and switch accounts off.

Routes:
- GET   /api/users/me
- PATCH /api/users/me
- GET   /api/users/me/usage
- GET   /api/users              (admin)
- GET   /api/users/{user_id}    (admin)
- PATCH /api/users/{user_id}    (admin)
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from rankpilot.auth.dependencies import get_current_user, require_admin
from rankpilot.auth.models import User, UserRole
from rankpilot.auth.sync import get_user_by_id
from rankpilot.database.models import APIUsage, Project
from rankpilot.database.repository import get_credits_used
from rankpilot.database.session import get_db

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["Users"], dependencies=[Depends(get_current_user)])

ROLE_PATTERN = "^(user|admin)$"


class AccountOut(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str]
    avatar_url: Optional[str]
    role: str
    is_active: bool
    provider: Optional[str]
    project_count: int = 0
    credits_used_30d: int = 0
    created_at: datetime
    last_sign_in_at: Optional[datetime]

    class Config:
        from_attributes = True


class AccountPage(BaseModel):
    users: List[AccountOut]
    total: int
    page: int
    page_size: int


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, max_length=255)


class AccountUpdate(BaseModel):
    """Admin changes; omitted fields stay as they are."""
    role: Optional[str] = Field(None, pattern=ROLE_PATTERN)
    is_active: Optional[bool] = None


def describe(db: Session, account: User) -> AccountOut:
    projects = db.query(func.count(Project.id)).filter(Project.user_id == account.id).scalar()
    return AccountOut(
        id=account.id,
        email=account.email,
        full_name=account.full_name,
        avatar_url=account.avatar_url,
        role=account.role.value,
        is_active=account.is_active,
        provider=account.provider,
        project_count=projects or 0,
        credits_used_30d=get_credits_used(db, account.id, days=30),
        created_at=account.created_at,
        last_sign_in_at=account.last_sign_in_at,
    )


def _account_or_404(db: Session, user_id: UUID) -> User:
    account = get_user_by_id(db, user_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return account


# =============================================================================
# SELF SERVICE
# =============================================================================

@router.get("/me", response_model=AccountOut)
def read_me(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return describe(db, current_user)


@router.patch("/me", response_model=AccountOut)
def update_me(
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Email follows Supabase and role is admin-managed, so only the name is editable
    if body.full_name is not None:
        current_user.full_name = body.full_name
        db.commit()
        db.refresh(current_user)
    return describe(db, current_user)


@router.get("/me/usage")
def read_my_usage(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Credits per upstream endpoint over the trailing window, costliest first."""
    since = datetime.utcnow() - timedelta(days=days)
    credits = func.coalesce(func.sum(APIUsage.credits_used), 0)
    rows = (
        db.query(APIUsage.api_name, APIUsage.endpoint, func.count(APIUsage.id), credits)
        .filter(APIUsage.user_id == current_user.id, APIUsage.created_at >= since)
        .group_by(APIUsage.api_name, APIUsage.endpoint)
        .order_by(credits.desc())
        .all()
    )

    breakdown = [
        {"api_name": api, "endpoint": endpoint, "calls": calls, "credits_used": int(used)}
        for api, endpoint, calls, used in rows
    ]
    return {
        "days": days,
        "total_credits": sum(row["credits_used"] for row in breakdown),
        "breakdown": breakdown,
    }


# =============================================================================
# ADMINISTRATION
# =============================================================================

@router.get("", response_model=AccountPage)
def list_accounts(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    role: Optional[str] = Query(None, pattern=ROLE_PATTERN),
    search: Optional[str] = Query(None, max_length=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == UserRole(role))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))

    total = query.count()
    accounts = (
        query.order_by(User.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return AccountPage(
        users=[describe(db, account) for account in accounts],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{user_id}", response_model=AccountOut)
def read_account(user_id: UUID, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return describe(db, _account_or_404(db, user_id))


@router.patch("/{user_id}", response_model=AccountOut)
def update_account(
    user_id: UUID,
    body: AccountUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Change another account's role or active flag.

    An admin cannot demote or disable themselves; the Supabase account is
    untouched, so a disabled user can still sign in there but gets 403 here.
    """
    account = _account_or_404(db, user_id)

    if account.id == admin.id and (body.role == UserRole.USER.value or body.is_active is False):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot demote or disable their own account",
        )

    if body.role is not None:
        account.role = UserRole(body.role)
    if body.is_active is not None:
        account.is_active = body.is_active
    db.commit()
    db.refresh(account)

    logger.info(f"{admin.email} updated {account.email}: role={account.role.value} active={account.is_active}")
    return describe(db, account)
