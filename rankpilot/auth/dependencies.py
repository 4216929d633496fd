"""
Request guards for the API.

Bearer tokens come from Supabase Auth; every verified caller is mirrored
into the users table before the route runs. Tenant checks, the cron
secret and the n8n callback secret live here too.
"""

import hmac
import logging
from typing import Optional
from uuid import UUID, uuid4

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from rankpilot.database.session import get_db
from rankpilot.database.models import Project
from rankpilot.auth.models import User, UserRole
from rankpilot.auth.jwt import verify_supabase_token, JWTError
from rankpilot.auth.sync import sync_user_from_supabase
from rankpilot.auth.config import get_auth_config
from rankpilot.utils.config import get_settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

DEV_USER_EMAIL = "dev@rankpilot.local"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _authenticate(
    credentials: Optional[HTTPAuthorizationCredentials],
    db: Session,
    required: bool,
) -> Optional[User]:
    """Resolve the caller; with required=False failures yield None."""
    if not get_auth_config().auth_enabled:
        return _get_dev_user(db)

    if credentials is None:
        if required:
            raise _unauthorized("Not authenticated")
        return None

    try:
        claims = verify_supabase_token(credentials.credentials)
    except JWTError as e:
        if not required:
            return None
        logger.warning(f"Rejected bearer token: {e}")
        raise _unauthorized(str(e))

    user = sync_user_from_supabase(db, claims)
    if user.is_active:
        return user
    if required:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )
    return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """401 without a valid token, 403 for a disabled account."""
    return _authenticate(credentials, db, required=True)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    # The GSC OAuth callback is a browser redirect without a bearer header
    return _authenticate(credentials, db, required=False)


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


# =============================================================================
# TENANCY
# =============================================================================

def load_owned_project(
    db: Session,
    project_id: UUID,
    user: User,
    allow_admin_access: bool = True,
) -> Project:
    """
    Fetch a project the caller may act on.

    Raises:
        HTTPException 404: No such project
        HTTPException 403: Another tenant's project
    """
    project = db.get(Project, project_id)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")

    if not user.can_access_project(project, allow_admin_access):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this project",
        )
    return project


class ProjectAccessChecker:
    """Path dependency turning {project_id} into an accessible Project."""

    def __init__(self, allow_admin_access: bool = True):
        self.allow_admin_access = allow_admin_access

    async def __call__(
        self,
        project_id: UUID,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> Project:
        return load_owned_project(db, project_id, current_user, self.allow_admin_access)


get_owned_project = ProjectAccessChecker()


# =============================================================================
# SHARED SECRETS
# =============================================================================

def _secrets_match(provided: Optional[str], expected: str) -> bool:
    return bool(provided) and hmac.compare_digest(provided.encode(), expected.encode())


async def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
) -> None:
    """
    Scheduler endpoints expect "Authorization: Bearer <CRON_SECRET>".

    Raises:
        HTTPException 401: Secret missing or wrong
        HTTPException 500: CRON_SECRET not configured
    """
    expected = get_settings().CRON_SECRET
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="CRON_SECRET not configured",
        )

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not _secrets_match(token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def verify_webhook_secret(
    x_webhook_secret: Optional[str] = Header(default=None),
) -> None:
    """n8n callbacks carry X-Webhook-Secret once N8N_CALLBACK_SECRET is set."""
    expected = get_settings().N8N_CALLBACK_SECRET
    if expected and not _secrets_match(x_webhook_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")


def _get_dev_user(db: Session) -> User:
    """Local admin used when AUTH_ENABLED is off."""
    user = db.query(User).filter(User.email == DEV_USER_EMAIL).first()
    if user is None:
        user = User(
            id=uuid4(),
            email=DEV_USER_EMAIL,
            full_name="Development User",
            role=UserRole.ADMIN,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    return user
