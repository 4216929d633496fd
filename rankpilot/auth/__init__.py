"""
Supabase authentication and tenant guards.

Routes depend on get_current_user (any signed-in account), require_admin,
or get_owned_project for {project_id} paths. Scheduler and n8n endpoints
use the shared-secret guards instead of user tokens.
"""

from .config import AuthConfig, get_auth_config
from .jwt import verify_supabase_token, extract_user_info, JWTError
from .models import User, UserRole
from .sync import sync_user_from_supabase, get_user_by_id
from .dependencies import (
    get_current_user,
    get_current_user_optional,
    require_admin,
    load_owned_project,
    ProjectAccessChecker,
    get_owned_project,
    verify_cron_secret,
    verify_webhook_secret,
)

__all__ = [
    "AuthConfig",
    "get_auth_config",
    "verify_supabase_token",
    "extract_user_info",
    "JWTError",
    "User",
    "UserRole",
    "sync_user_from_supabase",
    "get_user_by_id",
    "get_current_user",
    "get_current_user_optional",
    "require_admin",
    "load_owned_project",
    "ProjectAccessChecker",
    "get_owned_project",
    "verify_cron_secret",
    "verify_webhook_secret",
]
