"""
Authentication Configuration

A read-only view of the auth-related application settings. Everything is
loaded once by rankpilot.utils.config.Settings; this module only shapes
it for token validation.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from rankpilot.utils.config import Settings, get_settings

# Supabase publishes the project's public signing keys here
JWKS_PATH = "/auth/v1/.well-known/jwks.json"


@dataclass(frozen=True)
class AuthConfig:
    supabase_url: str = ""
    supabase_jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    auth_enabled: bool = True
    admin_emails: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            supabase_url=settings.SUPABASE_URL.rstrip("/"),
            supabase_jwt_secret=settings.SUPABASE_JWT_SECRET,
            jwt_algorithm=settings.JWT_ALGORITHM,
            jwt_audience=settings.JWT_AUDIENCE,
            auth_enabled=settings.AUTH_ENABLED,
            admin_emails=settings.admin_emails,
        )

    @property
    def supabase_project_ref(self) -> Optional[str]:
        """https://abcdefg.supabase.co -> abcdefg"""
        if not self.supabase_url:
            return None
        host = self.supabase_url.split("://", 1)[-1]
        return host.split(".", 1)[0] or None

    @property
    def jwks_url(self) -> Optional[str]:
        ref = self.supabase_project_ref
        return f"https://{ref}.supabase.co{JWKS_PATH}" if ref else None

    @property
    def is_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_jwt_secret)

    def is_admin_email(self, email: Optional[str]) -> bool:
        return bool(email) and email.lower() in self.admin_emails


@lru_cache()
def get_auth_config() -> AuthConfig:
    return AuthConfig.from_settings(get_settings())
