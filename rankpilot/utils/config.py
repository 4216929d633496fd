"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from typing import List, Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


DEFAULT_OUTREACH_BLACKLIST = (
    "youtube.com,facebook.com,twitter.com,linkedin.com,"
    "wikipedia.org,reddit.com,pinterest.com,instagram.com"
)


def split_domain_list(value: str) -> List[str]:
    """Comma-separated domains as a cleaned, lower-cased list."""
    return [entry.strip().lower() for entry in value.split(",") if entry.strip()]


DEFAULT_BLACKLIST_DOMAINS = tuple(split_domain_list(DEFAULT_OUTREACH_BLACKLIST))


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # DataForSEO
    DATAFORSEO_LOGIN: str = ""
    DATAFORSEO_PASSWORD: str = ""

    # Claude API (chat assistant)
    ANTHROPIC_API_KEY: Optional[str] = None
    CLAUDE_MODEL: str = "claude-sonnet-4-5-20250929"
    CHAT_MAX_TOKENS: int = 4096
    CHAT_MAX_TOOL_ROUNDS: int = 8

    # Google Search Console OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/api/gsc/callback"

    # Public URL of the frontend, used for OAuth redirects and n8n callbacks
    APP_URL: str = "http://localhost:3000"

    # Supabase Auth
    SUPABASE_URL: str = ""
    SUPABASE_JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"
    AUTH_ENABLED: bool = True
    ADMIN_EMAILS: str = ""

    # Database (DATABASE_URL wins; SQLite file when neither is set)
    DATABASE_URL: Optional[str] = None
    POSTGRES_URL: Optional[str] = None
    SQLITE_PATH: str = "rankpilot_dev.db"
    SQL_DEBUG: bool = False

    # Shared secrets
    CRON_SECRET: Optional[str] = None
    N8N_CALLBACK_SECRET: Optional[str] = None

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Default market
    DEFAULT_LOCATION_CODE: int = 2840
    DEFAULT_LANGUAGE_CODE: str = "en"

    # Outreach target finder
    OUTREACH_BLACKLIST: str = DEFAULT_OUTREACH_BLACKLIST
    OUTREACH_SERP_DEPTH: int = 20
    OUTREACH_MAX_COMPETITORS: int = 5
    OUTREACH_REFERRING_DOMAINS_LIMIT: int = 500
    OUTREACH_MAX_TARGETS: int = 10

    # Rank tracking
    RANK_CHECK_DELAY_SECONDS: float = 1.0

    # Search Console sync
    GSC_SYNC_DAYS: int = 30
    GSC_CRON_SYNC_DAYS: int = 7
    GSC_BATCH_SIZE: int = 1000

    # Timeouts
    API_TIMEOUT: int = 60
    WEBHOOK_TIMEOUT: int = 30
    PAGE_FETCH_TIMEOUT: int = 30

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        case_sensitive = False

    @property
    def outreach_blacklist(self) -> List[str]:
        return split_domain_list(self.OUTREACH_BLACKLIST)

    @property
    def admin_emails(self) -> List[str]:
        """ADMIN_EMAILS as a lower-cased list."""
        return [email.strip().lower() for email in self.ADMIN_EMAILS.split(",") if email.strip()]

    @property
    def database_url(self) -> str:
        url = self.DATABASE_URL or self.POSTGRES_URL
        if not url:
            return f"sqlite:///{self.SQLITE_PATH}"
        # SQLAlchemy only knows the postgresql:// scheme
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        return url

    @property
    def webhook_callback_url(self) -> str:
        """URL n8n posts campaign progress back to."""
        return f"{self.APP_URL.rstrip('/')}/api/outreach/webhook-callback"

    @property
    def dataforseo_configured(self) -> bool:
        return bool(self.DATAFORSEO_LOGIN and self.DATAFORSEO_PASSWORD)

    @property
    def gsc_configured(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
