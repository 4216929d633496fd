"""
SQLAlchemy Models for the RankPilot SEO workspace

Design Principles:
1. Every row belongs to a project, every project to a user (tenancy)
2. Natural keys carry unique constraints so ingestion can upsert
3. Raw upstream payloads (webhook responses, n8n research) stay as JSON
4. Portable column types so the same models run on PostgreSQL and SQLite
"""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Date, Text,
    ForeignKey, Enum, Index, UniqueConstraint, JSON, Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in development and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# ENUMS
# =============================================================================

class CampaignStatus(enum.Enum):
    """Outreach campaign lifecycle"""
    PENDING = "pending"        # Created, webhook not (successfully) delivered
    RUNNING = "running"        # n8n accepted the campaign
    COMPLETED = "completed"    # Closed by the user or by n8n


class TargetStatus(enum.Enum):
    """Per-target progress reported by n8n callbacks"""
    PENDING = "pending"
    RESEARCHING = "researching"
    DRAFTED = "drafted"
    SENT = "sent"
    OPENED = "opened"
    REPLIED = "replied"
    LINK_ACQUIRED = "link_acquired"
    DECLINED = "declined"


class OutreachAngle(enum.Enum):
    GUEST_POST = "guest_post"
    RESOURCE_UPDATE = "resource_update"


class LinkType(enum.Enum):
    DOFOLLOW = "dofollow"
    NOFOLLOW = "nofollow"


class ChatRole(enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Competition(enum.Enum):
    """Google Ads competition level"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# CORE TABLES
# =============================================================================

class Project(Base):
    """A website the user optimizes"""
    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False)  # Normalized: no scheme, no www.

    # Market defaults for DataForSEO calls
    target_location = Column(String(100), default="United States")
    location_code = Column(Integer, default=2840)
    language_code = Column(String(10), default="en")

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    keywords = relationship("Keyword", back_populates="project", cascade="all, delete-orphan")
    competitors = relationship("Competitor", back_populates="project", cascade="all, delete-orphan")
    backlinks = relationship("Backlink", back_populates="project", cascade="all, delete-orphan")
    campaigns = relationship("OutreachCampaign", back_populates="project", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("user_id", "domain", name="uq_project_user_domain"),
        Index("idx_project_user", "user_id"),
    )

    def __repr__(self):
        return f"<Project {self.domain}>"


class Competitor(Base):
    """Competitor domain tracked for a project"""
    __tablename__ = "competitors"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    domain = Column(String(255), nullable=False)
    name = Column(String(255))

    created_at = Column(DateTime, default=datetime.utcnow)

    project = relationship("Project", back_populates="competitors")

    __table_args__ = (
        UniqueConstraint("project_id", "domain", name="uq_competitor_project_domain"),
    )


class Keyword(Base):
    """
    Tracked keyword.

    Identity is case-insensitive: keyword_normalized holds the lower-cased
    text and carries the per-project unique constraint.
    """
    __tablename__ = "keywords"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    keyword = Column(String(500), nullable=False)
    keyword_normalized = Column(String(500), nullable=False)

    # Metrics
    search_volume = Column(Integer, default=0)
    keyword_difficulty = Column(Integer)  # 0-100, None when unknown
    cpc = Column(Float, default=0.0)
    competition = Column(Enum(Competition))
    monthly_searches = Column(JSONType)

    # Organization
    tags = Column(JSONType, default=list)
    category = Column(String(100))

    metrics_updated_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    project = relationship("Project", back_populates="keywords")
    rankings = relationship("Ranking", back_populates="keyword", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("project_id", "keyword_normalized", name="uq_keyword_project_normalized"),
        Index("idx_keyword_project", "project_id"),
    )

    def __repr__(self):
        return f"<Keyword {self.keyword}>"


class Ranking(Base):
    """One SERP position observation for a tracked keyword"""
    __tablename__ = "rankings"

    id = Column(Uuid, primary_key=True, default=uuid4)
    keyword_id = Column(Uuid, ForeignKey("keywords.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    rank_position = Column(Integer, nullable=False)
    rank_url = Column(String(2000))
    rank_absolute = Column(Integer)

    search_engine = Column(String(50), default="google")
    device = Column(String(20), default="desktop")
    location_code = Column(Integer, default=2840)
    language_code = Column(String(10), default="en")

    checked_at = Column(DateTime, default=datetime.utcnow)

    keyword = relationship("Keyword", back_populates="rankings")

    __table_args__ = (
        Index("idx_ranking_keyword_checked", "keyword_id", "checked_at"),
        Index("idx_ranking_project", "project_id"),
    )


class Backlink(Base):
    """Inbound link to a project's domain"""
    __tablename__ = "backlinks"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    source_url = Column(String(2000), nullable=False)
    target_url = Column(String(2000), nullable=False)
    anchor_text = Column(Text)
    domain_rank = Column(Integer)
    link_type = Column(Enum(LinkType), default=LinkType.DOFOLLOW)

    first_seen = Column(DateTime)
    last_seen = Column(DateTime)
    is_lost = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    project = relationship("Project", back_populates="backlinks")

    __table_args__ = (
        UniqueConstraint("source_url", "target_url", name="uq_backlink_source_target"),
        Index("idx_backlink_project", "project_id"),
    )


# =============================================================================
# GOOGLE SEARCH CONSOLE
# =============================================================================

class GSCToken(Base):
    """OAuth credentials for one user/project Search Console connection"""
    __tablename__ = "gsc_tokens"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    token_expiry = Column(DateTime)
    site_url = Column(String(500), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "project_id", name="uq_gsc_token_user_project"),
    )


class GSCData(Base):
    """One Search Console analytics row"""
    __tablename__ = "gsc_data"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    date = Column(Date, nullable=False)
    page = Column(String(2000), nullable=False)
    query = Column(String(1000), nullable=False)
    device = Column(String(20), nullable=False)
    country = Column(String(10), nullable=False)

    clicks = Column(Integer, default=0)
    impressions = Column(Integer, default=0)
    ctr = Column(Float, default=0.0)
    position = Column(Float, default=0.0)

    __table_args__ = (
        UniqueConstraint(
            "project_id", "date", "page", "query", "device", "country",
            name="uq_gsc_data_natural_key",
        ),
        Index("idx_gsc_data_project_date", "project_id", "date"),
    )


# =============================================================================
# USAGE METERING
# =============================================================================

class APIUsage(Base):
    """Credits consumed against paid upstream APIs"""
    __tablename__ = "api_usage"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    api_name = Column(String(50), nullable=False)  # dataforseo, anthropic
    endpoint = Column(String(200), nullable=False)
    credits_used = Column(Integer, default=1)
    cost = Column(Float)
    request_data = Column(JSONType)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_api_usage_user_created", "user_id", "created_at"),
    )


# =============================================================================
# OUTREACH
# =============================================================================

class OutreachCampaign(Base):
    """
    A link-building campaign handed to n8n.

    Counts are derived from target statuses and recomputed on every
    callback; they are never incremented in place.
    """
    __tablename__ = "outreach_campaigns"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    keyword_id = Column(Uuid, ForeignKey("keywords.id", ondelete="SET NULL"))
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    campaign_name = Column(String(255), nullable=False)
    keyword = Column(String(500), nullable=False)
    your_domain = Column(String(255))

    status = Column(Enum(CampaignStatus), default=CampaignStatus.PENDING, nullable=False)

    # Denormalized counts
    target_count = Column(Integer, default=0)
    sent_count = Column(Integer, default=0)
    replied_count = Column(Integer, default=0)
    link_acquired_count = Column(Integer, default=0)

    # Snapshot of the targets as launched
    targets = Column(JSONType, default=list)

    # Webhook delivery
    webhook_url = Column(String(2000), nullable=False)
    webhook_fired_at = Column(DateTime)
    webhook_response = Column(JSONType)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project", back_populates="campaigns")
    target_records = relationship(
        "OutreachTargetRecord",
        back_populates="campaign",
        cascade="all, delete-orphan",
        order_by="OutreachTargetRecord.target_score.desc()",
    )

    __table_args__ = (
        Index("idx_campaign_project", "project_id"),
        Index("idx_campaign_status", "status"),
    )


class OutreachTargetRecord(Base):
    """One prospect inside a campaign, updated by n8n callbacks"""
    __tablename__ = "outreach_targets"

    id = Column(Uuid, primary_key=True, default=uuid4)
    campaign_id = Column(Uuid, ForeignKey("outreach_campaigns.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    domain = Column(String(255), nullable=False)
    target_url = Column(String(2000))
    target_score = Column(Integer, default=0)

    # Metrics as computed at prospecting time
    domain_rating = Column(Float)
    monthly_traffic = Column(Integer, default=0)
    referring_domains = Column(Integer, default=0)

    why_targeted = Column(Text)
    outreach_angle = Column(Enum(OutreachAngle))
    pitch_hook = Column(Text)
    research_prompts = Column(JSONType, default=list)

    status = Column(Enum(TargetStatus), default=TargetStatus.PENDING, nullable=False)

    # Payloads written by n8n (last write wins)
    contact_info = Column(JSONType)
    research_data = Column(JSONType)
    outreach_email = Column(Text)
    response_data = Column(JSONType)

    # Set once, on first transition into the matching status
    contacted_at = Column(DateTime)
    replied_at = Column(DateTime)
    link_acquired_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    campaign = relationship("OutreachCampaign", back_populates="target_records")

    __table_args__ = (
        UniqueConstraint("campaign_id", "domain", name="uq_outreach_target_campaign_domain"),
    )


class OutreachTemplate(Base):
    """Reusable outreach email template"""
    __tablename__ = "outreach_templates"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(255), nullable=False)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# CHAT & PAGE AUDITS
# =============================================================================

class ChatMessage(Base):
    """Persisted chat turn"""
    __tablename__ = "chat_messages"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    role = Column(Enum(ChatRole), nullable=False)
    content = Column(Text, nullable=False)
    function_calls = Column(JSONType)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_chat_user_created", "user_id", "created_at"),
    )


class PageAudit(Base):
    """Stored on-page SEO analysis"""
    __tablename__ = "page_audits"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="SET NULL"))

    url = Column(String(2000), nullable=False)
    title = Column(Text)
    meta_description = Column(Text)
    h1 = Column(JSONType, default=list)
    h2 = Column(JSONType, default=list)
    canonical_url = Column(String(2000))

    word_count = Column(Integer, default=0)
    paragraph_count = Column(Integer, default=0)

    images_total = Column(Integer, default=0)
    images_without_alt = Column(Integer, default=0)
    images_data = Column(JSONType)

    internal_links_count = Column(Integer, default=0)
    external_links_count = Column(Integer, default=0)
    links_data = Column(JSONType)

    has_meta_viewport = Column(Boolean, default=False)
    has_meta_robots = Column(Boolean, default=False)
    meta_robots = Column(String(255))
    has_og_tags = Column(Boolean, default=False)
    has_twitter_tags = Column(Boolean, default=False)
    has_schema_markup = Column(Boolean, default=False)
    schema_types = Column(JSONType, default=list)

    target_keyword = Column(String(500))
    keyword_in_title = Column(Boolean, default=False)
    keyword_in_h1 = Column(Boolean, default=False)
    keyword_in_meta = Column(Boolean, default=False)
    keyword_in_url = Column(Boolean, default=False)
    keyword_density = Column(Float, default=0.0)

    issues = Column(JSONType, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)
