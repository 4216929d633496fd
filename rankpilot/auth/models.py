"""
Workspace users, mirrored from Supabase Auth.

Lives on the same metadata as the workspace tables so projects, GSC
tokens, campaigns and usage rows can reference users.id.
"""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, Index, String, Uuid

from rankpilot.database.models import Base


class UserRole(enum.Enum):
    USER = "user"      # Own projects only
    ADMIN = "admin"    # Every tenant's projects


class User(Base):
    """One Supabase account. id is the auth.users.id (the token's sub)."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True)

    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255))
    avatar_url = Column(String(2000))
    provider = Column(String(50))  # Supabase sign-in provider

    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    last_sign_in_at = Column(DateTime)
    synced_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_user_role", "role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def can_access_project(self, project, allow_admin_access: bool = True) -> bool:
        """Tenant rule shared by routes and chat tools."""
        if allow_admin_access and self.is_admin:
            return True
        return project.user_id == self.id

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"
