"""
PGB Event Scheduler - User Model
================================
Requestor, department member and admin accounts.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from app.core.database import Base


class UserRole(str, enum.Enum):
    admin = "admin"
    user = "user"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)

    # Role & department
    role = Column(String(20), nullable=False, default=UserRole.user.value)
    department = Column(String(120), nullable=False, index=True)

    # Status
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin.value

    def __repr__(self):
        return f"<User {self.username} ({self.department})>"
