"""SQLAlchemy models for TeamSync server.

This module defines the database schema using SQLAlchemy ORM.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def _bucket_column() -> Mapped[list[Any]]:
    """JSON array column defaulting to an empty list."""
    return mapped_column(JSON, default=list, server_default="[]", nullable=False)


class Team(Base):
    """A team sharing one set of synchronized buckets."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    members: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    __table_args__ = (Index("idx_teams_code", "code"),)


class User(Base):
    """A registered user. Belongs to exactly one team at a time."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    team_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("teams.id"), nullable=True
    )
    team_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default="owner", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    tokens: Mapped[list[Token]] = relationship(
        "Token", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_users_email", "email"),)


class Token(Base):
    """Represents an authentication token."""

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    user: Mapped[User] = relationship("User", back_populates="tokens")

    # Indexes
    __table_args__ = (Index("idx_tokens_hash", "token_hash"),)


class TeamData(Base):
    """Synchronized buckets of a team: one row per team, one column per field.

    Column names match teamsync.core.fields.DataField values.
    """

    __tablename__ = "team_data"

    team_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tasks: Mapped[list[Any]] = _bucket_column()
    projects: Mapped[list[Any]] = _bucket_column()
    sales: Mapped[list[Any]] = _bucket_column()
    team_members: Mapped[list[Any]] = _bucket_column()
    meetings: Mapped[list[Any]] = _bucket_column()
    activities: Mapped[list[Any]] = _bucket_column()
    documents: Mapped[list[Any]] = _bucket_column()
    meeting_minutes: Mapped[list[Any]] = _bucket_column()
    leads: Mapped[list[Any]] = _bucket_column()
    service_materials: Mapped[list[Any]] = _bucket_column()
    sales_emails: Mapped[list[Any]] = _bucket_column()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
