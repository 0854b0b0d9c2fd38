"""
SQLAlchemy ORM models for Book Imbiber.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from imbiber.db import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class AppConfig(Base):
    """Single-row table holding the runtime configuration as JSON."""

    __tablename__ = "app_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    runtime_json: Mapped[str] = mapped_column(Text, default="{}")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class KeyValueItem(Base):
    """Persistent key-value storage (cache entries, notification history, badges)."""

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(Text)


class FollowedAuthor(Base):
    """A user's subscription to release tracking for one author."""

    __tablename__ = "followed_authors"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    author_name: Mapped[str] = mapped_column(String(255))
    author_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    books_count: Mapped[int] = mapped_column(Integer, default=0)
    genres: Mapped[str] = mapped_column(Text, default="[]")  # JSON list
    last_checked: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class OwnedBook(Base):
    """A book in a user's library."""

    __tablename__ = "owned_books"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    title: Mapped[str] = mapped_column(String(512), default="")
    author: Mapped[str] = mapped_column(String(512), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    published_date: Mapped[str] = mapped_column(String(32), default="")
    google_books_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    thumbnail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    categories: Mapped[str] = mapped_column(String(512), default="")
    average_rating: Mapped[float] = mapped_column(Float, default=0.0)
    ratings_count: Mapped[int] = mapped_column(Integer, default=0)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    @property
    def is_read(self) -> bool:
        return bool(self.read or self.read_at)


class CheckRun(Base):
    """Audit record of one scheduled or manual release check."""

    __tablename__ = "check_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="running")
    forced: Mapped[bool] = mapped_column(Boolean, default=False)
    total_users: Mapped[int] = mapped_column(Integer, default=0)
    total_authors: Mapped[int] = mapped_column(Integer, default=0)
    total_releases: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
