"""Core SQLAlchemy models (2.x style) for the community board schema.

A single submissions table carries needs, offers and ideas. The users table
holds credentials and is not part of the submission flow.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class SubmissionCategory(str, Enum):
    """Kind of citizen submission."""
    NEED = "need"
    OFFER = "offer"
    IDEA = "idea"


class SubmissionStatus(str, Enum):
    """Lifecycle status of a submission."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    MATCHED = "matched"


class Neighborhood(str, Enum):
    """Fixed list of neighborhoods used as a soft matching signal."""
    DOWNTOWN = "Downtown"
    NORTH_SIDE = "North Side"
    SOUTH_SIDE = "South Side"
    EAST_END = "East End"
    WEST_END = "West End"
    MIDTOWN = "Midtown"
    RIVERSIDE = "Riverside"
    HILLCREST = "Hillcrest"
    OAKWOOD = "Oakwood"
    GREENFIELD = "Greenfield"


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the timestamp columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Submission(Base):
    """Citizen submissions: needs, offers and ideas."""
    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SubmissionStatus.OPEN.value,
        index=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    neighborhood: Mapped[str | None] = mapped_column(String(50), index=True)
    contact_name: Mapped[str | None] = mapped_column(Text)
    contact_email: Mapped[str | None] = mapped_column(Text)
    hours_offered: Mapped[int | None] = mapped_column(Integer)
    # Set on both sides of a confirmed need/offer pair; no FK by convention
    matched_with_id: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_submissions_created_at", "created_at"),
        Index("ix_submissions_category_status", "category", "status"),
    )

    def __repr__(self) -> str:
        return f"<Submission {self.id} {self.category}/{self.status} {self.title!r}>"


class User(Base):
    """Credentials table."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password: Mapped[str] = mapped_column(Text, nullable=False)
