"""
Applications Models

Database models for the intake flow:
- Prompt: the pool of video prompts applicants answer
- PendingApplication: an in-progress application keyed by an opaque token
- Applicant / Submission: the durable records produced by finalize
"""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from intake.core.database import Base

if TYPE_CHECKING:
    from intake.modules.reviews.models import Review


class SubmissionStatus(str, enum.Enum):
    """Reviewer decision on a submission."""

    SUBMITTED = "SUBMITTED"
    ACCEPTED = "ACCEPTED"
    WAITLIST = "WAITLIST"
    REJECTED = "REJECTED"


class Prompt(Base):
    """A video prompt. Only active prompts are assigned to new applicants."""

    __tablename__ = "prompts"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class PendingApplication(Base):
    """
    An application that has been started but not finalized.

    At most one row per email. The token is the bearer credential the
    applicant carries between steps; it is returned again on resume, so it
    is stored as issued. Rows past ``expires_at`` are treated as absent and
    deleted when read or swept.
    """

    __tablename__ = "pending_applications"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    # Profile (email is stored lower-cased)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[str] = mapped_column(String(100), nullable=False)
    timezone: Mapped[str] = mapped_column(String(100), nullable=False)
    role_company: Mapped[str | None] = mapped_column(String(150), nullable=True)
    heard_about: Mapped[str] = mapped_column(String(200), nullable=False)
    prior_events: Mapped[str | None] = mapped_column(String(300), nullable=True)
    three_words: Mapped[str] = mapped_column(String(100), nullable=False)
    bio: Mapped[str] = mapped_column(Text, nullable=False)
    links: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    prompt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("prompts.id", ondelete="RESTRICT"), nullable=False
    )
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    prompt: Mapped["Prompt"] = relationship("Prompt", lazy="joined")

    __table_args__ = (Index("ix_pending_applications_expires_at", "expires_at"),)


class Applicant(Base):
    """A person who has completed an application. Email is globally unique."""

    __tablename__ = "applicants"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[str] = mapped_column(String(100), nullable=False)
    timezone: Mapped[str] = mapped_column(String(100), nullable=False)
    role_company: Mapped[str | None] = mapped_column(String(150), nullable=True)
    heard_about: Mapped[str] = mapped_column(String(200), nullable=False)
    prior_events: Mapped[str | None] = mapped_column(String(300), nullable=True)
    three_words: Mapped[str] = mapped_column(String(100), nullable=False)
    bio: Mapped[str] = mapped_column(Text, nullable=False)
    links: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    submission: Mapped["Submission | None"] = relationship(
        "Submission", back_populates="applicant", uselist=False
    )


class Submission(Base):
    """A finalized video submission awaiting (or past) review."""

    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    applicant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("applicants.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    prompt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("prompts.id", ondelete="RESTRICT"), nullable=False
    )
    video_key: Mapped[str] = mapped_column(String(500), nullable=False)
    video_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    video_duration_sec: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[SubmissionStatus] = mapped_column(
        Enum(SubmissionStatus, name="submission_status"),
        nullable=False,
        default=SubmissionStatus.SUBMITTED,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    applicant: Mapped["Applicant"] = relationship("Applicant", back_populates="submission")
    prompt: Mapped["Prompt"] = relationship("Prompt")
    reviews: Mapped[list["Review"]] = relationship(
        "Review", back_populates="submission", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_submissions_status", "status"),
        Index("ix_submissions_created_at", "created_at"),
        Index("ix_submissions_video_key", "video_key", unique=True),
    )


# Register Review with the mapper so Submission.reviews resolves
from intake.modules.reviews.models import Review  # noqa: E402, F401
