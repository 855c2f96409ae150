"""
Reviews Models

Reviewers and their rubric scores. One review per (submission, reviewer);
resubmitting replaces the previous scores.
"""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from intake.core.database import Base

if TYPE_CHECKING:
    from intake.modules.applications.models import Submission


class ReviewerRole(str, enum.Enum):
    ADMIN = "admin"
    REVIEWER = "reviewer"


class Reviewer(Base):
    """A panel member who scores submissions."""

    __tablename__ = "reviewers"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[ReviewerRole] = mapped_column(
        Enum(ReviewerRole, name="reviewer_role"), nullable=False, default=ReviewerRole.REVIEWER
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    reviews: Mapped[list["Review"]] = relationship("Review", back_populates="reviewer")


class Review(Base):
    """Three rubric scores in [1, 5] plus optional notes."""

    __tablename__ = "reviews"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("reviewers.id", ondelete="CASCADE"),
        nullable=False,
    )

    curiosity_vs_ego: Mapped[int] = mapped_column(Integer, nullable=False)
    participation_vs_spectatorship: Mapped[int] = mapped_column(Integer, nullable=False)
    emotional_intelligence: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    submission: Mapped["Submission"] = relationship("Submission", back_populates="reviews")
    reviewer: Mapped["Reviewer"] = relationship("Reviewer", back_populates="reviews", lazy="joined")

    __table_args__ = (
        UniqueConstraint("submission_id", "reviewer_id", name="uq_reviews_submission_reviewer"),
        CheckConstraint("curiosity_vs_ego BETWEEN 1 AND 5", name="ck_reviews_curiosity_range"),
        CheckConstraint(
            "participation_vs_spectatorship BETWEEN 1 AND 5",
            name="ck_reviews_participation_range",
        ),
        CheckConstraint(
            "emotional_intelligence BETWEEN 1 AND 5", name="ck_reviews_emotional_range"
        ),
    )
