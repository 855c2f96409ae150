"""initial intake schema

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates:
1. prompts and pending_applications for the in-progress intake flow
2. applicants and submissions for finalized applications
3. reviewers and reviews for the scoring dashboard

Enum labels match the Python enum member names, which is what
SQLAlchemy persists for ``Enum(PyEnum)`` columns.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0a1b2c3d4e5f"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _profile_columns() -> list[sa.Column]:
    return [
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("location", sa.String(length=100), nullable=False),
        sa.Column("timezone", sa.String(length=100), nullable=False),
        sa.Column("role_company", sa.String(length=150), nullable=True),
        sa.Column("heard_about", sa.String(length=200), nullable=False),
        sa.Column("prior_events", sa.String(length=300), nullable=True),
        sa.Column("three_words", sa.String(length=100), nullable=False),
        sa.Column("bio", sa.Text(), nullable=False),
        sa.Column("links", postgresql.JSON(astext_type=sa.Text()), nullable=False),
    ]


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    """Create intake and review tables."""
    submission_status_enum = postgresql.ENUM(
        "SUBMITTED",
        "ACCEPTED",
        "WAITLIST",
        "REJECTED",
        name="submission_status",
        create_type=False,
    )
    submission_status_enum.create(op.get_bind(), checkfirst=True)

    reviewer_role_enum = postgresql.ENUM(
        "ADMIN",
        "REVIEWER",
        name="reviewer_role",
        create_type=False,
    )
    reviewer_role_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "prompts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default="true"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "pending_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        *_profile_columns(),
        sa.Column("prompt_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["prompt_id"], ["prompts.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("token"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(
        "ix_pending_applications_expires_at",
        "pending_applications",
        ["expires_at"],
        unique=False,
    )

    op.create_table(
        "applicants",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_profile_columns(),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("prompt_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("video_key", sa.String(length=500), nullable=False),
        sa.Column("video_url", sa.String(length=1000), nullable=False),
        sa.Column("video_duration_sec", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            submission_status_enum,
            nullable=False,
            server_default="SUBMITTED",
        ),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["applicant_id"], ["applicants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["prompt_id"], ["prompts.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("applicant_id"),
    )
    op.create_index("ix_submissions_status", "submissions", ["status"], unique=False)
    op.create_index("ix_submissions_created_at", "submissions", ["created_at"], unique=False)
    op.create_index("ix_submissions_video_key", "submissions", ["video_key"], unique=True)

    op.create_table(
        "reviewers",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("role", reviewer_role_enum, nullable=False, server_default="REVIEWER"),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_reviewers_email"), "reviewers", ["email"], unique=True)

    op.create_table(
        "reviews",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("submission_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reviewer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("curiosity_vs_ego", sa.Integer(), nullable=False),
        sa.Column("participation_vs_spectatorship", sa.Integer(), nullable=False),
        sa.Column("emotional_intelligence", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["submission_id"], ["submissions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewer_id"], ["reviewers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "submission_id", "reviewer_id", name="uq_reviews_submission_reviewer"
        ),
        sa.CheckConstraint("curiosity_vs_ego BETWEEN 1 AND 5", name="ck_reviews_curiosity_range"),
        sa.CheckConstraint(
            "participation_vs_spectatorship BETWEEN 1 AND 5",
            name="ck_reviews_participation_range",
        ),
        sa.CheckConstraint(
            "emotional_intelligence BETWEEN 1 AND 5", name="ck_reviews_emotional_range"
        ),
    )
    op.create_index(op.f("ix_reviews_submission_id"), "reviews", ["submission_id"], unique=False)


def downgrade() -> None:
    """Drop all intake tables and enum types."""
    op.drop_index(op.f("ix_reviews_submission_id"), table_name="reviews")
    op.drop_table("reviews")

    op.drop_index(op.f("ix_reviewers_email"), table_name="reviewers")
    op.drop_table("reviewers")

    op.drop_index("ix_submissions_video_key", table_name="submissions")
    op.drop_index("ix_submissions_created_at", table_name="submissions")
    op.drop_index("ix_submissions_status", table_name="submissions")
    op.drop_table("submissions")

    op.drop_table("applicants")

    op.drop_index("ix_pending_applications_expires_at", table_name="pending_applications")
    op.drop_table("pending_applications")

    op.drop_table("prompts")

    postgresql.ENUM(name="reviewer_role").drop(op.get_bind(), checkfirst=True)
    postgresql.ENUM(name="submission_status").drop(op.get_bind(), checkfirst=True)
