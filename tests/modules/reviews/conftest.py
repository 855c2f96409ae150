"""
Fixtures for reviews tests.
"""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from intake.modules.applications.models import SubmissionStatus

BASE = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def make_review():
    def _make(scores=(3, 3, 3), submission_id=None, reviewer=None):
        return SimpleNamespace(
            id=uuid4(),
            submission_id=submission_id or uuid4(),
            reviewer_id=uuid4(),
            curiosity_vs_ego=scores[0],
            participation_vs_spectatorship=scores[1],
            emotional_intelligence=scores[2],
            notes=None,
            created_at=BASE,
            updated_at=BASE,
            reviewer=reviewer,
        )

    return _make


@pytest.fixture
def make_submission(make_review):
    """Factory for submission doubles shaped like the eager-loaded ORM row."""

    def _make(name="Applicant", days=0, scores=(), status=SubmissionStatus.SUBMITTED):
        submission_id = uuid4()
        return SimpleNamespace(
            id=submission_id,
            status=status,
            created_at=BASE + timedelta(days=days),
            updated_at=BASE + timedelta(days=days),
            video_url="https://cdn.example.com/videos/x/1.mp4",
            video_duration_sec=90,
            prompt=SimpleNamespace(text="What question do you wish more people would ask you?"),
            applicant=SimpleNamespace(
                id=uuid4(),
                name=name,
                email=f"{name.lower()}@example.com",
                location="Lisbon",
                timezone="Europe/Lisbon",
                role_company=None,
                heard_about="Newsletter",
                prior_events=None,
                three_words="kind, sharp, curious",
                bio="A short bio for testing purposes.",
                links=[],
            ),
            reviews=[make_review(s, submission_id) for s in scores],
        )

    return _make
