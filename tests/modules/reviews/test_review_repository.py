"""
Unit tests for the review upsert.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from intake.modules.reviews.models import Review
from intake.modules.reviews.repository import upsert_review

SCORES = {
    "curiosity_vs_ego": 5,
    "participation_vs_spectatorship": 4,
    "emotional_intelligence": 3,
    "notes": "Strong",
}


def _lookup(*values):
    """execute() results whose scalar_one_or_none() yields ``values`` in order."""
    results = []
    for value in values:
        result = MagicMock()
        result.scalar_one_or_none.return_value = value
        results.append(result)
    return AsyncMock(side_effect=results)


class TestUpsertReview:
    @pytest.mark.asyncio
    async def test_inserts_new_review(self, mock_db):
        mock_db.execute = _lookup(None)

        review = await upsert_review(mock_db, uuid4(), uuid4(), SCORES)

        mock_db.add.assert_called_once_with(review)
        assert isinstance(review, Review)
        assert review.curiosity_vs_ego == 5
        assert review.notes == "Strong"

    @pytest.mark.asyncio
    async def test_replaces_existing_scores(self, mock_db):
        existing = Review(
            submission_id=uuid4(),
            reviewer_id=uuid4(),
            curiosity_vs_ego=1,
            participation_vs_spectatorship=1,
            emotional_intelligence=1,
            notes="Old",
        )
        mock_db.execute = _lookup(existing)

        review = await upsert_review(mock_db, existing.submission_id, existing.reviewer_id, SCORES)

        assert review is existing
        assert review.participation_vs_spectatorship == 4
        mock_db.add.assert_not_called()
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_insert_becomes_update(self, mock_db):
        winner = Review(
            submission_id=uuid4(),
            reviewer_id=uuid4(),
            curiosity_vs_ego=2,
            participation_vs_spectatorship=2,
            emotional_intelligence=2,
        )
        mock_db.execute = _lookup(None, winner)
        mock_db.commit = AsyncMock(
            side_effect=[IntegrityError("INSERT", {}, Exception("uq_reviews")), None]
        )

        review = await upsert_review(mock_db, winner.submission_id, winner.reviewer_id, SCORES)

        assert review is winner
        assert review.emotional_intelligence == 3
        mock_db.rollback.assert_awaited_once()
