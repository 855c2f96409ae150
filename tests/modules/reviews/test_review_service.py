"""
Unit tests for the reviews service layer.

These tests cover:
- Sort parameter mapping
- Triage filtering, ordering and pagination
- Review submission
- Status updates and the acceptance cap
- Dashboard statistics
"""

from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from intake.modules.applications.models import SubmissionStatus
from intake.modules.reviews.schemas import ReviewSubmitRequest, SubmissionFilters
from intake.modules.reviews.scoring import ConfidenceLevel, SortOption
from intake.modules.reviews.service import (
    ACCEPTANCE_CAP,
    AcceptanceCapReachedError,
    SubmissionNotFoundError,
    get_dashboard_stats,
    get_submission_detail,
    list_submissions_for_triage,
    resolve_sort,
    submit_review,
    update_submission_status,
)

REPO = "intake.modules.reviews.service.repository"


class TestResolveSort:
    @pytest.mark.parametrize(
        "sort_by,sort_order,expected",
        [
            (None, None, SortOption.NEWEST),
            ("created_at", "desc", SortOption.NEWEST),
            ("created_at", "asc", SortOption.OLDEST),
            ("average_score", None, SortOption.HIGHEST_SCORE),
            ("average_score", "asc", SortOption.LOWEST_SCORE),
            ("needs_review", None, SortOption.NEEDS_REVIEW),
            ("lowest_score", None, SortOption.LOWEST_SCORE),
            ("oldest", None, SortOption.OLDEST),
            ("bogus", None, SortOption.NEWEST),
        ],
    )
    def test_mapping(self, sort_by, sort_order, expected):
        assert resolve_sort(sort_by, sort_order) == expected


class TestListSubmissionsForTriage:
    @pytest.mark.asyncio
    async def test_sorted_by_score_with_unscored_last(self, mock_db, make_submission):
        submissions = [
            make_submission("Unscored", days=3),
            make_submission("Middle", days=1, scores=[(3, 3, 3)]),
            make_submission("Top", days=0, scores=[(5, 5, 5), (4, 4, 4)]),
        ]

        with patch(REPO) as mock_repo:
            mock_repo.list_submissions = AsyncMock(return_value=submissions)

            result = await list_submissions_for_triage(
                mock_db, SubmissionFilters(), sort_by="highest_score"
            )

        assert [item.applicant.name for item in result.items] == ["Top", "Middle", "Unscored"]
        top = result.items[0].scoring
        assert top.average_score == 4.5
        assert top.confidence == ConfidenceLevel.MEDIUM
        assert result.items[2].scoring.average_score is None

    @pytest.mark.asyncio
    async def test_pagination(self, mock_db, make_submission):
        submissions = [make_submission(f"A{i}", days=i) for i in range(5)]

        with patch(REPO) as mock_repo:
            mock_repo.list_submissions = AsyncMock(return_value=submissions)

            result = await list_submissions_for_triage(
                mock_db, SubmissionFilters(), sort_by="oldest", page=2, limit=2
            )

        assert [item.applicant.name for item in result.items] == ["A2", "A3"]
        assert result.pagination.total == 5
        assert result.pagination.total_pages == 3

    @pytest.mark.asyncio
    async def test_empty_result(self, mock_db):
        with patch(REPO) as mock_repo:
            mock_repo.list_submissions = AsyncMock(return_value=[])

            result = await list_submissions_for_triage(mock_db, SubmissionFilters())

        assert result.items == []
        assert result.pagination.total_pages == 0

    @pytest.mark.asyncio
    async def test_score_filters_exclude_unscored(self, mock_db, make_submission):
        submissions = [
            make_submission("Unscored"),
            make_submission("Low", scores=[(1, 2, 1)]),
            make_submission("High", scores=[(4, 5, 4)]),
        ]

        with patch(REPO) as mock_repo:
            mock_repo.list_submissions = AsyncMock(return_value=submissions)

            result = await list_submissions_for_triage(
                mock_db, SubmissionFilters(min_score=2.5, max_score=5)
            )

        assert [item.applicant.name for item in result.items] == ["High"]

    @pytest.mark.asyncio
    async def test_has_review_filter(self, mock_db, make_submission):
        submissions = [make_submission("Unscored"), make_submission("Scored", scores=[(3, 3, 3)])]

        with patch(REPO) as mock_repo:
            mock_repo.list_submissions = AsyncMock(return_value=submissions)

            pending = await list_submissions_for_triage(
                mock_db, SubmissionFilters(has_review=False)
            )
            reviewed = await list_submissions_for_triage(
                mock_db, SubmissionFilters(has_review=True)
            )

        assert [i.applicant.name for i in pending.items] == ["Unscored"]
        assert [i.applicant.name for i in reviewed.items] == ["Scored"]

    @pytest.mark.asyncio
    async def test_date_to_includes_whole_day(self, mock_db):
        filters = SubmissionFilters(
            status=SubmissionStatus.SUBMITTED,
            date_from=date(2026, 3, 1),
            date_to=date(2026, 3, 2),
        )

        with patch(REPO) as mock_repo:
            mock_repo.list_submissions = AsyncMock(return_value=[])

            await list_submissions_for_triage(mock_db, filters)

        kwargs = mock_repo.list_submissions.await_args.kwargs
        assert kwargs["status"] == SubmissionStatus.SUBMITTED
        assert kwargs["created_from"].date() == date(2026, 3, 1)
        assert kwargs["created_before"].date() == date(2026, 3, 3)

    def test_inverted_score_range_rejected(self):
        with pytest.raises(ValueError):
            SubmissionFilters(min_score=4, max_score=2)


class TestSubmitReview:
    @pytest.mark.asyncio
    async def test_upserts_scores(self, mock_db, make_review):
        reviewer_id = uuid4()
        data = ReviewSubmitRequest(
            submission_id=uuid4(),
            curiosity_vs_ego=4,
            participation_vs_spectatorship=5,
            emotional_intelligence=3,
            notes="Thoughtful answer",
        )
        stored = make_review((4, 5, 3), data.submission_id, SimpleNamespace(name="Rae"))

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists = AsyncMock(return_value=True)
            mock_repo.upsert_review = AsyncMock(return_value=stored)

            result = await submit_review(mock_db, reviewer_id, data)

        kwargs = mock_repo.upsert_review.await_args.kwargs
        assert kwargs["reviewer_id"] == reviewer_id
        assert kwargs["scores"] == {
            "curiosity_vs_ego": 4,
            "participation_vs_spectatorship": 5,
            "emotional_intelligence": 3,
            "notes": "Thoughtful answer",
        }
        assert result.reviewer_name == "Rae"

    @pytest.mark.asyncio
    async def test_unknown_submission(self, mock_db):
        data = ReviewSubmitRequest(
            submission_id=uuid4(),
            curiosity_vs_ego=1,
            participation_vs_spectatorship=1,
            emotional_intelligence=1,
        )

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists = AsyncMock(return_value=False)

            with pytest.raises(SubmissionNotFoundError):
                await submit_review(mock_db, uuid4(), data)

    @pytest.mark.parametrize("score", [0, 6])
    def test_scores_out_of_range_rejected(self, score):
        with pytest.raises(ValueError):
            ReviewSubmitRequest(
                submission_id=uuid4(),
                curiosity_vs_ego=score,
                participation_vs_spectatorship=3,
                emotional_intelligence=3,
            )


class TestSubmissionDetail:
    @pytest.mark.asyncio
    async def test_detail_includes_reviews_and_scoring(self, mock_db, make_submission):
        submission = make_submission("Ada", scores=[(4, 4, 4), (2, 2, 2), (3, 3, 3)])

        with patch(REPO) as mock_repo:
            mock_repo.get_submission = AsyncMock(return_value=submission)

            result = await get_submission_detail(mock_db, submission.id)

        assert len(result.reviews) == 3
        assert result.scoring.average_score == 3.0
        assert result.scoring.confidence == ConfidenceLevel.HIGH
        assert result.applicant.three_words == "kind, sharp, curious"

    @pytest.mark.asyncio
    async def test_not_found(self, mock_db):
        with patch(REPO) as mock_repo:
            mock_repo.get_submission = AsyncMock(return_value=None)

            with pytest.raises(SubmissionNotFoundError) as exc_info:
                await get_submission_detail(mock_db, uuid4())

        assert exc_info.value.status_code == 404


class TestUpdateSubmissionStatus:
    @pytest.mark.asyncio
    async def test_accept_under_cap(self, mock_db, make_submission):
        submission = make_submission()

        with patch(REPO) as mock_repo:
            mock_repo.get_submission = AsyncMock(return_value=submission)
            mock_repo.count_with_status = AsyncMock(return_value=ACCEPTANCE_CAP - 1)
            mock_repo.update_submission_status = AsyncMock()

            await update_submission_status(
                mock_db, submission.id, SubmissionStatus.ACCEPTED, uuid4()
            )

        mock_repo.update_submission_status.assert_awaited_once_with(
            mock_db, submission, SubmissionStatus.ACCEPTED
        )

    @pytest.mark.asyncio
    async def test_accept_at_cap_refused(self, mock_db, make_submission):
        submission = make_submission()

        with patch(REPO) as mock_repo:
            mock_repo.get_submission = AsyncMock(return_value=submission)
            mock_repo.count_with_status = AsyncMock(return_value=ACCEPTANCE_CAP)
            mock_repo.update_submission_status = AsyncMock()

            with pytest.raises(AcceptanceCapReachedError) as exc_info:
                await update_submission_status(
                    mock_db, submission.id, SubmissionStatus.ACCEPTED, uuid4()
                )

        assert exc_info.value.status_code == 409
        mock_repo.update_submission_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_statuses_ignore_cap(self, mock_db, make_submission):
        submission = make_submission()

        with patch(REPO) as mock_repo:
            mock_repo.get_submission = AsyncMock(return_value=submission)
            mock_repo.count_with_status = AsyncMock(return_value=ACCEPTANCE_CAP)
            mock_repo.update_submission_status = AsyncMock()

            await update_submission_status(
                mock_db, submission.id, SubmissionStatus.WAITLIST, uuid4()
            )

        mock_repo.count_with_status.assert_not_called()
        mock_repo.update_submission_status.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reaccepting_accepted_ignores_cap(self, mock_db, make_submission):
        submission = make_submission(status=SubmissionStatus.ACCEPTED)

        with patch(REPO) as mock_repo:
            mock_repo.get_submission = AsyncMock(return_value=submission)
            mock_repo.count_with_status = AsyncMock(return_value=ACCEPTANCE_CAP)
            mock_repo.update_submission_status = AsyncMock()

            await update_submission_status(
                mock_db, submission.id, SubmissionStatus.ACCEPTED, uuid4()
            )

        mock_repo.count_with_status.assert_not_called()


class TestDashboardStats:
    @pytest.mark.asyncio
    async def test_stats(self, mock_db):
        with patch(REPO) as mock_repo:
            mock_repo.count_by_status = AsyncMock(
                return_value={SubmissionStatus.SUBMITTED: 7, SubmissionStatus.ACCEPTED: 3}
            )
            mock_repo.mean_review_average = AsyncMock(return_value=3.456)
            mock_repo.count_needs_review = AsyncMock(return_value=4)
            mock_repo.count_reviews = AsyncMock(return_value=12)

            stats = await get_dashboard_stats(mock_db)

        assert stats.total == 10
        assert stats.by_status["WAITLIST"] == 0
        assert stats.average_score == 3.46
        assert stats.spots_remaining == ACCEPTANCE_CAP - 3

    @pytest.mark.asyncio
    async def test_stats_without_reviews(self, mock_db):
        with patch(REPO) as mock_repo:
            mock_repo.count_by_status = AsyncMock(return_value={})
            mock_repo.mean_review_average = AsyncMock(return_value=None)
            mock_repo.count_needs_review = AsyncMock(return_value=0)
            mock_repo.count_reviews = AsyncMock(return_value=0)

            stats = await get_dashboard_stats(mock_db)

        assert stats.total == 0
        assert stats.average_score is None
        assert stats.spots_remaining == ACCEPTANCE_CAP
