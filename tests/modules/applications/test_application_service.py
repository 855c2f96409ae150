"""
Unit tests for the applications service layer.

These tests cover:
- Starting, resuming and replacing pending applications
- Honeypot and duplicate handling
- Pending application lookup and expiry
- Email verification and resend
- Finalize, including when the upload is released or kept
"""

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from intake.modules.applications.service import (
    HONEYPOT_TOKEN,
    DuplicateApplicantError,
    FinalizeFailedError,
    InvalidCodeError,
    NoPromptsAvailableError,
    NotVerifiedError,
    PendingApplicationExpiredError,
    PendingApplicationNotFoundError,
    UploadMissingError,
    VerificationDisabledError,
    finalize_submission,
    get_pending_application,
    get_pending_view,
    resend_code,
    start_application,
    verify_code,
)
from intake.modules.uploads.backends import UploadStatus
from intake.modules.uploads.constraints import InvalidUploadError

REPO = "intake.modules.applications.service.repository"
NOTIFY = "intake.modules.applications.service._notify_submission_received"
DELIVER = "intake.modules.applications.service.send_verification_code"


def _integrity_error():
    return IntegrityError("INSERT", {}, Exception("duplicate key"))


class TestStartApplication:
    @pytest.mark.asyncio
    async def test_creates_pending_and_sends_code(
        self, mock_db, sample_start_request, sample_prompt, make_pending, codes, clock
    ):
        created = make_pending(email_verified=False)

        with (
            patch(REPO) as mock_repo,
            patch(DELIVER, new=AsyncMock(return_value=True)) as mock_send,
        ):
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.get_pending_by_email = AsyncMock(return_value=None)
            mock_repo.get_active_prompts = AsyncMock(return_value=[sample_prompt])
            mock_repo.create_pending = AsyncMock(return_value=created)

            result = await start_application(mock_db, sample_start_request, codes, clock)

        assert result.token == created.token
        assert result.requires_verification is True

        kwargs = mock_repo.create_pending.await_args.kwargs
        assert kwargs["email"] == "ada@example.com"
        assert kwargs["prompt_id"] == sample_prompt.id
        assert kwargs["prior_events"] is None
        assert kwargs["links"] == ["https://example.com/ada"]
        assert kwargs["email_verified"] is False
        assert kwargs["expires_at"] == clock() + timedelta(hours=24)
        assert len(kwargs["token"]) >= 32

        mock_send.assert_awaited_once()
        assert mock_send.await_args.args[0] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_verification_disabled_creates_verified_pending(
        self, mock_db, sample_start_request, sample_prompt, make_pending, codes_disabled, clock
    ):
        with patch(REPO) as mock_repo, patch(DELIVER, new=AsyncMock()) as mock_send:
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.get_pending_by_email = AsyncMock(return_value=None)
            mock_repo.get_active_prompts = AsyncMock(return_value=[sample_prompt])
            mock_repo.create_pending = AsyncMock(return_value=make_pending())

            result = await start_application(
                mock_db, sample_start_request, codes_disabled, clock
            )

        assert result.requires_verification is False
        assert mock_repo.create_pending.await_args.kwargs["email_verified"] is True
        mock_send.assert_not_called()

    @pytest.mark.asyncio
    async def test_resumes_live_pending_with_same_token(
        self, mock_db, sample_start_request, make_pending, codes, clock
    ):
        existing = make_pending(email_verified=False)

        with patch(REPO) as mock_repo:
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.get_pending_by_email = AsyncMock(return_value=existing)
            mock_repo.create_pending = AsyncMock()

            first = await start_application(mock_db, sample_start_request, codes, clock)
            second = await start_application(mock_db, sample_start_request, codes, clock)

        assert first.token == second.token == existing.token
        assert first.requires_verification is True
        mock_repo.create_pending.assert_not_called()

    @pytest.mark.asyncio
    async def test_replaces_expired_pending(
        self, mock_db, sample_start_request, sample_prompt, make_pending, codes_disabled, clock
    ):
        expired = make_pending(expires_in=timedelta(seconds=-1))
        fresh = make_pending()

        with patch(REPO) as mock_repo:
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.get_pending_by_email = AsyncMock(return_value=expired)
            mock_repo.delete_pending = AsyncMock()
            mock_repo.get_active_prompts = AsyncMock(return_value=[sample_prompt])
            mock_repo.create_pending = AsyncMock(return_value=fresh)

            result = await start_application(
                mock_db, sample_start_request, codes_disabled, clock
            )

        assert result.token == fresh.token
        mock_repo.delete_pending.assert_awaited_once_with(mock_db, expired.id)

    @pytest.mark.asyncio
    async def test_existing_applicant_rejected(self, mock_db, sample_start_request, codes, clock):
        with patch(REPO) as mock_repo:
            mock_repo.get_applicant_by_email = AsyncMock(return_value=SimpleNamespace(id=uuid4()))

            with pytest.raises(DuplicateApplicantError) as exc_info:
                await start_application(mock_db, sample_start_request, codes, clock)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_no_active_prompts(self, mock_db, sample_start_request, codes, clock):
        with patch(REPO) as mock_repo:
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.get_pending_by_email = AsyncMock(return_value=None)
            mock_repo.get_active_prompts = AsyncMock(return_value=[])

            with pytest.raises(NoPromptsAvailableError) as exc_info:
                await start_application(mock_db, sample_start_request, codes, clock)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_honeypot_returns_fake_token_and_stores_nothing(
        self, mock_db, sample_start_request, codes, clock
    ):
        data = sample_start_request.model_copy(update={"website": "http://spam.example"})

        with patch(REPO) as mock_repo:
            result = await start_application(mock_db, data, codes, clock)

        assert result.token == HONEYPOT_TOKEN
        assert result.requires_verification is False
        mock_repo.create_pending.assert_not_called()
        mock_repo.get_applicant_by_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_start_resolves_to_winner(
        self, mock_db, sample_start_request, sample_prompt, make_pending, codes_disabled, clock
    ):
        winner = make_pending()

        with patch(REPO) as mock_repo:
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.get_pending_by_email = AsyncMock(side_effect=[None, winner])
            mock_repo.get_active_prompts = AsyncMock(return_value=[sample_prompt])
            mock_repo.create_pending = AsyncMock(side_effect=_integrity_error())

            result = await start_application(
                mock_db, sample_start_request, codes_disabled, clock
            )

        assert result.token == winner.token


class TestGetPendingApplication:
    @pytest.mark.asyncio
    async def test_not_found(self, mock_db, clock):
        with patch(REPO) as mock_repo:
            mock_repo.get_pending_by_token = AsyncMock(return_value=None)

            with pytest.raises(PendingApplicationNotFoundError):
                await get_pending_application(mock_db, "missing", clock)

    @pytest.mark.asyncio
    async def test_expired_is_deleted_then_not_found(self, mock_db, make_pending, clock):
        expired = make_pending(expires_in=timedelta(minutes=-5))

        with patch(REPO) as mock_repo:
            mock_repo.get_pending_by_token = AsyncMock(side_effect=[expired, None])
            mock_repo.delete_pending = AsyncMock()

            with pytest.raises(PendingApplicationExpiredError) as exc_info:
                await get_pending_application(mock_db, expired.token, clock)
            assert exc_info.value.status_code == 410

            with pytest.raises(PendingApplicationNotFoundError):
                await get_pending_application(mock_db, expired.token, clock)

        mock_repo.delete_pending.assert_awaited_once_with(mock_db, expired.id)

    @pytest.mark.asyncio
    async def test_live_at_exact_expiry(self, mock_db, make_pending, clock):
        pending = make_pending(expires_in=timedelta(0))

        with patch(REPO) as mock_repo:
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)

            assert await get_pending_application(mock_db, pending.token, clock) is pending


class TestGetPendingView:
    @pytest.mark.asyncio
    async def test_unverified_blocked(self, mock_db, make_pending, codes, clock):
        pending = make_pending(email_verified=False)

        with patch(REPO) as mock_repo:
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)

            with pytest.raises(NotVerifiedError) as exc_info:
                await get_pending_view(mock_db, pending.token, codes, clock)

        assert exc_info.value.extra_detail() == {
            "requires_verification": True,
            "email": "ada@example.com",
        }

    @pytest.mark.asyncio
    async def test_returns_assigned_and_sampled_prompts(
        self, mock_db, make_pending, sample_prompt, codes, clock
    ):
        pending = make_pending()
        pool = [SimpleNamespace(id=uuid4(), text=f"Prompt {i}") for i in range(5)]

        with patch(REPO) as mock_repo:
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.get_active_prompts = AsyncMock(return_value=pool)

            view = await get_pending_view(mock_db, pending.token, codes, clock)

        assert view.prompt.id == sample_prompt.id
        assert len(view.prompts) == 2
        assert {p.id for p in view.prompts} <= {p.id for p in pool}


class TestVerification:
    @pytest.mark.asyncio
    async def test_disabled(self, mock_db, codes_disabled, clock):
        with pytest.raises(VerificationDisabledError):
            await verify_code(mock_db, "tok", "123456", codes_disabled, clock)
        with pytest.raises(VerificationDisabledError):
            await resend_code(mock_db, "tok", codes_disabled, clock)

    @pytest.mark.asyncio
    async def test_valid_code_marks_verified(self, mock_db, make_pending, codes, clock):
        pending = make_pending(email_verified=False)
        code = await codes.issue(pending.email)

        with patch(REPO) as mock_repo:
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.mark_pending_verified = AsyncMock()

            result = await verify_code(mock_db, pending.token, code, codes, clock)

        assert result.success is True
        assert result.already_verified is False
        mock_repo.mark_pending_verified.assert_awaited_once_with(mock_db, pending)

    @pytest.mark.asyncio
    async def test_wrong_code(self, mock_db, make_pending, codes, clock):
        pending = make_pending(email_verified=False)
        code = await codes.issue(pending.email)
        wrong = "100000" if code != "100000" else "100001"

        with patch(REPO) as mock_repo:
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.mark_pending_verified = AsyncMock()

            with pytest.raises(InvalidCodeError):
                await verify_code(mock_db, pending.token, wrong, codes, clock)

        mock_repo.mark_pending_verified.assert_not_called()

    @pytest.mark.asyncio
    async def test_already_verified(self, mock_db, make_pending, codes, clock):
        pending = make_pending(email_verified=True)

        with patch(REPO) as mock_repo:
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)

            result = await verify_code(mock_db, pending.token, "123456", codes, clock)

        assert result.already_verified is True

    @pytest.mark.asyncio
    async def test_resend_replaces_code(self, mock_db, make_pending, codes, clock):
        pending = make_pending(email_verified=False)
        old_code = await codes.issue(pending.email)

        with (
            patch(REPO) as mock_repo,
            patch(DELIVER, new=AsyncMock(return_value=True)) as mock_send,
        ):
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)

            await resend_code(mock_db, pending.token, codes, clock)

        new_code = mock_send.await_args.args[1]
        if new_code != old_code:
            assert await codes.check(pending.email, old_code) is False
        assert await codes.check(pending.email, new_code) is True


class TestFinalizeSubmission:
    @pytest.mark.asyncio
    async def test_success(
        self, mock_db, make_pending, upload_backend, finalize_request, codes, clock
    ):
        pending = make_pending()
        submission_id = uuid4()

        with patch(REPO) as mock_repo, patch(NOTIFY) as mock_notify:
            mock_repo.submission_exists_for_video_key = AsyncMock(return_value=False)
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.create_applicant_with_submission = AsyncMock(return_value=submission_id)

            result = await finalize_submission(
                mock_db, finalize_request(pending.token), upload_backend, codes, clock
            )

        assert result.success is True
        assert result.submission_id == submission_id
        kwargs = mock_repo.create_applicant_with_submission.await_args.kwargs
        assert kwargs["video_duration_sec"] == 89
        upload_backend.release.assert_not_called()
        mock_notify.assert_called_once_with("ada@example.com", "Ada Lovelace")

    @pytest.mark.asyncio
    async def test_unverified_keeps_upload(
        self, mock_db, make_pending, upload_backend, finalize_request, codes, clock
    ):
        pending = make_pending(email_verified=False)

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(return_value=False)
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)

            with pytest.raises(NotVerifiedError) as exc_info:
                await finalize_submission(
                    mock_db, finalize_request(pending.token), upload_backend, codes, clock
                )

        assert exc_info.value.status_code == 403
        upload_backend.release.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_releases_upload(
        self, mock_db, make_pending, upload_backend, finalize_request, codes, clock
    ):
        pending = make_pending(expires_in=timedelta(minutes=-1))

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(return_value=False)
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.delete_pending = AsyncMock()

            with pytest.raises(PendingApplicationExpiredError):
                await finalize_submission(
                    mock_db, finalize_request(pending.token), upload_backend, codes, clock
                )

        upload_backend.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_token_keeps_upload(
        self, mock_db, upload_backend, finalize_request, codes, clock
    ):
        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(return_value=False)
            mock_repo.get_pending_by_token = AsyncMock(return_value=None)

            with pytest.raises(PendingApplicationNotFoundError):
                await finalize_submission(
                    mock_db, finalize_request("nope"), upload_backend, codes, clock
                )

        upload_backend.release.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_upload(
        self, mock_db, make_pending, upload_backend, finalize_request, codes, clock
    ):
        pending = make_pending()
        upload_backend.confirm = AsyncMock(return_value=UploadStatus(exists=False))

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(return_value=False)
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)

            with pytest.raises(UploadMissingError):
                await finalize_submission(
                    mock_db, finalize_request(pending.token), upload_backend, codes, clock
                )

        upload_backend.release.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_applicant_deletes_pending_and_releases(
        self, mock_db, make_pending, upload_backend, finalize_request, codes, clock
    ):
        pending = make_pending()

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(return_value=False)
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.get_applicant_by_email = AsyncMock(return_value=SimpleNamespace(id=uuid4()))
            mock_repo.delete_pending = AsyncMock()
            mock_repo.create_applicant_with_submission = AsyncMock()

            with pytest.raises(DuplicateApplicantError):
                await finalize_submission(
                    mock_db, finalize_request(pending.token), upload_backend, codes, clock
                )

        mock_repo.delete_pending.assert_awaited_once_with(mock_db, pending.id)
        mock_repo.create_applicant_with_submission.assert_not_called()
        upload_backend.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_finalize_with_other_upload_releases(
        self, mock_db, make_pending, upload_backend, finalize_request, codes, clock
    ):
        pending = make_pending()

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(return_value=False)
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.create_applicant_with_submission = AsyncMock(
                side_effect=_integrity_error()
            )
            mock_repo.delete_pending = AsyncMock()

            with pytest.raises(DuplicateApplicantError):
                await finalize_submission(
                    mock_db, finalize_request(pending.token), upload_backend, codes, clock
                )

        mock_repo.delete_pending.assert_awaited_once_with(mock_db, pending.id)
        upload_backend.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_finalize_with_same_upload_keeps_it(
        self, mock_db, make_pending, upload_backend, finalize_request, codes, clock
    ):
        pending = make_pending()

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(side_effect=[False, True])
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.create_applicant_with_submission = AsyncMock(
                side_effect=_integrity_error()
            )
            mock_repo.delete_pending = AsyncMock()

            with pytest.raises(DuplicateApplicantError):
                await finalize_submission(
                    mock_db, finalize_request(pending.token), upload_backend, codes, clock
                )

        mock_repo.delete_pending.assert_awaited_once_with(mock_db, pending.id)
        upload_backend.release.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_finalize_keeps_upload_when_owner_unknown(
        self, mock_db, make_pending, upload_backend, finalize_request, codes, clock
    ):
        pending = make_pending()

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(
                side_effect=[False, ConnectionError("db gone")]
            )
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.create_applicant_with_submission = AsyncMock(
                side_effect=_integrity_error()
            )
            mock_repo.delete_pending = AsyncMock(side_effect=ConnectionError("db gone"))

            with pytest.raises(DuplicateApplicantError):
                await finalize_submission(
                    mock_db, finalize_request(pending.token), upload_backend, codes, clock
                )

        upload_backend.release.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_error_releases_and_wraps(
        self, mock_db, make_pending, upload_backend, finalize_request, codes, clock
    ):
        pending = make_pending()

        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(return_value=False)
            mock_repo.get_pending_by_token = AsyncMock(return_value=pending)
            mock_repo.get_applicant_by_email = AsyncMock(return_value=None)
            mock_repo.create_applicant_with_submission = AsyncMock(
                side_effect=RuntimeError("connection reset")
            )

            with pytest.raises(FinalizeFailedError) as exc_info:
                await finalize_submission(
                    mock_db, finalize_request(pending.token), upload_backend, codes, clock
                )

        assert exc_info.value.status_code == 500
        upload_backend.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mismatched_url_rejected_without_release(
        self, mock_db, upload_backend, finalize_request, codes, clock
    ):
        request = finalize_request(url="https://evil.example/video.mp4")

        with patch(REPO):
            with pytest.raises(InvalidUploadError):
                await finalize_submission(mock_db, request, upload_backend, codes, clock)

        upload_backend.release.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_key_rejected_without_release(
        self, mock_db, upload_backend, finalize_request, codes, clock
    ):
        request = finalize_request(key="videos/../../secret.mp4")

        with pytest.raises(InvalidUploadError):
            await finalize_submission(mock_db, request, upload_backend, codes, clock)

        upload_backend.release.assert_not_called()

    @pytest.mark.asyncio
    async def test_reused_upload_rejected_without_release(
        self, mock_db, upload_backend, finalize_request, codes, clock
    ):
        with patch(REPO) as mock_repo:
            mock_repo.submission_exists_for_video_key = AsyncMock(return_value=True)

            with pytest.raises(InvalidUploadError):
                await finalize_submission(
                    mock_db, finalize_request(), upload_backend, codes, clock
                )

        upload_backend.release.assert_not_called()
