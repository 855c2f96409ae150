"""
Fixtures for applications tests.
"""

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from intake.core.kv_store import InMemoryExpiringStore
from intake.modules.applications.schemas import ApplicationStartRequest, FinalizeRequest
from intake.modules.applications.verification import VerificationCodeService
from intake.modules.uploads.backends import UploadStatus

VIDEO_KEY = "videos/" + "a" * 32 + "/1767225600000.mp4"
PUBLIC_BASE = "https://cdn.example.com"


@pytest.fixture
def codes(clock):
    """Verification enabled."""
    return VerificationCodeService(InMemoryExpiringStore(clock), enabled=True, clock=clock)


@pytest.fixture
def codes_disabled(clock):
    return VerificationCodeService(InMemoryExpiringStore(clock), enabled=False, clock=clock)


@pytest.fixture
def sample_prompt():
    return SimpleNamespace(id=uuid4(), text="What question do you wish more people would ask you?")


@pytest.fixture
def sample_start_request():
    return ApplicationStartRequest(
        name="Ada Lovelace",
        email="Ada@Example.com",
        location="London",
        timezone="Europe/London",
        role_company="Analyst, Engines Ltd",
        heard_about="A friend",
        prior_events="",
        three_words="curious, precise, playful",
        bio="I write notes on engines that do not exist yet.",
        links=["https://example.com/ada"],
    )


@pytest.fixture
def make_pending(clock, sample_prompt):
    """Factory for pending application doubles."""

    def _make(email_verified=True, expires_in=timedelta(hours=1), **overrides):
        values = {
            "id": uuid4(),
            "token": "tok_" + uuid4().hex,
            "email": "ada@example.com",
            "name": "Ada Lovelace",
            "email_verified": email_verified,
            "expires_at": clock() + expires_in,
            "prompt": sample_prompt,
            "prompt_id": sample_prompt.id,
        }
        values.update(overrides)
        return SimpleNamespace(**values)

    return _make


@pytest.fixture
def upload_backend():
    backend = MagicMock()
    backend.public_url_for = MagicMock(side_effect=lambda key: f"{PUBLIC_BASE}/{key}")
    backend.confirm = AsyncMock(return_value=UploadStatus(exists=True, size=1024))
    backend.release = AsyncMock()
    return backend


@pytest.fixture
def finalize_request():
    def _make(token="tok", key=VIDEO_KEY, url=None):
        return FinalizeRequest(
            token=token,
            video_key=key,
            video_url=url or f"{PUBLIC_BASE}/{key}",
            video_duration_sec=88.6,
        )

    return _make
