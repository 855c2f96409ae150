"""
Applications Background Jobs

Periodic sweeps of state that has already expired:
1. Rate-limit windows (every 60 seconds)
2. Verification codes (every 60 seconds)
3. Pending applications past their 24-hour expiry (hourly)

Reads already treat expired entries as absent, so these jobs only bound
memory and table growth. Each job returns a small result dict for the
manual trigger endpoint.
"""

import logging
from functools import partial
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from intake.core.database import async_session_maker
from intake.core.kv_store import Clock, utc_now
from intake.core.rate_limit import RateLimiter
from intake.core.scheduler import register_job
from intake.modules.applications import repository
from intake.modules.applications.verification import VerificationCodeService

logger = logging.getLogger(__name__)

# Job IDs for registration and manual triggering
JOB_ID_SWEEP_RATE_LIMITS = "applications_sweep_rate_limits"
JOB_ID_SWEEP_VERIFICATION_CODES = "applications_sweep_verification_codes"
JOB_ID_PURGE_EXPIRED_PENDING = "applications_purge_expired_pending"

SWEEP_INTERVAL_SECONDS = 60
PURGE_INTERVAL_HOURS = 1


async def sweep_rate_limits(limiter: RateLimiter) -> dict[str, Any]:
    evicted = await limiter.sweep()
    if evicted:
        logger.debug(f"Evicted {evicted} expired rate-limit window(s)")
    return {"evicted": evicted}


async def sweep_verification_codes(codes: VerificationCodeService) -> dict[str, Any]:
    evicted = await codes.sweep()
    if evicted:
        logger.debug(f"Evicted {evicted} expired verification code(s)")
    return {"evicted": evicted}


async def purge_expired_pending_applications(clock: Clock = utc_now) -> dict[str, Any]:
    """Delete pending applications whose expiry has passed."""
    async with async_session_maker() as db:
        deleted = await repository.delete_expired_pending(db, clock())

    if deleted:
        logger.info(f"Purged {deleted} expired pending application(s)")
    return {"deleted": deleted}


def register_application_jobs(limiter: RateLimiter, codes: VerificationCodeService) -> None:
    """Register the sweeps with the scheduler. Call before start_scheduler()."""
    register_job(
        job_id=JOB_ID_SWEEP_RATE_LIMITS,
        func=partial(sweep_rate_limits, limiter),
        trigger=IntervalTrigger(seconds=SWEEP_INTERVAL_SECONDS),
    )
    register_job(
        job_id=JOB_ID_SWEEP_VERIFICATION_CODES,
        func=partial(sweep_verification_codes, codes),
        trigger=IntervalTrigger(seconds=SWEEP_INTERVAL_SECONDS),
    )
    register_job(
        job_id=JOB_ID_PURGE_EXPIRED_PENDING,
        func=purge_expired_pending_applications,
        trigger=IntervalTrigger(hours=PURGE_INTERVAL_HOURS),
    )
