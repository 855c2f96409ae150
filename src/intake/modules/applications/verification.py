"""
Email Verification Codes

Issues and checks short-lived 6-digit codes bound to an email address.

- One live code per email: issuing replaces any previous code
- Codes expire after 15 minutes and are consumed on first successful check
- Codes are stored as SHA-256 digests and compared in constant time
- Storage is an injected ExpiringStore (Redis or in-memory)
"""

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta

from intake.core.kv_store import Clock, ExpiringStore, utc_now

logger = logging.getLogger(__name__)

CODE_TTL = timedelta(minutes=15)
CODE_MIN = 100000
CODE_MAX = 999999


def _hash_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


def _normalize(email: str) -> str:
    return email.strip().lower()


def generate_code() -> str:
    """Uniformly random 6-digit code from a CSPRNG."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


class VerificationCodeService:
    """
    Email verification code issuer.

    Args:
        store: Expiring store holding ``{"code_hash": ...}`` keyed by email
        enabled: Whether the deployment requires email verification at all
        clock: Injectable time source
        ttl: Code lifetime
    """

    def __init__(
        self,
        store: ExpiringStore,
        enabled: bool,
        clock: Clock = utc_now,
        ttl: timedelta = CODE_TTL,
    ):
        self._store = store
        self._clock = clock
        self.enabled = enabled
        self.ttl = ttl

    @property
    def store(self) -> ExpiringStore:
        return self._store

    @property
    def ttl_minutes(self) -> int:
        return int(self.ttl.total_seconds() // 60)

    async def issue(self, email: str) -> str:
        """Create a new code for ``email``, replacing any live one, and return it."""
        code = generate_code()
        await self._store.set(
            _normalize(email),
            {"code_hash": _hash_code(code)},
            expires_at=self._clock() + self.ttl,
        )
        logger.info("Issued verification code")
        return code

    async def check(self, email: str, code: str) -> bool:
        """
        Check ``code`` for ``email``.

        Returns False when no live code exists (absent or expired) or when
        the code does not match. A matching code is consumed.
        """
        key = _normalize(email)
        entry = await self._store.get(key)
        if entry is None:
            return False

        if not hmac.compare_digest(entry["code_hash"], _hash_code(code.strip())):
            return False

        await self._store.delete(key)
        return True

    async def sweep(self) -> int:
        return await self._store.sweep()
