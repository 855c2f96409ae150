"""
Authentication and Authorization Module

FastAPI dependencies for the reviewer-facing endpoints. Reviewers log in via
``POST /auth/login`` and present the access token as a Bearer credential.

Roles:
- reviewer: may list submissions and submit reviews
- admin: may additionally change submission status
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from intake.core.security import decode_token

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_REVIEWER = "reviewer"

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for reviewer authentication",
)


@dataclass
class ReviewerPrincipal:
    """
    An authenticated reviewer, populated from JWT claims.

    Attributes:
        id: Reviewer's unique identifier
        email: Reviewer's email address
        role: "admin" or "reviewer"
        name: Display name (optional)
    """

    id: UUID
    email: str
    role: str
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __str__(self) -> str:
        return f"ReviewerPrincipal(id={self.id}, email={self.email}, role={self.role})"


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def principal_from_token(token: str) -> ReviewerPrincipal:
    """
    Validate an access token and build the principal from its claims.

    Raises:
        HTTPException 401: If the token is invalid, expired, of the wrong
            type, or missing required claims
    """
    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        reviewer_id = UUID(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e

    role = payload.get("role", "")
    if role not in (ROLE_ADMIN, ROLE_REVIEWER):
        logger.warning(f"Token for {reviewer_id} carries unknown role '{role}'")
        raise _unauthorized("INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims.")

    return ReviewerPrincipal(
        id=reviewer_id,
        email=payload.get("email", ""),
        role=role,
        name=payload.get("name"),
    )


async def get_current_reviewer(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> ReviewerPrincipal:
    """
    Dependency returning the authenticated reviewer (any role).

    Usage:
        @router.get("/submissions")
        async def list_submissions(
            reviewer: ReviewerPrincipal = Depends(get_current_reviewer),
        ):
            ...
    """
    reviewer = principal_from_token(credentials.credentials)
    logger.debug(f"Authenticated reviewer: {reviewer.id} ({reviewer.role})")
    return reviewer


async def require_admin(
    reviewer: ReviewerPrincipal = Depends(get_current_reviewer),
) -> ReviewerPrincipal:
    """
    Dependency that additionally requires the admin role.

    Raises:
        HTTPException 403: If the reviewer is not an admin
    """
    if not reviewer.is_admin:
        logger.warning(
            f"Access denied: reviewer {reviewer.id} has role '{reviewer.role}', 'admin' required"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ADMIN_ACCESS_REQUIRED",
                "message": "Admin access is required for this action.",
            },
        )
    return reviewer


__all__ = [
    "ROLE_ADMIN",
    "ROLE_REVIEWER",
    "ReviewerPrincipal",
    "get_current_reviewer",
    "principal_from_token",
    "require_admin",
]
