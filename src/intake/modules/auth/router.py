"""Reviewer authentication router."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from intake.core.database import get_db
from intake.core.security import create_access_token, verify_password
from intake.modules.auth.schemas import LoginRequest, LoginResponse, ReviewerResponse
from intake.modules.reviews import repository as reviews_repository

logger = logging.getLogger(__name__)

router = APIRouter()

_INVALID_CREDENTIALS = {
    "error": "INVALID_CREDENTIALS",
    "message": "Invalid email or password.",
}


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Authenticate a reviewer and return an access token.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account inactive
    """
    reviewer = await reviews_repository.get_reviewer_by_email(db, credentials.email)

    if not reviewer or not verify_password(credentials.password, reviewer.password_hash):
        logger.warning("Failed reviewer login attempt")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_INVALID_CREDENTIALS)

    if not reviewer.is_active:
        logger.warning(f"Login attempt for inactive reviewer {reviewer.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ACCOUNT_INACTIVE",
                "message": "Your account has been deactivated.",
            },
        )

    access_token = create_access_token(
        subject=str(reviewer.id),
        additional_claims={
            "email": reviewer.email,
            "role": reviewer.role.value,
            "name": reviewer.name,
        },
    )

    logger.info(f"Reviewer logged in: {reviewer.id} (role: {reviewer.role.value})")

    return LoginResponse(
        access_token=access_token,
        reviewer=ReviewerResponse(
            id=reviewer.id,
            email=reviewer.email,
            name=reviewer.name,
            role=reviewer.role.value,
        ),
    )
