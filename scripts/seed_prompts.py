"""
Seed Prompts and Admin Reviewer

Inserts the video prompt pool and an initial admin reviewer. Safe to run
repeatedly: prompts are matched on text and the reviewer on email.

Usage:
    SEED_ADMIN_EMAIL=admin@example.com SEED_ADMIN_PASSWORD=... \\
        python scripts/seed_prompts.py
"""

import asyncio
import os
import sys

from sqlalchemy import select

from intake.core.database import async_session_maker, close_db
from intake.core.security import hash_password
from intake.modules.applications.models import Prompt
from intake.modules.reviews import repository as reviews_repository
from intake.modules.reviews.models import ReviewerRole

PROMPTS = [
    "Tell us about a time you changed your mind about something important.",
    "What's the most interesting rabbit hole you've gone down recently?",
    "Describe a project you're proud of that most people don't know about.",
    "What question do you wish more people would ask you?",
    "Tell us about someone who has significantly influenced your thinking.",
    "What's a contrarian belief you hold that others might disagree with?",
    "If you could have dinner with anyone, living or dead, who and why?",
]


async def seed_prompts() -> int:
    """Create any missing prompts. Returns the number created."""
    created = 0
    async with async_session_maker() as db:
        result = await db.execute(select(Prompt.text))
        existing = set(result.scalars().all())

        for text in PROMPTS:
            if text in existing:
                continue
            db.add(Prompt(text=text, active=True))
            created += 1

        await db.commit()

    print(f"Prompts: {created} created, {len(PROMPTS) - created} already present")
    return created


async def seed_admin(email: str, password: str, name: str) -> None:
    """Create the admin reviewer if it doesn't exist."""
    email = email.strip().lower()

    async with async_session_maker() as db:
        existing = await reviews_repository.get_reviewer_by_email(db, email)

        if existing:
            print(f"Admin reviewer already exists: {email}")
            print(f"  ID: {existing.id}")
            print(f"  Role: {existing.role.value}")
            return

        admin = await reviews_repository.create_reviewer(
            db,
            email=email,
            name=name,
            password_hash=hash_password(password),
            role=ReviewerRole.ADMIN,
        )

        print("Admin reviewer created successfully!")
        print(f"  Email: {email}")
        print(f"  ID: {admin.id}")


async def main() -> None:
    await seed_prompts()

    email = os.environ.get("SEED_ADMIN_EMAIL")
    password = os.environ.get("SEED_ADMIN_PASSWORD")
    if email and password:
        await seed_admin(email, password, os.environ.get("SEED_ADMIN_NAME", "Admin User"))
    else:
        print("SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD not set, skipping admin reviewer")

    await close_db()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(1)
