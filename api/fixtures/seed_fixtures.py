"""Seed the community database with the badge catalogue, tags and sample threads.

Loads sample questions from sample_questions.json and inserts them through
the question and answer services, so the guardrails and counter caches are
exercised exactly as they are for real posts.

Usage:
    cd api
    DATABASE_URL="postgresql+asyncpg://..." python -m fixtures.seed_fixtures

The badge catalogue and tags are upserted on every run. Sample questions are
only inserted once: if the seed user already exists they are skipped.
"""
import asyncio
import json
import sys
from pathlib import Path

import structlog
from sqlalchemy import select

from abi.database import async_session_factory
from abi.logging_config import configure_logging
from abi.models.user import Profile, Role, User
from abi.services.answers import create_answer
from abi.services.badges import seed_badges
from abi.services.questions import create_question
from abi.services.tags import upsert_tag

log = structlog.get_logger()

FIXTURES_DIR = Path(__file__).parent
SAMPLE_QUESTIONS_FILE = FIXTURES_DIR / "sample_questions.json"

SEED_USER_EMAIL = "seed@abi.community"

SEED_TAGS = {
    "Supplier Risk": "Assessing and monitoring supplier exposure",
    "Pricing": "Price benchmarks, indices and cost drivers",
    "Contracts": "Contract terms, clauses and negotiation",
    "Logistics": "Freight, shipping and lead times",
    "Category Strategy": "Sourcing strategy for a spend category",
    "Metals": "Steel, aluminium and other metals markets",
}


async def _get_or_create_seed_user(session) -> tuple[User, bool]:
    result = await session.execute(select(User).where(User.email == SEED_USER_EMAIL))
    user = result.scalar_one_or_none()
    if user is not None:
        return user, False

    user = User(email=SEED_USER_EMAIL, role=Role.admin)
    session.add(user)
    await session.flush()
    session.add(
        Profile(
            user_id=user.id,
            display_name="Abi Community",
            job_title="Community team",
        )
    )
    await session.flush()
    return user, True


async def seed() -> None:
    """Upsert badges and tags, then insert the sample threads once."""
    async with async_session_factory() as session:
        created_badges = await seed_badges(session)

        tags = {}
        for name, description in SEED_TAGS.items():
            tag = await upsert_tag(session, name, description)
            tags[tag.slug] = tag

        seed_user, is_new = await _get_or_create_seed_user(session)
        if not is_new:
            await session.commit()
            log.info("seed_skipped_questions", reason="seed user already exists")
            return

        if not SAMPLE_QUESTIONS_FILE.exists():
            print(f"Error: sample_questions.json not found at {SAMPLE_QUESTIONS_FILE}", file=sys.stderr)
            sys.exit(1)

        with open(SAMPLE_QUESTIONS_FILE, "r") as f:
            fixtures = json.load(f)

        question_count = 0
        answer_count = 0
        for fixture in fixtures:
            tag_ids = [tags[slug].id for slug in fixture.get("tags", []) if slug in tags]
            question = await create_question(
                session,
                seed_user.id,
                fixture["title"],
                fixture["body"],
                tag_ids=tag_ids,
            )
            question_count += 1
            for body in fixture.get("answers", []):
                await create_answer(session, seed_user.id, question.id, body)
                answer_count += 1

        await session.commit()

        print("Seeding complete!")
        print(f"  Badges created: {created_badges}")
        print(f"  Tags: {sorted(tags)}")
        print(f"  Questions: {question_count}, answers: {answer_count}")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(seed())
