import re
import uuid
from typing import Iterable, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from abi.errors import ValidationError
from abi.models.tag import Tag, question_tags

MAX_TAGS_PER_QUESTION = 5

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Canonical slug for a tag name: lowercase, hyphen-separated, max 50 chars.

    Every code path that creates a tag MUST derive its slug here.
    """
    return _SLUG_STRIP.sub("-", name.strip().lower()).strip("-")[:50]


def dedupe_tag_ids(tag_ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
    """Deduplicate preserving first-seen order."""
    return list(dict.fromkeys(tag_ids))


async def list_tags(db: AsyncSession) -> list[Tag]:
    result = await db.execute(
        select(Tag).order_by(Tag.question_count.desc(), Tag.name.asc())
    )
    return list(result.scalars().all())


async def get_tag_id_by_slug(db: AsyncSession, slug: str) -> Optional[uuid.UUID]:
    return await db.scalar(select(Tag.id).where(Tag.slug == slug))


async def validate_tag_ids(db: AsyncSession, tag_ids: list[uuid.UUID]) -> list[uuid.UUID]:
    """Check the tag count limit and that every id exists.

    Raises:
        ValidationError: more than MAX_TAGS_PER_QUESTION tags, or an unknown id.
    """
    tag_ids = dedupe_tag_ids(tag_ids)
    if len(tag_ids) > MAX_TAGS_PER_QUESTION:
        raise ValidationError(
            f"A question can have at most {MAX_TAGS_PER_QUESTION} tags"
        )
    if not tag_ids:
        return tag_ids
    result = await db.execute(select(Tag.id).where(Tag.id.in_(tag_ids)))
    found = set(result.scalars().all())
    missing = [str(tid) for tid in tag_ids if tid not in found]
    if missing:
        raise ValidationError(f"Unknown tag id(s): {', '.join(missing)}")
    return tag_ids


async def attach_tags(
    db: AsyncSession, question_id: uuid.UUID, tag_ids: list[uuid.UUID]
) -> None:
    """Insert join rows and bump each tag's question_count."""
    if not tag_ids:
        return
    await db.execute(
        insert(question_tags),
        [{"question_id": question_id, "tag_id": tid} for tid in tag_ids],
    )
    await db.execute(
        update(Tag)
        .where(Tag.id.in_(tag_ids))
        .values(question_count=Tag.question_count + 1)
        .execution_options(synchronize_session=False)
    )


async def detach_tags(
    db: AsyncSession, question_id: uuid.UUID, tag_ids: list[uuid.UUID]
) -> None:
    """Remove join rows and decrement each tag's question_count (floor 0)."""
    if not tag_ids:
        return
    await db.execute(
        delete(question_tags).where(
            question_tags.c.question_id == question_id,
            question_tags.c.tag_id.in_(tag_ids),
        )
    )
    await db.execute(
        update(Tag)
        .where(Tag.id.in_(tag_ids), Tag.question_count > 0)
        .values(question_count=Tag.question_count - 1)
        .execution_options(synchronize_session=False)
    )


async def get_question_tag_ids(db: AsyncSession, question_id: uuid.UUID) -> list[uuid.UUID]:
    result = await db.execute(
        select(question_tags.c.tag_id).where(question_tags.c.question_id == question_id)
    )
    return list(result.scalars().all())


async def get_tags_for_questions(
    db: AsyncSession, question_ids: list[uuid.UUID]
) -> dict[uuid.UUID, list[Tag]]:
    """Map question id -> its tags (name order), for a batch of questions."""
    if not question_ids:
        return {}
    result = await db.execute(
        select(question_tags.c.question_id, Tag)
        .join(Tag, Tag.id == question_tags.c.tag_id)
        .where(question_tags.c.question_id.in_(question_ids))
        .order_by(Tag.name)
    )
    tags_by_question: dict[uuid.UUID, list[Tag]] = {qid: [] for qid in question_ids}
    for question_id, tag in result.all():
        tags_by_question[question_id].append(tag)
    return tags_by_question


async def upsert_tag(
    db: AsyncSession, name: str, description: Optional[str] = None
) -> Tag:
    """Create a tag by name, or return the existing one with the same slug."""
    slug = slugify(name)
    existing = await db.scalar(select(Tag).where(Tag.slug == slug))
    if existing is not None:
        if description and existing.description != description:
            existing.description = description
        return existing
    tag = Tag(name=name.strip(), slug=slug, description=description)
    db.add(tag)
    await db.flush()
    return tag
