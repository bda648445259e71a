"""Similar-thread detection for the ask-question flow.

Scoring is weighted word overlap between the draft title and an existing
title. Query words longer than two characters count; words longer than five
characters weigh 2, the rest 1. A query word matches when it and a title
word contain one another, or at 0.8 of its weight when a synonym does.

This is a soft gate: results are shown as suggestions and never block a
submission.
"""

import asyncio
import re
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from abi.config import settings
from abi.models.question import Question, QuestionStatus
from abi.services.moderation import ModerationResult

log = structlog.get_logger()

SYNONYM_GROUPS: list[frozenset[str]] = [
    frozenset({"aluminum", "aluminium"}),
    frozenset({"pricing", "price", "cost", "rate"}),
    frozenset({"supplier", "vendor"}),
    frozenset({"procurement", "purchasing", "sourcing"}),
    frozenset({"contract", "agreement"}),
    frozenset({"risk", "exposure"}),
    frozenset({"steel", "metal"}),
    frozenset({"logistics", "shipping", "freight"}),
]

SYNONYMS: dict[str, frozenset[str]] = {
    word: group - {word} for group in SYNONYM_GROUPS for word in group
}

SYNONYM_WEIGHT = 0.8
MIN_WORD_LENGTH = 3
LONG_WORD_LENGTH = 6
MIN_SUBMIT_TITLE_LENGTH = 3
RESET_DISMISS_DELTA = 3
CANDIDATE_POOL = 200

_WORD = re.compile(r"[a-z0-9]+")


@dataclass
class SimilarThread:
    question_id: uuid.UUID
    title: str
    score: float
    answer_count: int
    is_answered: bool


def _words(text: str) -> list[str]:
    return [w for w in _WORD.findall(text.lower()) if len(w) >= MIN_WORD_LENGTH]


def word_weight(word: str) -> int:
    return 2 if len(word) >= LONG_WORD_LENGTH else 1


def _contains_either(a: str, b: str) -> bool:
    return a in b or b in a


def score_similarity(query: str, title: str) -> float:
    """Return the weighted overlap of ``query`` against ``title`` in [0, 1]."""
    query_words = _words(query)
    title_words = _words(title)
    total_weight = sum(word_weight(w) for w in query_words)
    if total_weight == 0 or not title_words:
        return 0.0

    match_score = 0.0
    for word in query_words:
        weight = word_weight(word)
        if any(_contains_either(word, t) for t in title_words):
            match_score += weight
        elif any(
            _contains_either(syn, t) for syn in SYNONYMS.get(word, ()) for t in title_words
        ):
            match_score += weight * SYNONYM_WEIGHT
    return match_score / total_weight


def _search_terms(query: str) -> list[str]:
    terms: list[str] = []
    for word in _words(query):
        terms.append(word)
        terms.extend(sorted(SYNONYMS.get(word, ())))
    return list(dict.fromkeys(terms))


async def find_similar_threads(
    db: AsyncSession,
    query: str,
    limit: Optional[int] = None,
    min_score: Optional[float] = None,
    exclude_ids: Iterable[uuid.UUID] = (),
) -> list[SimilarThread]:
    """Rank existing questions whose titles resemble ``query``.

    Returns an empty list when the trimmed query is shorter than
    settings.similar_min_query_length.
    """
    limit = limit or settings.similar_limit
    min_score = settings.similar_min_score if min_score is None else min_score

    query = (query or "").strip()
    if len(query) < settings.similar_min_query_length:
        return []
    terms = _search_terms(query)
    if not terms:
        return []

    stmt = (
        select(Question.id, Question.title, Question.answer_count, Question.status)
        .where(or_(*(Question.title.ilike(f"%{term}%") for term in terms)))
        .order_by(Question.created_at.desc())
        .limit(CANDIDATE_POOL)
    )
    excluded = set(exclude_ids)
    if excluded:
        stmt = stmt.where(Question.id.not_in(excluded))

    scored: list[SimilarThread] = []
    for row in (await db.execute(stmt)).all():
        score = score_similarity(query, row.title)
        if score >= min_score:
            scored.append(
                SimilarThread(
                    question_id=row.id,
                    title=row.title,
                    score=round(score, 4),
                    answer_count=row.answer_count,
                    is_answered=row.status == QuestionStatus.answered.value,
                )
            )
    scored.sort(key=lambda t: t.score, reverse=True)
    return scored[:limit]


def can_submit(title: str, moderation: ModerationResult) -> bool:
    """Similar threads never block; only a short title or a profanity flag does."""
    return len((title or "").strip()) >= MIN_SUBMIT_TITLE_LENGTH and not moderation.flagged


class SimilarThreadDetector:
    """Debounced similar-thread lookup for a draft title being typed.

    Each submit() supersedes the previous one: a pending search is cancelled
    before its debounce delay elapses, and a search already running is
    cancelled too. Dismissal of the suggestions sticks until the title length
    changes by more than three characters.
    """

    def __init__(
        self,
        search: Callable[[str], Awaitable[list[SimilarThread]]],
        debounce_ms: Optional[int] = None,
        min_query_length: Optional[int] = None,
    ) -> None:
        self._search = search
        self.debounce_ms = settings.similar_debounce_ms if debounce_ms is None else debounce_ms
        self.min_query_length = (
            settings.similar_min_query_length if min_query_length is None else min_query_length
        )
        self.results: list[SimilarThread] = []
        self.dismissed = False
        self._last_title = ""
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, title: str) -> Optional[asyncio.Task]:
        if abs(len(title) - len(self._last_title)) > RESET_DISMISS_DELTA:
            self.dismissed = False
        self._last_title = title

        self.cancel()
        if len(title.strip()) < self.min_query_length:
            self.results = []
            return None

        self._task = asyncio.create_task(self._run(title))
        return self._task

    async def _run(self, title: str) -> list[SimilarThread]:
        await asyncio.sleep(self.debounce_ms / 1000)
        try:
            results = await self._search(title)
        except Exception:
            log.warning("similar_threads_failed", exc_info=True)
            results = []
        self.results = results
        log.debug("similar_threads_found", count=len(results))
        return results

    def dismiss(self) -> None:
        self.dismissed = True

    @property
    def visible_results(self) -> list[SimilarThread]:
        return [] if self.dismissed else self.results

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> list[SimilarThread]:
        """Await the in-flight search, if any, and return the current results."""
        if self._task is not None:
            # asyncio.wait does not raise if the task was superseded
            await asyncio.wait({self._task})
        return self.results
