"""Tests for the reputation ledger (abi.services.reputation)."""

import uuid

from sqlalchemy import func, select

from abi.models.reputation import ReputationLogEntry
from abi.services import reputation


class TestAwardAndReverse:
    async def test_award_appends_entry_and_updates_profile(self, db, alice):
        entry = await reputation.award(db, alice.id, "answer_upvoted", "answer", alice.id)
        await db.commit()

        assert entry.change == 10
        assert entry.reason == "answer_upvoted"
        assert await reputation.get_reputation(db, alice.id) == 10

    async def test_reverse_uses_reversed_reason_and_negated_delta(self, db, alice):
        await reputation.award(db, alice.id, "question_upvoted", "question", alice.id)
        entry = await reputation.reverse(db, alice.id, "question_upvoted", "question", alice.id)
        await db.commit()

        assert entry.reason == "question_upvoted_reversed"
        assert entry.change == -5
        assert await reputation.get_reputation(db, alice.id) == 0

    async def test_profile_is_clamped_at_zero_but_ledger_keeps_nominal_change(self, db, alice):
        """A user at 0 losing 2 stays at 0; the ledger still records -2."""
        await reputation.award(db, alice.id, "question_downvoted", "question", alice.id)
        await db.commit()

        assert await reputation.get_reputation(db, alice.id) == 0
        total = await db.scalar(
            select(func.sum(ReputationLogEntry.change)).where(
                ReputationLogEntry.user_id == alice.id
            )
        )
        assert total == -2

    async def test_clamped_total_recovers_from_zero(self, db, alice):
        await reputation.award(db, alice.id, "downvote_cast")
        await reputation.award(db, alice.id, "accepted_answer")
        await db.commit()

        # max(0, 0 - 1) = 0, then 0 + 2
        assert await reputation.get_reputation(db, alice.id) == 2

    async def test_unknown_user_reads_as_zero(self, db):
        assert await reputation.get_reputation(db, uuid.uuid4()) == 0


class TestHistory:
    async def test_history_is_newest_first_with_total(self, db, alice):
        for reason in ("question_upvoted", "answer_upvoted", "answer_accepted"):
            await reputation.award(db, alice.id, reason)
        await db.commit()

        entries, total = await reputation.get_history(db, alice.id, limit=2)

        assert total == 3
        assert [e.reason for e in entries] == ["answer_accepted", "answer_upvoted"]

    async def test_history_offset(self, db, alice):
        for reason in ("question_upvoted", "answer_upvoted"):
            await reputation.award(db, alice.id, reason)
        await db.commit()

        entries, total = await reputation.get_history(db, alice.id, limit=10, offset=1)

        assert total == 2
        assert [e.reason for e in entries] == ["question_upvoted"]
