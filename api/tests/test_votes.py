"""Tests for the vote engine (abi.services.votes).

Covers the full transition table for questions and answers, the ledger
entries each transition posts, and the rejection paths.
"""

import uuid

import pytest
from sqlalchemy import func, select

from abi.errors import Conflict, SelfVoteForbidden, TargetNotFound, ValidationError
from abi.models.answer import Answer
from abi.models.question import Question
from abi.models.reputation import ReputationLogEntry
from abi.models.vote import Vote
from abi.services import reputation
from abi.services import votes as votes_service
from abi.services.answers import create_answer
from abi.services.questions import create_question
from abi.services.votes import cast_vote, owner_reason, resolve_transition

TITLE = "How do you benchmark aluminium pricing?"
BODY = "We buy extrusions from four suppliers and want a fair market reference."


async def _question(db, owner) -> Question:
    question = await create_question(db, owner.id, TITLE, BODY)
    await db.commit()
    return question


async def _answer(db, owner, question) -> Answer:
    answer = await create_answer(db, owner.id, question.id, BODY)
    await db.commit()
    return answer


async def _score(db, model, target_id) -> int:
    return await db.scalar(select(model.score).where(model.id == target_id))


async def _ledger_sum(db, user_id) -> int:
    total = await db.scalar(
        select(func.sum(ReputationLogEntry.change)).where(ReputationLogEntry.user_id == user_id)
    )
    return total or 0


class TestResolveTransition:
    @pytest.mark.parametrize(
        "old,requested,expected",
        [
            (0, 1, 1),
            (0, -1, -1),
            (0, 0, 0),
            (1, 1, 0),
            (1, 0, 0),
            (1, -1, -1),
            (-1, -1, 0),
            (-1, 1, 1),
        ],
    )
    def test_table(self, old, requested, expected):
        assert resolve_transition(old, requested) == expected

    def test_out_of_range_value_rejected(self):
        with pytest.raises(ValidationError):
            resolve_transition(0, 2)

    def test_owner_reason(self):
        assert owner_reason("question", 1) == "question_upvoted"
        assert owner_reason("answer", -1) == "answer_downvoted"


class TestQuestionVotes:
    async def test_upvote_scores_and_credits_owner(self, db, alice, bob):
        question = await _question(db, alice)

        outcome = await cast_vote(db, bob.id, "question", question.id, 1)
        await db.commit()

        assert outcome.new_score == 1
        assert outcome.user_vote == 1
        assert outcome.transition == "cast"
        assert await reputation.get_reputation(db, alice.id) == 5

    async def test_repeating_upvote_toggles_it_off(self, db, alice, bob):
        question = await _question(db, alice)
        await cast_vote(db, bob.id, "question", question.id, 1)

        outcome = await cast_vote(db, bob.id, "question", question.id, 1)
        await db.commit()

        assert outcome.new_score == 0
        assert outcome.user_vote is None
        assert outcome.transition == "undo"
        assert await reputation.get_reputation(db, alice.id) == 0
        assert await db.scalar(select(func.count(Vote.id))) == 0

    async def test_switch_up_to_down_moves_owner_by_minus_seven(self, db, make_account, bob):
        owner = await make_account(reputation=100)
        question = await _question(db, owner)
        await cast_vote(db, bob.id, "question", question.id, 1)
        await db.commit()
        assert await reputation.get_reputation(db, owner.id) == 105

        outcome = await cast_vote(db, bob.id, "question", question.id, -1)
        await db.commit()

        assert outcome.transition == "switch"
        assert outcome.new_score == -1
        assert await reputation.get_reputation(db, owner.id) == 98
        # The voter pays for the downvote
        assert await _ledger_sum(db, bob.id) == -1

    async def test_value_zero_with_no_vote_is_a_noop(self, db, alice, bob):
        question = await _question(db, alice)

        outcome = await cast_vote(db, bob.id, "question", question.id, 0)
        await db.commit()

        assert outcome.transition == "noop"
        assert outcome.new_score == 0
        assert await _ledger_sum(db, alice.id) == 0

    async def test_self_vote_forbidden(self, db, alice):
        question = await _question(db, alice)

        with pytest.raises(SelfVoteForbidden):
            await cast_vote(db, alice.id, "question", question.id, 1)

    async def test_self_vote_with_zero_is_also_forbidden(self, db, alice):
        question = await _question(db, alice)

        with pytest.raises(SelfVoteForbidden):
            await cast_vote(db, alice.id, "question", question.id, 0)

    async def test_missing_target(self, db, bob):
        with pytest.raises(TargetNotFound):
            await cast_vote(db, bob.id, "question", uuid.uuid4(), 1)

    async def test_unknown_target_type(self, db, bob):
        with pytest.raises(ValidationError):
            await cast_vote(db, bob.id, "comment", uuid.uuid4(), 1)


class TestAnswerVotes:
    async def test_downvote_costs_voter_one_point(self, db, make_account, alice, bob):
        voter = await make_account(reputation=50)
        question = await _question(db, alice)
        answer = await _answer(db, bob, question)

        outcome = await cast_vote(db, voter.id, "answer", answer.id, -1)
        await db.commit()

        assert outcome.new_score == -1
        assert await reputation.get_reputation(db, voter.id) == 49
        # Bob was at 0 and is clamped there
        assert await reputation.get_reputation(db, bob.id) == 0
        assert await _ledger_sum(db, bob.id) == -2

    async def test_switch_down_to_up_moves_owner_by_plus_twelve(self, db, make_account, alice):
        answerer = await make_account(reputation=20)
        voter = await make_account(reputation=50)
        question = await _question(db, alice)
        answer = await _answer(db, answerer, question)

        await cast_vote(db, voter.id, "answer", answer.id, -1)
        await db.commit()
        assert await reputation.get_reputation(db, answerer.id) == 18

        outcome = await cast_vote(db, voter.id, "answer", answer.id, 1)
        await db.commit()

        assert outcome.new_score == 1
        assert await reputation.get_reputation(db, answerer.id) == 30
        # Downvote cost refunded on switch
        assert await reputation.get_reputation(db, voter.id) == 50

    async def test_switch_up_to_down_moves_owner_by_minus_twelve(self, db, make_account, alice, bob):
        answerer = await make_account(reputation=100)
        question = await _question(db, alice)
        answer = await _answer(db, answerer, question)
        await cast_vote(db, bob.id, "answer", answer.id, 1)
        await db.commit()

        await cast_vote(db, bob.id, "answer", answer.id, -1)
        await db.commit()

        assert await reputation.get_reputation(db, answerer.id) == 98

    async def test_cast_then_undo_nets_ledger_to_zero(self, db, alice, bob, carol):
        question = await _question(db, alice)
        answer = await _answer(db, bob, question)

        await cast_vote(db, carol.id, "answer", answer.id, -1)
        await cast_vote(db, carol.id, "answer", answer.id, -1)
        await db.commit()

        assert await _score(db, Answer, answer.id) == 0
        assert await _ledger_sum(db, bob.id) == 0
        assert await _ledger_sum(db, carol.id) == 0

    async def test_score_equals_sum_of_votes(self, db, alice, bob, carol, make_account):
        dave = await make_account()
        question = await _question(db, alice)

        await cast_vote(db, bob.id, "question", question.id, 1)
        await cast_vote(db, carol.id, "question", question.id, 1)
        await cast_vote(db, dave.id, "question", question.id, -1)
        await cast_vote(db, carol.id, "question", question.id, -1)
        await db.commit()

        vote_sum = await db.scalar(
            select(func.sum(Vote.value)).where(Vote.target_id == question.id)
        )
        assert await _score(db, Question, question.id) == vote_sum == -1


class TestConcurrentCasts:
    async def test_first_cast_sees_a_cast_committed_while_it_waited(
        self, db, session_factory, alice, bob, monkeypatch
    ):
        question = await _question(db, alice)
        real_find = votes_service._find_vote
        reads = []

        async def find_with_concurrent_cast(session, voter_id, target_type, target_id):
            if session is not db:
                return await real_find(session, voter_id, target_type, target_id)
            reads.append(target_id)
            if len(reads) == 1:
                # The same user's other request casts and commits after this read
                async with session_factory() as other:
                    await cast_vote(other, voter_id, target_type, target_id, 1)
                    await other.commit()
                return None
            return await real_find(session, voter_id, target_type, target_id)

        monkeypatch.setattr(votes_service, "_find_vote", find_with_concurrent_cast)

        outcome = await cast_vote(db, bob.id, "question", question.id, 1)
        await db.commit()

        assert len(reads) == 2
        assert outcome.transition == "undo"
        assert outcome.user_vote is None
        assert outcome.new_score == 0
        assert await db.scalar(select(func.count(Vote.id))) == 0
        assert await _ledger_sum(db, alice.id) == 0

    async def test_insert_race_is_reported_as_conflict(self, db, alice, bob, monkeypatch):
        question = await _question(db, alice)
        await cast_vote(db, bob.id, "question", question.id, 1)
        await db.commit()

        async def stale_read(*_args):
            return None

        monkeypatch.setattr(votes_service, "_find_vote", stale_read)

        with pytest.raises(Conflict):
            await cast_vote(db, bob.id, "question", question.id, 1)

        assert await db.scalar(select(func.count(Vote.id))) == 1
        assert await _score(db, Question, question.id) == 1
        assert await reputation.get_reputation(db, alice.id) == 5
