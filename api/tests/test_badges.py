"""Tests for the badge engine (abi.services.badges)."""

from sqlalchemy import func, select

from abi.config import settings
from abi.models.badge import Badge, UserBadge
from abi.services import badges as badge_service
from abi.services.answers import accept_answer, create_answer
from abi.services.badges import (
    BADGE_CATALOGUE,
    UserStats,
    evaluate_criterion,
    get_badge_by_slug,
    get_user_badges,
    get_user_stats,
    list_badges,
    run_badge_checks,
    seed_badges,
)
from abi.services.questions import create_question

BODY = "We are reviewing our approach and would like to hear how other teams handle this."


async def _slugs(db, user_id) -> list[str]:
    return sorted(badge.slug for badge, _ in await get_user_badges(db, user_id))


class TestEvaluateCriterion:
    def test_threshold_met(self):
        assert evaluate_criterion({"type": "answer_count", "threshold": 5}, UserStats(answer_count=5))

    def test_threshold_not_met(self):
        assert not evaluate_criterion({"type": "reputation", "threshold": 500}, UserStats(reputation=499))

    def test_missing_threshold_defaults_to_one(self):
        assert evaluate_criterion({"type": "first_question"}, UserStats(question_count=1))
        assert not evaluate_criterion({"type": "first_question"}, UserStats())

    def test_unknown_type_never_passes(self):
        assert not evaluate_criterion({"type": "made_up", "threshold": 0}, UserStats(reputation=10**6))


class TestCatalogue:
    async def test_seed_is_idempotent(self, db):
        # The session fixture already seeded once
        assert await seed_badges(db) == 0
        await db.commit()
        assert await db.scalar(select(func.count(Badge.id))) == len(BADGE_CATALOGUE)

    async def test_list_orders_by_tier(self, db):
        tiers = [badge.tier for badge in await list_badges(db)]
        assert tiers == sorted(tiers, key=["bronze", "silver", "gold"].index)


class TestAwarding:
    async def test_first_question_awarded_once(self, db, alice):
        await create_question(db, alice.id, "Steel pricing outlook for next year", BODY)
        await db.commit()

        awarded = await run_badge_checks(db, [alice.id])
        assert awarded == {alice.id: ["first-question"]}

        await create_question(db, alice.id, "Freight lead times from Asia ports", BODY)
        await db.commit()
        assert await run_badge_checks(db, [alice.id]) == {}

        count = await db.scalar(
            select(func.count(UserBadge.id)).where(UserBadge.user_id == alice.id)
        )
        assert count == 1

    async def test_teacher_badge_after_five_accepted_answers(self, db, alice, bob):
        for i in range(5):
            question = await create_question(
                db, alice.id, f"Question number {i} about freight", BODY
            )
            answer = await create_answer(db, bob.id, question.id, BODY)
            await accept_answer(db, question.id, answer.id, alice.id)
        await db.commit()

        stats = await get_user_stats(db, bob.id)
        assert stats.accepted_answer_count == 5

        await run_badge_checks(db, [bob.id])
        await run_badge_checks(db, [bob.id])

        slugs = await _slugs(db, bob.id)
        assert slugs.count("teacher") == 1
        assert "contributor" in slugs
        assert "first-answer" in slugs

    async def test_streak_badges_read_profile_counters(self, db, make_account):
        account = await make_account(current_streak=14)

        await run_badge_checks(db, [account.id])

        slugs = await _slugs(db, account.id)
        assert "consistent" in slugs
        assert "dedicated" in slugs
        assert "fanatic" not in slugs

    async def test_none_and_duplicate_user_ids_are_skipped(self, db, alice):
        await create_question(db, alice.id, "Steel pricing outlook for next year", BODY)
        await db.commit()

        awarded = await run_badge_checks(db, [None, alice.id, alice.id])

        assert list(awarded) == [alice.id]

    async def test_failures_are_swallowed(self, db, alice, monkeypatch):
        async def boom(_db, _user_id):
            raise RuntimeError("badge store unavailable")

        monkeypatch.setattr(badge_service, "check_and_award_badges", boom)

        assert await run_badge_checks(db, [alice.id]) == {}

    async def test_disabled_by_settings(self, db, alice, monkeypatch):
        await create_question(db, alice.id, "Steel pricing outlook for next year", BODY)
        await db.commit()
        monkeypatch.setattr(settings, "badge_checks_enabled", False)

        assert await run_badge_checks(db, [alice.id]) == {}

    async def test_duplicate_award_keeps_badges_earned_in_the_same_check(
        self, db, session_factory, alice, monkeypatch
    ):
        await create_question(db, alice.id, "Steel pricing outlook for next year", BODY)
        await db.commit()

        real_stats = badge_service.get_user_stats

        # Another request awards "supporter" after the candidates were read
        async def stats_with_concurrent_award(session, user_id):
            stats = await real_stats(session, user_id)
            stats.votes_cast = 10
            async with session_factory() as other:
                supporter = await get_badge_by_slug(other, "supporter")
                other.add(UserBadge(user_id=user_id, badge_id=supporter.id))
                await other.commit()
            return stats

        async def not_held(_db, _user_id, _badge_id):
            return False

        monkeypatch.setattr(badge_service, "get_user_stats", stats_with_concurrent_award)
        monkeypatch.setattr(badge_service, "has_badge", not_held)

        awarded = await run_badge_checks(db, [alice.id])

        assert awarded == {alice.id: ["first-question"]}
        assert await _slugs(db, alice.id) == ["first-question", "supporter"]
