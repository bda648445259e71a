"""Tests for the upgrade request approval workflow (abi.services.approvals)."""

import uuid

import pytest
import pytest_asyncio

from abi.errors import Conflict, Forbidden, NotFound, ValidationError
from abi.models.user import Role
from abi.services import approvals


async def _submit(db, account, credits=500, **kwargs):
    request = await approvals.submit_request(
        db,
        account.user,
        type=kwargs.pop("type", "analyst_call"),
        title=kwargs.pop("title", "Call with a metals analyst"),
        estimated_credits=credits,
        **kwargs,
    )
    await db.commit()
    return request


@pytest_asyncio.fixture
async def approver(make_account):
    return await make_account(role=Role.approver, display_name="Approver")


@pytest_asyncio.fixture
async def admin(make_account):
    return await make_account(role=Role.admin, display_name="Admin")


class TestApprovalLevel:
    def test_threshold_is_inclusive(self):
        assert approvals.approval_level_for(2000).value == "approver"
        assert approvals.approval_level_for(2001).value == "admin"

    def test_role_covers(self):
        assert approvals.role_covers("admin", "approver")
        assert approvals.role_covers("approver", "approver")
        assert not approvals.role_covers("approver", "admin")
        assert not approvals.role_covers("member", "approver")

    def test_transition_table(self):
        assert approvals.can_transition("pending", approvals.RequestStatus.approved)
        assert approvals.can_transition("approved", approvals.RequestStatus.fulfilled)
        assert not approvals.can_transition("denied", approvals.RequestStatus.approved)
        assert not approvals.can_transition("pending", approvals.RequestStatus.fulfilled)


class TestSubmit:
    async def test_submit_is_pending_and_routed(self, db, alice):
        cheap = await _submit(db, alice, credits=100)
        costly = await _submit(db, alice, credits=5000, type="bespoke_project", title="Bespoke study")

        assert cheap.status == "pending"
        assert cheap.approval_level == "approver"
        assert costly.approval_level == "admin"

    async def test_unknown_type(self, db, alice):
        with pytest.raises(ValidationError):
            await _submit(db, alice, type="free_lunch")

    async def test_blank_title(self, db, alice):
        with pytest.raises(ValidationError):
            await _submit(db, alice, title="   ")

    async def test_negative_credits(self, db, alice):
        with pytest.raises(ValidationError):
            await _submit(db, alice, credits=-1)


class TestDecisions:
    async def test_approve_then_fulfil_records_trail(self, db, alice, approver, admin):
        request = await _submit(db, alice)

        await approvals.approve_request(db, approver.user, request.id)
        await db.commit()
        await approvals.fulfil_request(db, admin.user, request.id, {"reportUrl": "https://example.invalid/r/1"})
        await db.commit()

        request, events = await approvals.get_request(db, alice.user, request.id)
        assert request.status == "fulfilled"
        assert request.decided_by == approver.id
        assert request.fulfilled_at is not None
        assert [e.event_type for e in events] == ["submitted", "approved", "fulfilled"]
        assert [(e.from_status, e.to_status) for e in events] == [
            (None, "pending"),
            ("pending", "approved"),
            ("approved", "fulfilled"),
        ]

    async def test_approver_cannot_decide_admin_level(self, db, alice, approver, admin):
        request = await _submit(db, alice, credits=9000)

        with pytest.raises(Forbidden):
            await approvals.approve_request(db, approver.user, request.id)

        approved = await approvals.approve_request(db, admin.user, request.id)
        assert approved.status == "approved"

    async def test_requester_cannot_decide_own_request(self, db, approver):
        request = await _submit(db, approver)

        with pytest.raises(Forbidden):
            await approvals.approve_request(db, approver.user, request.id)

    async def test_deny_requires_reason(self, db, alice, approver):
        request = await _submit(db, alice)

        with pytest.raises(ValidationError):
            await approvals.deny_request(db, approver.user, request.id, "  ")

        denied = await approvals.deny_request(db, approver.user, request.id, "Budget frozen")
        await db.commit()
        assert denied.status == "denied"
        assert denied.denial_reason == "Budget frozen"

    async def test_terminal_states_reject_transitions(self, db, alice, approver):
        request = await _submit(db, alice)
        await approvals.deny_request(db, approver.user, request.id, "Budget frozen")
        await db.commit()

        with pytest.raises(Conflict):
            await approvals.approve_request(db, approver.user, request.id)
        with pytest.raises(Conflict):
            await approvals.cancel_request(db, alice.user, request.id)

    async def test_fulfil_needs_admin_and_approval(self, db, alice, approver, admin):
        request = await _submit(db, alice)

        with pytest.raises(Conflict):
            await approvals.fulfil_request(db, admin.user, request.id)
        with pytest.raises(Forbidden):
            await approvals.fulfil_request(db, approver.user, request.id)

    async def test_only_requester_cancels(self, db, alice, bob):
        request = await _submit(db, alice)

        with pytest.raises(Forbidden):
            await approvals.cancel_request(db, bob.user, request.id)

        cancelled = await approvals.cancel_request(db, alice.user, request.id)
        assert cancelled.status == "cancelled"

    async def test_missing_request(self, db, approver):
        with pytest.raises(NotFound):
            await approvals.approve_request(db, approver.user, uuid.uuid4())


class TestVisibility:
    async def test_members_only_see_their_own(self, db, alice, bob):
        request = await _submit(db, alice)

        with pytest.raises(Forbidden):
            await approvals.get_request(db, bob.user, request.id)

        listing = await approvals.list_requests(db, bob.user)
        assert listing.items == []

    async def test_approver_queue_flags(self, db, alice, approver):
        cheap = await _submit(db, alice, credits=100)
        costly = await _submit(db, alice, credits=9000, title="Expert deep dive")
        own = await _submit(db, approver, credits=100, title="My own call")

        listing = await approvals.list_requests(db, approver.user, "approver")

        flags = {v.request.id: (v.actionable, v.admin_only) for v in listing.items}
        assert flags[cheap.id] == (True, False)
        assert flags[costly.id] == (False, True)
        assert flags[own.id] == (False, False)
        assert listing.actionable_count == 1

    async def test_member_cannot_open_queue(self, db, alice):
        with pytest.raises(Forbidden):
            await approvals.list_requests(db, alice.user, "approver")
