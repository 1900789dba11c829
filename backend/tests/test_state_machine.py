from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from proposal_workflow.core.constants import (
    PROPOSAL_TRANSITIONS,
    AuditActionType,
    NotificationPriority,
    NotificationStatus,
    ProposalStatus,
)
from proposal_workflow.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from proposal_workflow.models import AuditLog, Notification, Proposal
from proposal_workflow.services.audit_service import AuditRecorder, SqlAlchemyAuditBackend
from proposal_workflow.services.notification_service import NotificationService
from proposal_workflow.services.state_machine import (
    ProposalStateMachine,
    can_transition,
    normalize_status,
)

VALID_EDGES = [(current, target) for current, targets in PROPOSAL_TRANSITIONS.items() for target in targets]
INVALID_EDGES = [
    (current, target)
    for current in ProposalStatus
    for target in ProposalStatus
    if target not in PROPOSAL_TRANSITIONS[current]
]


async def _count(session, model, *criteria) -> int:
    result = await session.execute(select(func.count(model.id)).where(*criteria))
    return result.scalar()


async def _notifications_for(session, user_id):
    result = await session.execute(select(Notification).where(Notification.recipient_id == user_id))
    return list(result.scalars().all())


class FailingAuditBackend(SqlAlchemyAuditBackend):
    async def insert(self, values: dict):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))


# === Status parsing ===

def test_normalize_status_is_case_insensitive():
    assert normalize_status("APPROVED") == ProposalStatus.APPROVED
    assert normalize_status("Pending") == ProposalStatus.PENDING
    assert normalize_status(" revision-requested ") == ProposalStatus.REVISION_REQUESTED


def test_rejected_is_an_alias_for_denied():
    assert normalize_status("rejected") == ProposalStatus.DENIED
    assert normalize_status("Rejected") == ProposalStatus.DENIED


def test_unknown_status_is_rejected():
    with pytest.raises(ValidationError):
        normalize_status("archived")
    with pytest.raises(ValidationError):
        normalize_status(None)


def test_transition_table():
    assert can_transition(ProposalStatus.DRAFT, ProposalStatus.PENDING)
    assert can_transition(ProposalStatus.REVISION_REQUESTED, ProposalStatus.PENDING)
    assert not can_transition(ProposalStatus.DRAFT, ProposalStatus.APPROVED)
    assert not can_transition(ProposalStatus.APPROVED, ProposalStatus.PENDING)
    assert not can_transition(ProposalStatus.DENIED, ProposalStatus.REVISION_REQUESTED)


# === Edges ===

@pytest.mark.asyncio
@pytest.mark.parametrize("current,target", VALID_EDGES, ids=lambda s: s.value)
async def test_every_valid_edge(db_session, proposal_factory, machine_factory, student_user, admin_user, current, target):
    student_id, admin_id = student_user.id, admin_user.id
    proposal = await proposal_factory(student_user, "edge-1", current)
    proposal_id = proposal.id

    machine = machine_factory(db_session)
    result = await machine.transition("edge-1", target, admin_id, "looks fine")

    assert result.proposal_status == target
    assert await _count(db_session, AuditLog, AuditLog.record_id == proposal_id) == 1

    admin_notes = await _notifications_for(db_session, admin_id)
    student_notes = await _notifications_for(db_session, student_id)
    if target == ProposalStatus.PENDING:
        assert len(admin_notes) == 1
        assert student_notes == []
        assert admin_notes[0].priority == NotificationPriority.NORMAL
    else:
        assert admin_notes == []
        assert len(student_notes) == 1
        expected = NotificationPriority.NORMAL if target == ProposalStatus.APPROVED else NotificationPriority.HIGH
        assert student_notes[0].priority == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("current,target", INVALID_EDGES, ids=lambda s: s.value)
async def test_invalid_edge_leaves_status_unchanged(db_session, proposal_factory, machine_factory, student_user, admin_user, current, target):
    admin_id = admin_user.id
    proposal = await proposal_factory(student_user, "edge-2", current)
    proposal_id = proposal.id

    machine = machine_factory(db_session)
    with pytest.raises(InvalidTransitionError):
        await machine.transition("edge-2", target, admin_id)

    await db_session.refresh(proposal)
    assert proposal.proposal_status == current
    assert proposal.reviewed_at is None
    assert await _count(db_session, AuditLog, AuditLog.record_id == proposal_id) == 0
    assert await _count(db_session, Notification) == 0


@pytest.mark.asyncio
async def test_missing_proposal(state_machine: ProposalStateMachine, admin_user):
    with pytest.raises(NotFoundError):
        await state_machine.transition("does-not-exist", "approved", admin_user.id)


@pytest.mark.asyncio
async def test_transition_by_internal_id(state_machine: ProposalStateMachine, pending_proposal, admin_user):
    result = await state_machine.transition(pending_proposal.id, "approved", admin_user.id)
    assert result.proposal_status == ProposalStatus.APPROVED


# === Scenarios ===

@pytest.mark.asyncio
async def test_student_submits_draft(state_machine, audit_recorder, notifier, draft_proposal, student_user, admin_user):
    proposal = await state_machine.submit("abc-123", student_user.id)

    assert proposal.proposal_status == ProposalStatus.PENDING
    assert proposal.submitted_at is not None
    assert proposal.reviewed_at is None

    entries = await audit_recorder.list("abc-123")
    assert len(entries) == 1
    assert entries[0].action_type == AuditActionType.UPDATE
    assert entries[0].additional_info["action"] == "proposal_submitted"
    assert entries[0].old_values == {"status": "draft"}
    assert entries[0].new_values["status"] == "pending"
    assert entries[0].user_id == student_user.id

    notes = await notifier.list(admin_user.id)
    assert len(notes) == 1
    assert notes[0].title == "New Proposal Submitted"
    assert notes[0].priority == NotificationPriority.NORMAL
    assert notes[0].status == NotificationStatus.DELIVERED
    assert notes[0].related_proposal_uuid == "abc-123"
    assert "Campus Cleanup Drive" in notes[0].message
    assert "Green Campus Club" in notes[0].message


@pytest.mark.asyncio
async def test_admin_rejects_with_comment(state_machine, audit_recorder, notifier, pending_proposal, student_user, admin_user):
    proposal = await state_machine.review("abc-123", "rejected", admin_user.id, "Insufficient budget detail")

    assert proposal.proposal_status == ProposalStatus.DENIED
    assert proposal.admin_comments == "Insufficient budget detail"
    assert proposal.reviewed_by_admin_id == admin_user.id
    assert proposal.reviewed_at is not None
    assert proposal.approved_at is None

    notes = await notifier.list(student_user.id)
    assert len(notes) == 1
    assert notes[0].priority == NotificationPriority.HIGH
    assert notes[0].title == "Proposal Not Approved"
    assert "not approved" in notes[0].message
    assert "feedback" in notes[0].message
    assert "Insufficient budget detail" in notes[0].message

    entries = await audit_recorder.list("abc-123")
    assert entries[0].action_type == AuditActionType.REJECT


@pytest.mark.asyncio
async def test_approval_sets_review_timestamps(state_machine, notifier, pending_proposal, student_user, admin_user):
    proposal = await state_machine.review("abc-123", "approved", admin_user.id)

    assert proposal.approved_at is not None
    assert proposal.reviewed_at is not None
    notes = await notifier.list(student_user.id)
    assert notes[0].title == "Proposal Approved"
    assert notes[0].priority == NotificationPriority.NORMAL


@pytest.mark.asyncio
async def test_review_rejects_non_decisions(state_machine, pending_proposal, admin_user):
    with pytest.raises(ValidationError):
        await state_machine.review("abc-123", "draft", admin_user.id)


@pytest.mark.asyncio
async def test_revision_round_trip_keeps_first_submission_time(state_machine, audit_recorder, notifier, draft_proposal, student_user, admin_user):
    first = await state_machine.submit("abc-123", student_user.id)
    submitted_at = first.submitted_at

    revised = await state_machine.review("abc-123", "revision_requested", admin_user.id, "Add a budget")
    assert revised.proposal_status == ProposalStatus.REVISION_REQUESTED

    student_notes = await notifier.list(student_user.id)
    assert student_notes[0].title == "Revision Requested"
    assert student_notes[0].priority == NotificationPriority.HIGH

    again = await state_machine.submit("abc-123", student_user.id)
    assert again.proposal_status == ProposalStatus.PENDING
    assert again.submitted_at == submitted_at

    actions = [e.additional_info["action"] for e in await audit_recorder.list("abc-123")]
    assert actions == ["proposal_resubmitted", "proposal_revision_requested", "proposal_submitted"]

    admin_titles = sorted(n.title for n in await notifier.list(admin_user.id))
    assert admin_titles == ["New Proposal Submitted", "Proposal Resubmitted"]


# === Idempotent submission ===

@pytest.mark.asyncio
async def test_second_submit_is_a_no_op(db_session, state_machine, draft_proposal, student_user, admin_user):
    proposal_id = draft_proposal.id
    await state_machine.submit("abc-123", student_user.id)
    again = await state_machine.submit("abc-123", student_user.id)

    assert again.proposal_status == ProposalStatus.PENDING
    assert await _count(db_session, AuditLog, AuditLog.record_id == proposal_id) == 1
    assert await _count(db_session, Notification) == 1


@pytest.mark.asyncio
async def test_submit_of_approved_proposal_fails(state_machine, proposal_factory, student_user, admin_user):
    await proposal_factory(student_user, "done-1", ProposalStatus.APPROVED)
    with pytest.raises(InvalidTransitionError):
        await state_machine.submit("done-1", student_user.id)


@pytest.mark.asyncio
async def test_only_owner_can_submit(state_machine, draft_proposal, other_student):
    with pytest.raises(ForbiddenError):
        await state_machine.submit("abc-123", other_student.id)


@pytest.mark.asyncio
async def test_submit_racing_another_submit_succeeds_once(db_session, session_factory, machine_factory, draft_proposal, student_user, admin_user):
    student_id = student_user.id
    proposal_id = draft_proposal.id

    # draft_proposal stays loaded as "draft" in db_session while another session submits
    async with session_factory() as other:
        await machine_factory(other).submit("abc-123", student_id)

    result = await machine_factory(db_session).submit("abc-123", student_id)
    assert result.proposal_status == ProposalStatus.PENDING

    async with session_factory() as check:
        assert await _count(check, AuditLog, AuditLog.record_id == proposal_id) == 1
        assert await _count(check, Notification) == 1


# === Concurrency ===

@pytest.mark.asyncio
async def test_concurrent_reviews_only_one_wins(db_session, session_factory, machine_factory, pending_proposal, admin_user):
    admin_id = admin_user.id
    proposal_id = pending_proposal.id

    # pending_proposal is loaded as "pending" in db_session; another reviewer approves first
    async with session_factory() as other:
        await machine_factory(other).transition("abc-123", "approved", admin_id)

    with pytest.raises(ConflictError):
        await machine_factory(db_session).transition("abc-123", "denied", admin_id, "Too late")

    async with session_factory() as check:
        result = await check.execute(select(Proposal).where(Proposal.id == proposal_id))
        proposal = result.scalar_one()
        assert proposal.proposal_status == ProposalStatus.APPROVED
        assert proposal.admin_comments is None
        assert await _count(check, AuditLog, AuditLog.record_id == proposal_id) == 1
        assert await _count(check, Notification) == 1


# === Side-effect isolation ===

@pytest.mark.asyncio
async def test_audit_failure_does_not_block_transition(db_session, pending_proposal, admin_user, caplog):
    admin_id = admin_user.id
    proposal_id = pending_proposal.id
    machine = ProposalStateMachine(
        db_session,
        AuditRecorder(FailingAuditBackend(db_session)),
        NotificationService(db_session),
    )

    result = await machine.transition("abc-123", "approved", admin_id)

    assert result.proposal_status == ProposalStatus.APPROVED
    assert await _count(db_session, AuditLog, AuditLog.record_id == proposal_id) == 0
    assert await _count(db_session, Notification) == 1
    assert "Failed to record audit action" in caplog.text


@pytest.mark.asyncio
async def test_notification_failure_does_not_block_transition(db_session, pending_proposal, admin_user):
    admin_id = admin_user.id
    proposal_id = pending_proposal.id
    notifier = NotificationService(db_session)
    notifier.on_proposal_event = AsyncMock(side_effect=RuntimeError("mail relay down"))
    machine = ProposalStateMachine(db_session, AuditRecorder(SqlAlchemyAuditBackend(db_session)), notifier)

    result = await machine.transition("abc-123", "denied", admin_id, "No venue")

    assert result.proposal_status == ProposalStatus.DENIED
    assert notifier.on_proposal_event.await_count == 1
    assert await _count(db_session, AuditLog, AuditLog.record_id == proposal_id) == 1


@pytest.mark.asyncio
async def test_submit_without_reviewer_still_succeeds(db_session, proposal_factory, machine_factory, student_user):
    await proposal_factory(student_user, "lonely-1")
    proposal = await machine_factory(db_session).submit("lonely-1", student_user.id)

    assert proposal.proposal_status == ProposalStatus.PENDING
    assert await _count(db_session, Notification) == 0


# === Comments and bulk ===

@pytest.mark.asyncio
async def test_add_comment_appends_and_notifies(state_machine, audit_recorder, notifier, pending_proposal, student_user, admin_user):
    await state_machine.add_comment("abc-123", admin_user.id, "Please attach the venue booking")
    proposal = await state_machine.add_comment("abc-123", admin_user.id, "And the budget sheet")

    lines = proposal.admin_comments.split("\n")
    assert len(lines) == 2
    assert lines[0].endswith("Please attach the venue booking")
    assert lines[1].endswith("And the budget sheet")
    assert proposal.proposal_status == ProposalStatus.PENDING

    entries = await audit_recorder.list("abc-123")
    assert [e.additional_info["action"] for e in entries] == ["comment_added", "comment_added"]

    notes = await notifier.list(student_user.id)
    assert len(notes) == 2
    assert all(n.notification_type == "proposal_comment" for n in notes)


@pytest.mark.asyncio
async def test_empty_comment_is_rejected(state_machine, pending_proposal, admin_user):
    with pytest.raises(ValidationError):
        await state_machine.add_comment("abc-123", admin_user.id, "   ")


@pytest.mark.asyncio
async def test_bulk_transition_reports_each_outcome(state_machine, proposal_factory, student_user, admin_user):
    await proposal_factory(student_user, "bulk-1", ProposalStatus.PENDING)
    await proposal_factory(student_user, "bulk-2", ProposalStatus.PENDING)
    await proposal_factory(student_user, "bulk-3", ProposalStatus.DRAFT)

    results = await state_machine.bulk_transition(
        ["bulk-1", "bulk-2", "bulk-3", "bulk-404"], "approved", admin_user.id
    )

    assert results == [
        {"id": "bulk-1", "ok": True, "status": "approved"},
        {"id": "bulk-2", "ok": True, "status": "approved"},
        {"id": "bulk-3", "ok": False, "error_code": "INVALID_TRANSITION"},
        {"id": "bulk-404", "ok": False, "error_code": "NOT_FOUND"},
    ]


@pytest.mark.asyncio
async def test_bulk_transition_rejects_non_review_targets(state_machine, proposal_factory, student_user, admin_user):
    await proposal_factory(student_user, "bulk-1", ProposalStatus.DRAFT)

    with pytest.raises(ValidationError):
        await state_machine.bulk_transition(["bulk-1"], "pending", admin_user.id)

    proposal = await state_machine.proposals.get_by_uuid("bulk-1")
    assert proposal.proposal_status == ProposalStatus.DRAFT
    assert proposal.submitted_at is None


@pytest.mark.asyncio
async def test_review_comment_is_appended_to_earlier_comments(state_machine, pending_proposal, admin_user):
    await state_machine.add_comment("abc-123", admin_user.id, "Add a budget")

    proposal = await state_machine.review("abc-123", "revision_requested", admin_user.id, "Budget still missing")

    lines = proposal.admin_comments.split("\n")
    assert len(lines) == 2
    assert lines[0].endswith("Add a budget")
    assert lines[1] == "Budget still missing"
