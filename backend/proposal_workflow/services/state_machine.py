"""Proposal status workflow.

The status write is authoritative and is committed on its own, guarded by
the expected current status. Audit and notification side effects run after
that commit; their failures are logged and never reach the caller.
"""
import logging
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import List, Optional, Union

from sqlalchemy import select, update, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_workflow.config import settings
from proposal_workflow.core.constants import (
    PROPOSAL_STATUS_ALIASES,
    PROPOSAL_TRANSITIONS,
    TRANSITION_AUDIT_ACTIONS,
    ProposalStatus,
    UserRole,
)
from proposal_workflow.core.exceptions import (
    AppException,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    ValidationError,
    translate_db_error,
)
from proposal_workflow.models.proposal import Proposal
from proposal_workflow.models.user import User
from proposal_workflow.services.audit_service import AuditRecorder
from proposal_workflow.services.notification_service import NotificationService
from proposal_workflow.services.proposal_service import ProposalService

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = (
    ProposalStatus.APPROVED,
    ProposalStatus.DENIED,
    ProposalStatus.REVISION_REQUESTED,
)

# Notification event raised for each target status
_NOTIFY_EVENTS = {
    ProposalStatus.APPROVED: "approved",
    ProposalStatus.DENIED: "rejected",
    ProposalStatus.REVISION_REQUESTED: "revision_requested",
}


def normalize_status(value: Union[str, ProposalStatus, None]) -> ProposalStatus:
    """Case-insensitive status parsing; ``rejected`` is accepted for ``denied``."""
    if isinstance(value, ProposalStatus):
        return value

    name = str(value or "").strip().lower().replace("-", "_")
    if name in PROPOSAL_STATUS_ALIASES:
        return PROPOSAL_STATUS_ALIASES[name]
    try:
        return ProposalStatus(name)
    except ValueError:
        raise ValidationError(f"Unknown proposal status: {value}", field="status")


def can_transition(current: ProposalStatus, target: ProposalStatus) -> bool:
    return target in PROPOSAL_TRANSITIONS.get(current, frozenset())


def _review_decision(value: Union[str, ProposalStatus, None]) -> ProposalStatus:
    target = normalize_status(value)
    if target not in REVIEW_DECISIONS:
        raise ValidationError(
            "Decision must be approved, denied or revision_requested", field="status"
        )
    return target


def _appended_comment(text: str):
    """SQL expression appending a line to ``admin_comments``."""
    return case(
        (Proposal.admin_comments.is_(None), text),
        else_=Proposal.admin_comments + "\n" + text,
    )


def _snapshot(proposal: Proposal) -> SimpleNamespace:
    return SimpleNamespace(
        id=proposal.id,
        uuid=proposal.uuid,
        user_id=proposal.user_id,
        event_name=proposal.event_name,
        contact_person=proposal.contact_person,
        organization_name=proposal.organization_name,
    )


class ProposalStateMachine:
    def __init__(self, db: AsyncSession, audit: AuditRecorder, notifier: NotificationService):
        self.db = db
        self.audit = audit
        self.notifier = notifier
        self.proposals = ProposalService(db, audit)

    async def transition(
        self,
        proposal_ref: Union[int, str],
        new_status: Union[str, ProposalStatus],
        actor_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> Proposal:
        target = normalize_status(new_status)
        proposal = await self.proposals.resolve(proposal_ref)
        current = proposal.proposal_status

        if not can_transition(current, target):
            raise InvalidTransitionError(current.value, target.value)

        return await self._apply(proposal, current, target, actor_id, comment)

    async def submit(self, proposal_ref: Union[int, str], actor_id: Optional[int] = None) -> Proposal:
        """Move a draft or revised proposal to pending. Repeating it is a no-op."""
        proposal = await self.proposals.resolve(proposal_ref)

        if actor_id is not None and proposal.user_id != actor_id:
            raise ForbiddenError("You can only submit your own proposals")

        current = proposal.proposal_status
        if current == ProposalStatus.PENDING:
            logger.info(f"Proposal {proposal.uuid} already pending, submit ignored")
            return proposal

        if not can_transition(current, ProposalStatus.PENDING):
            raise InvalidTransitionError(current.value, ProposalStatus.PENDING.value)

        try:
            return await self._apply(proposal, current, ProposalStatus.PENDING, actor_id, None)
        except ConflictError:
            await self.db.refresh(proposal)
            if proposal.proposal_status == ProposalStatus.PENDING:
                logger.info(f"Proposal {proposal.uuid} submitted concurrently, submit ignored")
                return proposal
            raise

    async def review(
        self,
        proposal_ref: Union[int, str],
        decision: Union[str, ProposalStatus],
        reviewer_id: int,
        comment: Optional[str] = None,
    ) -> Proposal:
        target = _review_decision(decision)
        return await self.transition(proposal_ref, target, reviewer_id, comment)

    async def add_comment(self, proposal_ref: Union[int, str], admin_id: int, comment: str) -> Proposal:
        comment = (comment or "").strip()
        if not comment:
            raise ValidationError("Comment cannot be empty", field="comment")

        proposal = await self.proposals.resolve(proposal_ref)
        snapshot = _snapshot(proposal)
        line = f"[{datetime.now(timezone.utc):%Y-%m-%d %H:%M}] {comment}"

        try:
            await self.db.execute(
                update(Proposal)
                .where(Proposal.id == snapshot.id)
                .values(admin_comments=_appended_comment(line))
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise translate_db_error(exc) from exc

        await self.audit.record(
            snapshot.uuid,
            "comment_added",
            actor_id=admin_id,
            note=comment,
        )
        await self._notify("commented", snapshot, admin_id=admin_id, comment=comment)

        await self.db.refresh(proposal)
        return proposal

    async def bulk_transition(
        self,
        proposal_refs: List[Union[int, str]],
        new_status: Union[str, ProposalStatus],
        actor_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> List[dict]:
        """Apply one review decision to each proposal independently."""
        target = _review_decision(new_status)
        outcomes = []
        for ref in proposal_refs:
            try:
                proposal = await self.transition(ref, target, actor_id, comment)
                outcomes.append({"id": ref, "ok": True, "status": proposal.proposal_status.value})
            except AppException as exc:
                outcomes.append({"id": ref, "ok": False, "error_code": exc.error_code})
            except Exception:
                logger.exception(f"Bulk transition failed for proposal {ref}")
                await self.db.rollback()
                outcomes.append({"id": ref, "ok": False, "error_code": "INTERNAL_ERROR"})
        return outcomes

    # === Internals ===

    async def _apply(
        self,
        proposal: Proposal,
        current: ProposalStatus,
        target: ProposalStatus,
        actor_id: Optional[int],
        comment: Optional[str],
    ) -> Proposal:
        snapshot = _snapshot(proposal)
        now = datetime.now(timezone.utc)

        values = {"proposal_status": target, "updated_at": now}
        if target == ProposalStatus.PENDING:
            if current == ProposalStatus.DRAFT and proposal.submitted_at is None:
                values["submitted_at"] = now
        else:
            values["reviewed_at"] = now
            values["reviewed_by_admin_id"] = actor_id
            if target == ProposalStatus.APPROVED:
                values["approved_at"] = now
            if comment:
                values["admin_comments"] = _appended_comment(comment)

        try:
            result = await self.db.execute(
                update(Proposal)
                .where(Proposal.id == snapshot.id, Proposal.proposal_status == current)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.db.rollback()
                raise ConflictError(
                    "Proposal status was changed by someone else",
                    details={"proposal": snapshot.uuid, "expected": current.value, "target": target.value},
                )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise translate_db_error(exc) from exc

        logger.info(f"Proposal {snapshot.uuid}: {current.value} -> {target.value} (actor={actor_id})")

        await self.audit.record(
            snapshot.uuid,
            self._audit_action(current, target),
            actor_id=actor_id,
            note=comment,
            old_values={"status": current.value},
            new_values={"status": target.value, "comment": comment},
        )

        if target == ProposalStatus.PENDING:
            event = "resubmitted" if current == ProposalStatus.REVISION_REQUESTED else "submitted"
            await self._notify(event, snapshot)
        else:
            await self._notify(_NOTIFY_EVENTS[target], snapshot, admin_id=actor_id, comment=comment)

        await self.db.refresh(proposal)
        return proposal

    @staticmethod
    def _audit_action(current: ProposalStatus, target: ProposalStatus) -> str:
        if target == ProposalStatus.PENDING:
            if current == ProposalStatus.REVISION_REQUESTED:
                return "proposal_resubmitted"
            return "proposal_submitted"
        return TRANSITION_AUDIT_ACTIONS[target]

    async def _notify(
        self,
        event: str,
        snapshot: SimpleNamespace,
        admin_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> None:
        try:
            if event in ("submitted", "resubmitted"):
                admin_id = await self._resolve_reviewer()
            await self.notifier.on_proposal_event(
                event,
                snapshot,
                admin_id=admin_id,
                student_id=snapshot.user_id,
                comment=comment,
            )
        except Exception:
            logger.exception(f"Notification fan-out failed for proposal {snapshot.uuid} ({event})")
            await self.db.rollback()

    async def _resolve_reviewer(self) -> Optional[int]:
        if settings.PROPOSAL_REVIEWER_ID:
            return settings.PROPOSAL_REVIEWER_ID

        result = await self.db.execute(
            select(User.id)
            .where(
                User.role.in_([UserRole.ADMIN, UserRole.HEAD_ADMIN]),
                User.is_approved.is_(True),
            )
            .order_by(User.id)
            .limit(1)
        )
        return result.scalar_one_or_none()
