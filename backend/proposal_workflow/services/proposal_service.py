import logging
from typing import Optional, Union

from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_workflow.core.constants import (
    EDITABLE_PROPOSAL_STATUSES,
    EventStatus,
    ProposalStatus,
    ReportStatus,
)
from proposal_workflow.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    translate_db_error,
)
from proposal_workflow.models.proposal import Proposal
from proposal_workflow.models.user import User
from proposal_workflow.services.audit_service import AuditRecorder

logger = logging.getLogger(__name__)

# Fields owned by the submitter; the workflow never interprets them
EDITABLE_FIELDS = ("organization_name", "contact_person", "contact_email", "event_name")


class ProposalService:
    def __init__(self, db: AsyncSession, audit: AuditRecorder):
        self.db = db
        self.audit = audit

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise translate_db_error(exc) from exc

    async def create_draft(self, user: User, uuid: Optional[str] = None, **fields) -> Proposal:
        proposal = Proposal(
            user_id=user.id,
            proposal_status=ProposalStatus.DRAFT,
            report_status=ReportStatus.DRAFT,
            event_status=EventStatus.SCHEDULED,
            **{key: value for key, value in fields.items() if key in EDITABLE_FIELDS},
        )
        if uuid:
            proposal.uuid = uuid

        self.db.add(proposal)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            if uuid:
                logger.warning(f"Proposal uuid {uuid} already exists")
                raise ConflictError(
                    "A proposal with this uuid already exists",
                    details={"uuid": uuid},
                ) from exc
            raise translate_db_error(exc) from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise translate_db_error(exc) from exc
        await self._commit()
        proposal_uuid = proposal.uuid

        await self.audit.record(
            proposal_uuid,
            "proposal_created",
            actor_id=user.id,
            new_values={"status": ProposalStatus.DRAFT.value},
        )
        await self.db.refresh(proposal)
        return proposal

    async def get_by_uuid(self, proposal_uuid: str) -> Proposal:
        result = await self.db.execute(
            select(Proposal).where(Proposal.uuid == proposal_uuid, Proposal.is_deleted.is_(False))
        )
        proposal = result.scalar_one_or_none()
        if not proposal:
            raise NotFoundError("Proposal", proposal_uuid)
        return proposal

    async def get(self, proposal_id: int) -> Proposal:
        result = await self.db.execute(
            select(Proposal).where(Proposal.id == proposal_id, Proposal.is_deleted.is_(False))
        )
        proposal = result.scalar_one_or_none()
        if not proposal:
            raise NotFoundError("Proposal", str(proposal_id))
        return proposal

    async def resolve(self, proposal_ref: Union[int, str]) -> Proposal:
        """Look a proposal up by internal id or external uuid."""
        if isinstance(proposal_ref, int):
            return await self.get(proposal_ref)
        return await self.get_by_uuid(proposal_ref)

    async def save_draft(self, proposal_uuid: str, user_id: int, **fields) -> Proposal:
        proposal = await self.get_by_uuid(proposal_uuid)

        if proposal.user_id != user_id:
            raise ForbiddenError("You can only edit your own proposals")

        if proposal.proposal_status not in EDITABLE_PROPOSAL_STATUSES:
            raise InvalidTransitionError(proposal.proposal_status.value, "edit")

        old_values = {}
        new_values = {}
        for key, value in fields.items():
            if key in EDITABLE_FIELDS and value is not None and getattr(proposal, key) != value:
                old_values[key] = getattr(proposal, key)
                new_values[key] = value
                setattr(proposal, key, value)

        if not new_values:
            return proposal

        await self._commit()
        await self.audit.record(
            proposal_uuid,
            "proposal_updated",
            actor_id=user_id,
            old_values=old_values,
            new_values=new_values,
        )
        await self.db.refresh(proposal)
        return proposal

    async def soft_delete(self, proposal_uuid: str, user_id: int) -> None:
        proposal = await self.get_by_uuid(proposal_uuid)

        if proposal.user_id != user_id:
            raise ForbiddenError("You can only delete your own proposals")

        proposal.is_deleted = True
        await self._commit()
        await self.audit.record(
            proposal_uuid,
            "proposal_deleted",
            actor_id=user_id,
            old_values={"is_deleted": False},
            new_values={"is_deleted": True},
        )

    async def status_counts(self) -> dict:
        columns = [func.count(Proposal.id)]
        for status in ProposalStatus:
            columns.append(
                func.coalesce(func.sum(case((Proposal.proposal_status == status, 1), else_=0)), 0)
            )

        result = await self.db.execute(
            select(*columns).where(Proposal.is_deleted.is_(False))
        )
        row = result.one()

        counts = {"total": int(row[0] or 0)}
        for status, value in zip(ProposalStatus, row[1:]):
            counts[status.value] = int(value or 0)
        return counts
