from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_workflow.database import get_db
from proposal_workflow.core.security import decode_token
from proposal_workflow.core.exceptions import UnauthorizedError, ForbiddenError
from proposal_workflow.core.constants import UserRole
from proposal_workflow.models.user import User
from proposal_workflow.services.audit_service import AuditRecorder, SqlAlchemyAuditBackend
from proposal_workflow.services.notification_service import NotificationService
from proposal_workflow.services.proposal_service import ProposalService
from proposal_workflow.services.state_machine import ProposalStateMachine

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    payload = decode_token(credentials.credentials)
    if not payload or payload.get("type") != "access":
        raise UnauthorizedError("Invalid or expired access token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError()

    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid or expired access token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise UnauthorizedError("User not found")

    if not user.is_approved:
        raise ForbiddenError("Your account is awaiting approval")

    return user


async def get_current_reviewer(
    current_user: User = Depends(get_current_user),
) -> User:
    if not current_user.is_reviewer:
        raise ForbiddenError("Only reviewers can perform this action")
    return current_user


async def get_current_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    if current_user.role not in (UserRole.ADMIN, UserRole.HEAD_ADMIN):
        raise ForbiddenError("Only administrators can perform this action")
    return current_user


# === Services, built per request around the request's session ===

def get_audit_recorder(db: AsyncSession = Depends(get_db)) -> AuditRecorder:
    return AuditRecorder(SqlAlchemyAuditBackend(db))


def get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_proposal_service(
    db: AsyncSession = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> ProposalService:
    return ProposalService(db, audit)


def get_state_machine(
    db: AsyncSession = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
    notifier: NotificationService = Depends(get_notification_service),
) -> ProposalStateMachine:
    return ProposalStateMachine(db, audit, notifier)
