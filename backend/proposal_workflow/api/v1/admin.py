"""
Reviewer and administrator endpoints: proposal decisions, audit trail, notification housekeeping
"""
from fastapi import APIRouter, Depends, Query

from proposal_workflow.api.deps import (
    get_audit_recorder,
    get_current_admin,
    get_current_reviewer,
    get_notification_service,
    get_proposal_service,
    get_state_machine,
)
from proposal_workflow.models.user import User
from proposal_workflow.schemas.audit import AuditActionStats, AuditEntryResponse, AuditExportResponse
from proposal_workflow.schemas.notification import BroadcastRequest, BroadcastResponse, CleanupResponse
from proposal_workflow.schemas.proposal import (
    BulkStatusResponse,
    BulkStatusUpdate,
    CommentCreate,
    ProposalResponse,
    ProposalStatusCounts,
    StatusUpdate,
)
from proposal_workflow.services.audit_service import AuditRecorder
from proposal_workflow.services.notification_service import NotificationService
from proposal_workflow.services.proposal_service import ProposalService
from proposal_workflow.services.state_machine import ProposalStateMachine

router = APIRouter(prefix="/admin", tags=["Admin"])


# === Proposals ===

@router.get("/proposals/stats", response_model=ProposalStatusCounts)
async def proposal_stats(
    current_user: User = Depends(get_current_reviewer),
    service: ProposalService = Depends(get_proposal_service),
):
    return await service.status_counts()


@router.patch("/proposals/bulk-status", response_model=BulkStatusResponse)
async def bulk_update_status(
    body: BulkStatusUpdate,
    current_user: User = Depends(get_current_reviewer),
    state_machine: ProposalStateMachine = Depends(get_state_machine),
):
    """Apply one decision to many proposals; each proposal succeeds or fails on its own."""
    results = await state_machine.bulk_transition(
        body.proposal_ids,
        body.status,
        actor_id=current_user.id,
        comment=body.comment,
    )
    succeeded = sum(1 for r in results if r["ok"])
    return BulkStatusResponse(
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results,
    )


@router.patch("/proposals/{proposal_uuid}/status", response_model=ProposalResponse)
async def update_status(
    proposal_uuid: str,
    body: StatusUpdate,
    current_user: User = Depends(get_current_reviewer),
    state_machine: ProposalStateMachine = Depends(get_state_machine),
):
    """Approve, deny ("rejected" is accepted) or request revision of a pending proposal."""
    proposal = await state_machine.review(
        proposal_uuid,
        body.status,
        reviewer_id=current_user.id,
        comment=body.comment,
    )
    return ProposalResponse.model_validate(proposal)


@router.post("/proposals/{proposal_uuid}/comment", response_model=ProposalResponse)
async def add_comment(
    proposal_uuid: str,
    body: CommentCreate,
    current_user: User = Depends(get_current_reviewer),
    state_machine: ProposalStateMachine = Depends(get_state_machine),
):
    proposal = await state_machine.add_comment(proposal_uuid, current_user.id, body.comment)
    return ProposalResponse.model_validate(proposal)


# === Audit trail ===

@router.get("/proposals/{proposal_uuid}/audit", response_model=list[AuditEntryResponse])
async def proposal_audit(
    proposal_uuid: str,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_reviewer),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    entries = await audit.list(proposal_uuid, limit=limit, offset=offset)
    return [AuditEntryResponse.model_validate(e) for e in entries]


@router.get("/proposals/{proposal_uuid}/audit/stats", response_model=list[AuditActionStats])
async def proposal_audit_stats(
    proposal_uuid: str,
    current_user: User = Depends(get_current_reviewer),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return await audit.stats(proposal_uuid)


@router.get("/proposals/{proposal_uuid}/audit/export", response_model=AuditExportResponse)
async def export_proposal_audit(
    proposal_uuid: str,
    current_user: User = Depends(get_current_reviewer),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """Entries, per-action stats and a debug block, for offline tooling."""
    payload = await audit.export(proposal_uuid)
    response = AuditExportResponse.model_validate(
        {**payload, "entries": [AuditEntryResponse.model_validate(e) for e in payload["entries"]]}
    )
    await audit.record(proposal_uuid, "audit_exported", actor_id=current_user.id)
    return response


# === Notifications ===

@router.post("/notifications/broadcast", response_model=BroadcastResponse, status_code=201)
async def broadcast_notification(
    body: BroadcastRequest,
    current_user: User = Depends(get_current_admin),
    notifier: NotificationService = Depends(get_notification_service),
):
    """Send one notification per recipient; "all" targets every approved user."""
    created = await notifier.broadcast(
        body.recipients,
        body.title,
        body.message,
        priority=body.priority,
        expires_at=body.expires_at,
        sender_id=current_user.id,
    )
    return BroadcastResponse(
        requested=len(body.recipients) if isinstance(body.recipients, list) else None,
        created=len(created),
        notification_ids=[n.id for n in created],
    )


@router.post("/notifications/cleanup", response_model=CleanupResponse)
async def cleanup_notifications(
    current_user: User = Depends(get_current_admin),
    notifier: NotificationService = Depends(get_notification_service),
):
    return await notifier.cleanup()
