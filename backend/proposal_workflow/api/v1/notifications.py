from typing import Optional, List

from fastapi import APIRouter, Depends, Query

from proposal_workflow.api.deps import get_current_user, get_notification_service
from proposal_workflow.core.constants import NotificationPriority, NotificationStatus
from proposal_workflow.models.user import User
from proposal_workflow.schemas.notification import (
    MarkReadRequest,
    MarkReadResponse,
    NotificationResponse,
    NotificationStats,
    PreferenceResponse,
    PreferenceUpdate,
    UnreadCountResponse,
)
from proposal_workflow.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    unread_only: bool = Query(default=False),
    priority: Optional[NotificationPriority] = Query(default=None),
    status: Optional[NotificationStatus] = Query(default=None),
    notification_type: Optional[str] = Query(default=None, alias="type"),
    search: Optional[str] = Query(default=None, max_length=100),
    current_user: User = Depends(get_current_user),
    notifier: NotificationService = Depends(get_notification_service),
):
    """Most urgent first, then newest first. Expired notifications are never listed.

    ``search`` matches title or message, case-insensitively.
    """
    items = await notifier.list(
        current_user.id,
        page=page,
        limit=limit,
        unread_only=unread_only,
        priority=priority,
        status=status,
        notification_type=notification_type,
        search=search,
    )
    return [NotificationResponse.model_validate(n) for n in items]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: User = Depends(get_current_user),
    notifier: NotificationService = Depends(get_notification_service),
):
    return UnreadCountResponse(unread=await notifier.unread_count(current_user.id))


@router.get("/stats", response_model=NotificationStats)
async def notification_stats(
    current_user: User = Depends(get_current_user),
    notifier: NotificationService = Depends(get_notification_service),
):
    return await notifier.stats(current_user.id)


@router.post("/mark-read", response_model=MarkReadResponse)
async def mark_read(
    body: MarkReadRequest,
    current_user: User = Depends(get_current_user),
    notifier: NotificationService = Depends(get_notification_service),
):
    updated = await notifier.mark_as_read(current_user.id, body.notification_ids)
    return MarkReadResponse(updated=updated)


@router.get("/preferences", response_model=List[PreferenceResponse])
async def get_preferences(
    current_user: User = Depends(get_current_user),
    notifier: NotificationService = Depends(get_notification_service),
):
    preferences = await notifier.get_preferences(current_user.id)
    return [PreferenceResponse.model_validate(p) for p in preferences]


@router.put("/preferences", response_model=List[PreferenceResponse])
async def update_preferences(
    body: PreferenceUpdate,
    current_user: User = Depends(get_current_user),
    notifier: NotificationService = Depends(get_notification_service),
):
    preferences = await notifier.upsert_preferences(
        current_user.id,
        [item.model_dump(exclude_unset=True) for item in body.preferences],
    )
    return [PreferenceResponse.model_validate(p) for p in preferences]


@router.post("/{notification_id}/archive", response_model=NotificationResponse)
async def archive_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    notifier: NotificationService = Depends(get_notification_service),
):
    notification = await notifier.archive(current_user.id, notification_id)
    return NotificationResponse.model_validate(notification)
