from typing import Optional, List, Union, Literal
from datetime import datetime, time

from pydantic import AliasChoices, BaseModel, Field

from proposal_workflow.core.constants import (
    NotificationFrequency,
    NotificationPriority,
    NotificationStatus,
)


class NotificationResponse(BaseModel):
    id: int
    uuid: str
    recipient_id: int
    sender_id: Optional[int]
    notification_type: str
    title: str
    message: str
    priority: NotificationPriority
    status: NotificationStatus
    related_proposal_id: Optional[int]
    related_proposal_uuid: Optional[str]
    # ORM attribute is "meta"; the column and the wire name are "metadata"
    meta: Optional[dict] = Field(
        default=None,
        validation_alias=AliasChoices("meta", "metadata"),
        serialization_alias="metadata",
    )
    tags: Optional[List[str]] = None
    expires_at: Optional[datetime]
    delivered_at: Optional[datetime]
    read_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    unread: int


class MarkReadRequest(BaseModel):
    """Omit ids to mark every unread notification"""
    notification_ids: Optional[List[int]] = None


class MarkReadResponse(BaseModel):
    updated: int


class NotificationStats(BaseModel):
    total: int
    unread: int
    read: int
    archived: int
    urgent: int
    high: int
    today: int
    week: int
    month: int


# === Preferences ===
class PreferenceItem(BaseModel):
    notification_type: str = Field(..., min_length=1, max_length=50)
    in_app: Optional[bool] = None
    email: Optional[bool] = None
    sms: Optional[bool] = None
    push: Optional[bool] = None
    frequency: Optional[NotificationFrequency] = None
    quiet_hours_start: Optional[time] = None
    quiet_hours_end: Optional[time] = None
    timezone: Optional[str] = Field(default=None, max_length=50)


class PreferenceUpdate(BaseModel):
    preferences: List[PreferenceItem] = Field(..., min_length=1)


class PreferenceResponse(BaseModel):
    notification_type: str
    in_app: bool
    email: bool
    sms: bool
    push: bool
    frequency: str
    quiet_hours_start: Optional[time]
    quiet_hours_end: Optional[time]
    timezone: Optional[str]

    model_config = {"from_attributes": True}


# === Admin ===
class BroadcastRequest(BaseModel):
    recipients: Union[Literal["all"], List[int]] = "all"
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)
    priority: NotificationPriority = NotificationPriority.NORMAL
    expires_at: Optional[datetime] = None


class BroadcastResponse(BaseModel):
    requested: Optional[int]
    created: int
    notification_ids: List[int]


class CleanupResponse(BaseModel):
    expired: int
    deleted: int
