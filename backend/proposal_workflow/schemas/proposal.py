from typing import Optional, List, Union
from datetime import datetime

from pydantic import BaseModel, Field

from proposal_workflow.core.constants import ProposalStatus, ReportStatus, EventStatus


# === Drafts ===
class ProposalCreate(BaseModel):
    """New draft; a client may choose its own uuid"""
    uuid: Optional[str] = Field(default=None, min_length=1, max_length=36)
    organization_name: Optional[str] = Field(default=None, max_length=255)
    contact_person: Optional[str] = Field(default=None, max_length=255)
    contact_email: Optional[str] = Field(default=None, max_length=255)
    event_name: Optional[str] = Field(default=None, max_length=255)


class ProposalUpdate(BaseModel):
    organization_name: Optional[str] = Field(default=None, max_length=255)
    contact_person: Optional[str] = Field(default=None, max_length=255)
    contact_email: Optional[str] = Field(default=None, max_length=255)
    event_name: Optional[str] = Field(default=None, max_length=255)


class ProposalResponse(BaseModel):
    id: int
    uuid: str
    user_id: Optional[int]
    organization_name: Optional[str]
    contact_person: Optional[str]
    contact_email: Optional[str]
    event_name: Optional[str]
    proposal_status: ProposalStatus
    report_status: ReportStatus
    event_status: EventStatus
    admin_comments: Optional[str]
    reviewed_by_admin_id: Optional[int]
    submitted_at: Optional[datetime]
    reviewed_at: Optional[datetime]
    approved_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


# === Review ===
class StatusUpdate(BaseModel):
    """Status is free text so aliases such as "rejected" are accepted"""
    status: str = Field(..., min_length=1, max_length=50)
    comment: Optional[str] = Field(default=None, max_length=5000)


class CommentCreate(BaseModel):
    comment: str = Field(..., min_length=1, max_length=5000)


class BulkStatusUpdate(BaseModel):
    proposal_ids: List[Union[int, str]] = Field(..., min_length=1, max_length=100)
    status: str = Field(..., min_length=1, max_length=50)
    comment: Optional[str] = Field(default=None, max_length=5000)


class BulkOutcome(BaseModel):
    id: Union[int, str]
    ok: bool
    status: Optional[str] = None
    error_code: Optional[str] = None


class BulkStatusResponse(BaseModel):
    succeeded: int
    failed: int
    results: List[BulkOutcome]


class ProposalStatusCounts(BaseModel):
    total: int
    draft: int
    pending: int
    approved: int
    denied: int
    revision_requested: int
