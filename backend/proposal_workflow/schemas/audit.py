from typing import Optional, List, Any
from datetime import datetime

from pydantic import BaseModel

from proposal_workflow.core.constants import AuditActionType


class AuditEntryResponse(BaseModel):
    id: int
    user_id: Optional[int]
    action_type: AuditActionType
    table_name: str
    record_id: Optional[int]
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None
    additional_info: Optional[Any] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditActionStats(BaseModel):
    action_type: AuditActionType
    count: int
    first_at: Optional[datetime]
    last_at: Optional[datetime]


class AuditExportDebug(BaseModel):
    backend: str
    entry_count: int
    action_types: List[str]
    generated_by: str


class AuditExportResponse(BaseModel):
    version: str
    exported_at: datetime
    proposal_uuid: str
    proposal_id: int
    entries: List[AuditEntryResponse]
    stats: List[AuditActionStats]
    debug: AuditExportDebug
