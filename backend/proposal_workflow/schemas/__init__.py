from proposal_workflow.schemas.proposal import (
    ProposalCreate,
    ProposalUpdate,
    ProposalResponse,
    StatusUpdate,
    CommentCreate,
    BulkStatusUpdate,
    BulkOutcome,
    BulkStatusResponse,
    ProposalStatusCounts,
)
from proposal_workflow.schemas.audit import (
    AuditEntryResponse,
    AuditActionStats,
    AuditExportResponse,
)
from proposal_workflow.schemas.notification import (
    NotificationResponse,
    UnreadCountResponse,
    MarkReadRequest,
    MarkReadResponse,
    NotificationStats,
    PreferenceItem,
    PreferenceUpdate,
    PreferenceResponse,
    BroadcastRequest,
    BroadcastResponse,
    CleanupResponse,
)

__all__ = [
    # Proposal
    "ProposalCreate",
    "ProposalUpdate",
    "ProposalResponse",
    "StatusUpdate",
    "CommentCreate",
    "BulkStatusUpdate",
    "BulkOutcome",
    "BulkStatusResponse",
    "ProposalStatusCounts",
    # Audit
    "AuditEntryResponse",
    "AuditActionStats",
    "AuditExportResponse",
    # Notification
    "NotificationResponse",
    "UnreadCountResponse",
    "MarkReadRequest",
    "MarkReadResponse",
    "NotificationStats",
    "PreferenceItem",
    "PreferenceUpdate",
    "PreferenceResponse",
    "BroadcastRequest",
    "BroadcastResponse",
    "CleanupResponse",
]
