from proposal_workflow.models.user import User
from proposal_workflow.models.proposal import Proposal
from proposal_workflow.models.audit import AuditLog
from proposal_workflow.models.notification import (
    Notification,
    NotificationPreference,
    NotificationDeliveryLog,
)

__all__ = [
    "User",
    "Proposal",
    "AuditLog",
    "Notification",
    "NotificationPreference",
    "NotificationDeliveryLog",
]
