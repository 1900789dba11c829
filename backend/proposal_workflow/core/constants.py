import enum


class UserRole(str, enum.Enum):
    """User roles"""
    HEAD_ADMIN = "head_admin"     # full control, also reviews
    ADMIN = "admin"               # reviews proposals
    REVIEWER = "reviewer"         # reviews proposals, no user management
    STUDENT = "student"           # submits proposals
    PARTNER = "partner"           # community partner, submits proposals


REVIEWER_ROLES = (UserRole.HEAD_ADMIN, UserRole.ADMIN, UserRole.REVIEWER)


class ProposalStatus(str, enum.Enum):
    """Proposal lifecycle"""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    REVISION_REQUESTED = "revision_requested"


class ReportStatus(str, enum.Enum):
    """Post-event accomplishment report lifecycle"""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    NOT_APPLICABLE = "not_applicable"


class EventStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"


# Allowed edges keyed by current status
PROPOSAL_TRANSITIONS = {
    ProposalStatus.DRAFT: frozenset({ProposalStatus.PENDING}),
    ProposalStatus.PENDING: frozenset({
        ProposalStatus.APPROVED,
        ProposalStatus.DENIED,
        ProposalStatus.REVISION_REQUESTED,
    }),
    ProposalStatus.REVISION_REQUESTED: frozenset({ProposalStatus.PENDING}),
    ProposalStatus.APPROVED: frozenset(),
    ProposalStatus.DENIED: frozenset(),
}

# Proposals that can still be edited by their owner
EDITABLE_PROPOSAL_STATUSES = (ProposalStatus.DRAFT, ProposalStatus.REVISION_REQUESTED)

# Accepted spellings for incoming status values
PROPOSAL_STATUS_ALIASES = {
    "rejected": ProposalStatus.DENIED,
    "reject": ProposalStatus.DENIED,
    "approve": ProposalStatus.APPROVED,
    "submitted": ProposalStatus.PENDING,
}


class AuditActionType(str, enum.Enum):
    """Closed set stored in audit_logs.action_type"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    VIEW = "VIEW"
    EXPORT = "EXPORT"


AUDIT_ACTION_MAP = {
    "proposal_created": AuditActionType.CREATE,
    "report_created": AuditActionType.CREATE,
    "proposal_updated": AuditActionType.UPDATE,
    "proposal_submitted": AuditActionType.UPDATE,
    "proposal_resubmitted": AuditActionType.UPDATE,
    "proposal_revision_requested": AuditActionType.UPDATE,
    "comment_added": AuditActionType.UPDATE,
    "report_submitted": AuditActionType.UPDATE,
    "report_updated": AuditActionType.UPDATE,
    "proposal_approved": AuditActionType.APPROVE,
    "report_approved": AuditActionType.APPROVE,
    "proposal_rejected": AuditActionType.REJECT,
    "proposal_denied": AuditActionType.REJECT,
    "report_rejected": AuditActionType.REJECT,
    "proposal_deleted": AuditActionType.DELETE,
    "proposal_viewed": AuditActionType.VIEW,
    "proposal_exported": AuditActionType.EXPORT,
    "audit_exported": AuditActionType.EXPORT,
    "user_login": AuditActionType.LOGIN,
    "user_logout": AuditActionType.LOGOUT,
}

# Audit action name written for each workflow edge, keyed by target status
TRANSITION_AUDIT_ACTIONS = {
    ProposalStatus.APPROVED: "proposal_approved",
    ProposalStatus.DENIED: "proposal_rejected",
    ProposalStatus.REVISION_REQUESTED: "proposal_revision_requested",
}


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


# Sort weight, highest first
PRIORITY_RANK = {
    NotificationPriority.URGENT: 4,
    NotificationPriority.HIGH: 3,
    NotificationPriority.NORMAL: 2,
    NotificationPriority.LOW: 1,
}


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    READ = "read"
    ARCHIVED = "archived"
    EXPIRED = "expired"


UNREAD_NOTIFICATION_STATUSES = (NotificationStatus.PENDING, NotificationStatus.DELIVERED)


class NotificationType(str, enum.Enum):
    PROPOSAL_SUBMITTED = "proposal_submitted"
    PROPOSAL_APPROVED = "proposal_approved"
    PROPOSAL_REJECTED = "proposal_rejected"
    PROPOSAL_REVISION_REQUESTED = "proposal_revision_requested"
    PROPOSAL_COMMENT = "proposal_comment"
    PROPOSAL_STATUS_CHANGE = "proposal_status_change"
    SYSTEM_UPDATE = "system_update"
    USER_REGISTRATION = "user_registration"


class DeliveryChannel(str, enum.Enum):
    IN_APP = "in_app"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class NotificationFrequency(str, enum.Enum):
    IMMEDIATE = "immediate"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


DEFAULT_NOTIFICATION_PREFERENCE = {
    "in_app": True,
    "email": True,
    "sms": False,
    "push": True,
    "frequency": NotificationFrequency.IMMEDIATE.value,
}
