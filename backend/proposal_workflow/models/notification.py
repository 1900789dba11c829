import uuid

from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    Text,
    Time,
    DateTime,
    Enum,
    ForeignKey,
    JSON,
    UniqueConstraint,
    Index,
    func,
)

from proposal_workflow.database import Base
from proposal_workflow.core.constants import NotificationPriority, NotificationStatus


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_recipient_status", "recipient_id", "status"),
        Index("idx_notifications_recipient_priority", "recipient_id", "priority"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))

    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    notification_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    priority = Column(
        Enum(NotificationPriority, name="notification_priority_enum", values_callable=_values),
        nullable=False,
        default=NotificationPriority.NORMAL,
    )
    status = Column(
        Enum(NotificationStatus, name="notification_status_enum", values_callable=_values),
        nullable=False,
        default=NotificationStatus.PENDING,
    )

    related_proposal_id = Column(Integer, ForeignKey("proposals.id", ondelete="SET NULL"), nullable=True)
    related_proposal_uuid = Column(String(36), nullable=True)

    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, default=dict)
    tags = Column(JSON, default=list)

    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "notification_type", name="notification_preferences_user_type_unique"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)

    in_app = Column(Boolean, default=True, nullable=False)
    email = Column(Boolean, default=True, nullable=False)
    sms = Column(Boolean, default=False, nullable=False)
    push = Column(Boolean, default=True, nullable=False)
    frequency = Column(String(20), default="immediate", nullable=False)

    quiet_hours_start = Column(Time, nullable=True)
    quiet_hours_end = Column(Time, nullable=True)
    timezone = Column(String(50), default="UTC")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class NotificationDeliveryLog(Base):
    __tablename__ = "notification_delivery_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False, index=True)
    delivery_channel = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    error_message = Column(Text, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
