import uuid

from sqlalchemy import Column, String, Integer, Boolean, Text, DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import relationship

from proposal_workflow.database import Base
from proposal_workflow.core.constants import ProposalStatus, ReportStatus, EventStatus


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Proposal(Base):
    """Event proposal submitted for review"""
    __tablename__ = "proposals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, nullable=False, index=True, default=lambda: str(uuid.uuid4()))

    # Owner (submitter)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Organization / contact details, opaque to the workflow
    organization_name = Column(String(255), nullable=True)
    contact_person = Column(String(255), nullable=True)
    contact_email = Column(String(255), nullable=True)
    event_name = Column(String(255), nullable=True)

    # Status management
    proposal_status = Column(
        Enum(ProposalStatus, name="proposal_status_enum", values_callable=_values),
        nullable=False,
        default=ProposalStatus.DRAFT,
        index=True,
    )
    report_status = Column(
        Enum(ReportStatus, name="report_status_enum", values_callable=_values),
        nullable=False,
        default=ReportStatus.DRAFT,
    )
    event_status = Column(
        Enum(EventStatus, name="event_status_enum", values_callable=_values),
        nullable=False,
        default=EventStatus.SCHEDULED,
    )

    # Review information
    admin_comments = Column(Text, nullable=True)
    reviewed_by_admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    # Meta
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship("User", back_populates="proposals", foreign_keys=[user_id])
