from sqlalchemy import Column, String, Integer, BigInteger, DateTime, Enum, ForeignKey, JSON, func

from proposal_workflow.database import Base
from proposal_workflow.core.constants import AuditActionType


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action_type = Column(
        Enum(
            AuditActionType,
            name="audit_action_type_enum",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
    )
    table_name = Column(String(50), nullable=False)
    record_id = Column(BigInteger, nullable=True)

    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    additional_info = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
