from sqlalchemy import Column, String, Boolean, DateTime, Enum, Integer, func
from sqlalchemy.orm import relationship

from proposal_workflow.database import Base
from proposal_workflow.core.constants import UserRole, REVIEWER_ROLES


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(
        Enum(UserRole, name="user_role_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.STUDENT,
    )
    is_approved = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    proposals = relationship("Proposal", back_populates="owner", foreign_keys="Proposal.user_id")

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES
