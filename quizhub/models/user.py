"""
User model - students, educators and the admin account
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship

from quizhub.core.config import settings
from quizhub.core.timezone import utcnow
from quizhub.db.database import Base
from quizhub.models.enums import UserRole, ApprovalStatus


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)

    role = Column(String, nullable=False, default=UserRole.STUDENT, index=True)
    timezone = Column(String, nullable=False, default=lambda: settings.DEFAULT_TIMEZONE)

    # Educator approval workflow
    approval_status = Column(String, nullable=False, default=ApprovalStatus.APPROVED, index=True)
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Custom override; takes precedence over the template
    permissions = Column(JSON, nullable=True)
    permission_template_id = Column(
        Integer,
        ForeignKey("permission_templates.id", ondelete="SET NULL", use_alter=True, name="fk_users_permission_template_id"),
        nullable=True,
    )

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    permission_template = relationship("PermissionTemplate", foreign_keys=[permission_template_id])
    documents = relationship("Document", back_populates="educator", cascade="all, delete-orphan")
    quizzes = relationship(
        "Quiz", back_populates="educator", cascade="all, delete-orphan",
        foreign_keys="Quiz.educator_id",
    )
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_educator(self) -> bool:
        return self.role in UserRole.EDUCATOR_ROLES

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
