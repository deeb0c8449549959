"""
Educator rosters: educator-student links, student groups and group enrollments
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, ForeignKey, Text, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from quizhub.core.timezone import utcnow
from quizhub.db.database import Base
from quizhub.models.enums import LinkStatus


class EducatorStudent(Base):
    __tablename__ = "educator_students"
    __table_args__ = (UniqueConstraint("educator_id", "student_id", name="uq_educator_student"),)

    id = Column(Integer, primary_key=True, index=True)
    educator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False, default=LinkStatus.ACTIVE)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    student = relationship("User", foreign_keys=[student_id])

    def __repr__(self):
        return f"<EducatorStudent(educator_id={self.educator_id}, student_id={self.student_id}, status={self.status})>"


class StudentGroup(Base):
    __tablename__ = "student_groups"

    id = Column(Integer, primary_key=True, index=True)
    educator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    theme = Column(String, nullable=True)
    color = Column(String, nullable=True)
    max_size = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")

    @property
    def active_members(self):
        return [m for m in self.members if m.is_active]

    def __repr__(self):
        return f"<StudentGroup(id={self.id}, name={self.name})>"


class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "student_id", name="uq_group_member"),)

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("student_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False, default="member")
    is_active = Column(Boolean, nullable=False, default=True)
    added_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    added_at = Column(DateTime, default=utcnow)
    removed_at = Column(DateTime, nullable=True)
    removed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    group = relationship("StudentGroup", back_populates="members")
    student = relationship("User", foreign_keys=[student_id])


class GroupEnrollment(Base):
    __tablename__ = "group_enrollments"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("student_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    enrolled_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    excluded_student_ids = Column(JSON, nullable=False, default=list)
    enrolled_at = Column(DateTime, default=utcnow)
