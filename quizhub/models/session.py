"""
Server-side login sessions.

A row per login; the JWT only carries its id ("sid"). Idle/absolute expiry and
extensions are evaluated against these columns on every request.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from quizhub.core.timezone import utcnow
from quizhub.db.database import Base


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False)

    started_at = Column(DateTime, nullable=False, default=utcnow)
    last_activity = Column(DateTime, nullable=False, default=utcnow)
    extensions = Column(Integer, nullable=False, default=0)

    # Set while the user is taking a quiz; suspends the idle timeout
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="SET NULL"), nullable=True)
    quiz_started_at = Column(DateTime, nullable=True)

    revoked_at = Column(DateTime, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)

    user = relationship("User", back_populates="sessions")

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def __repr__(self):
        return f"<UserSession(id={self.id}, user_id={self.user_id}, extensions={self.extensions})>"
