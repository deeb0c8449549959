"""
Quiz model - quizzes, their questions and public share links
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship

from quizhub.core.config import settings
from quizhub.core.timezone import utcnow
from quizhub.db.database import Base
from quizhub.models.enums import QuizStatus, SchedulingStatus, Difficulty


class Quiz(Base):
    """
    A quiz authored by an educator.
    Runs in a fixed window: start_time .. start_time + duration minutes.
    """
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, index=True)
    educator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # Source documents and generation settings
    document_ids = Column(JSON, nullable=False, default=list)
    configuration = Column(JSON, nullable=True)

    # Scheduling
    start_time = Column(DateTime, nullable=True, index=True)
    timezone = Column(String, nullable=False, default=lambda: settings.DEFAULT_TIMEZONE)
    duration = Column(Integer, nullable=False, default=30)  # minutes
    scheduling_status = Column(String, nullable=False, default=SchedulingStatus.LEGACY)
    time_configuration = Column(JSON, nullable=True)
    scheduled_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    scheduled_at = Column(DateTime, nullable=True)

    status = Column(String, nullable=False, default=QuizStatus.DRAFT, index=True)
    total_questions = Column(Integer, nullable=False, default=0)
    passing_score = Column(Integer, nullable=False, default=70)
    shuffle_questions = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    educator = relationship("User", back_populates="quizzes", foreign_keys=[educator_id])
    questions = relationship(
        "Question", back_populates="quiz", cascade="all, delete-orphan",
        order_by="Question.order_index",
    )
    enrollments = relationship("Enrollment", back_populates="quiz", cascade="all, delete-orphan")
    attempts = relationship("QuizAttempt", back_populates="quiz", cascade="all, delete-orphan")
    share_link = relationship(
        "QuizShareLink", back_populates="quiz", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Quiz(id={self.id}, title={self.title}, status={self.status})>"


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)

    question_text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)  # [{"id": "a", "text": "..."}]
    correct_answer = Column(String, nullable=False)  # option id
    explanation = Column(Text, nullable=True)

    difficulty = Column(String, nullable=False, default=Difficulty.INTERMEDIATE)
    blooms_level = Column(String, nullable=True)
    topic = Column(String, nullable=True, index=True)
    book = Column(String, nullable=True)
    chapter = Column(String, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)

    quiz = relationship("Quiz", back_populates="questions")

    def __repr__(self):
        return f"<Question(id={self.id}, quiz_id={self.quiz_id}, order={self.order_index})>"


class QuizShareLink(Base):
    __tablename__ = "quiz_share_links"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, unique=True)
    share_code = Column(String, nullable=False, unique=True, index=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    access_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)

    quiz = relationship("Quiz", back_populates="share_link")

    def __repr__(self):
        return f"<QuizShareLink(quiz_id={self.quiz_id}, code={self.share_code})>"
