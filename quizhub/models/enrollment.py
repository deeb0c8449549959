"""
Enrollment model - student/quiz membership, attempts and graded responses
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, JSON, Float
from sqlalchemy.orm import relationship

from quizhub.core.timezone import utcnow
from quizhub.db.database import Base
from quizhub.models.enums import EnrollmentStatus, AttemptStatus


class Enrollment(Base):
    """
    A student's seat in a quiz.
    Reassignments are separate rows pointing at the original via parent_enrollment_id.
    """
    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String, nullable=False, default=EnrollmentStatus.ENROLLED, index=True)
    enrolled_at = Column(DateTime, default=utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Reassignment
    is_reassignment = Column(Boolean, nullable=False, default=False)
    parent_enrollment_id = Column(
        Integer, ForeignKey("enrollments.id", ondelete="SET NULL"), nullable=True
    )
    reassignment_reason = Column(Text, nullable=True)
    reassigned_at = Column(DateTime, nullable=True)
    reassigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    group_enrollment_id = Column(
        Integer, ForeignKey("group_enrollments.id", ondelete="SET NULL"), nullable=True
    )

    quiz = relationship("Quiz", back_populates="enrollments")
    student = relationship("User", foreign_keys=[student_id])
    attempts = relationship("QuizAttempt", back_populates="enrollment")

    def __repr__(self):
        return (
            f"<Enrollment(id={self.id}, quiz_id={self.quiz_id}, student_id={self.student_id}, "
            f"status={self.status}, reassignment={self.is_reassignment})>"
        )


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    enrollment_id = Column(
        Integer, ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=True, index=True
    )

    # [{"questionId", "answer", "timeSpent", "markedForReview"}]
    answers = Column(JSON, nullable=False, default=list)
    # [{"questionId", "options"}] in the order the student sees them
    question_order = Column(JSON, nullable=True)
    # {"currentQuestionIndex", "timeRemaining", "lastAutoSave"}
    autosave = Column(JSON, nullable=True)

    score = Column(Float, nullable=True)
    total_correct = Column(Integer, nullable=True)
    total_questions = Column(Integer, nullable=True)

    start_time = Column(DateTime, nullable=False, default=utcnow)
    end_time = Column(DateTime, nullable=True)
    time_spent = Column(Integer, nullable=True)  # seconds
    timezone = Column(String, nullable=True)

    status = Column(String, nullable=False, default=AttemptStatus.IN_PROGRESS, index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    quiz = relationship("Quiz", back_populates="attempts")
    enrollment = relationship("Enrollment", back_populates="attempts")
    student = relationship("User", foreign_keys=[student_id])
    responses = relationship(
        "QuestionResponse", back_populates="attempt", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<QuizAttempt(id={self.id}, quiz_id={self.quiz_id}, status={self.status}, score={self.score})>"


class QuestionResponse(Base):
    __tablename__ = "question_responses"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(
        Integer, ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id = Column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    selected_answer = Column(String, nullable=True)
    is_correct = Column(Boolean, nullable=False, default=False)
    time_spent = Column(Integer, nullable=True)
    marked_for_review = Column(Boolean, nullable=False, default=False)
    answered_at = Column(DateTime, default=utcnow)

    attempt = relationship("QuizAttempt", back_populates="responses")
    question = relationship("Question")
