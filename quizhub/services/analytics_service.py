"""
Read-only reporting for educators, students and the admin dashboard.

Only completed attempts count towards scores, and a student sees their own
scores only once the quiz window has closed.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, date
from typing import List, Dict, Any, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from quizhub.core.timezone import utcnow
from quizhub.models import (
    User, Quiz, Question, Enrollment, QuizAttempt, QuestionResponse, Document, ActivityLog,
)
from quizhub.models.enums import AttemptStatus, UserRole
from quizhub.services.quiz_attempt_service import results_available_at

logger = logging.getLogger(__name__)

STREAK_LOOKBACK_DAYS = 30


def _average(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def _completed_attempts_for_educator(db: Session, educator_id: int, since: Optional[datetime] = None):
    stmt = (
        select(QuizAttempt)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .where(Quiz.educator_id == educator_id, QuizAttempt.status == AttemptStatus.COMPLETED)
    )
    if since is not None:
        stmt = stmt.where(QuizAttempt.end_time >= since)
    return db.execute(stmt).scalars().all()


def quiz_performance(db: Session, educator: User) -> List[Dict[str, Any]]:
    quizzes = db.execute(
        select(Quiz).where(Quiz.educator_id == educator.id).order_by(Quiz.created_at.desc())
    ).scalars().all()

    rows = []
    for quiz in quizzes:
        scores = [a.score or 0 for a in quiz.attempts if a.status == AttemptStatus.COMPLETED]
        passing = quiz.passing_score or 70
        passed = sum(1 for score in scores if score >= passing)
        rows.append({
            "quiz_id": quiz.id,
            "title": quiz.title,
            "status": quiz.status,
            "enrolled": len(quiz.enrollments),
            "attempts": len(scores),
            "average_score": _average(scores),
            "highest_score": max(scores) if scores else None,
            "lowest_score": min(scores) if scores else None,
            "pass_rate": round(passed / len(scores) * 100, 2) if scores else 0.0,
            "passing_score": passing,
        })
    return rows


def quiz_results(db: Session, quiz: Quiz) -> Dict[str, Any]:
    """Per-student outcomes for one quiz."""
    rows = db.execute(
        select(QuizAttempt, User)
        .join(User, User.id == QuizAttempt.student_id)
        .where(QuizAttempt.quiz_id == quiz.id)
        .order_by(QuizAttempt.start_time.desc())
    ).all()

    attempts = []
    scores = []
    for attempt, student in rows:
        if attempt.status == AttemptStatus.COMPLETED:
            scores.append(attempt.score or 0)
        attempts.append({
            "attempt_id": attempt.id,
            "student_id": student.id,
            "student_name": student.name,
            "student_email": student.email,
            "status": attempt.status,
            "score": attempt.score,
            "total_correct": attempt.total_correct,
            "total_questions": attempt.total_questions,
            "time_spent": attempt.time_spent,
            "start_time": attempt.start_time,
            "end_time": attempt.end_time,
            "is_reassignment": bool(attempt.enrollment and attempt.enrollment.is_reassignment),
        })

    passing = quiz.passing_score or 70
    return {
        "quiz_id": quiz.id,
        "title": quiz.title,
        "attempts": attempts,
        "summary": {
            "completed": len(scores),
            "average_score": _average(scores),
            "highest_score": max(scores) if scores else None,
            "lowest_score": min(scores) if scores else None,
            "pass_rate": round(sum(1 for s in scores if s >= passing) / len(scores) * 100, 2) if scores else 0.0,
        },
    }


def attempt_detail(db: Session, attempt: QuizAttempt) -> Dict[str, Any]:
    responses = {r.question_id: r for r in attempt.responses}
    return {
        "attempt_id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "quiz_title": attempt.quiz.title,
        "student_id": attempt.student_id,
        "student_name": attempt.student.name if attempt.student else None,
        "status": attempt.status,
        "score": attempt.score,
        "total_correct": attempt.total_correct,
        "total_questions": attempt.total_questions,
        "time_spent": attempt.time_spent,
        "start_time": attempt.start_time,
        "end_time": attempt.end_time,
        "responses": [
            {
                "question_id": question.id,
                "question_text": question.question_text,
                "options": question.options,
                "correct_answer": question.correct_answer,
                "selected_answer": responses[question.id].selected_answer if question.id in responses else None,
                "is_correct": bool(question.id in responses and responses[question.id].is_correct),
                "time_spent": responses[question.id].time_spent if question.id in responses else None,
                "topic": question.topic,
            }
            for question in attempt.quiz.questions
        ],
    }


def student_summaries(db: Session, educator: User) -> List[Dict[str, Any]]:
    per_student: Dict[int, List[QuizAttempt]] = defaultdict(list)
    for attempt in _completed_attempts_for_educator(db, educator.id):
        per_student[attempt.student_id].append(attempt)

    if not per_student:
        return []
    students = {
        s.id: s for s in db.execute(select(User).where(User.id.in_(list(per_student)))).scalars().all()
    }
    summaries = []
    for student_id, attempts in per_student.items():
        scores = [a.score or 0 for a in attempts]
        latest = max(attempts, key=lambda a: a.end_time or a.start_time)
        summaries.append({
            "student_id": student_id,
            "name": students[student_id].name if student_id in students else None,
            "email": students[student_id].email if student_id in students else None,
            "quizzes_completed": len(attempts),
            "average_score": _average(scores),
            "best_score": max(scores),
            "last_activity": latest.end_time or latest.start_time,
        })
    summaries.sort(key=lambda row: row["average_score"], reverse=True)
    return summaries


def _topic_accuracy(rows) -> List[Dict[str, Any]]:
    totals: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
    for topic, is_correct in rows:
        bucket = totals[topic or "General"]
        bucket[1] += 1
        if is_correct:
            bucket[0] += 1
    result = [
        {
            "topic": topic,
            "correct": correct,
            "total": total,
            "accuracy": round(correct / total * 100, 2) if total else 0.0,
        }
        for topic, (correct, total) in totals.items()
    ]
    result.sort(key=lambda row: row["accuracy"])
    return result


def topic_analysis(db: Session, educator: User) -> List[Dict[str, Any]]:
    """Correct-answer rate per question topic, weakest first."""
    rows = db.execute(
        select(Question.topic, QuestionResponse.is_correct)
        .join(QuestionResponse, QuestionResponse.question_id == Question.id)
        .join(Quiz, Quiz.id == Question.quiz_id)
        .where(Quiz.educator_id == educator.id)
    ).all()
    return _topic_accuracy(rows)


def score_trend(db: Session, educator: User, days: int = 30, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or utcnow()
    since = now - timedelta(days=days)
    per_day: Dict[date, List[float]] = defaultdict(list)
    for attempt in _completed_attempts_for_educator(db, educator.id, since):
        if attempt.end_time is not None:
            per_day[attempt.end_time.date()].append(attempt.score or 0)
    return [
        {"date": day.isoformat(), "attempts": len(scores), "average_score": _average(scores)}
        for day, scores in sorted(per_day.items())
    ]


def educator_overview(db: Session, educator: User, days: int = 30) -> Dict[str, Any]:
    performance = quiz_performance(db, educator)
    completed = sum(row["attempts"] for row in performance)
    all_scores = [a.score or 0 for a in _completed_attempts_for_educator(db, educator.id)]
    return {
        "total_quizzes": len(performance),
        "total_students": len(student_summaries(db, educator)),
        "total_attempts": completed,
        "average_score": _average(all_scores),
        "quizzes": performance,
        "topics": topic_analysis(db, educator),
        "trend": score_trend(db, educator, days),
    }


# Students

def _completed_for_student(db: Session, student: User) -> List[QuizAttempt]:
    return db.execute(
        select(QuizAttempt)
        .where(QuizAttempt.student_id == student.id, QuizAttempt.status == AttemptStatus.COMPLETED)
        .order_by(QuizAttempt.end_time.desc())
    ).scalars().all()


def _streak(days_with_activity, today: date) -> int:
    streak = 0
    for offset in range(STREAK_LOOKBACK_DAYS):
        if today - timedelta(days=offset) in days_with_activity:
            streak += 1
        elif streak > 0:
            break
    return streak


def _released(attempts: List[QuizAttempt], now: datetime) -> List[QuizAttempt]:
    """Attempts whose quiz window has closed, so their scores may be shown."""
    return [a for a in attempts if now >= results_available_at(a)]


def student_stats(db: Session, student: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    enrollments = db.execute(
        select(Enrollment).where(Enrollment.student_id == student.id)
    ).scalars().all()
    attempts = _completed_for_student(db, student)
    released = _released(attempts, now)
    scores = [a.score or 0 for a in released]
    passed = sum(1 for a in released if (a.score or 0) >= (a.quiz.passing_score or 70))
    return {
        "total_quizzes": len(enrollments),
        "completed_quizzes": len(attempts),
        "pending_results": len(attempts) - len(released),
        "average_score": round(sum(scores) / len(scores)) if scores else 0,
        "best_score": max(scores) if scores else 0,
        "passed_quizzes": passed,
        # minutes
        "total_time_spent": sum(round((a.time_spent or 0) / 60) for a in attempts),
        "recent_streak": _streak({a.end_time.date() for a in attempts if a.end_time}, now.date()),
    }


def student_analytics(db: Session, student: User, recent: int = 10,
                      now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    released = _released(_completed_for_student(db, student), now)
    rows = []
    if released:
        rows = db.execute(
            select(Question.topic, QuestionResponse.is_correct)
            .join(QuestionResponse, QuestionResponse.question_id == Question.id)
            .where(QuestionResponse.attempt_id.in_([a.id for a in released]))
        ).all()
    return {
        "topics": _topic_accuracy(rows),
        "recent_results": [
            {
                "attempt_id": a.id,
                "quiz_id": a.quiz_id,
                "quiz_title": a.quiz.title,
                "score": a.score,
                "completed_at": a.end_time,
            }
            for a in released[:recent]
        ],
    }


# Admin

def _counts_by(db: Session, column, *where) -> Dict[str, int]:
    stmt = select(column, func.count()).group_by(column)
    for clause in where:
        stmt = stmt.where(clause)
    return {key: count for key, count in db.execute(stmt).all()}


def platform_stats(db: Session, recent_activity: int = 20) -> Dict[str, Any]:
    average = db.execute(
        select(func.avg(QuizAttempt.score)).where(QuizAttempt.status == AttemptStatus.COMPLETED)
    ).scalar()
    activity = db.execute(
        select(ActivityLog).order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(recent_activity)
    ).scalars().all()
    return {
        "users_by_role": _counts_by(db, User.role),
        "educators_by_status": _counts_by(db, User.approval_status, User.role.in_(UserRole.EDUCATOR_ROLES)),
        "quizzes_by_status": _counts_by(db, Quiz.status),
        "enrollments_by_status": _counts_by(db, Enrollment.status),
        "attempts_by_status": _counts_by(db, QuizAttempt.status),
        "total_documents": db.execute(select(func.count(Document.id))).scalar_one(),
        "average_score": round(float(average), 2) if average is not None else 0.0,
        "recent_activity": [
            {
                "id": entry.id,
                "user_id": entry.user_id,
                "action_type": entry.action_type,
                "entity_type": entry.entity_type,
                "entity_id": entry.entity_id,
                "details": entry.details,
                "created_at": entry.created_at,
            }
            for entry in activity
        ],
    }
