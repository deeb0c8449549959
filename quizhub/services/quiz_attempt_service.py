"""
Taking a quiz: start/resume, autosave, submit, abandon and results.

Scores are computed at submit time but only shown once the attempt's window
(start + duration) has passed.
"""

import logging
import math
import random
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from quizhub.core.timezone import utcnow, isoformat_utc
from quizhub.models import User, UserSession, Quiz, Question, Enrollment, QuizAttempt, QuestionResponse
from quizhub.models.enums import QuizStatus, EnrollmentStatus, AttemptStatus
from quizhub.services import session_manager
from quizhub.services.enrollment_service import ensure_educator_link
from quizhub.services.errors import (
    NotFoundError, PermissionDeniedError, ConflictError, ValidationError,
    TooEarlyError, GoneError, QuizHubError,
)
from quizhub.services.grading import grade_answers, grade_for, shuffle_list
from quizhub.services.quiz_scheduling import (
    get_effective_start_time, get_end_time, calculate_availability, format_time_until,
)

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 30


class QuizUnavailableError(QuizHubError):
    status_code = 500


def _get_quiz(db: Session, quiz_id: int) -> Quiz:
    quiz = db.execute(select(Quiz).where(Quiz.id == quiz_id)).scalar_one_or_none()
    if quiz is None:
        raise NotFoundError("Quiz not found")
    return quiz


def _duration(quiz: Quiz) -> int:
    return quiz.duration or DEFAULT_DURATION_MINUTES


def _student_enrollments(db: Session, quiz_id: int, student_id: int) -> List[Enrollment]:
    return db.execute(
        select(Enrollment)
        .where(Enrollment.quiz_id == quiz_id, Enrollment.student_id == student_id)
        .order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
    ).scalars().all()


def _question_payload(question: Question, options: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
    """Student-facing question; never includes the answer key."""
    return {
        "id": question.id,
        "question_text": question.question_text,
        "options": options if options is not None else (question.options or []),
        "difficulty": question.difficulty,
        "topic": question.topic,
        "book": question.book,
        "chapter": question.chapter,
    }


def _ordered_questions(attempt: QuizAttempt, questions: List[Question]) -> List[Dict[str, Any]]:
    by_id = {question.id: question for question in questions}
    ordered = []
    for entry in attempt.question_order or []:
        question = by_id.get(entry.get("questionId"))
        if question is not None:
            ordered.append(_question_payload(question, entry.get("options")))
    if not ordered:
        ordered = [_question_payload(q) for q in sorted(questions, key=lambda q: q.order_index)]
    return ordered


def build_question_order(
    questions: List[Question],
    shuffle: bool,
    seed: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Order shown to the student. A given seed always yields the same order."""
    ordered = sorted(questions, key=lambda q: q.order_index)
    if shuffle:
        ordered = shuffle_list(ordered, random.Random(seed))
    return [{"questionId": q.id, "options": list(q.options or [])} for q in ordered]


def _quiz_response(quiz: Quiz, attempt: QuizAttempt, questions: List[Question]) -> Dict[str, Any]:
    ordered = _ordered_questions(attempt, questions)
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "duration": _duration(quiz),
        "total_questions": len(ordered),
        "questions": ordered,
    }


def _finalize(
    db: Session,
    attempt: QuizAttempt,
    answers: Optional[List[Dict[str, Any]]],
    time_spent: Optional[int],
    timezone: Optional[str],
    now: datetime,
) -> None:
    """Grade, store responses and close the attempt and its enrollment."""
    questions = db.execute(
        select(Question).where(Question.quiz_id == attempt.quiz_id).order_by(Question.order_index)
    ).scalars().all()
    answers = [a for a in (answers or []) if a.get("questionId") != "_autosave_metadata"]
    result = grade_answers(questions, answers)

    for graded in result.answers:
        attempt.responses.append(QuestionResponse(
            question_id=graded.question_id,
            selected_answer=graded.selected,
            is_correct=graded.is_correct,
            time_spent=graded.time_spent,
            marked_for_review=graded.marked_for_review,
            answered_at=now,
        ))

    if time_spent is None:
        time_spent = int((now - attempt.start_time).total_seconds())

    attempt.answers = answers
    attempt.score = result.score
    attempt.total_correct = result.total_correct
    attempt.total_questions = result.total_questions
    attempt.end_time = now
    attempt.time_spent = time_spent
    attempt.timezone = timezone or attempt.timezone
    attempt.status = AttemptStatus.COMPLETED
    attempt.autosave = None

    if attempt.enrollment is not None:
        attempt.enrollment.status = EnrollmentStatus.COMPLETED
        attempt.enrollment.completed_at = now
    db.flush()
    logger.info(
        f"[Quiz submit] attempt {attempt.id} graded: {result.total_correct}/{result.total_questions} "
        f"({result.score}%)"
    )


def start_attempt(
    db: Session,
    quiz_id: int,
    student: User,
    session: Optional[UserSession] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utcnow()
    quiz = _get_quiz(db, quiz_id)
    logger.info(f"[Quiz start] student {student.id} starting quiz {quiz.id}")

    enrollments = _student_enrollments(db, quiz.id, student.id)
    if not enrollments:
        if quiz.status != QuizStatus.PUBLISHED:
            raise PermissionDeniedError("This quiz is not yet published.")
        enrollment = Enrollment(
            quiz_id=quiz.id, student_id=student.id, status=EnrollmentStatus.ENROLLED, enrolled_at=now,
        )
        db.add(enrollment)
        ensure_educator_link(db, quiz.educator_id, student.id)
        db.flush()
        logger.info(f"[Quiz start] auto-enrolled student {student.id} in quiz {quiz.id}")
        enrollments = [enrollment]

    active = next((e for e in enrollments if e.status != EnrollmentStatus.COMPLETED), None)
    if active is None:
        raise PermissionDeniedError("You have completed all available attempts for this quiz.")

    attempts = db.execute(
        select(QuizAttempt)
        .where(QuizAttempt.enrollment_id == active.id)
        .order_by(QuizAttempt.start_time.desc())
    ).scalars().all()

    completed = next((a for a in attempts if a.status == AttemptStatus.COMPLETED), None)
    if completed is not None:
        raise PermissionDeniedError(
            "You have already completed this quiz. Each quiz can only be taken once.",
            {"attempt_id": completed.id},
        )

    in_progress = next((a for a in attempts if a.status == AttemptStatus.IN_PROGRESS), None)
    if in_progress is not None:
        return _resume(db, quiz, active, in_progress, student, session, now)

    if not active.is_reassignment:
        start = get_effective_start_time(quiz)
        if start is None:
            raise TooEarlyError(
                "This quiz has not been scheduled yet. Please check back later or contact your educator.",
                {"scheduling_status": quiz.scheduling_status},
            )
        if now < start:
            raise TooEarlyError(
                "Quiz not yet started",
                {
                    "start_time": isoformat_utc(start),
                    "timezone": quiz.timezone,
                    "time_until_start": format_time_until(start - now),
                },
            )
        end = get_end_time(quiz)
        if now > end:
            raise GoneError(
                "This quiz has already ended and is no longer available.",
                {"end_time": isoformat_utc(end)},
            )

    questions = list(quiz.questions)
    if not questions:
        raise QuizUnavailableError("Quiz has no questions available")

    attempt = QuizAttempt(
        quiz_id=quiz.id,
        student_id=student.id,
        enrollment_id=active.id,
        answers=[],
        start_time=now,
        timezone=student.timezone,
        status=AttemptStatus.IN_PROGRESS,
    )
    db.add(attempt)
    db.flush()

    shuffle = bool(quiz.shuffle_questions) or bool(active.is_reassignment)
    seed = f"{attempt.id}-{active.id}" if active.is_reassignment else str(attempt.id)
    attempt.question_order = build_question_order(questions, shuffle, seed)

    active.status = EnrollmentStatus.IN_PROGRESS
    active.started_at = active.started_at or now
    if session is not None:
        session_manager.start_quiz_session(db, session, quiz.id)
    db.flush()

    logger.info(f"[Quiz start] attempt {attempt.id} created for student {student.id} (shuffled={shuffle})")
    return {
        "attempt_id": attempt.id,
        "quiz": _quiz_response(quiz, attempt, questions),
        "remaining_time": _duration(quiz) * 60,
        "is_reassignment": bool(active.is_reassignment),
        "reassignment_reason": active.reassignment_reason,
        "resumed": False,
    }


def _resume(
    db: Session,
    quiz: Quiz,
    enrollment: Enrollment,
    attempt: QuizAttempt,
    student: User,
    session: Optional[UserSession],
    now: datetime,
) -> Dict[str, Any]:
    elapsed = (now - attempt.start_time).total_seconds()
    remaining = int(_duration(quiz) * 60 - elapsed)
    if remaining <= 0:
        _finalize(db, attempt, attempt.answers, None, student.timezone, now)
        if session is not None:
            session_manager.end_quiz_session(db, session)
        # the request fails but the auto-submission stands
        db.commit()
        raise PermissionDeniedError(
            "Your quiz time has expired. The quiz has been automatically submitted.",
            {"attempt_id": attempt.id},
        )

    if session is not None:
        session_manager.start_quiz_session(db, session, quiz.id)
    logger.info(f"[Quiz start] resuming attempt {attempt.id} with {remaining}s remaining")
    return {
        "attempt_id": attempt.id,
        "quiz": _quiz_response(quiz, attempt, list(quiz.questions)),
        "remaining_time": remaining,
        "is_reassignment": bool(enrollment.is_reassignment),
        "reassignment_reason": enrollment.reassignment_reason,
        "resumed": True,
        "saved_answers": attempt.answers or [],
    }


def _get_own_attempt(db: Session, quiz_id: int, attempt_id: int, student: User) -> QuizAttempt:
    attempt = db.execute(
        select(QuizAttempt).where(
            QuizAttempt.id == attempt_id,
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.student_id == student.id,
        )
    ).scalar_one_or_none()
    if attempt is None:
        raise NotFoundError("Attempt not found")
    return attempt


def save_autosave(
    db: Session,
    quiz_id: int,
    student: User,
    attempt_id: int,
    answers: List[Dict[str, Any]],
    current_question_index: int = 0,
    time_remaining: Optional[int] = None,
) -> Dict[str, Any]:
    attempt = _get_own_attempt(db, quiz_id, attempt_id, student)
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise ValidationError("Attempt already completed", {"status": attempt.status})

    now = utcnow()
    attempt.answers = list(answers or [])
    attempt.autosave = {
        "currentQuestionIndex": current_question_index,
        "timeRemaining": time_remaining,
        "lastAutoSave": isoformat_utc(now),
    }
    db.flush()
    logger.debug(f"[Autosave] attempt {attempt.id}: {len(attempt.answers)} answers")
    return {"success": True, "saved_at": isoformat_utc(now)}


def get_autosave(db: Session, quiz_id: int, student: User) -> Dict[str, Any]:
    attempt = db.execute(
        select(QuizAttempt)
        .where(
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.student_id == student.id,
            QuizAttempt.status == AttemptStatus.IN_PROGRESS,
        )
        .order_by(QuizAttempt.created_at.desc())
    ).scalars().first()
    if attempt is None or not attempt.autosave:
        return {"has_autosave": False, "autosave_data": None}

    return {
        "has_autosave": True,
        "autosave_data": {
            "attempt_id": attempt.id,
            "answers": attempt.answers or [],
            "current_question_index": attempt.autosave.get("currentQuestionIndex") or 0,
            "time_remaining": attempt.autosave.get("timeRemaining"),
            "last_saved": attempt.autosave.get("lastAutoSave"),
        },
    }


def submit_attempt(
    db: Session,
    quiz_id: int,
    student: User,
    attempt_id: int,
    answers: List[Dict[str, Any]],
    time_spent: Optional[int] = None,
    session: Optional[UserSession] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utcnow()
    attempt = _get_own_attempt(db, quiz_id, attempt_id, student)
    if attempt.status == AttemptStatus.COMPLETED:
        raise ConflictError("Quiz has already been submitted", {"attempt_id": attempt.id})
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise ValidationError(f"Attempt is {attempt.status} and cannot be submitted")

    _finalize(db, attempt, answers, time_spent, student.timezone, now)
    if session is not None:
        session_manager.end_quiz_session(db, session)

    return {
        "success": True,
        "attempt_id": attempt.id,
        "message": (
            "Quiz submitted successfully. Results will be available after the quiz time "
            "expires for all students."
        ),
    }


def abandon_attempt(
    db: Session,
    quiz_id: int,
    student: User,
    attempt_id: int,
    session: Optional[UserSession] = None,
) -> Dict[str, Any]:
    attempt = _get_own_attempt(db, quiz_id, attempt_id, student)
    if attempt.status == AttemptStatus.IN_PROGRESS:
        _abandon(attempt, utcnow())
        db.flush()
        logger.info(f"[Quiz abandon] attempt {attempt.id} abandoned by student {student.id}")
    if session is not None:
        session_manager.end_quiz_session(db, session)
    return {"success": True, "message": "Previous attempt abandoned successfully"}


def _abandon(attempt: QuizAttempt, now: datetime) -> None:
    attempt.status = AttemptStatus.ABANDONED
    attempt.end_time = now
    attempt.answers = []
    attempt.autosave = None
    enrollment = attempt.enrollment
    if enrollment is not None and enrollment.status == EnrollmentStatus.IN_PROGRESS:
        enrollment.status = (
            EnrollmentStatus.ABANDONED if enrollment.is_reassignment else EnrollmentStatus.ENROLLED
        )


def clear_quiz_session(
    db: Session,
    quiz_id: int,
    student: User,
    session: Optional[UserSession] = None,
) -> Dict[str, Any]:
    """Abandon every in-progress attempt on the quiz so the student can start fresh."""
    attempts = db.execute(
        select(QuizAttempt).where(
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.student_id == student.id,
            QuizAttempt.status == AttemptStatus.IN_PROGRESS,
        )
    ).scalars().all()
    now = utcnow()
    for attempt in attempts:
        _abandon(attempt, now)
    if session is not None:
        session_manager.end_quiz_session(db, session)
    db.flush()
    return {"success": True, "message": "Session cleared successfully", "cleared_attempts": len(attempts)}


def results_available_at(attempt: QuizAttempt) -> datetime:
    return attempt.start_time + timedelta(minutes=_duration(attempt.quiz))


def get_results(db: Session, attempt_id: int, student: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    attempt = db.execute(select(QuizAttempt).where(QuizAttempt.id == attempt_id)).scalar_one_or_none()
    if attempt is None:
        raise NotFoundError("Quiz attempt not found")
    if attempt.student_id != student.id:
        raise PermissionDeniedError("Unauthorized")

    available_at = results_available_at(attempt)
    if now < available_at:
        minutes = math.ceil((available_at - now).total_seconds() / 60)
        raise TooEarlyError(
            "Results not available yet",
            {
                "message": f"Results will be available after your quiz time expires ({minutes} minutes remaining)",
                "available_at": isoformat_utc(available_at),
            },
        )

    quiz = attempt.quiz
    responses = {response.question_id: response for response in attempt.responses}
    questions = {question.id: question for question in quiz.questions}

    order = attempt.question_order or [
        {"questionId": q.id, "options": q.options} for q in quiz.questions
    ]
    items = []
    for entry in order:
        question = questions.get(entry.get("questionId"))
        if question is None:
            continue
        response = responses.get(question.id)
        items.append({
            "id": question.id,
            "question_text": question.question_text,
            "options": entry.get("options") or question.options,
            "correct_answer": question.correct_answer,
            "selected_answer": response.selected_answer if response else None,
            "is_correct": bool(response and response.is_correct),
            "explanation": question.explanation,
            "book": question.book,
            "chapter": question.chapter,
            "topic": question.topic,
            "time_spent": (response.time_spent if response else None) or 0,
            "marked_for_review": bool(response and response.marked_for_review),
        })

    score = attempt.score or 0
    correct = attempt.total_correct or 0
    total = attempt.total_questions or 0
    grade = grade_for(score)
    return {
        "attempt_id": attempt.id,
        "quiz_id": quiz.id,
        "quiz_title": quiz.title or "Quiz",
        "status": attempt.status,
        "score": score,
        "grade": grade.grade,
        "grade_points": grade.points,
        "grade_description": grade.description,
        "passed": score >= (quiz.passing_score or 70),
        "correct_answers": correct,
        "wrong_answers": total - correct,
        "total_questions": total,
        "time_spent": attempt.time_spent,
        "start_time": isoformat_utc(attempt.start_time),
        "end_time": isoformat_utc(attempt.end_time),
        "questions": items,
    }


def list_results(db: Session, student: User, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Completed attempts; scores stay hidden until each attempt's window closes."""
    now = now or utcnow()
    attempts = db.execute(
        select(QuizAttempt)
        .where(QuizAttempt.student_id == student.id, QuizAttempt.status == AttemptStatus.COMPLETED)
        .order_by(QuizAttempt.end_time.desc())
    ).scalars().all()

    results = []
    for attempt in attempts:
        available = now >= results_available_at(attempt)
        results.append({
            "attempt_id": attempt.id,
            "quiz_id": attempt.quiz_id,
            "quiz_title": attempt.quiz.title,
            "completed_at": isoformat_utc(attempt.end_time),
            "results_available": available,
            "available_at": isoformat_utc(results_available_at(attempt)),
            "score": attempt.score if available else None,
            "grade": grade_for(attempt.score).grade if available else None,
            "total_questions": attempt.total_questions,
        })
    return results


def list_student_quizzes(
    db: Session,
    student: User,
    status_filter: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    now = now or utcnow()
    stmt = (
        select(Enrollment, Quiz)
        .join(Quiz, Quiz.id == Enrollment.quiz_id)
        .where(Enrollment.student_id == student.id)
        .order_by(Enrollment.enrolled_at.desc())
    )
    if status_filter:
        stmt = stmt.where(Enrollment.status == status_filter)

    items = []
    for enrollment, quiz in db.execute(stmt).all():
        attempts = list(enrollment.attempts)
        completed = next((a for a in attempts if a.status == AttemptStatus.COMPLETED), None)
        in_progress = next((a for a in attempts if a.status == AttemptStatus.IN_PROGRESS), None)
        availability = calculate_availability(
            quiz, is_reassignment=bool(enrollment.is_reassignment), attempted=completed is not None, now=now,
        )
        items.append({
            "enrollment_id": enrollment.id,
            "quiz_id": quiz.id,
            "title": quiz.title,
            "description": quiz.description,
            "educator_name": quiz.educator.name if quiz.educator else None,
            "duration": quiz.duration,
            "total_questions": quiz.total_questions,
            "timezone": quiz.timezone,
            "enrollment_status": enrollment.status,
            "is_reassignment": bool(enrollment.is_reassignment),
            "reassignment_reason": enrollment.reassignment_reason,
            "attempted": completed is not None,
            "in_progress_attempt_id": in_progress.id if in_progress else None,
            "completed_attempt_id": completed.id if completed else None,
            "availability": availability.to_dict(),
        })
    return items
