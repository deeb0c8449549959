"""
Educator-side quiz management: creation with generated questions,
editing, scheduling and publishing.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from quizhub.core.config import settings
from quizhub.core.timezone import utcnow, is_valid_timezone, to_naive_utc, isoformat_utc
from quizhub.models import User, Quiz, Question, Enrollment
from quizhub.models.enums import QuizStatus, SchedulingStatus, DocumentStatus, Difficulty, BloomsLevel
from quizhub.services import permissions
from quizhub.services.document_service import owned_documents
from quizhub.services.errors import ValidationError, ConflictError, NotFoundError
from quizhub.services.grading import shuffle_list, options_distribution
from quizhub.services.question_validator import QuestionValidator, QuestionToValidate, validation_summary
from quizhub.services.quiz_generator import QuizGenerator, GenerationRequest
from quizhub.services.quiz_scheduling import (
    can_publish, can_reschedule, validate_start_time, apply_schedule, format_scheduling,
)

logger = logging.getLogger(__name__)


@dataclass
class QuizDraft:
    title: str
    document_ids: List[int]
    description: Optional[str] = None
    question_count: int = 10
    duration: int = 30
    difficulty: str = Difficulty.INTERMEDIATE
    blooms_levels: List[str] = field(default_factory=lambda: [BloomsLevel.KNOWLEDGE])
    topics: List[str] = field(default_factory=list)
    books: List[str] = field(default_factory=list)
    chapters: List[str] = field(default_factory=list)
    scheduling_mode: str = SchedulingStatus.LEGACY
    start_time: Optional[datetime] = None
    timezone: Optional[str] = None
    passing_score: int = 70
    shuffle_questions: bool = False
    validate_questions: bool = True


def count_quizzes(db: Session, educator: User) -> int:
    return db.execute(select(func.count(Quiz.id)).where(Quiz.educator_id == educator.id)).scalar_one()


def _check_schedule(draft: QuizDraft, timezone: str) -> Optional[datetime]:
    if draft.scheduling_mode == SchedulingStatus.DEFERRED:
        return None
    if draft.scheduling_mode != SchedulingStatus.LEGACY:
        raise ValidationError(f"Unknown scheduling mode: {draft.scheduling_mode}")
    if draft.start_time is None:
        raise ValidationError("Start time is required unless scheduling is deferred")
    start = to_naive_utc(draft.start_time, timezone)
    decision = validate_start_time(start)
    if not decision.allowed:
        raise ValidationError(decision.reason)
    return start


async def create_quiz(
    db: Session,
    educator: User,
    draft: QuizDraft,
    generator: QuizGenerator,
    validator: Optional[QuestionValidator] = None,
) -> Dict[str, Any]:
    permissions.require_permission(db, educator, "canPublishQuiz")
    permissions.require_limit(db, educator, "maxQuizzes", count_quizzes(db, educator))
    permissions.require_limit(db, educator, "maxQuestionsPerQuiz", 0, adding=draft.question_count)

    timezone = draft.timezone or educator.timezone or settings.DEFAULT_TIMEZONE
    if not is_valid_timezone(timezone):
        raise ValidationError(f"Invalid timezone: {timezone}")
    start = _check_schedule(draft, timezone)

    documents = owned_documents(db, educator, draft.document_ids)
    if not documents:
        raise ValidationError("At least one document is required")
    not_ready = [d.filename for d in documents if d.status != DocumentStatus.PROCESSED]
    if not_ready:
        raise ValidationError("Documents must finish processing before generating questions", {"documents": not_ready})

    request = GenerationRequest(
        title=draft.title,
        description=draft.description,
        document_ids=[d.id for d in documents],
        document_metadata=[
            {"id": d.id, "filename": d.filename, "lightragDocumentId": d.rag_document_id}
            for d in documents
        ],
        question_count=draft.question_count,
        topics=draft.topics,
        books=draft.books,
        chapters=draft.chapters,
        difficulty=draft.difficulty,
        blooms_levels=draft.blooms_levels,
        time_limit=draft.duration,
    )
    generated = await generator.generate(request)

    now = utcnow()
    quiz = Quiz(
        educator_id=educator.id,
        title=draft.title,
        description=draft.description,
        document_ids=request.document_ids,
        configuration={
            "difficulty": draft.difficulty,
            "bloomsLevels": draft.blooms_levels,
            "topics": draft.topics,
            "books": draft.books,
            "chapters": draft.chapters,
            "questionCount": draft.question_count,
        },
        start_time=start,
        timezone=timezone,
        duration=draft.duration,
        scheduling_status=draft.scheduling_mode,
        status=QuizStatus.DRAFT,
        passing_score=draft.passing_score,
        shuffle_questions=draft.shuffle_questions,
    )
    if start is not None:
        quiz.time_configuration = {
            "startTime": isoformat_utc(start),
            "timezone": timezone,
            "duration": draft.duration,
            "configuredAt": isoformat_utc(now),
            "configuredBy": educator.id,
            "isLegacy": True,
        }
    for item in generated.questions:
        quiz.questions.append(Question(
            question_text=item.question_text,
            options=item.options,
            correct_answer=item.correct_answer,
            explanation=item.explanation,
            difficulty=item.difficulty,
            blooms_level=item.blooms_level,
            topic=item.topic,
            book=item.book,
            chapter=item.chapter,
            order_index=item.order_index,
        ))
    quiz.total_questions = len(generated.questions)
    db.add(quiz)
    db.flush()
    logger.info(
        f"[Quiz create] quiz {quiz.id} created with {quiz.total_questions} questions "
        f"(fallback={generated.used_fallback})"
    )

    summary = None
    if validator is not None and draft.validate_questions and not generated.used_fallback:
        results = await validator.validate_questions([
            QuestionToValidate(q.id, q.question_text, q.options, q.correct_answer, q.explanation)
            for q in quiz.questions
        ])
        summary = validation_summary(results)
        summary["results"] = {qid: result.to_dict() for qid, result in results.items()}

    return {
        "quiz": quiz,
        "used_fallback": generated.used_fallback,
        "message": generated.message,
        "validation": summary,
    }


def list_quizzes(db: Session, educator: User, status: Optional[str] = None) -> List[Dict[str, Any]]:
    stmt = select(Quiz).where(Quiz.educator_id == educator.id)
    if status:
        stmt = stmt.where(Quiz.status == status)
    quizzes = db.execute(stmt.order_by(Quiz.created_at.desc())).scalars().all()

    counts = dict(db.execute(
        select(Enrollment.quiz_id, func.count(Enrollment.id))
        .join(Quiz, Quiz.id == Enrollment.quiz_id)
        .where(Quiz.educator_id == educator.id)
        .group_by(Enrollment.quiz_id)
    ).all())
    return [{"quiz": quiz, "enrollment_count": counts.get(quiz.id, 0)} for quiz in quizzes]


def quiz_detail(quiz: Quiz, include_answers: bool = True) -> Dict[str, Any]:
    questions = []
    for question in quiz.questions:
        item = {
            "id": question.id,
            "question_text": question.question_text,
            "options": question.options,
            "difficulty": question.difficulty,
            "blooms_level": question.blooms_level,
            "topic": question.topic,
            "book": question.book,
            "chapter": question.chapter,
            "order_index": question.order_index,
        }
        if include_answers:
            item["correct_answer"] = question.correct_answer
            item["explanation"] = question.explanation
        questions.append(item)
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "status": quiz.status,
        "duration": quiz.duration,
        "passing_score": quiz.passing_score,
        "shuffle_questions": quiz.shuffle_questions,
        "total_questions": quiz.total_questions,
        "document_ids": quiz.document_ids,
        "configuration": quiz.configuration,
        "scheduling": format_scheduling(quiz),
        "created_at": quiz.created_at,
        "questions": questions,
    }


def _require_editable(quiz: Quiz) -> None:
    if quiz.status in QuizStatus.CLOSED:
        raise ConflictError(f"Cannot edit a {quiz.status} quiz")


def update_quiz(db: Session, educator: User, quiz: Quiz, **changes) -> Quiz:
    permissions.require_permission(db, educator, "canEditQuiz")
    _require_editable(quiz)
    for key in ("title", "description", "duration", "passing_score", "shuffle_questions"):
        value = changes.get(key)
        if value is not None:
            setattr(quiz, key, value)
    if changes.get("duration") is not None and quiz.time_configuration:
        quiz.time_configuration = {**quiz.time_configuration, "duration": quiz.duration}
    db.flush()
    return quiz


def delete_quiz(db: Session, educator: User, quiz: Quiz) -> None:
    permissions.require_permission(db, educator, "canDeleteQuiz")
    db.delete(quiz)
    db.flush()
    logger.info(f"[Quiz delete] quiz {quiz.id} deleted by {educator.id}")


def schedule_quiz(
    db: Session,
    educator: User,
    quiz: Quiz,
    start_time: datetime,
    timezone: Optional[str] = None,
) -> Quiz:
    permissions.require_permission(db, educator, "canEditQuiz")
    timezone = timezone or quiz.timezone or settings.DEFAULT_TIMEZONE
    if not is_valid_timezone(timezone):
        raise ValidationError(f"Invalid timezone: {timezone}")

    if quiz.scheduling_status == SchedulingStatus.LEGACY:
        raise ValidationError("Legacy quizzes cannot be rescheduled")
    if quiz.start_time is not None or (quiz.time_configuration or {}).get("startTime"):
        decision = can_reschedule(quiz)
        if not decision.allowed:
            raise ValidationError(decision.reason)

    start = to_naive_utc(start_time, timezone)
    decision = validate_start_time(start)
    if not decision.allowed:
        raise ValidationError(decision.reason)

    apply_schedule(quiz, start, timezone, educator.id)
    db.flush()
    logger.info(f"[Quiz schedule] quiz {quiz.id} scheduled for {isoformat_utc(start)} ({timezone})")
    return quiz


def publish_quiz(db: Session, educator: User, quiz: Quiz) -> Quiz:
    permissions.require_permission(db, educator, "canPublishQuiz")
    decision = can_publish(quiz)
    if not decision.allowed:
        raise ValidationError(decision.reason)
    if not quiz.questions:
        raise ValidationError("Cannot publish a quiz without questions")
    quiz.status = QuizStatus.PUBLISHED
    db.flush()
    logger.info(f"[Quiz publish] quiz {quiz.id} published")
    return quiz


def archive_quiz(db: Session, educator: User, quiz: Quiz) -> Quiz:
    permissions.require_permission(db, educator, "canEditQuiz")
    if quiz.status == QuizStatus.ARCHIVED:
        raise ConflictError("Quiz is already archived")
    quiz.status = QuizStatus.ARCHIVED
    db.flush()
    return quiz


def _get_question(quiz: Quiz, question_id: int) -> Question:
    question = next((q for q in quiz.questions if q.id == question_id), None)
    if question is None:
        raise ValidationError("Question does not belong to this quiz")
    return question


def update_question(db: Session, educator: User, quiz: Quiz, question_id: int, **changes) -> Question:
    permissions.require_permission(db, educator, "canEditQuiz")
    _require_editable(quiz)
    question = _get_question(quiz, question_id)

    options = changes.get("options")
    if options is not None:
        if len(options) < 2:
            raise ValidationError("A question needs at least two options")
        ids = [str(o["id"]).lower() for o in options]
        if len(set(ids)) != len(ids):
            raise ValidationError("Option ids must be unique")
        question.options = [{"id": str(o["id"]).lower(), "text": o["text"]} for o in options]

    correct = changes.get("correct_answer")
    if correct is not None:
        question.correct_answer = str(correct).lower()
    if question.correct_answer not in {o["id"] for o in question.options}:
        raise ValidationError("Correct answer must match one of the option ids")

    for key in ("question_text", "explanation", "difficulty", "blooms_level", "topic", "book", "chapter"):
        if changes.get(key) is not None:
            setattr(question, key, changes[key])
    db.flush()
    return question


def shuffle_question_options(
    db: Session,
    educator: User,
    quiz: Quiz,
    question_id: int,
    rng: Optional[random.Random] = None,
) -> Question:
    permissions.require_permission(db, educator, "canEditQuiz")
    _require_editable(quiz)
    question = _get_question(quiz, question_id)
    # ids travel with their text, so correct_answer stays valid
    question.options = shuffle_list(question.options or [], rng)
    db.flush()
    return question


def shuffle_all_options(
    db: Session,
    educator: User,
    quiz: Quiz,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    permissions.require_permission(db, educator, "canEditQuiz")
    _require_editable(quiz)
    rng = rng or random.Random()
    for question in quiz.questions:
        question.options = shuffle_list(question.options or [], rng)
    db.flush()
    return options_distribution(quiz.questions)


def _question_to_validate(key, question_text, options, correct_answer, explanation) -> QuestionToValidate:
    options = [{"id": str(o["id"]).lower(), "text": o["text"]} for o in options]
    return QuestionToValidate(key, question_text, options, str(correct_answer).lower(), explanation)


async def validate_questions(
    db: Session,
    educator: User,
    validator: QuestionValidator,
    questions: List[Dict[str, Any]],
    question_ids: List[int],
) -> Dict[Any, Any]:
    """
    Check inline and saved questions against the knowledge graph.

    Inline questions are keyed by their ``id`` (or list position), saved ones
    by their question id. Saved questions must belong to the educator's quizzes.
    """
    batch = [
        _question_to_validate(
            item.get("id") if item.get("id") is not None else index,
            item["question_text"], item["options"], item["correct_answer"], item.get("explanation"),
        )
        for index, item in enumerate(questions)
    ]

    if question_ids:
        stored = db.execute(
            select(Question)
            .join(Quiz, Quiz.id == Question.quiz_id)
            .where(Question.id.in_(question_ids), Quiz.educator_id == educator.id)
        ).scalars().all()
        missing = sorted(set(question_ids) - {q.id for q in stored})
        if missing:
            raise NotFoundError("Question not found", {"question_ids": missing})
        batch.extend(
            _question_to_validate(q.id, q.question_text, q.options or [], q.correct_answer, q.explanation)
            for q in stored
        )

    if not batch:
        raise ValidationError("Questions array is required")

    results = await validator.validate_questions(batch)
    logger.info(f"[Validate] educator {educator.id} checked {len(results)} questions")
    return results
