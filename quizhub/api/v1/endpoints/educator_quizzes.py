"""
Educator quiz endpoints
Authoring, scheduling, publishing, enrollment and results
"""

from fastapi import APIRouter, HTTPException, status, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session
from typing import Optional
import logging

from quizhub.api.dependencies import require_educator
from quizhub.core.config import settings
from quizhub.db.database import get_db
from quizhub.models.enrollment import QuizAttempt
from quizhub.models.enums import UserRole
from quizhub.models.user import User
from quizhub.schemas.enrollment import EnrollRequest, BulkEnrollRequest, AssignGroupRequest, ReassignRequest
from quizhub.schemas.quiz import (
    QuizCreateRequest,
    QuizUpdateRequest,
    QuizScheduleRequest,
    QuestionUpdateRequest,
    QuestionValidateRequest,
    QuestionResponse,
    QuizSummary,
    QuizListResponse,
    QuizCreateResponse,
    ShareLinkResponse,
)
from quizhub.services import analytics_service, enrollment_service, quiz_service, permissions
from quizhub.services.enrollment_service import DEFAULT_REASSIGNMENT_REASON, get_owned_quiz
from quizhub.services.errors import QuizHubError
from quizhub.services.grading import options_distribution
from quizhub.services.lightrag_service import LightRAGService, get_lightrag_service
from quizhub.services.question_validator import QuestionValidator, validation_summary
from quizhub.services.quiz_generator import QuizGenerator, get_quiz_generator

logger = logging.getLogger(__name__)
router = APIRouter()


def _summary(quiz, enrollment_count: int = 0) -> QuizSummary:
    summary = QuizSummary.model_validate(quiz)
    summary.enrollment_count = enrollment_count
    return summary


@router.post("/quizzes", response_model=QuizCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_quiz(
    payload: QuizCreateRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db),
    generator: QuizGenerator = Depends(get_quiz_generator),
    lightrag: LightRAGService = Depends(get_lightrag_service)
):
    """
    Generate a draft quiz from the educator's processed documents.

    Questions come from the generation webhook (or built-in samples when it is
    unavailable) and are checked against the LightRAG knowledge graph.
    """
    try:
        logger.info(f"[Quiz create] educator {current_user.id} creating '{payload.title}'")
        draft = quiz_service.QuizDraft(**payload.model_dump())
        result = await quiz_service.create_quiz(
            db, current_user, draft, generator, QuestionValidator(lightrag)
        )
        db.commit()
        return QuizCreateResponse(
            quiz=quiz_service.quiz_detail(result["quiz"]),
            used_fallback=result["used_fallback"],
            message=result["message"],
            validation=result["validation"],
        )

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Quiz create] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create quiz: {str(e)}"
        )


@router.get("/quizzes", response_model=QuizListResponse)
def list_quizzes(
    status_filter: Optional[str] = Query(None, alias="status", description="draft, published, completed or archived"),
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    rows = quiz_service.list_quizzes(db, current_user, status_filter)
    return QuizListResponse(
        quizzes=[_summary(row["quiz"], row["enrollment_count"]) for row in rows],
        total=len(rows),
    )


@router.get("/quizzes/{quiz_id}")
def get_quiz(
    quiz_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    """Quiz with its questions and answer key."""
    quiz = get_owned_quiz(db, quiz_id, current_user)
    return quiz_service.quiz_detail(quiz, include_answers=True)


@router.patch("/quizzes/{quiz_id}", response_model=QuizSummary)
def update_quiz(
    quiz_id: int,
    payload: QuizUpdateRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    quiz_service.update_quiz(db, current_user, quiz, **payload.model_dump(exclude_unset=True))
    db.commit()
    return _summary(quiz, len(quiz.enrollments))


@router.delete("/quizzes/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_quiz(
    quiz_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    quiz_service.delete_quiz(db, current_user, quiz)
    db.commit()
    return None


@router.post("/quizzes/{quiz_id}/schedule")
def schedule_quiz(
    quiz_id: int,
    payload: QuizScheduleRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    """Set or move the start time. Legacy and already-started quizzes cannot be rescheduled."""
    try:
        quiz = get_owned_quiz(db, quiz_id, current_user)
        quiz_service.schedule_quiz(db, current_user, quiz, payload.start_time, payload.timezone)
        db.commit()
        return quiz_service.quiz_detail(quiz, include_answers=False)

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Quiz schedule] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to schedule quiz: {str(e)}"
        )


@router.post("/quizzes/{quiz_id}/publish", response_model=QuizSummary)
def publish_quiz(
    quiz_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    quiz_service.publish_quiz(db, current_user, quiz)
    db.commit()
    return _summary(quiz, len(quiz.enrollments))


@router.post("/quizzes/{quiz_id}/archive", response_model=QuizSummary)
def archive_quiz(
    quiz_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    quiz_service.archive_quiz(db, current_user, quiz)
    db.commit()
    return _summary(quiz, len(quiz.enrollments))


# Questions

@router.put("/quizzes/{quiz_id}/questions/{question_id}", response_model=QuestionResponse)
def update_question(
    quiz_id: int,
    question_id: int,
    payload: QuestionUpdateRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    changes = payload.model_dump(exclude_unset=True)
    question = quiz_service.update_question(db, current_user, quiz, question_id, **changes)
    db.commit()
    return question


@router.post("/questions/validate")
async def validate_questions(
    payload: QuestionValidateRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db),
    lightrag: LightRAGService = Depends(get_lightrag_service)
):
    """
    Check questions against the knowledge graph without saving anything.

    ``single`` with exactly one question returns that validation on its own;
    otherwise the response carries every validation, a summary and the
    suggestions keyed like the validations.
    """
    try:
        results = await quiz_service.validate_questions(
            db,
            current_user,
            QuestionValidator(lightrag),
            [item.model_dump() for item in payload.questions],
            payload.question_ids,
        )

        if payload.single and len(results) == 1:
            result = next(iter(results.values()))
            return {"success": True, "validation": result.to_dict(), "suggestions": result.suggestions}

        return {
            "success": True,
            "validations": {key: result.to_dict() for key, result in results.items()},
            "summary": validation_summary(results),
            "suggestions": {key: result.suggestions for key, result in results.items()},
        }

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Validate] error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to validate questions: {str(e)}"
        )


@router.post("/quizzes/{quiz_id}/questions/{question_id}/shuffle", response_model=QuestionResponse)
def shuffle_question_options(
    quiz_id: int,
    question_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    question = quiz_service.shuffle_question_options(db, current_user, quiz, question_id)
    db.commit()
    return question


@router.post("/quizzes/{quiz_id}/shuffle-options")
def shuffle_all_options(
    quiz_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    """Shuffle every question's options; returns the new correct-answer distribution."""
    quiz = get_owned_quiz(db, quiz_id, current_user)
    distribution = quiz_service.shuffle_all_options(db, current_user, quiz)
    db.commit()
    return distribution


@router.get("/quizzes/{quiz_id}/options-distribution")
def get_options_distribution(
    quiz_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    return options_distribution(quiz.questions)


# Sharing and enrollment

@router.post("/quizzes/{quiz_id}/share", response_model=ShareLinkResponse)
def get_share_link(
    quiz_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    link = enrollment_service.get_or_create_share_link(db, quiz, current_user.id)
    db.commit()
    share_url = None
    if settings.SHARE_LINK_BASE_URL:
        share_url = f"{settings.SHARE_LINK_BASE_URL.rstrip('/')}/quiz/share/{link.share_code}"
    return ShareLinkResponse(
        share_code=link.share_code,
        share_url=share_url,
        access_count=link.access_count or 0,
        created_at=link.created_at,
    )


@router.get("/quizzes/{quiz_id}/enrollments")
def list_enrollments(
    quiz_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    enrollments = enrollment_service.list_quiz_enrollments(db, quiz)
    return {"quiz_id": quiz.id, "enrollments": enrollments, "total": len(enrollments)}


@router.post("/quizzes/{quiz_id}/enroll", status_code=status.HTTP_201_CREATED)
def enroll_student(
    quiz_id: int,
    payload: EnrollRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    enrollment = enrollment_service.enroll_student(db, quiz, payload.student_id, educator=current_user)
    db.commit()
    return {
        "enrollment_id": enrollment.id,
        "quiz_id": quiz.id,
        "student_id": enrollment.student_id,
        "status": enrollment.status,
    }


@router.post("/quizzes/{quiz_id}/enroll/bulk")
def bulk_enroll(
    quiz_id: int,
    payload: BulkEnrollRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    """Enroll many students; already-enrolled ones are skipped rather than rejected."""
    try:
        quiz = get_owned_quiz(db, quiz_id, current_user)
        result = enrollment_service.bulk_enroll(db, current_user, quiz, payload.student_ids)
        db.commit()
        return result.to_dict()

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Enrollment] bulk enroll error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to enroll students: {str(e)}"
        )


@router.post("/quizzes/{quiz_id}/assign-group")
def assign_group(
    quiz_id: int,
    payload: AssignGroupRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    quiz = get_owned_quiz(db, quiz_id, current_user)
    result = enrollment_service.assign_group(
        db, current_user, quiz, payload.group_id, payload.excluded_student_ids
    )
    db.commit()
    return result


@router.post("/quizzes/{quiz_id}/reassign")
def reassign_quiz(
    quiz_id: int,
    payload: ReassignRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    """Give students who missed a published quiz another attempt."""
    try:
        logger.info(f"[Reassign] educator {current_user.id} reassigning quiz {quiz_id}")
        quiz = get_owned_quiz(db, quiz_id, current_user)
        result = enrollment_service.reassign_quiz(
            db, current_user, quiz, payload.student_ids, payload.reason or DEFAULT_REASSIGNMENT_REASON
        )
        db.commit()
        return {
            "success": True,
            "message": f"Quiz reassigned to {len(result.reassigned)} student(s)",
            **result.to_dict(),
        }

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Reassign] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to reassign quiz: {str(e)}"
        )


# Results

@router.get("/quizzes/{quiz_id}/results")
def get_quiz_results(
    quiz_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    permissions.require_permission(db, current_user, "canViewAnalytics")
    quiz = get_owned_quiz(db, quiz_id, current_user)
    return analytics_service.quiz_results(db, quiz)


@router.get("/attempts/{attempt_id}")
def get_attempt_detail(
    attempt_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    attempt = db.execute(select(QuizAttempt).where(QuizAttempt.id == attempt_id)).scalar_one_or_none()
    if attempt is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quiz attempt not found")
    if attempt.quiz.educator_id != current_user.id and current_user.role != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this attempt")
    return analytics_service.attempt_detail(db, attempt)
