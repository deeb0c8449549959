"""
Student endpoints
Quiz list, taking a quiz (start/autosave/submit/abandon), results and progress
"""

from fastapi import APIRouter, HTTPException, status, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging

from quizhub.api.dependencies import get_current_session, require_student
from quizhub.db.database import get_db
from quizhub.models.session import UserSession
from quizhub.models.user import User
from quizhub.schemas.attempt import (
    AutosaveRequest,
    AutosaveResponse,
    SubmitRequest,
    SubmitResponse,
    AttemptRequest,
)
from quizhub.services import analytics_service, enrollment_service, quiz_attempt_service
from quizhub.services.errors import QuizHubError

logger = logging.getLogger(__name__)
router = APIRouter()


def _answers(items) -> list:
    return [item.model_dump() for item in items]


@router.get("/quizzes")
def list_my_quizzes(
    status_filter: Optional[str] = Query(None, alias="status", description="Enrollment status filter"),
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db)
):
    quizzes = quiz_attempt_service.list_student_quizzes(db, current_user, status_filter)
    return {"quizzes": quizzes, "total": len(quizzes)}


@router.post("/quizzes/{quiz_id}/start")
def start_quiz(
    quiz_id: int,
    current_user: User = Depends(require_student),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """
    Start or resume an attempt.

    Returns the questions in the attempt's stored order, without the answer
    key, and the seconds left on the clock.
    """
    try:
        result = quiz_attempt_service.start_attempt(db, quiz_id, current_user, session)
        db.commit()
        return result

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Quiz start] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to start quiz: {str(e)}"
        )


@router.get("/quizzes/{quiz_id}/autosave", response_model=AutosaveResponse)
def get_autosave(
    quiz_id: int,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db)
):
    return quiz_attempt_service.get_autosave(db, quiz_id, current_user)


@router.post("/quizzes/{quiz_id}/autosave")
def autosave(
    quiz_id: int,
    payload: AutosaveRequest,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db)
):
    result = quiz_attempt_service.save_autosave(
        db,
        quiz_id,
        current_user,
        payload.attempt_id,
        _answers(payload.answers),
        payload.current_question_index,
        payload.time_remaining,
    )
    db.commit()
    return result


@router.post("/quizzes/{quiz_id}/submit", response_model=SubmitResponse)
def submit_quiz(
    quiz_id: int,
    payload: SubmitRequest,
    current_user: User = Depends(require_student),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """Grade and close the attempt. Scores are released once the quiz window ends."""
    try:
        logger.info(f"[Quiz submit] student {current_user.id} submitting attempt {payload.attempt_id}")
        result = quiz_attempt_service.submit_attempt(
            db,
            quiz_id,
            current_user,
            payload.attempt_id,
            _answers(payload.answers),
            payload.time_spent,
            session,
        )
        db.commit()
        return result

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Quiz submit] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to submit quiz: {str(e)}"
        )


@router.post("/quizzes/{quiz_id}/abandon")
def abandon_quiz(
    quiz_id: int,
    payload: AttemptRequest,
    current_user: User = Depends(require_student),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    result = quiz_attempt_service.abandon_attempt(db, quiz_id, current_user, payload.attempt_id, session)
    db.commit()
    return result


@router.post("/quizzes/{quiz_id}/clear-session")
def clear_quiz_session(
    quiz_id: int,
    current_user: User = Depends(require_student),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    result = quiz_attempt_service.clear_quiz_session(db, quiz_id, current_user, session)
    db.commit()
    return result


# Results

@router.get("/results")
def list_results(
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db)
):
    results = quiz_attempt_service.list_results(db, current_user)
    return {"results": results, "total": len(results)}


@router.get("/results/{attempt_id}")
def get_result(
    attempt_id: int,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db)
):
    return quiz_attempt_service.get_results(db, attempt_id, current_user)


# Groups and progress

@router.get("/groups")
def list_my_groups(
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db)
):
    groups = enrollment_service.groups_for_student(db, current_user)
    return {"groups": groups, "total": len(groups)}


@router.get("/progress/stats")
def get_progress_stats(
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db)
):
    return analytics_service.student_stats(db, current_user)


@router.get("/progress/analytics")
def get_progress_analytics(
    recent: int = Query(10, ge=1, le=50, description="Number of recent results"),
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db)
):
    return analytics_service.student_analytics(db, current_user, recent)
