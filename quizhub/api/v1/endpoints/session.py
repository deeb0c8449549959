"""
Session status, extension and quiz-active tracking
"""

from fastapi import APIRouter, HTTPException, status, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session
import logging
from typing import Tuple

from quizhub.api.dependencies import get_current_session, get_session_with_status
from quizhub.db.database import get_db
from quizhub.models.quiz import Quiz
from quizhub.models.session import UserSession
from quizhub.schemas.session import SessionStatusResponse, QuizSessionRequest
from quizhub.services import session_manager
from quizhub.services.errors import QuizHubError

logger = logging.getLogger(__name__)
router = APIRouter()


def _status_response(session: UserSession, current: session_manager.SessionStatus) -> SessionStatusResponse:
    return SessionStatusResponse(
        **current.to_dict(),
        started_at=session.started_at,
        last_activity=session.last_activity,
        role=session.role,
        quiz_id=session.quiz_id if current.quiz_active else None,
    )


@router.get("/status", response_model=SessionStatusResponse)
def get_session_status(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    current = session_manager.evaluate_session(session)
    db.commit()
    return _status_response(session, current)


@router.post("/extend", response_model=SessionStatusResponse)
def extend_session(
    resolved: Tuple[UserSession, session_manager.SessionStatus] = Depends(get_session_with_status),
    db: Session = Depends(get_db)
):
    """409 when the session is not close enough to expiry or out of extensions."""
    session, before = resolved
    try:
        current = session_manager.extend_session(db, session, status=before)
        db.commit()
        return _status_response(session, current)

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Session] extend error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to extend session: {str(e)}"
        )


@router.post("/quiz-start", response_model=SessionStatusResponse)
def start_quiz_session(
    payload: QuizSessionRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    quiz = db.execute(select(Quiz.id).where(Quiz.id == payload.quiz_id)).scalar_one_or_none()
    if quiz is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quiz not found")

    session_manager.start_quiz_session(db, session, payload.quiz_id)
    db.commit()
    return _status_response(session, session_manager.evaluate_session(session))


@router.post("/quiz-end", response_model=SessionStatusResponse)
def end_quiz_session(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    session_manager.end_quiz_session(db, session)
    db.commit()
    return _status_response(session, session_manager.evaluate_session(session))
