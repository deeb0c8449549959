"""
Educator analytics
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from quizhub.api.dependencies import require_educator
from quizhub.db.database import get_db
from quizhub.models.user import User
from quizhub.services import analytics_service, permissions

router = APIRouter()


def require_analytics(
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
) -> User:
    permissions.require_permission(db, current_user, "canViewAnalytics")
    return current_user


@router.get("/overview")
def get_overview(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(require_analytics),
    db: Session = Depends(get_db)
):
    return analytics_service.educator_overview(db, current_user, days)


@router.get("/quizzes")
def get_quiz_performance(
    current_user: User = Depends(require_analytics),
    db: Session = Depends(get_db)
):
    return {"quizzes": analytics_service.quiz_performance(db, current_user)}


@router.get("/students")
def get_student_summaries(
    current_user: User = Depends(require_analytics),
    db: Session = Depends(get_db)
):
    return {"students": analytics_service.student_summaries(db, current_user)}


@router.get("/topics")
def get_topic_analysis(
    current_user: User = Depends(require_analytics),
    db: Session = Depends(get_db)
):
    """Correct-answer rate per topic, weakest first."""
    return {"topics": analytics_service.topic_analysis(db, current_user)}


@router.get("/trend")
def get_score_trend(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(require_analytics),
    db: Session = Depends(get_db)
):
    return {"days": days, "trend": analytics_service.score_trend(db, current_user, days)}
