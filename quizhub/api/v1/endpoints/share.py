"""
Public share links
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quizhub.api.dependencies import require_student
from quizhub.db.database import get_db
from quizhub.models.user import User
from quizhub.services import enrollment_service
from quizhub.services.quiz_scheduling import format_scheduling

router = APIRouter()


@router.get("/share/{share_code}")
def get_shared_quiz(share_code: str, db: Session = Depends(get_db)):
    """Public quiz info behind a share code. No questions are exposed."""
    link = enrollment_service.resolve_share_code(db, share_code)
    quiz = link.quiz
    return {
        "quiz_id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "educator_name": quiz.educator.name if quiz.educator else None,
        "duration": quiz.duration,
        "total_questions": quiz.total_questions,
        "status": quiz.status,
        "scheduling": format_scheduling(quiz),
    }


@router.post("/share/{share_code}/enroll")
def enroll_with_share_code(
    share_code: str,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db)
):
    result = enrollment_service.enroll_via_share_code(db, share_code, current_user)
    db.commit()
    return result
