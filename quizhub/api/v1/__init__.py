from fastapi import APIRouter
from quizhub.api.v1.endpoints import (
    admin,
    analytics,
    auth,
    documents,
    educator_quizzes,
    educator_students,
    session,
    share,
    student,
)

api_router = APIRouter()

# Register endpoints
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(session.router, prefix="/session", tags=["session"])
api_router.include_router(documents.router, prefix="/documents", tags=["documents"])
api_router.include_router(educator_quizzes.router, prefix="/educator", tags=["educator-quizzes"])
api_router.include_router(educator_students.router, prefix="/educator", tags=["educator-students"])
api_router.include_router(analytics.router, prefix="/educator/analytics", tags=["educator-analytics"])
api_router.include_router(student.router, prefix="/student", tags=["student"])
api_router.include_router(share.router, prefix="/quiz", tags=["share"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
