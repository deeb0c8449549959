"""
Database models
"""

from quizhub.models.user import User
from quizhub.models.session import UserSession
from quizhub.models.document import Document
from quizhub.models.quiz import Quiz, Question, QuizShareLink
from quizhub.models.enrollment import Enrollment, QuizAttempt, QuestionResponse
from quizhub.models.group import EducatorStudent, StudentGroup, GroupMember, GroupEnrollment
from quizhub.models.permission import PermissionTemplate
from quizhub.models.admin import ActivityLog, AdminSetting

__all__ = [
    "User",
    "UserSession",
    "Document",
    "Quiz",
    "Question",
    "QuizShareLink",
    "Enrollment",
    "QuizAttempt",
    "QuestionResponse",
    "EducatorStudent",
    "StudentGroup",
    "GroupMember",
    "GroupEnrollment",
    "PermissionTemplate",
    "ActivityLog",
    "AdminSetting",
]
