"""
Educator permission resolution.

Order: custom per-user permissions, then the assigned template, then the
default set for the user's approval status. Numeric limits use -1 for
unlimited.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

from sqlalchemy.orm import Session

from quizhub.models.enums import UserRole, ApprovalStatus
from quizhub.models.permission import PermissionTemplate
from quizhub.models.user import User
from quizhub.services.errors import PermissionDeniedError

logger = logging.getLogger(__name__)

BOOLEAN_PERMISSIONS = (
    "canPublishQuiz",
    "canAddStudents",
    "canEditQuiz",
    "canDeleteQuiz",
    "canViewAnalytics",
    "canExportData",
)
LIMIT_PERMISSIONS = ("maxStudents", "maxQuizzes", "maxQuestionsPerQuiz")
PERMISSION_KEYS = BOOLEAN_PERMISSIONS + LIMIT_PERMISSIONS

UNLIMITED = -1

DEFAULT_PERMISSIONS: Dict[str, Dict[str, Any]] = {
    "pending": {
        "canPublishQuiz": False,
        "canAddStudents": False,
        "canEditQuiz": False,
        "canDeleteQuiz": False,
        "canViewAnalytics": False,
        "canExportData": False,
        "maxStudents": 0,
        "maxQuizzes": 0,
        "maxQuestionsPerQuiz": 0,
    },
    "approved": {
        "canPublishQuiz": True,
        "canAddStudents": True,
        "canEditQuiz": True,
        "canDeleteQuiz": True,
        "canViewAnalytics": True,
        "canExportData": True,
        "maxStudents": 100,
        "maxQuizzes": 50,
        "maxQuestionsPerQuiz": 100,
    },
    "premium": {
        "canPublishQuiz": True,
        "canAddStudents": True,
        "canEditQuiz": True,
        "canDeleteQuiz": True,
        "canViewAnalytics": True,
        "canExportData": True,
        "maxStudents": UNLIMITED,
        "maxQuizzes": UNLIMITED,
        "maxQuestionsPerQuiz": UNLIMITED,
    },
    "suspended": {
        "canPublishQuiz": False,
        "canAddStudents": False,
        "canEditQuiz": False,
        "canDeleteQuiz": False,
        "canViewAnalytics": True,
        "canExportData": False,
        "maxStudents": 0,
        "maxQuizzes": 0,
        "maxQuestionsPerQuiz": 0,
    },
}

PERMISSION_MESSAGES = {
    "canPublishQuiz": "You don't have permission to publish quizzes. Your account needs approval from an administrator.",
    "canAddStudents": "You don't have permission to add students. Your account needs approval from an administrator.",
    "canEditQuiz": "You don't have permission to edit quizzes. Your account needs approval from an administrator.",
    "canDeleteQuiz": "You don't have permission to delete quizzes. Your account needs approval from an administrator.",
    "canViewAnalytics": "You don't have permission to view analytics. Your account needs approval from an administrator.",
    "canExportData": "You don't have permission to export data. Your account needs approval from an administrator.",
    "maxStudents": "You have reached your maximum student limit. Please contact support to upgrade your account.",
    "maxQuizzes": "You have reached your maximum quiz limit. Please contact support to upgrade your account.",
    "maxQuestionsPerQuiz": "You have reached the maximum questions per quiz limit. Please contact support to upgrade your account.",
}


@dataclass
class LimitCheck:
    allowed: bool
    limit: int
    remaining: int


def default_permissions_for(approval_status: Optional[str]) -> Dict[str, Any]:
    if approval_status == ApprovalStatus.APPROVED:
        return dict(DEFAULT_PERMISSIONS["approved"])
    if approval_status in (ApprovalStatus.REJECTED, ApprovalStatus.SUSPENDED):
        return dict(DEFAULT_PERMISSIONS["suspended"])
    return dict(DEFAULT_PERMISSIONS["pending"])


def normalize_permissions(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fill missing keys from the most restrictive set and drop unknown ones."""
    result = dict(DEFAULT_PERMISSIONS["pending"])
    for key, value in (raw or {}).items():
        if key in BOOLEAN_PERMISSIONS:
            result[key] = bool(value)
        elif key in LIMIT_PERMISSIONS:
            result[key] = int(value)
    return result


def get_user_permissions(db: Session, user: User) -> Dict[str, Any]:
    if user.role == UserRole.ADMIN:
        return dict(DEFAULT_PERMISSIONS["premium"])

    if user.permissions:
        return normalize_permissions(user.permissions)

    if user.permission_template_id:
        template = db.get(PermissionTemplate, user.permission_template_id)
        if template is not None and template.permissions:
            return normalize_permissions(template.permissions)
        logger.warning(
            f"[Permissions] template {user.permission_template_id} missing for user {user.id}, using defaults"
        )

    return default_permissions_for(user.approval_status)


def check_permission(db: Session, user: User, permission: str) -> bool:
    permissions = get_user_permissions(db, user)
    value = permissions.get(permission)
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    return False


def check_limit(db: Session, user: User, limit_type: str, current_count: int) -> LimitCheck:
    limit = get_user_permissions(db, user).get(limit_type, 0)
    if limit == UNLIMITED:
        return LimitCheck(allowed=True, limit=UNLIMITED, remaining=UNLIMITED)
    return LimitCheck(
        allowed=current_count < limit,
        limit=limit,
        remaining=max(0, limit - current_count),
    )


def permission_message(permission: str) -> str:
    return PERMISSION_MESSAGES.get(permission, "You don't have permission to perform this action.")


def require_permission(db: Session, user: User, permission: str) -> None:
    if not check_permission(db, user, permission):
        raise PermissionDeniedError(permission_message(permission), {"permission": permission})


def require_limit(db: Session, user: User, limit_type: str, current_count: int, adding: int = 1) -> LimitCheck:
    """Raise unless ``adding`` more items fit under the limit."""
    result = check_limit(db, user, limit_type, current_count + adding - 1)
    if not result.allowed:
        raise PermissionDeniedError(
            permission_message(limit_type),
            {"limit": result.limit, "current": current_count},
        )
    return result
