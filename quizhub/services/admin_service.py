"""
Admin context: super-admin login, educator approval workflow, student
oversight and platform settings.

The super admin is configured through the environment. Logging in creates
(or upgrades) a matching user row so that audit entries have an owner.
"""

import logging
from datetime import timedelta
from typing import Optional, Dict, Any, List, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from quizhub.core.config import settings
from quizhub.core.security import hash_password, verify_password, create_admin_token
from quizhub.core.timezone import utcnow
from quizhub.models import User, AdminSetting, Enrollment, QuizAttempt
from quizhub.models.enums import UserRole, ApprovalStatus
from quizhub.services import permission_templates
from quizhub.services.activity_log import log_activity
from quizhub.services.enrollment_service import ensure_educator_link
from quizhub.services.errors import NotFoundError, ValidationError, ConfigurationError
from quizhub.services.permissions import (
    DEFAULT_PERMISSIONS, normalize_permissions, get_user_permissions,
)
from quizhub.services.session_manager import (
    get_session_config, clear_session_config_cache, SECURITY_SETTINGS_KEY,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


class AdminAuthError(Exception):
    """Login rejected; the message is safe to show."""


def _super_admin_hash() -> str:
    if settings.SUPER_ADMIN_PASSWORD_HASH:
        return settings.SUPER_ADMIN_PASSWORD_HASH
    if settings.SUPER_ADMIN_PASSWORD:
        return hash_password(settings.SUPER_ADMIN_PASSWORD)
    raise ConfigurationError("Super admin credentials are not configured")


def authenticate_super_admin(
    db: Session,
    email: str,
    password: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> User:
    email = (email or "").strip().lower()
    context = {"email": email, "ipAddress": ip_address, "userAgent": user_agent}

    if not settings.SUPER_ADMIN_EMAIL or email != settings.SUPER_ADMIN_EMAIL.strip().lower():
        log_activity(db, None, "failed_admin_login", "auth", None, {**context, "reason": "invalid_email"},
                     ip_address, user_agent)
        db.commit()
        raise AdminAuthError(INVALID_CREDENTIALS)

    if not verify_password(password, _super_admin_hash()):
        log_activity(db, None, "failed_admin_login", "auth", None, {**context, "reason": "invalid_password"},
                     ip_address, user_agent)
        db.commit()
        raise AdminAuthError(INVALID_CREDENTIALS)

    admin = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if admin is None:
        admin = User(
            name="Super Admin",
            email=email,
            role=UserRole.ADMIN,
            approval_status=ApprovalStatus.APPROVED,
            permissions=dict(DEFAULT_PERMISSIONS["premium"]),
        )
        db.add(admin)
        db.flush()
        logger.info(f"[Admin auth] created super admin user {admin.id}")
    elif admin.role != UserRole.ADMIN:
        admin.role = UserRole.ADMIN
        admin.approval_status = ApprovalStatus.APPROVED
        db.flush()
        logger.info(f"[Admin auth] upgraded user {admin.id} to admin")

    log_activity(db, admin.id, "admin_login", "auth", admin.id, context, ip_address, user_agent)
    return admin


def issue_admin_token(db: Session, admin: User) -> Tuple[str, timedelta]:
    timeout = get_session_config(db).admin_session_timeout
    return create_admin_token(admin.id, admin.email, timeout), timeout


# Educators

def list_educators(db: Session, approval_status: Optional[str] = None) -> List[User]:
    stmt = select(User).where(User.role.in_(UserRole.EDUCATOR_ROLES))
    if approval_status:
        stmt = stmt.where(User.approval_status == approval_status)
    return db.execute(stmt.order_by(User.created_at.desc())).scalars().all()


def get_educator(db: Session, educator_id: int) -> User:
    educator = db.execute(select(User).where(User.id == educator_id)).scalar_one_or_none()
    if educator is None or not educator.is_educator:
        raise NotFoundError("Educator not found")
    return educator


def educator_detail(db: Session, educator: User) -> Dict[str, Any]:
    return {
        "id": educator.id,
        "name": educator.name,
        "email": educator.email,
        "role": educator.role,
        "approval_status": educator.approval_status,
        "approved_at": educator.approved_at,
        "rejection_reason": educator.rejection_reason,
        "permission_template_id": educator.permission_template_id,
        "custom_permissions": educator.permissions,
        "effective_permissions": get_user_permissions(db, educator),
        "quiz_count": len(educator.quizzes),
        "document_count": len(educator.documents),
        "created_at": educator.created_at,
    }


def approve_educator(db: Session, admin: User, educator_id: int, template_id: Optional[int] = None) -> User:
    educator = get_educator(db, educator_id)
    previous = educator.approval_status

    if template_id is not None:
        template = permission_templates.get_template(db, template_id)
    elif educator.permission_template_id is None:
        template = permission_templates.get_default_template(db)
    else:
        template = educator.permission_template

    educator.role = UserRole.EDUCATOR
    educator.approval_status = ApprovalStatus.APPROVED
    educator.approved_by = admin.id
    educator.approved_at = utcnow()
    educator.rejection_reason = None
    educator.permissions = None
    if template is not None:
        educator.permission_template_id = template.id
    db.flush()

    log_activity(db, admin.id, "educator_approved", "user", educator.id, {
        "templateId": template.id if template else None,
        "oldStatus": previous,
    })
    logger.info(f"[Admin] educator {educator.id} approved by {admin.id}")
    return educator


def reject_educator(db: Session, admin: User, educator_id: int, reason: Optional[str]) -> User:
    educator = get_educator(db, educator_id)
    educator.approval_status = ApprovalStatus.REJECTED
    educator.rejection_reason = reason
    educator.permissions = dict(DEFAULT_PERMISSIONS["suspended"])
    db.flush()
    log_activity(db, admin.id, "educator_rejected", "user", educator.id, {"reason": reason})
    return educator


def suspend_educator(db: Session, admin: User, educator_id: int, reason: Optional[str]) -> User:
    educator = get_educator(db, educator_id)
    if educator.approval_status == ApprovalStatus.SUSPENDED:
        raise ValidationError("Educator is already suspended")
    educator.approval_status = ApprovalStatus.SUSPENDED
    educator.rejection_reason = reason
    educator.permissions = dict(DEFAULT_PERMISSIONS["suspended"])
    db.flush()
    log_activity(db, admin.id, "educator_suspended", "user", educator.id, {"reason": reason})
    return educator


def reactivate_educator(db: Session, admin: User, educator_id: int) -> User:
    educator = get_educator(db, educator_id)
    if educator.approval_status not in (ApprovalStatus.SUSPENDED, ApprovalStatus.REJECTED):
        raise ValidationError("Only suspended or rejected educators can be reactivated")
    educator.role = UserRole.EDUCATOR
    educator.approval_status = ApprovalStatus.APPROVED
    educator.rejection_reason = None
    # template (if any) or the approved defaults apply again
    educator.permissions = None
    db.flush()
    log_activity(db, admin.id, "educator_reactivated", "user", educator.id)
    return educator


def set_educator_permissions(db: Session, admin: User, educator_id: int, permissions: Dict[str, Any]) -> User:
    educator = get_educator(db, educator_id)
    educator.permissions = normalize_permissions(permissions)
    db.flush()
    log_activity(db, admin.id, "educator_permissions_updated", "user", educator.id,
                 {"permissions": educator.permissions})
    return educator


def assign_educator_template(db: Session, admin: User, educator_id: int, template_id: int) -> User:
    educator = get_educator(db, educator_id)
    permission_templates.apply_template(db, educator, template_id)
    log_activity(db, admin.id, "educator_template_assigned", "user", educator.id, {"templateId": template_id})
    return educator


def promote_to_educator(db: Session, email: str, admin: Optional[User] = None) -> User:
    """Turn an existing account into an approved educator."""
    user = db.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"No user with email {email}")
    if user.role == UserRole.ADMIN:
        raise ValidationError("Admin accounts cannot be converted to educators")
    user.role = UserRole.EDUCATOR
    user.approval_status = ApprovalStatus.APPROVED
    user.approved_at = utcnow()
    user.approved_by = admin.id if admin else None
    if user.permission_template_id is None:
        template = permission_templates.get_default_template(db)
        if template is not None:
            user.permission_template_id = template.id
    db.flush()
    log_activity(db, admin.id if admin else None, "user_promoted_to_educator", "user", user.id, {"email": user.email})
    return user


# Students

def list_students(db: Session) -> List[User]:
    return db.execute(
        select(User).where(User.role == UserRole.STUDENT).order_by(User.created_at.desc())
    ).scalars().all()


def student_detail(db: Session, student_id: int) -> Dict[str, Any]:
    student = db.execute(select(User).where(User.id == student_id)).scalar_one_or_none()
    if student is None or student.role != UserRole.STUDENT:
        raise NotFoundError("Student not found")
    enrollments = db.execute(
        select(Enrollment).where(Enrollment.student_id == student.id).order_by(Enrollment.enrolled_at.desc())
    ).scalars().all()
    attempts = db.execute(
        select(QuizAttempt).where(QuizAttempt.student_id == student.id).order_by(QuizAttempt.start_time.desc())
    ).scalars().all()
    return {
        "id": student.id,
        "name": student.name,
        "email": student.email,
        "timezone": student.timezone,
        "created_at": student.created_at,
        "enrollments": [
            {
                "id": e.id,
                "quiz_id": e.quiz_id,
                "quiz_title": e.quiz.title,
                "status": e.status,
                "is_reassignment": e.is_reassignment,
                "enrolled_at": e.enrolled_at,
                "completed_at": e.completed_at,
            }
            for e in enrollments
        ],
        "attempts": [
            {
                "id": a.id,
                "quiz_id": a.quiz_id,
                "status": a.status,
                "score": a.score,
                "start_time": a.start_time,
                "end_time": a.end_time,
            }
            for a in attempts
        ],
    }



def attach_student(db: Session, admin: User, student_id: int, educator_id: int) -> Dict[str, Any]:
    """Link a student to an educator's roster on the educator's behalf."""
    student = db.execute(select(User).where(User.id == student_id)).scalar_one_or_none()
    if student is None or student.role != UserRole.STUDENT:
        raise NotFoundError("Student not found")
    educator = get_educator(db, educator_id)
    created = ensure_educator_link(db, educator.id, student.id)
    log_activity(db, admin.id, "student_attached", "user", student.id, {"educatorId": educator.id})
    return {"student_id": student.id, "educator_id": educator.id, "linked": created}


# Settings

def get_setting(db: Session, key: str) -> Optional[AdminSetting]:
    return db.execute(select(AdminSetting).where(AdminSetting.setting_key == key)).scalar_one_or_none()


def list_settings(db: Session) -> List[AdminSetting]:
    return db.execute(select(AdminSetting).order_by(AdminSetting.setting_key)).scalars().all()


def upsert_setting(
    db: Session,
    admin: User,
    key: str,
    value: Any,
    description: Optional[str] = None,
) -> AdminSetting:
    setting = get_setting(db, key)
    if setting is None:
        setting = AdminSetting(setting_key=key, setting_value=value, description=description, updated_by=admin.id)
        db.add(setting)
    else:
        setting.setting_value = value
        setting.updated_by = admin.id
        if description is not None:
            setting.description = description
    db.flush()

    if key == SECURITY_SETTINGS_KEY:
        clear_session_config_cache()
    log_activity(db, admin.id, "setting_updated", "admin_setting", setting.id, {"key": key})
    return setting
