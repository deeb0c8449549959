"""
Admin endpoints
Own login (cookie based), educator approval, students, templates, settings,
platform analytics and maintenance jobs
"""

from fastapi import APIRouter, HTTPException, status, Depends, Request, Response, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging

from quizhub.api.dependencies import get_current_admin, rate_limit_login, client_ip
from quizhub.core.config import settings
from quizhub.db.database import get_db
from quizhub.models.user import User
from quizhub.schemas.admin import (
    AdminLoginRequest,
    AdminSessionResponse,
    ApproveRequest,
    ReasonRequest,
    PermissionsRequest,
    TemplateAssignRequest,
    AttachStudentRequest,
    PromoteRequest,
    TemplateCreateRequest,
    TemplateUpdateRequest,
    TemplateResponse,
    SettingRequest,
    SettingResponse,
)
from quizhub.schemas.auth import UserResponse
from quizhub.services import (
    activity_log,
    admin_service,
    analytics_service,
    maintenance,
    permission_templates,
    session_manager,
)
from quizhub.services.admin_service import AdminAuthError
from quizhub.services.errors import QuizHubError

logger = logging.getLogger(__name__)
router = APIRouter()


# Auth

@router.post("/auth/login", response_model=AdminSessionResponse, dependencies=[Depends(rate_limit_login)])
def admin_login(
    payload: AdminLoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Super-admin login.

    Credentials come from the environment. On success the admin JWT is set as
    an httpOnly cookie; failures are recorded in the activity log.
    """
    try:
        admin = admin_service.authenticate_super_admin(
            db, payload.email, payload.password, client_ip(request), request.headers.get("user-agent")
        )
        token, timeout = admin_service.issue_admin_token(db, admin)
        db.commit()

        response.set_cookie(
            key=settings.ADMIN_SESSION_COOKIE,
            value=token,
            max_age=int(timeout.total_seconds()),
            httponly=True,
            secure=settings.ADMIN_COOKIE_SECURE,
            samesite="lax",
            path="/",
        )
        logger.info(f"[Admin auth] admin {admin.id} logged in")
        return AdminSessionResponse(
            id=admin.id,
            email=admin.email,
            name=admin.name,
            role=admin.role,
            expires_in=int(timeout.total_seconds()),
        )

    except AdminAuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Admin auth] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Admin login failed: {str(e)}"
        )


@router.post("/auth/logout")
def admin_logout(response: Response):
    response.delete_cookie(settings.ADMIN_SESSION_COOKIE, path="/")
    return {"success": True}


@router.get("/auth/session", response_model=AdminSessionResponse)
def admin_session(
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    timeout = session_manager.get_session_config(db).admin_session_timeout
    return AdminSessionResponse(
        id=admin.id,
        email=admin.email,
        name=admin.name,
        role=admin.role,
        expires_in=int(timeout.total_seconds()),
    )


# Educators

@router.get("/educators")
def list_educators(
    approval_status: Optional[str] = Query(None, description="pending, approved, rejected or suspended"),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    educators = admin_service.list_educators(db, approval_status)
    return {
        "educators": [admin_service.educator_detail(db, e) for e in educators],
        "total": len(educators),
    }


@router.get("/educators/{educator_id}")
def get_educator(
    educator_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return admin_service.educator_detail(db, admin_service.get_educator(db, educator_id))


@router.post("/educators/{educator_id}/approve")
def approve_educator(
    educator_id: int,
    payload: Optional[ApproveRequest] = None,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    template_id = payload.template_id if payload else None
    educator = admin_service.approve_educator(db, admin, educator_id, template_id)
    db.commit()
    return admin_service.educator_detail(db, educator)


@router.post("/educators/{educator_id}/reject")
def reject_educator(
    educator_id: int,
    payload: ReasonRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    educator = admin_service.reject_educator(db, admin, educator_id, payload.reason)
    db.commit()
    return admin_service.educator_detail(db, educator)


@router.post("/educators/{educator_id}/suspend")
def suspend_educator(
    educator_id: int,
    payload: ReasonRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    educator = admin_service.suspend_educator(db, admin, educator_id, payload.reason)
    db.commit()
    return admin_service.educator_detail(db, educator)


@router.post("/educators/{educator_id}/reactivate")
def reactivate_educator(
    educator_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    educator = admin_service.reactivate_educator(db, admin, educator_id)
    db.commit()
    return admin_service.educator_detail(db, educator)


@router.put("/educators/{educator_id}/permissions")
def set_educator_permissions(
    educator_id: int,
    payload: PermissionsRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    educator = admin_service.set_educator_permissions(db, admin, educator_id, payload.permissions)
    db.commit()
    return admin_service.educator_detail(db, educator)


@router.put("/educators/{educator_id}/template")
def assign_educator_template(
    educator_id: int,
    payload: TemplateAssignRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    educator = admin_service.assign_educator_template(db, admin, educator_id, payload.template_id)
    db.commit()
    return admin_service.educator_detail(db, educator)


# Students

@router.get("/students")
def list_students(
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    students = admin_service.list_students(db)
    return {
        "students": [UserResponse.model_validate(s) for s in students],
        "total": len(students),
    }


@router.get("/students/{student_id}")
def get_student(
    student_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return admin_service.student_detail(db, student_id)


@router.post("/students/{student_id}/attach")
def attach_student(
    student_id: int,
    payload: AttachStudentRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    result = admin_service.attach_student(db, admin, student_id, payload.educator_id)
    db.commit()
    return result


# Permission templates

def _template_response(template, counts) -> TemplateResponse:
    response = TemplateResponse.model_validate(template)
    response.user_count = counts.get(template.id, 0)
    return response


@router.get("/templates")
def list_templates(
    include_inactive: bool = Query(False),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    counts = permission_templates.count_users_by_template(db)
    templates = permission_templates.list_templates(db, include_inactive)
    return {"templates": [_template_response(t, counts) for t in templates], "total": len(templates)}


@router.post("/templates", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: TemplateCreateRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    template = permission_templates.create_template(
        db,
        payload.name,
        payload.permissions,
        description=payload.description,
        is_default=payload.is_default,
        created_by=admin.id,
    )
    activity_log.log_activity(db, admin.id, "template_created", "permission_template", template.id,
                              {"name": template.name})
    db.commit()
    return _template_response(template, {})


@router.post("/templates/seed")
def seed_templates(
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    result = permission_templates.seed_builtin_templates(db, created_by=admin.id)
    db.commit()
    return result


@router.get("/templates/{template_id}", response_model=TemplateResponse)
def get_template(
    template_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    counts = permission_templates.count_users_by_template(db)
    return _template_response(permission_templates.get_template(db, template_id), counts)


@router.patch("/templates/{template_id}", response_model=TemplateResponse)
def update_template(
    template_id: int,
    payload: TemplateUpdateRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    template = permission_templates.update_template(db, template_id, **payload.model_dump(exclude_unset=True))
    activity_log.log_activity(db, admin.id, "template_updated", "permission_template", template.id)
    db.commit()
    return _template_response(template, permission_templates.count_users_by_template(db))


@router.delete("/templates/{template_id}")
def delete_template(
    template_id: int,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Deactivates the template. The default template cannot be deleted."""
    template = permission_templates.delete_template(db, template_id)
    activity_log.log_activity(db, admin.id, "template_deleted", "permission_template", template.id)
    db.commit()
    return {"success": True, "id": template.id}


# Settings

@router.get("/settings")
def list_settings(
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return {"settings": [SettingResponse.model_validate(s) for s in admin_service.list_settings(db)]}


@router.get("/settings/{key}", response_model=SettingResponse)
def get_setting(
    key: str,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    setting = admin_service.get_setting(db, key)
    if setting is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Setting not found")
    return setting


@router.put("/settings/{key}", response_model=SettingResponse)
def upsert_setting(
    key: str,
    payload: SettingRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    setting = admin_service.upsert_setting(db, admin, key, payload.value, payload.description)
    db.commit()
    return setting


# Analytics and audit

@router.get("/analytics")
def platform_analytics(
    recent_activity: int = Query(20, ge=0, le=200),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return analytics_service.platform_stats(db, recent_activity)


@router.get("/activity")
def list_activity(
    action_type: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    entries = activity_log.list_activity(db, action_type, entity_type, user_id, limit)
    return {
        "activity": [
            {
                "id": entry.id,
                "user_id": entry.user_id,
                "action_type": entry.action_type,
                "entity_type": entry.entity_type,
                "entity_id": entry.entity_id,
                "details": entry.details,
                "ip_address": entry.ip_address,
                "created_at": entry.created_at,
            }
            for entry in entries
        ],
        "total": len(entries),
    }


# Maintenance

@router.post("/maintenance/reconcile-enrollments")
def reconcile_enrollments(
    dry_run: bool = Query(False),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    try:
        logger.info(f"[Maintenance] reconcile requested by admin {admin.id} (dry_run={dry_run})")
        report = maintenance.reconcile_enrollment_statuses(db, dry_run=dry_run)
        activity_log.log_activity(db, admin.id, "enrollments_reconciled", "maintenance", None,
                                  {"dryRun": dry_run, "fixed": report.total_fixed})
        db.commit()
        return report.to_dict()

    except Exception as e:
        logger.error(f"[Maintenance] reconcile error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to reconcile enrollments: {str(e)}"
        )


@router.post("/maintenance/cleanup-stuck-attempts")
def cleanup_stuck_attempts(
    dry_run: bool = Query(False),
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    try:
        logger.info(f"[Maintenance] stuck-attempt cleanup requested by admin {admin.id} (dry_run={dry_run})")
        report = maintenance.cleanup_stuck_attempts(db, dry_run=dry_run)
        activity_log.log_activity(db, admin.id, "stuck_attempts_cleaned", "maintenance", None,
                                  {"dryRun": dry_run})
        db.commit()
        return report.to_dict()

    except Exception as e:
        logger.error(f"[Maintenance] cleanup error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to clean up attempts: {str(e)}"
        )


@router.post("/maintenance/purge-sessions")
def purge_sessions(
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    purged = session_manager.purge_sessions(db)
    db.commit()
    return {"purged": purged}


@router.post("/maintenance/promote-educator")
def promote_educator(
    payload: PromoteRequest,
    admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    user = admin_service.promote_to_educator(db, payload.email, admin)
    db.commit()
    return admin_service.educator_detail(db, user)
