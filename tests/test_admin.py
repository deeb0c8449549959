"""Admin context: login, educator approval, templates, settings and maintenance."""

from datetime import timedelta

from conftest import admin_login, make_quiz, make_user, enroll
from quizhub.core.config import settings
from quizhub.models.enums import UserRole, ApprovalStatus, EnrollmentStatus
from quizhub.services import session_manager

ADMIN = "/api/v1/admin"


def test_admin_login_and_session(client, db) -> None:
    bad = client.post(f"{ADMIN}/auth/login", json={"email": "root@quizhub.test", "password": "wrong"})
    assert bad.status_code == 401
    assert bad.json()["detail"] == "Invalid credentials"
    assert client.get(f"{ADMIN}/auth/session").status_code == 401

    response = admin_login(client)
    assert settings.ADMIN_SESSION_COOKIE in response.cookies
    assert response.json()["role"] == UserRole.ADMIN
    assert response.json()["expires_in"] == 1800

    session = client.get(f"{ADMIN}/auth/session")
    assert session.status_code == 200
    assert session.json()["email"] == "root@quizhub.test"

    failures = client.get(f"{ADMIN}/activity", params={"action_type": "failed_admin_login"}).json()
    assert failures["total"] == 1
    assert failures["activity"][0]["details"]["reason"] == "invalid_password"

    client.post(f"{ADMIN}/auth/logout")
    assert client.get(f"{ADMIN}/auth/session").status_code == 401


def test_user_tokens_do_not_open_admin_routes(client, student_headers) -> None:
    response = client.get(f"{ADMIN}/educators", headers=student_headers)
    assert response.status_code == 401


def test_educator_approval_workflow(client, db) -> None:
    admin_login(client)
    client.post(f"{ADMIN}/templates/seed")
    pending = make_user(db, "new.teacher@quizhub.test", role=UserRole.PENDING_EDUCATOR,
                        approval_status=ApprovalStatus.PENDING)

    listed = client.get(f"{ADMIN}/educators", params={"approval_status": "pending"}).json()
    assert [e["id"] for e in listed["educators"]] == [pending.id]
    assert listed["educators"][0]["effective_permissions"]["canPublishQuiz"] is False

    templates = client.get(f"{ADMIN}/templates").json()["templates"]
    default = next(t for t in templates if t["is_default"])

    approved = client.post(f"{ADMIN}/educators/{pending.id}/approve").json()
    assert approved["role"] == UserRole.EDUCATOR
    assert approved["approval_status"] == ApprovalStatus.APPROVED
    assert approved["permission_template_id"] == default["id"]
    assert approved["effective_permissions"] == default["permissions"]

    suspended = client.post(f"{ADMIN}/educators/{pending.id}/suspend", json={"reason": "Spam"}).json()
    assert suspended["approval_status"] == ApprovalStatus.SUSPENDED
    assert suspended["rejection_reason"] == "Spam"
    assert suspended["effective_permissions"]["canPublishQuiz"] is False
    assert suspended["effective_permissions"]["canViewAnalytics"] is True

    again = client.post(f"{ADMIN}/educators/{pending.id}/suspend", json={"reason": "Spam"})
    assert again.status_code == 400

    reactivated = client.post(f"{ADMIN}/educators/{pending.id}/reactivate").json()
    assert reactivated["approval_status"] == ApprovalStatus.APPROVED
    assert reactivated["custom_permissions"] is None
    assert reactivated["effective_permissions"] == default["permissions"]

    custom = client.put(f"{ADMIN}/educators/{pending.id}/permissions",
                        json={"permissions": {"canPublishQuiz": True, "maxQuizzes": 2, "bogus": 1}}).json()
    assert custom["custom_permissions"]["maxQuizzes"] == 2
    assert "bogus" not in custom["custom_permissions"]
    assert custom["custom_permissions"]["canAddStudents"] is False

    assert client.post(f"{ADMIN}/educators/9999/approve").status_code == 404


def test_reject_educator(client, db) -> None:
    admin_login(client)
    pending = make_user(db, "maybe@quizhub.test", role=UserRole.PENDING_EDUCATOR,
                        approval_status=ApprovalStatus.PENDING)

    rejected = client.post(f"{ADMIN}/educators/{pending.id}/reject", json={"reason": "Not a teacher"}).json()

    assert rejected["approval_status"] == ApprovalStatus.REJECTED
    assert rejected["rejection_reason"] == "Not a teacher"
    assert rejected["effective_permissions"]["maxQuizzes"] == 0


def test_template_crud(client, db, educator) -> None:
    admin_login(client)

    created = client.post(f"{ADMIN}/templates", json={
        "name": "Department Head",
        "description": "Larger limits",
        "permissions": {"canPublishQuiz": True, "maxStudents": 500},
    })
    assert created.status_code == 201
    template = created.json()
    assert template["permissions"]["maxStudents"] == 500
    assert template["permissions"]["canExportData"] is False

    duplicate = client.post(f"{ADMIN}/templates", json={"name": "Department Head", "permissions": {}})
    assert duplicate.status_code == 409

    assigned = client.put(f"{ADMIN}/educators/{educator.id}/template", json={"template_id": template["id"]})
    assert assigned.json()["effective_permissions"]["maxStudents"] == 500
    assert client.get(f"{ADMIN}/templates/{template['id']}").json()["user_count"] == 1

    renamed = client.patch(f"{ADMIN}/templates/{template['id']}", json={"name": "Head of Department"})
    assert renamed.json()["name"] == "Head of Department"

    deleted = client.delete(f"{ADMIN}/templates/{template['id']}")
    assert deleted.json()["success"] is True
    assert client.get(f"{ADMIN}/templates").json()["total"] == 0
    inactive = client.get(f"{ADMIN}/templates", params={"include_inactive": True}).json()
    assert inactive["templates"][0]["is_active"] is False

    seeded = client.post(f"{ADMIN}/templates/seed").json()
    assert seeded == {"created": 5, "updated": 0}


def test_security_settings_change_session_timeout(client, db) -> None:
    admin_login(client)
    assert client.get(f"{ADMIN}/settings/security_settings").status_code == 404

    saved = client.put(f"{ADMIN}/settings/security_settings", json={
        "value": {"sessionTimeout": 45, "adminSessionTimeout": 120},
        "description": "Session lengths in minutes",
    })
    assert saved.status_code == 200
    assert saved.json()["setting_value"]["sessionTimeout"] == 45

    config = session_manager.get_session_config(db)
    assert config.session_timeout == timedelta(minutes=45)
    assert config.admin_session_timeout == timedelta(minutes=120)
    assert client.get(f"{ADMIN}/auth/session").json()["expires_in"] == 7200

    listed = client.get(f"{ADMIN}/settings").json()["settings"]
    assert [s["setting_key"] for s in listed] == ["security_settings"]


def test_students_and_attach(client, db, educator, student) -> None:
    admin_login(client)
    quiz = make_quiz(db, educator)
    enroll(db, quiz, student, status=EnrollmentStatus.COMPLETED)

    detail = client.get(f"{ADMIN}/students/{student.id}").json()
    assert detail["enrollments"][0]["quiz_title"] == "Photosynthesis"
    assert client.get(f"{ADMIN}/students").json()["total"] == 1
    assert client.get(f"{ADMIN}/students/{educator.id}").status_code == 404

    attached = client.post(f"{ADMIN}/students/{student.id}/attach", json={"educator_id": educator.id}).json()
    assert attached["linked"] is True
    again = client.post(f"{ADMIN}/students/{student.id}/attach", json={"educator_id": educator.id}).json()
    assert again["linked"] is False


def test_platform_analytics_and_maintenance(client, db, educator, student) -> None:
    admin_login(client)
    enroll(db, make_quiz(db, educator), student)

    stats = client.get(f"{ADMIN}/analytics").json()
    assert stats["users_by_role"][UserRole.STUDENT] == 1
    assert stats["quizzes_by_status"]["published"] == 1
    assert stats["enrollments_by_status"]["enrolled"] == 1

    report = client.post(f"{ADMIN}/maintenance/reconcile-enrollments", params={"dry_run": True}).json()
    assert report["dry_run"] is True
    assert report["checked"] == 1

    cleanup = client.post(f"{ADMIN}/maintenance/cleanup-stuck-attempts").json()
    assert cleanup["checked"] == 0
    assert cleanup["reconcile"]["dry_run"] is False

    assert "purged" in client.post(f"{ADMIN}/maintenance/purge-sessions").json()

    promoted = client.post(f"{ADMIN}/maintenance/promote-educator", json={"email": student.email}).json()
    assert promoted["role"] == UserRole.EDUCATOR
    missing = client.post(f"{ADMIN}/maintenance/promote-educator", json={"email": "ghost@quizhub.test"})
    assert missing.status_code == 404

    logged = client.get(f"{ADMIN}/activity", params={"entity_type": "maintenance"}).json()
    assert {entry["action_type"] for entry in logged["activity"]} == {
        "enrollments_reconciled", "stuck_attempts_cleaned",
    }
