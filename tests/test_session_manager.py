"""Session states, extensions and the expiry handling on authenticated requests."""

from datetime import datetime, timedelta

import pytest

from conftest import make_quiz
from quizhub.core.security import create_access_token
from quizhub.models.session import UserSession
from quizhub.models.admin import AdminSetting
from quizhub.services import session_manager
from quizhub.services.errors import ConflictError
from quizhub.services.session_manager import (
    SessionState,
    STUDENT_POLICY,
    STAFF_POLICY,
    MAX_EXTENSIONS,
    evaluate_session,
)

NOW = datetime(2026, 5, 4, 12, 0)


def _session(role="student", started_ago=timedelta(minutes=10), idle=timedelta(0), **fields):
    return UserSession(
        user_id=1,
        role=role,
        started_at=NOW - started_ago,
        last_activity=NOW - idle,
        extensions=fields.pop("extensions", 0),
        **fields,
    )


def test_fresh_session_is_active() -> None:
    status = evaluate_session(_session(), now=NOW)
    assert status.state == SessionState.ACTIVE
    assert status.remaining == STUDENT_POLICY.idle_timeout
    assert not status.can_extend


def test_idle_warning_and_expired_states_for_students() -> None:
    assert evaluate_session(_session(idle=timedelta(minutes=2)), now=NOW).state == SessionState.IDLE

    warning = evaluate_session(_session(idle=timedelta(minutes=26)), now=NOW)
    assert warning.state == SessionState.WARNING
    assert warning.can_extend

    expired = evaluate_session(_session(idle=timedelta(minutes=31)), now=NOW)
    assert expired.state == SessionState.EXPIRED
    assert expired.remaining == timedelta(0)


def test_staff_sessions_use_shorter_timeouts() -> None:
    session = _session(role="educator", idle=timedelta(minutes=16))
    assert session_manager.policy_for_role("educator") is STAFF_POLICY
    assert evaluate_session(session, now=NOW).state == SessionState.EXPIRED
    assert evaluate_session(_session(idle=timedelta(minutes=16)), now=NOW).state == SessionState.IDLE


def test_absolute_timeout_expires_even_active_sessions() -> None:
    session = _session(started_ago=timedelta(hours=4, minutes=1))
    assert evaluate_session(session, now=NOW).state == SessionState.EXPIRED

    # each extension buys thirty more minutes
    session.extensions = 1
    assert evaluate_session(session, now=NOW).state == SessionState.EXTENDED


def test_running_quiz_overrides_absolute_expiry() -> None:
    session = _session(
        started_ago=timedelta(hours=5),
        quiz_id=3,
        quiz_started_at=NOW - timedelta(hours=1),
    )
    status = evaluate_session(session, now=NOW)
    assert status.state == SessionState.QUIZ_ACTIVE
    assert status.quiz_active

    session.quiz_started_at = NOW - timedelta(hours=3, minutes=11)
    assert evaluate_session(session, now=NOW).state == SessionState.EXPIRED


def test_revoked_session_is_expired() -> None:
    session = _session(revoked_at=NOW)
    assert evaluate_session(session, now=NOW).state == SessionState.EXPIRED


def test_extended_state_after_extension() -> None:
    status = evaluate_session(_session(extensions=1), now=NOW)
    assert status.state == SessionState.EXTENDED
    assert status.extensions == 1


def test_extend_session_limits(db, student) -> None:
    session = session_manager.create_session(db, student)
    session.started_at = NOW - timedelta(minutes=40)
    session.last_activity = NOW

    with pytest.raises(ConflictError) as excinfo:
        session_manager.extend_session(db, session, now=NOW)
    assert excinfo.value.message == "Session is not close enough to expiry to extend"

    session.last_activity = NOW - timedelta(minutes=27)
    status = session_manager.extend_session(db, session, now=NOW)
    assert session.extensions == 1
    assert session.last_activity == NOW
    assert status.state == SessionState.EXTENDED

    session.extensions = MAX_EXTENSIONS
    session.last_activity = NOW - timedelta(minutes=27)
    with pytest.raises(ConflictError) as excinfo:
        session_manager.extend_session(db, session, now=NOW)
    assert excinfo.value.message == "Maximum session extensions reached"



def test_purge_sessions_removes_revoked(db, student) -> None:
    kept = session_manager.create_session(db, student)
    gone = session_manager.create_session(db, student)
    session_manager.revoke_session(db, gone)
    db.commit()

    assert session_manager.purge_sessions(db) == 1
    db.commit()
    assert session_manager.get_session(db, kept.id) is not None


def test_session_config_reads_admin_settings(db) -> None:
    db.add(AdminSetting(
        setting_key="security_settings",
        setting_value={"sessionTimeout": 45, "adminSessionTimeout": "bogus"},
    ))
    db.commit()

    config = session_manager.get_session_config(db)
    assert config.session_timeout == timedelta(minutes=45)
    assert config.admin_session_timeout == session_manager.DEFAULT_ADMIN_SESSION_TIMEOUT


def test_timeout_helpers() -> None:
    started = NOW - timedelta(minutes=20)
    assert not session_manager.is_session_expired(started, timedelta(minutes=30), now=NOW)
    assert session_manager.is_session_expired(started, timedelta(minutes=15), now=NOW)
    assert session_manager.get_remaining_session_time(started, timedelta(minutes=30), now=NOW) == timedelta(minutes=10)
    assert session_manager.get_session_warning_time(timedelta(minutes=30)) == timedelta(minutes=25)
    assert session_manager.get_session_warning_time(timedelta(minutes=60)) == timedelta(minutes=55)


def test_status_endpoint_reports_active_session(client, student_headers) -> None:
    response = client.get("/api/v1/session/status", headers=student_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "active"
    assert body["max_extensions"] == MAX_EXTENSIONS
    assert body["role"] == "student"


def test_expired_session_is_revoked_on_next_request(client, db, student) -> None:
    session = session_manager.create_session(db, student)
    db.commit()
    headers = {"Authorization": f"Bearer {create_access_token(student.id, session.id, student.role)}"}

    session.last_activity = session.last_activity - timedelta(minutes=31)
    db.commit()

    response = client.get("/api/v1/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["detail"] == "Session expired. Please log in again."

    db.refresh(session)
    assert session.revoked_at is not None


def test_quiz_start_marks_session_quiz_active(client, db, educator, student_headers) -> None:
    quiz = make_quiz(db, educator)

    response = client.post("/api/v1/session/quiz-start", json={"quiz_id": quiz.id}, headers=student_headers)
    assert response.status_code == 200
    assert response.json()["state"] == "quiz_active"
    assert response.json()["quiz_id"] == quiz.id

    response = client.post("/api/v1/session/quiz-end", headers=student_headers)
    assert response.json()["state"] == "active"
    assert response.json()["quiz_id"] is None


def test_extend_endpoint_refuses_fresh_session(client, student_headers) -> None:
    response = client.post("/api/v1/session/extend", headers=student_headers)
    assert response.status_code == 409
    assert response.json()["state"] == "active"


def test_session_exactly_at_absolute_limit_is_not_expired() -> None:
    session = _session(started_ago=timedelta(hours=4))
    assert evaluate_session(session, now=NOW).state == SessionState.ACTIVE


def _warning_headers(db, student):
    session = session_manager.create_session(db, student)
    session.started_at = session.last_activity = session.started_at - timedelta(minutes=27)
    db.commit()
    return session, {"Authorization": f"Bearer {create_access_token(student.id, session.id, student.role)}"}


def test_request_during_warning_counts_as_activity(client, db, student) -> None:
    session, headers = _warning_headers(db, student)

    response = client.get("/api/v1/auth/me", headers=headers)
    assert response.status_code == 200

    db.expire_all()
    assert session.extensions == 0
    assert session.last_activity > session.started_at + timedelta(minutes=20)


def test_extend_endpoint_extends_from_warning(client, db, student) -> None:
    session, headers = _warning_headers(db, student)

    response = client.post("/api/v1/session/extend", headers=headers)
    assert response.status_code == 200, response.text
    assert response.json()["extensions"] == 1
    assert response.json()["state"] == "extended"
