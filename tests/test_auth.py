"""Signup, login, logout and profile."""

from conftest import PASSWORD, make_user, auth_headers
from quizhub.models.enums import UserRole, ApprovalStatus

AUTH = "/api/v1/auth"


def _signup(client, **fields):
    body = {"name": "Asha Rao", "email": "Asha@Example.com", "password": "correct-horse"}
    body.update(fields)
    return client.post(f"{AUTH}/signup", json=body)


def test_signup_logs_the_student_in(client, db) -> None:
    response = _signup(client, timezone="Asia/Kolkata")

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "asha@example.com"
    assert body["user"]["role"] == UserRole.STUDENT
    assert body["user"]["timezone"] == "Asia/Kolkata"

    me = client.get(f"{AUTH}/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["id"] == body["user"]["id"]

    assert _signup(client, email="asha@example.com").status_code == 409


def test_signup_validation(client, db) -> None:
    assert _signup(client, password="short").status_code == 422
    assert _signup(client, timezone="Mars/Olympus").status_code == 422
    assert _signup(client, email="not-an-email").status_code == 422
    assert _signup(client, role="admin").status_code == 422


def test_educator_signup_waits_for_approval(client, db) -> None:
    body = _signup(client, role="educator").json()
    assert body["user"]["role"] == UserRole.PENDING_EDUCATOR
    assert body["user"]["approval_status"] == ApprovalStatus.PENDING

    role = client.get(f"{AUTH}/role", headers={"Authorization": f"Bearer {body['access_token']}"}).json()
    assert role["approval_status"] == ApprovalStatus.PENDING
    assert role["rejection_reason"] is None
    assert role["permissions"]["canPublishQuiz"] is False


def test_role_shows_the_rejection_reason(client, db) -> None:
    rejected = make_user(db, "rejected@quizhub.test", role=UserRole.PENDING_EDUCATOR,
                         approval_status=ApprovalStatus.REJECTED, rejection_reason="Incomplete profile")

    role = client.get(f"{AUTH}/role", headers=auth_headers(db, rejected)).json()

    assert role["rejection_reason"] == "Incomplete profile"
    assert role["permissions"]["maxQuizzes"] == 0


def test_students_have_no_permissions(client, student_headers) -> None:
    role = client.get(f"{AUTH}/role", headers=student_headers).json()
    assert role["role"] == UserRole.STUDENT
    assert role["permissions"] == {}


def test_login_and_logout(client, db, student) -> None:
    response = client.post(f"{AUTH}/login", json={"email": "STUDENT@quizhub.test", "password": PASSWORD})
    assert response.status_code == 200
    headers = {"Authorization": f"Bearer {response.json()['access_token']}"}
    assert client.get(f"{AUTH}/me", headers=headers).json()["email"] == student.email

    assert client.post(f"{AUTH}/logout", headers=headers).json()["success"] is True
    assert client.get(f"{AUTH}/me", headers=headers).status_code == 401


def test_login_failures_are_rate_limited(client, db, student) -> None:
    for _ in range(5):
        response = client.post(f"{AUTH}/login", json={"email": student.email, "password": "wrong-password"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    blocked = client.post(f"{AUTH}/login", json={"email": student.email, "password": PASSWORD})
    assert blocked.status_code == 429
    assert blocked.json()["detail"].startswith("Too many login attempts")


def test_protected_routes_need_a_token(client) -> None:
    assert client.get(f"{AUTH}/me").status_code == 401
    assert client.get(f"{AUTH}/me", headers={"Authorization": "Bearer nonsense"}).status_code == 401


def test_profile_update(client, db, student_headers) -> None:
    updated = client.patch(f"{AUTH}/profile", json={"name": " Sam ", "timezone": "Europe/Berlin"},
                           headers=student_headers)
    assert updated.status_code == 200
    assert updated.json()["name"] == "Sam"
    assert updated.json()["timezone"] == "Europe/Berlin"

    invalid = client.patch(f"{AUTH}/profile", json={"timezone": "Nowhere/Special"}, headers=student_headers)
    assert invalid.status_code == 422


def test_health_check(client) -> None:
    assert client.get("/health").json() == {"status": "healthy", "database": "ok"}
