"""Taking a quiz end to end: start, resume, autosave, submit, results and reassignment."""

from datetime import timedelta

import pytest

from conftest import make_quiz, make_user, enroll
from quizhub.core.timezone import utcnow
from quizhub.models import Enrollment, QuizAttempt, UserSession
from quizhub.models.enums import QuizStatus, SchedulingStatus, EnrollmentStatus, AttemptStatus
from quizhub.services import analytics_service, quiz_attempt_service, enrollment_service
from quizhub.services.errors import TooEarlyError, PermissionDeniedError

API = "/api/v1/student"


def _start(client, headers, quiz_id):
    return client.post(f"{API}/quizzes/{quiz_id}/start", headers=headers)


def test_full_attempt(client, db, educator, educator_headers, student, student_headers) -> None:
    quiz = make_quiz(db, educator)
    ids = [q.id for q in quiz.questions]

    started = _start(client, student_headers, quiz.id)
    assert started.status_code == 200, started.text
    body = started.json()
    attempt_id = body["attempt_id"]
    assert body["resumed"] is False
    assert body["remaining_time"] == 1800
    assert [q["id"] for q in body["quiz"]["questions"]] == ids
    assert "correct_answer" not in body["quiz"]["questions"][0]

    enrollment = db.query(Enrollment).filter_by(quiz_id=quiz.id, student_id=student.id).one()
    assert enrollment.status == EnrollmentStatus.IN_PROGRESS
    db.expire_all()
    assert db.query(UserSession).filter_by(user_id=student.id).one().quiz_id == quiz.id

    resumed = _start(client, student_headers, quiz.id).json()
    assert resumed["resumed"] is True
    assert resumed["attempt_id"] == attempt_id

    saved = client.post(f"{API}/quizzes/{quiz.id}/autosave", json={
        "attempt_id": attempt_id,
        "answers": [{"questionId": ids[0], "answer": "a"}],
        "current_question_index": 1,
        "time_remaining": 1500,
    }, headers=student_headers)
    assert saved.json()["success"] is True
    autosave = client.get(f"{API}/quizzes/{quiz.id}/autosave", headers=student_headers).json()
    assert autosave["has_autosave"] is True
    assert autosave["autosave_data"]["current_question_index"] == 1
    assert autosave["autosave_data"]["answers"][0]["answer"] == "a"

    answers = [
        {"questionId": ids[0], "answer": "a", "timeSpent": 20},
        {"questionId": ids[1], "answer": "a", "timeSpent": 30},
        {"questionId": ids[2], "answer": "b", "markedForReview": True},
    ]
    submitted = client.post(f"{API}/quizzes/{quiz.id}/submit",
                            json={"attempt_id": attempt_id, "answers": answers, "time_spent": 300},
                            headers=student_headers)
    assert submitted.status_code == 200
    assert submitted.json()["success"] is True

    again = client.post(f"{API}/quizzes/{quiz.id}/submit",
                        json={"attempt_id": attempt_id, "answers": answers}, headers=student_headers)
    assert again.status_code == 409

    # the quiz window is still open
    early = client.get(f"{API}/results/{attempt_id}", headers=student_headers)
    assert early.status_code == 425
    assert "available_at" in early.json()
    listed = client.get(f"{API}/results", headers=student_headers).json()["results"]
    assert listed[0]["results_available"] is False
    assert listed[0]["score"] is None

    db.expire_all()
    results = quiz_attempt_service.get_results(db, attempt_id, student, now=utcnow() + timedelta(minutes=31))
    assert results["score"] == 67.0
    assert results["grade"] == "C+"
    assert results["passed"] is False
    assert results["correct_answers"] == 2
    assert results["wrong_answers"] == 1
    assert results["time_spent"] == 300
    assert results["questions"][2]["selected_answer"] == "b"
    assert results["questions"][2]["marked_for_review"] is True

    assert enrollment.status == EnrollmentStatus.COMPLETED
    assert db.query(UserSession).filter_by(user_id=student.id).one().quiz_id is None

    blocked = _start(client, student_headers, quiz.id)
    assert blocked.status_code == 403

    report = client.get(f"/api/v1/educator/quizzes/{quiz.id}/results", headers=educator_headers).json()
    assert report["summary"]["completed"] == 1
    assert report["summary"]["average_score"] == 67.0
    detail = client.get(f"/api/v1/educator/attempts/{attempt_id}", headers=educator_headers).json()
    assert [r["is_correct"] for r in detail["responses"]] == [True, True, False]

    stats = client.get(f"{API}/progress/stats", headers=student_headers).json()
    assert stats["completed_quizzes"] == 1
    assert stats["total_time_spent"] == 5
    # scores stay out of progress reports until the window closes
    assert stats["pending_results"] == 1
    assert (stats["best_score"], stats["average_score"], stats["passed_quizzes"]) == (0, 0, 0)
    progress = client.get(f"{API}/progress/analytics", headers=student_headers).json()
    assert progress == {"topics": [], "recent_results": []}

    later = utcnow() + timedelta(minutes=31)
    assert analytics_service.student_stats(db, student, now=later)["best_score"] == 67.0
    released = analytics_service.student_analytics(db, student, now=later)
    assert released["recent_results"][0]["score"] == 67.0
    assert {t["topic"] for t in released["topics"]} == {"Light reactions", "Calvin cycle"}


def test_unpublished_quiz_cannot_be_started(client, db, educator, student_headers) -> None:
    quiz = make_quiz(db, educator, status=QuizStatus.DRAFT)
    response = _start(client, student_headers, quiz.id)
    assert response.status_code == 403
    assert response.json()["detail"] == "This quiz is not yet published."


def test_window_checks(client, db, educator, student, student_headers) -> None:
    upcoming = make_quiz(db, educator, start_offset=timedelta(minutes=90))
    response = _start(client, student_headers, upcoming.id)
    assert response.status_code == 425
    assert response.json()["detail"] == "Quiz not yet started"
    assert response.json()["time_until_start"] == "Starts in 1 hour 30 minutes"

    unscheduled = make_quiz(db, educator, start_offset=None, scheduling_status=SchedulingStatus.DEFERRED)
    response = _start(client, student_headers, unscheduled.id)
    assert response.status_code == 425
    assert response.json()["scheduling_status"] == SchedulingStatus.DEFERRED

    ended = make_quiz(db, educator, start_offset=timedelta(hours=-2))
    response = _start(client, student_headers, ended.id)
    assert response.status_code == 410
    assert "end_time" in response.json()

    empty = make_quiz(db, educator, questions=0)
    response = _start(client, student_headers, empty.id)
    assert response.status_code == 500
    assert response.json()["detail"] == "Quiz has no questions available"


def test_resume_after_time_is_up_auto_submits(client, db, educator, student, student_headers) -> None:
    quiz = make_quiz(db, educator, start_offset=timedelta(minutes=-40), duration=30)
    started = quiz_attempt_service.start_attempt(db, quiz.id, student, now=utcnow() - timedelta(minutes=31))
    db.commit()

    response = _start(client, student_headers, quiz.id)
    assert response.status_code == 403
    assert response.json()["attempt_id"] == started["attempt_id"]
    assert "automatically submitted" in response.json()["detail"]

    db.expire_all()
    attempt = db.get(QuizAttempt, started["attempt_id"])
    assert attempt.status == AttemptStatus.COMPLETED
    assert attempt.score == 0.0
    assert attempt.enrollment.status == EnrollmentStatus.COMPLETED


def test_abandon_lets_the_student_start_over(client, db, educator, student, student_headers) -> None:
    quiz = make_quiz(db, educator)
    first = _start(client, student_headers, quiz.id).json()["attempt_id"]

    response = client.post(f"{API}/quizzes/{quiz.id}/abandon", json={"attempt_id": first}, headers=student_headers)
    assert response.json()["success"] is True

    db.expire_all()
    assert db.get(QuizAttempt, first).status == AttemptStatus.ABANDONED
    assert db.query(Enrollment).filter_by(quiz_id=quiz.id).one().status == EnrollmentStatus.ENROLLED

    second = _start(client, student_headers, quiz.id).json()
    assert second["resumed"] is False
    assert second["attempt_id"] != first

    cleared = client.post(f"{API}/quizzes/{quiz.id}/clear-session", headers=student_headers).json()
    assert cleared["cleared_attempts"] == 1


def test_reassignment_bypasses_the_window(client, db, educator, student, student_headers) -> None:
    quiz = make_quiz(db, educator, start_offset=timedelta(hours=-2))
    enroll(db, quiz, student)
    enrollment_service.reassign_quiz(db, educator, quiz, [student.id], "Was ill")
    db.commit()

    listed = client.get(f"{API}/quizzes", headers=student_headers).json()["quizzes"]
    statuses = {item["is_reassignment"]: item["availability"]["status"] for item in listed}
    assert statuses == {True: "reassigned", False: "ended"}

    response = _start(client, student_headers, quiz.id)
    assert response.status_code == 200, response.text
    assert response.json()["is_reassignment"] is True
    assert response.json()["reassignment_reason"] == "Was ill"
    assert len(response.json()["quiz"]["questions"]) == 3


def test_student_quiz_list_shows_availability(client, db, educator, student, student_headers) -> None:
    enroll(db, make_quiz(db, educator, title="Now"), student)
    enroll(db, make_quiz(db, educator, start_offset=timedelta(hours=3), title="Later"), student)

    listed = client.get(f"{API}/quizzes", headers=student_headers).json()
    by_title = {item["title"]: item["availability"] for item in listed["quizzes"]}
    assert by_title["Now"]["available"] is True
    assert by_title["Later"]["status"] == "upcoming"
    assert by_title["Later"]["message"].startswith("Starts in")


def test_results_are_private(db, educator, student) -> None:
    quiz = make_quiz(db, educator)
    started = quiz_attempt_service.start_attempt(db, quiz.id, student)
    db.commit()
    other = make_user(db, "nosy@quizhub.test")

    with pytest.raises(TooEarlyError):
        quiz_attempt_service.get_results(db, started["attempt_id"], student)
    with pytest.raises(PermissionDeniedError):
        quiz_attempt_service.get_results(db, started["attempt_id"], other)
