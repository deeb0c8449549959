"""Quiz authoring, scheduling, publishing, enrollment and reassignment over the API."""

from datetime import timedelta

from conftest import make_user, auth_headers, make_quiz, enroll
from quizhub.core.timezone import utcnow, isoformat_utc
from quizhub.models import Document, Enrollment, QuizShareLink
from quizhub.models.enums import (
    UserRole, ApprovalStatus, DocumentStatus, QuizStatus, SchedulingStatus, EnrollmentStatus,
)
from quizhub.services.permissions import DEFAULT_PERMISSIONS

API = "/api/v1/educator"


def _create(client, headers, document_ids, **fields):
    payload = {"title": "Cell Biology", "document_ids": document_ids, "question_count": 3}
    payload.update(fields)
    return client.post(f"{API}/quizzes", json=payload, headers=headers)


def test_create_deferred_quiz_with_sample_questions(client, educator_headers, processed_document) -> None:
    response = _create(client, educator_headers, [processed_document.id],
                       scheduling_mode="deferred", topics=["Mitosis"])
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["used_fallback"] is True
    assert body["validation"] is None
    quiz = body["quiz"]
    assert quiz["status"] == QuizStatus.DRAFT
    assert quiz["scheduling"]["mode"] == SchedulingStatus.DEFERRED
    assert quiz["scheduling"]["can_publish"] is False
    assert len(quiz["questions"]) == 3
    assert "Mitosis" in quiz["questions"][0]["question_text"]
    assert quiz["questions"][0]["correct_answer"] == "a"


def test_create_legacy_quiz_needs_a_valid_start(client, educator_headers, processed_document) -> None:
    response = _create(client, educator_headers, [processed_document.id])
    assert response.status_code == 400
    assert response.json()["detail"] == "Start time is required unless scheduling is deferred"

    soon = isoformat_utc(utcnow() + timedelta(minutes=2))
    response = _create(client, educator_headers, [processed_document.id], start_time=soon)
    assert response.status_code == 400

    later = isoformat_utc(utcnow() + timedelta(hours=2))
    response = _create(client, educator_headers, [processed_document.id], start_time=later)
    assert response.status_code == 201
    assert response.json()["quiz"]["scheduling"]["mode"] == SchedulingStatus.LEGACY
    assert response.json()["quiz"]["scheduling"]["start_time"] is not None


def test_create_requires_processed_owned_documents(client, db, educator, educator_headers) -> None:
    pending = Document(educator_id=educator.id, filename="draft.pdf", status=DocumentStatus.PROCESSING)
    db.add(pending)
    db.commit()

    response = _create(client, educator_headers, [pending.id], scheduling_mode="deferred")
    assert response.status_code == 400
    assert response.json()["documents"] == ["draft.pdf"]

    response = _create(client, educator_headers, [pending.id + 100], scheduling_mode="deferred")
    assert response.status_code == 400
    assert response.json()["missing"] == [pending.id + 100]


def test_pending_educator_cannot_create_quizzes(client, db) -> None:
    pending = make_user(db, "new@quizhub.test", role=UserRole.PENDING_EDUCATOR,
                        approval_status=ApprovalStatus.PENDING)
    response = _create(client, auth_headers(db, pending), [1], scheduling_mode="deferred")
    assert response.status_code == 403
    assert response.json()["permission"] == "canPublishQuiz"


def test_quiz_limit_is_enforced(client, db, educator, educator_headers, processed_document) -> None:
    educator.permissions = dict(DEFAULT_PERMISSIONS["approved"], maxQuizzes=1)
    db.commit()
    assert _create(client, educator_headers, [processed_document.id], scheduling_mode="deferred").status_code == 201

    response = _create(client, educator_headers, [processed_document.id], scheduling_mode="deferred")
    assert response.status_code == 403
    assert response.json()["limit"] == 1


def test_schedule_then_publish(client, educator_headers, processed_document) -> None:
    quiz_id = _create(client, educator_headers, [processed_document.id],
                      scheduling_mode="deferred").json()["quiz"]["id"]

    response = client.post(f"{API}/quizzes/{quiz_id}/publish", headers=educator_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Quiz must be scheduled before publishing"

    start = isoformat_utc(utcnow() + timedelta(hours=1))
    response = client.post(f"{API}/quizzes/{quiz_id}/schedule",
                           json={"start_time": start, "timezone": "Europe/Berlin"}, headers=educator_headers)
    assert response.status_code == 200, response.text
    scheduling = response.json()["scheduling"]
    assert scheduling["mode"] == SchedulingStatus.SCHEDULED
    assert scheduling["timezone"] == "Europe/Berlin"
    assert "correct_answer" not in response.json()["questions"][0]

    response = client.post(f"{API}/quizzes/{quiz_id}/publish", headers=educator_headers)
    assert response.status_code == 200
    assert response.json()["status"] == QuizStatus.PUBLISHED

    response = client.post(f"{API}/quizzes/{quiz_id}/publish", headers=educator_headers)
    assert response.json()["detail"] == "Quiz is already published"


def test_legacy_quiz_cannot_be_rescheduled(client, db, educator, educator_headers) -> None:
    quiz = make_quiz(db, educator, start_offset=timedelta(days=1), status=QuizStatus.DRAFT)
    start = isoformat_utc(utcnow() + timedelta(days=2))
    response = client.post(f"{API}/quizzes/{quiz.id}/schedule", json={"start_time": start}, headers=educator_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Legacy quizzes cannot be rescheduled"


def test_update_question_and_shuffle(client, db, educator, educator_headers) -> None:
    quiz = make_quiz(db, educator, start_offset=timedelta(days=1), status=QuizStatus.DRAFT)
    question = quiz.questions[0]
    url = f"{API}/quizzes/{quiz.id}/questions/{question.id}"

    response = client.put(url, json={"correct_answer": "z"}, headers=educator_headers)
    assert response.status_code == 400

    response = client.put(url, json={
        "options": [{"id": "A", "text": "Stroma"}, {"id": "B", "text": "Thylakoid"}],
        "correct_answer": "B",
        "explanation": "Light reactions happen on the thylakoid.",
    }, headers=educator_headers)
    assert response.status_code == 200
    assert [o["id"] for o in response.json()["options"]] == ["a", "b"]
    assert response.json()["correct_answer"] == "b"

    response = client.post(f"{url}/shuffle", headers=educator_headers)
    shuffled = response.json()
    correct = next(o for o in shuffled["options"] if o["id"] == shuffled["correct_answer"])
    assert correct["text"] == "Thylakoid"

    response = client.post(f"{API}/quizzes/{quiz.id}/shuffle-options", headers=educator_headers)
    assert response.json()["total_questions"] == 3

    response = client.get(f"{API}/quizzes/{quiz.id}/options-distribution", headers=educator_headers)
    assert sum(response.json()["position_counts"].values()) == 3


def test_archived_quiz_is_read_only(client, db, educator, educator_headers) -> None:
    quiz = make_quiz(db, educator)
    response = client.post(f"{API}/quizzes/{quiz.id}/archive", headers=educator_headers)
    assert response.json()["status"] == QuizStatus.ARCHIVED

    response = client.patch(f"{API}/quizzes/{quiz.id}", json={"title": "Renamed"}, headers=educator_headers)
    assert response.status_code == 409


def test_quizzes_are_private_to_their_owner(client, db, educator, student_headers) -> None:
    quiz = make_quiz(db, educator)
    other = make_user(db, "other@quizhub.test", role=UserRole.EDUCATOR)

    assert client.get(f"{API}/quizzes/{quiz.id}", headers=auth_headers(db, other)).status_code == 403
    assert client.get(f"{API}/quizzes/{quiz.id}", headers=student_headers).status_code == 403
    assert client.get(f"{API}/quizzes/{quiz.id + 1}", headers=auth_headers(db, other)).status_code == 404


def test_list_and_delete_quizzes(client, db, educator, educator_headers, student) -> None:
    published = make_quiz(db, educator)
    make_quiz(db, educator, status=QuizStatus.DRAFT, title="Draft")
    enroll(db, published, student)

    listed = client.get(f"{API}/quizzes", params={"status": "published"}, headers=educator_headers).json()
    assert listed["total"] == 1
    assert listed["quizzes"][0]["enrollment_count"] == 1

    assert client.delete(f"{API}/quizzes/{published.id}", headers=educator_headers).status_code == 204
    assert client.get(f"{API}/quizzes", headers=educator_headers).json()["total"] == 1


def test_enroll_single_and_bulk(client, db, educator, educator_headers, student) -> None:
    quiz = make_quiz(db, educator, start_offset=timedelta(hours=1))
    second = make_user(db, "second@quizhub.test")

    response = client.post(f"{API}/quizzes/{quiz.id}/enroll", json={"student_id": student.id}, headers=educator_headers)
    assert response.status_code == 201
    assert response.json()["status"] == EnrollmentStatus.ENROLLED

    response = client.post(f"{API}/quizzes/{quiz.id}/enroll", json={"student_id": student.id}, headers=educator_headers)
    assert response.status_code == 409

    response = client.post(f"{API}/quizzes/{quiz.id}/enroll/bulk",
                           json={"student_ids": [student.id, 9999, second.id]}, headers=educator_headers)
    assert response.json()["enrolled"] == [second.id]
    assert response.json()["skipped"] == [student.id]
    assert response.json()["not_found"] == [9999]

    students = client.get(f"{API}/students", headers=educator_headers).json()
    assert {s["email"] for s in students["students"]} == {"student@quizhub.test", "second@quizhub.test"}


def test_enrollment_respects_student_limit(client, db, educator, educator_headers, student) -> None:
    educator.permissions = dict(DEFAULT_PERMISSIONS["approved"], maxStudents=1)
    db.commit()
    quiz = make_quiz(db, educator, start_offset=timedelta(hours=1))
    second = make_user(db, "second@quizhub.test")

    assert client.post(f"{API}/quizzes/{quiz.id}/enroll", json={"student_id": student.id},
                       headers=educator_headers).status_code == 201
    response = client.post(f"{API}/quizzes/{quiz.id}/enroll", json={"student_id": second.id}, headers=educator_headers)
    assert response.status_code == 403
    assert response.json()["limit"] == 1


def test_cannot_enroll_in_unpublished_or_ended_quiz(client, db, educator, educator_headers, student) -> None:
    draft = make_quiz(db, educator, status=QuizStatus.DRAFT)
    ended = make_quiz(db, educator, start_offset=timedelta(hours=-2))

    response = client.post(f"{API}/quizzes/{draft.id}/enroll", json={"student_id": student.id}, headers=educator_headers)
    assert response.json()["detail"] == "Quiz is not yet published"
    response = client.post(f"{API}/quizzes/{ended.id}/enroll", json={"student_id": student.id}, headers=educator_headers)
    assert response.json()["detail"] == "Quiz has already ended"


def test_share_link_enrollment(client, db, educator, educator_headers, student_headers) -> None:
    quiz = make_quiz(db, educator, start_offset=timedelta(hours=1))

    link = client.post(f"{API}/quizzes/{quiz.id}/share", headers=educator_headers).json()
    code = link["share_code"]
    assert len(code) == 8 and code == code.upper()
    assert client.post(f"{API}/quizzes/{quiz.id}/share", headers=educator_headers).json()["share_code"] == code

    public = client.get(f"/api/v1/quiz/share/{code}")
    assert public.status_code == 200
    assert public.json()["title"] == "Photosynthesis"
    assert "questions" not in public.json()

    first = client.post(f"/api/v1/quiz/share/{code}/enroll", headers=student_headers).json()
    again = client.post(f"/api/v1/quiz/share/{code}/enroll", headers=student_headers).json()
    assert first["already_enrolled"] is False
    assert again["already_enrolled"] is True
    assert again["enrollment_id"] == first["enrollment_id"]

    db.expire_all()
    assert db.query(QuizShareLink).one().access_count == 2
    assert client.get("/api/v1/quiz/share/NOPE0000").status_code == 404


def test_reassign_missed_quiz(client, db, educator, educator_headers, student) -> None:
    quiz = make_quiz(db, educator, start_offset=timedelta(hours=-2))
    finished = make_user(db, "finished@quizhub.test")
    enroll(db, quiz, student)
    enroll(db, quiz, finished, status=EnrollmentStatus.COMPLETED)

    response = client.post(f"{API}/quizzes/{quiz.id}/reassign",
                           json={"student_ids": [student.id, finished.id], "reason": "Was ill"},
                           headers=educator_headers)
    assert response.status_code == 200, response.text
    assert response.json()["reassigned"] == [student.id]
    assert response.json()["skipped_completed"] == [finished.id]

    reassignment = db.query(Enrollment).filter_by(student_id=student.id, is_reassignment=True).one()
    assert reassignment.reassignment_reason == "Was ill"
    assert reassignment.parent_enrollment_id is not None

    response = client.post(f"{API}/quizzes/{quiz.id}/reassign", json={"student_ids": [student.id]},
                           headers=educator_headers)
    assert response.status_code == 400
    assert response.json()["skipped_already_reassigned"] == [student.id]


def test_only_published_quizzes_can_be_reassigned(client, db, educator, educator_headers, student) -> None:
    quiz = make_quiz(db, educator, status=QuizStatus.DRAFT)
    response = client.post(f"{API}/quizzes/{quiz.id}/reassign", json={"student_ids": [student.id]},
                           headers=educator_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Only published quizzes can be reassigned"


def test_validate_single_question(client, educator_headers) -> None:
    response = client.post(f"{API}/questions/validate", json={
        "single": True,
        "questions": [{
            "question_text": "Which Organelle produces energy for the cell?",
            "options": [{"id": "A", "text": "Mitochondria"}, {"id": "B", "text": "Ribosome"}],
            "correct_answer": "A",
        }],
    }, headers=educator_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["validation"]["is_valid"] is True
    assert body["validation"]["score"] == 100
    assert "Mitochondria" in body["validation"]["valid_entities"]
    assert body["suggestions"] == body["validation"]["suggestions"]


def test_validate_edited_and_inline_questions(client, db, educator, educator_headers, student_headers) -> None:
    quiz = make_quiz(db, educator, start_offset=timedelta(days=1), status=QuizStatus.DRAFT)
    saved = quiz.questions[0]
    client.put(f"{API}/quizzes/{quiz.id}/questions/{saved.id}",
               json={"question_text": "Where does the Calvin Cycle run?"}, headers=educator_headers)

    url = f"{API}/questions/validate"
    response = client.post(url, json={
        "questions": [{
            "id": "draft-1",
            "question_text": "what is it?",
            "options": [{"id": "a", "text": "yes"}, {"id": "b", "text": "no"}],
            "correct_answer": "a",
        }],
        "question_ids": [saved.id],
    }, headers=educator_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert set(body["validations"]) == {"draft-1", str(saved.id)}
    assert body["validations"]["draft-1"]["issues"][0]["type"] == "no_entities"
    assert "Calvin Cycle" in body["validations"][str(saved.id)]["valid_entities"]
    assert body["summary"]["total_questions"] == 2
    assert body["summary"]["valid_questions"] == 1
    assert body["suggestions"]["draft-1"]

    other = make_user(db, "other.teacher@quizhub.test", role=UserRole.EDUCATOR)
    foreign = make_quiz(db, other).questions[0]
    response = client.post(url, json={"question_ids": [foreign.id]}, headers=educator_headers)
    assert response.status_code == 404
    assert response.json()["question_ids"] == [foreign.id]

    assert client.post(url, json={}, headers=educator_headers).status_code == 400
    assert client.post(url, json={"question_ids": [saved.id]}, headers=student_headers).status_code == 403
