import json
import os
import tempfile
from datetime import timedelta

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ADMIN_SECRET_KEY"] = "test-admin-secret"
os.environ["SUPER_ADMIN_EMAIL"] = "root@quizhub.test"
os.environ["SUPER_ADMIN_PASSWORD"] = "root-password-1"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LIGHTRAG_API_KEY"] = "test-key"
os.environ["LIGHTRAG_BASE_URL"] = "http://lightrag.test"
os.environ["QUIZ_GENERATION_WEBHOOK_URL"] = ""
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="quizhub-uploads-")
os.environ["RATE_LIMIT_LOGIN"] = "5"
os.environ["DEBUG"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import httpx
import pytest
from fastapi.testclient import TestClient

import quizhub.models  # noqa: F401
from quizhub.api.dependencies import login_rate_limiter
from quizhub.core.security import hash_password, create_access_token
from quizhub.core.timezone import utcnow
from quizhub.db.database import Base, get_engine, get_session_local, reset_engine
from quizhub.main import app
from quizhub.models import User, Document, Quiz, Question, Enrollment
from quizhub.models.enums import UserRole, ApprovalStatus, DocumentStatus, QuizStatus, SchedulingStatus
from quizhub.services import session_manager
from quizhub.services.lightrag_service import LightRAGService, get_lightrag_service
from quizhub.services.quiz_generator import QuizGenerator, get_quiz_generator

PASSWORD = "password-123"


def lightrag_handler(request: httpx.Request) -> httpx.Response:
    """Stand-in LightRAG API: every upload is accepted, every entity exists."""
    path = request.url.path
    if path == "/documents/upload":
        return httpx.Response(200, json={"status": "success", "message": "queued", "track_id": "upload_123"})
    if path.startswith("/documents/track_status/"):
        return httpx.Response(200, json={
            "documents": [{"id": "doc-abc", "status": "PROCESSED"}],
            "status_summary": {"PROCESSED": 1},
        })
    if path == "/documents/pipeline_status":
        return httpx.Response(200, json={"busy": False, "job_name": "idle", "docs": 0})
    if path.startswith("/documents/doc-"):
        return httpx.Response(200, json={"id": path.rsplit("/", 1)[-1]})
    if path == "/documents/delete_document":
        return httpx.Response(200, json={"status": "deletion_started"})
    if path == "/graph/entity/exists":
        entity = json.loads(request.content)["entity"]
        return httpx.Response(200, json={"exists": True, "entity": entity})
    return httpx.Response(404, json={"detail": "not found"})


@pytest.fixture
def db():
    reset_engine()
    engine = get_engine()
    Base.metadata.create_all(engine)
    session = get_session_local()()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        reset_engine()
        session_manager.clear_session_config_cache()
        login_rate_limiter.reset()


@pytest.fixture
def lightrag():
    return LightRAGService(api_key="test-key", transport=httpx.MockTransport(lightrag_handler))


@pytest.fixture
def client(db, lightrag):
    app.dependency_overrides[get_lightrag_service] = lambda: lightrag
    # no webhook -> sample questions
    app.dependency_overrides[get_quiz_generator] = lambda: QuizGenerator(webhook_url="")
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db, email, role=UserRole.STUDENT, approval_status=ApprovalStatus.APPROVED, **fields):
    user = User(
        name=fields.pop("name", email.split("@")[0].title()),
        email=email,
        password_hash=hash_password(PASSWORD),
        role=role,
        approval_status=approval_status,
        timezone=fields.pop("timezone", "UTC"),
        **fields,
    )
    db.add(user)
    db.commit()
    return user


def auth_headers(db, user):
    session = session_manager.create_session(db, user)
    db.commit()
    token = create_access_token(user.id, session.id, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student(db):
    return make_user(db, "student@quizhub.test")


@pytest.fixture
def educator(db):
    return make_user(db, "teacher@quizhub.test", role=UserRole.EDUCATOR)


@pytest.fixture
def student_headers(db, student):
    return auth_headers(db, student)


@pytest.fixture
def educator_headers(db, educator):
    return auth_headers(db, educator)


@pytest.fixture
def processed_document(db, educator):
    document = Document(
        educator_id=educator.id,
        filename="cells.pdf",
        file_size=2048,
        mime_type="application/pdf",
        status=DocumentStatus.PROCESSED,
        processed_data={"track_id": "upload_1", "doc_id": "doc-1"},
    )
    db.add(document)
    db.commit()
    return document


def make_quiz(db, educator, start_offset=timedelta(minutes=-1), duration=30,
              status=QuizStatus.PUBLISHED, questions=3, **fields):
    """A quiz that started ``start_offset`` from now, with options a-d and answer 'a'."""
    quiz = Quiz(
        educator_id=educator.id,
        title=fields.pop("title", "Photosynthesis"),
        document_ids=[],
        start_time=utcnow() + start_offset if start_offset is not None else None,
        timezone="UTC",
        duration=duration,
        scheduling_status=fields.pop("scheduling_status", SchedulingStatus.LEGACY),
        status=status,
        total_questions=questions,
        **fields,
    )
    for index in range(questions):
        quiz.questions.append(Question(
            question_text=f"Question {index + 1}?",
            options=[{"id": oid, "text": f"Option {oid.upper()}"} for oid in "abcd"],
            correct_answer="a",
            explanation="Because A.",
            topic="Light reactions" if index % 2 == 0 else "Calvin cycle",
            order_index=index,
        ))
    db.add(quiz)
    db.commit()
    return quiz


def enroll(db, quiz, student, **fields):
    enrollment = Enrollment(quiz_id=quiz.id, student_id=student.id, **fields)
    db.add(enrollment)
    db.commit()
    return enrollment


def admin_login(client):
    response = client.post("/api/v1/admin/auth/login", json={
        "email": os.environ["SUPER_ADMIN_EMAIL"],
        "password": os.environ["SUPER_ADMIN_PASSWORD"],
    })
    assert response.status_code == 200, response.text
    return response
