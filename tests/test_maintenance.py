"""Enrollment reconciliation, stuck-attempt cleanup and the admin CLI."""

import json
from datetime import timedelta

from conftest import make_quiz, make_user, enroll
from quizhub import cli
from quizhub.core.security import verify_password
from quizhub.core.timezone import utcnow
from quizhub.models import QuizAttempt
from quizhub.models.enums import EnrollmentStatus, AttemptStatus, UserRole, ApprovalStatus
from quizhub.services import maintenance


def _attempt(db, enrollment, status=AttemptStatus.IN_PROGRESS, started_ago=timedelta(minutes=5), answers=None):
    attempt = QuizAttempt(
        quiz_id=enrollment.quiz_id,
        student_id=enrollment.student_id,
        enrollment_id=enrollment.id,
        answers=answers or [],
        start_time=utcnow() - started_ago,
        status=status,
    )
    db.add(attempt)
    db.commit()
    return attempt


def _drifted(db, educator):
    """Four enrollments: three with the wrong status, one already right."""
    quiz = make_quiz(db, educator)
    students = [make_user(db, f"s{i}@quizhub.test") for i in range(4)]
    finished = enroll(db, quiz, students[0])
    _attempt(db, finished, AttemptStatus.COMPLETED)
    left = enroll(db, quiz, students[1], status=EnrollmentStatus.IN_PROGRESS)
    _attempt(db, left, AttemptStatus.ABANDONED)
    taking = enroll(db, quiz, students[2])
    _attempt(db, taking)
    idle = enroll(db, quiz, students[3])
    return finished, left, taking, idle


def test_reconcile_dry_run_changes_nothing(db, educator) -> None:
    finished, left, taking, idle = _drifted(db, educator)

    report = maintenance.reconcile_enrollment_statuses(db, dry_run=True)

    assert report.checked == 4
    assert report.total_fixed == 3
    assert report.unchanged == 1
    assert report.inconsistent_ids == []
    assert report.status_summary == {"completed": 1, "enrolled": 2, "in_progress": 1}
    assert finished.status == EnrollmentStatus.ENROLLED
    assert left.status == EnrollmentStatus.IN_PROGRESS


def test_reconcile_fixes_drift(db, educator) -> None:
    finished, left, taking, idle = _drifted(db, educator)

    report = maintenance.reconcile_enrollment_statuses(db)

    assert (report.fixed_to_completed, report.fixed_to_enrolled, report.fixed_to_in_progress) == (1, 1, 1)
    assert finished.status == EnrollmentStatus.COMPLETED
    assert finished.completed_at is not None
    assert left.status == EnrollmentStatus.ENROLLED
    assert taking.status == EnrollmentStatus.IN_PROGRESS
    assert idle.status == EnrollmentStatus.ENROLLED

    again = maintenance.reconcile_enrollment_statuses(db)
    assert again.total_fixed == 0


def test_reassignment_keeps_abandoned_status(db, educator, student) -> None:
    quiz = make_quiz(db, educator)
    enrollment = enroll(db, quiz, student, status=EnrollmentStatus.IN_PROGRESS, is_reassignment=True)
    _attempt(db, enrollment, AttemptStatus.ABANDONED)

    report = maintenance.reconcile_enrollment_statuses(db)

    assert report.total_fixed == 0
    assert enrollment.status == EnrollmentStatus.IN_PROGRESS


def test_cleanup_stuck_attempts(db, educator) -> None:
    quiz = make_quiz(db, educator, start_offset=timedelta(hours=-2), duration=30)
    students = [make_user(db, f"s{i}@quizhub.test") for i in range(4)]
    enrollments = [enroll(db, quiz, s, status=EnrollmentStatus.IN_PROGRESS) for s in students]
    saved = [{"questionId": quiz.questions[0].id, "answer": "a"}]

    stale = _attempt(db, enrollments[0], started_ago=timedelta(minutes=61))
    blank = _attempt(db, enrollments[1], started_ago=timedelta(minutes=50))
    working = _attempt(db, enrollments[2], started_ago=timedelta(minutes=50), answers=saved)
    fresh = _attempt(db, enrollments[3], started_ago=timedelta(minutes=5))

    preview = maintenance.cleanup_stuck_attempts(db, dry_run=True)
    assert (preview.timed_out, preview.abandoned, preview.still_valid) == (1, 1, 2)
    assert stale.status == AttemptStatus.IN_PROGRESS

    report = maintenance.cleanup_stuck_attempts(db)
    assert report.checked == 4
    assert stale.status == AttemptStatus.TIMEOUT
    assert blank.status == AttemptStatus.ABANDONED
    assert working.status == AttemptStatus.IN_PROGRESS
    assert fresh.status == AttemptStatus.IN_PROGRESS
    assert report.attempt_status_summary[AttemptStatus.IN_PROGRESS] == 2
    # the abandoned attempt frees its enrollment
    assert enrollments[1].status == EnrollmentStatus.ENROLLED
    assert report.to_dict()["reconcile"]["fixed_to_enrolled"] == 1


def test_cli_reconcile_dry_run(db, educator, capsys) -> None:
    _drifted(db, educator)

    assert cli.main(["reconcile-enrollments", "--dry-run"]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["dry_run"] is True
    assert report["total_fixed"] == 3


def test_cli_seed_and_promote(db, capsys) -> None:
    user = make_user(db, "future.teacher@quizhub.test")

    assert cli.main(["seed-templates"]) == 0
    assert json.loads(capsys.readouterr().out)["created"] == 5

    assert cli.main(["promote-educator", "FUTURE.teacher@quizhub.test"]) == 0
    assert "approved educator" in capsys.readouterr().out

    db.expire_all()
    assert user.role == UserRole.EDUCATOR
    assert user.approval_status == ApprovalStatus.APPROVED
    assert user.permission_template_id is not None


def test_cli_reports_errors(db, capsys) -> None:
    assert cli.main(["promote-educator", "nobody@quizhub.test"]) == 1
    assert "No user with email" in capsys.readouterr().err


def test_cli_hash_password(capsys) -> None:
    assert cli.main(["hash-password", "s3cret-pass"]) == 0
    hashed = capsys.readouterr().out.strip()
    assert verify_password("s3cret-pass", hashed)
