"""
Repairs for enrollment/attempt status drift.

Attempts are the source of truth: an enrollment's status is recomputed from
the attempts that hang off it. Both jobs support ``dry_run`` to report what
they would change without writing.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from quizhub.core.timezone import utcnow
from quizhub.models import Enrollment, QuizAttempt, Quiz
from quizhub.models.enums import EnrollmentStatus, AttemptStatus

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 30
TIMEOUT_FACTOR = 2
ABANDON_FACTOR = 1.5


@dataclass
class ReconcileReport:
    dry_run: bool
    checked: int = 0
    fixed_to_completed: int = 0
    fixed_to_enrolled: int = 0
    fixed_to_in_progress: int = 0
    unchanged: int = 0
    fixed_ids: List[int] = field(default_factory=list)
    inconsistent_ids: List[int] = field(default_factory=list)
    status_summary: Dict[str, int] = field(default_factory=dict)

    @property
    def total_fixed(self) -> int:
        return self.fixed_to_completed + self.fixed_to_enrolled + self.fixed_to_in_progress

    def to_dict(self) -> Dict:
        return {
            "dry_run": self.dry_run,
            "checked": self.checked,
            "fixed_to_completed": self.fixed_to_completed,
            "fixed_to_enrolled": self.fixed_to_enrolled,
            "fixed_to_in_progress": self.fixed_to_in_progress,
            "total_fixed": self.total_fixed,
            "unchanged": self.unchanged,
            "fixed_ids": self.fixed_ids,
            "inconsistent_ids": self.inconsistent_ids,
            "status_summary": self.status_summary,
        }


@dataclass
class CleanupReport:
    dry_run: bool
    checked: int = 0
    timed_out: int = 0
    abandoned: int = 0
    still_valid: int = 0
    attempt_status_summary: Dict[str, int] = field(default_factory=dict)
    reconcile: Optional[ReconcileReport] = None

    def to_dict(self) -> Dict:
        return {
            "dry_run": self.dry_run,
            "checked": self.checked,
            "timed_out": self.timed_out,
            "abandoned": self.abandoned,
            "still_valid": self.still_valid,
            "attempt_status_summary": self.attempt_status_summary,
            "reconcile": self.reconcile.to_dict() if self.reconcile else None,
        }


def _attempt_counts(db: Session) -> Dict[int, Counter]:
    rows = db.execute(
        select(QuizAttempt.enrollment_id, QuizAttempt.status, func.count(QuizAttempt.id))
        .where(QuizAttempt.enrollment_id.is_not(None))
        .group_by(QuizAttempt.enrollment_id, QuizAttempt.status)
    ).all()
    counts: Dict[int, Counter] = {}
    for enrollment_id, status, count in rows:
        counts.setdefault(enrollment_id, Counter())[status] = count
    return counts


def _target_status(enrollment: Enrollment, counts: Counter) -> Optional[str]:
    completed = counts.get(AttemptStatus.COMPLETED, 0)
    in_progress = counts.get(AttemptStatus.IN_PROGRESS, 0)
    abandoned = counts.get(AttemptStatus.ABANDONED, 0)

    if completed > 0:
        return EnrollmentStatus.COMPLETED
    if enrollment.status == EnrollmentStatus.IN_PROGRESS and not enrollment.is_reassignment \
            and in_progress == 0 and abandoned > 0:
        return EnrollmentStatus.ENROLLED
    if enrollment.status == EnrollmentStatus.ENROLLED and in_progress > 0:
        return EnrollmentStatus.IN_PROGRESS
    return None


def reconcile_enrollment_statuses(
    db: Session,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> ReconcileReport:
    now = now or utcnow()
    report = ReconcileReport(dry_run=dry_run)
    counts = _attempt_counts(db)
    enrollments = db.execute(select(Enrollment).order_by(Enrollment.id)).scalars().all()

    for enrollment in enrollments:
        report.checked += 1
        enrollment_counts = counts.get(enrollment.id, Counter())
        target = _target_status(enrollment, enrollment_counts)
        if target is None or target == enrollment.status:
            report.unchanged += 1
            continue

        logger.info(
            f"[Reconcile] enrollment {enrollment.id}: {enrollment.status} -> {target}"
            f"{' (dry run)' if dry_run else ''}"
        )
        report.fixed_ids.append(enrollment.id)
        if target == EnrollmentStatus.COMPLETED:
            report.fixed_to_completed += 1
        elif target == EnrollmentStatus.ENROLLED:
            report.fixed_to_enrolled += 1
        else:
            report.fixed_to_in_progress += 1

        if dry_run:
            continue
        enrollment.status = target
        if target == EnrollmentStatus.COMPLETED:
            enrollment.completed_at = enrollment.completed_at or now
        elif target == EnrollmentStatus.IN_PROGRESS:
            enrollment.started_at = enrollment.started_at or now

    if not dry_run:
        db.flush()

    # Verify
    for enrollment in enrollments:
        has_completed = counts.get(enrollment.id, Counter()).get(AttemptStatus.COMPLETED, 0) > 0
        status = enrollment.status
        if dry_run and enrollment.id in report.fixed_ids:
            status = _target_status(enrollment, counts.get(enrollment.id, Counter()))
        if (has_completed and status != EnrollmentStatus.COMPLETED) or \
                (not has_completed and status == EnrollmentStatus.COMPLETED):
            report.inconsistent_ids.append(enrollment.id)

    summary = Counter()
    for enrollment in enrollments:
        if dry_run and enrollment.id in report.fixed_ids:
            summary[_target_status(enrollment, counts.get(enrollment.id, Counter()))] += 1
        else:
            summary[enrollment.status] += 1
    report.status_summary = dict(summary)

    if report.inconsistent_ids:
        logger.warning(f"[Reconcile] {len(report.inconsistent_ids)} enrollments still inconsistent")
    logger.info(
        f"[Reconcile] checked {report.checked}, fixed {report.total_fixed}"
        f"{' (dry run)' if dry_run else ''}"
    )
    return report


def cleanup_stuck_attempts(
    db: Session,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> CleanupReport:
    """
    In-progress attempts past twice the quiz duration become ``timeout``.
    Past one and a half times the duration with nothing saved they become ``abandoned``.
    """
    now = now or utcnow()
    report = CleanupReport(dry_run=dry_run)
    rows = db.execute(
        select(QuizAttempt, Quiz.duration)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .where(QuizAttempt.status == AttemptStatus.IN_PROGRESS)
        .order_by(QuizAttempt.start_time)
    ).all()

    for attempt, duration in rows:
        report.checked += 1
        duration = timedelta(minutes=duration or DEFAULT_DURATION_MINUTES)
        elapsed = now - attempt.start_time

        if elapsed > duration * TIMEOUT_FACTOR:
            report.timed_out += 1
            logger.info(f"[Cleanup] attempt {attempt.id} timed out after {elapsed}")
            if not dry_run:
                attempt.status = AttemptStatus.TIMEOUT
                attempt.end_time = now
        elif elapsed > duration * ABANDON_FACTOR and not attempt.answers:
            report.abandoned += 1
            logger.info(f"[Cleanup] attempt {attempt.id} abandoned with no saved answers")
            if not dry_run:
                attempt.status = AttemptStatus.ABANDONED
                attempt.end_time = now
        else:
            report.still_valid += 1

    if not dry_run:
        db.flush()

    report.attempt_status_summary = {
        status: count
        for status, count in db.execute(
            select(QuizAttempt.status, func.count(QuizAttempt.id)).group_by(QuizAttempt.status)
        ).all()
    }
    report.reconcile = reconcile_enrollment_statuses(db, dry_run=dry_run, now=now)
    logger.info(
        f"[Cleanup] checked {report.checked}: {report.timed_out} timed out, "
        f"{report.abandoned} abandoned, {report.still_valid} still valid"
    )
    return report
