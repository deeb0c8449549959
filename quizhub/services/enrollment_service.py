"""
Enrollment, educator roster and group management.

Original enrollments are one per (quiz, student). Reassignments add further
rows that point back at the original through ``parent_enrollment_id``.
"""

import logging
import secrets
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Iterable

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from quizhub.core.timezone import utcnow
from quizhub.models import (
    User, Quiz, QuizShareLink, Enrollment, EducatorStudent,
    StudentGroup, GroupMember, GroupEnrollment,
)
from quizhub.models.enums import UserRole, QuizStatus, EnrollmentStatus, LinkStatus
from quizhub.services import permissions
from quizhub.services.errors import (
    NotFoundError, PermissionDeniedError, ConflictError, ValidationError,
)
from quizhub.services.quiz_scheduling import can_enroll

logger = logging.getLogger(__name__)

DEFAULT_REASSIGNMENT_REASON = "Missed original attempt"


@dataclass
class BulkEnrollResult:
    enrolled: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    not_found: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enrolled": self.enrolled,
            "skipped": self.skipped,
            "not_found": self.not_found,
            "enrolled_count": len(self.enrolled),
        }


@dataclass
class ReassignResult:
    reassigned: List[int] = field(default_factory=list)
    skipped_completed: List[int] = field(default_factory=list)
    skipped_already_reassigned: List[int] = field(default_factory=list)
    not_enrolled: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reassigned": self.reassigned,
            "skipped_completed": self.skipped_completed,
            "skipped_already_reassigned": self.skipped_already_reassigned,
            "not_enrolled": self.not_enrolled,
            "reassigned_count": len(self.reassigned),
        }


def get_owned_quiz(db: Session, quiz_id: int, educator: User) -> Quiz:
    quiz = db.execute(select(Quiz).where(Quiz.id == quiz_id)).scalar_one_or_none()
    if quiz is None:
        raise NotFoundError("Quiz not found")
    if quiz.educator_id != educator.id and educator.role != UserRole.ADMIN:
        raise PermissionDeniedError("You do not have access to this quiz")
    return quiz


# Educator <-> student links

def get_link(db: Session, educator_id: int, student_id: int) -> Optional[EducatorStudent]:
    return db.execute(
        select(EducatorStudent).where(
            EducatorStudent.educator_id == educator_id,
            EducatorStudent.student_id == student_id,
        )
    ).scalar_one_or_none()


def count_active_students(db: Session, educator_id: int) -> int:
    return db.execute(
        select(func.count(EducatorStudent.id)).where(
            EducatorStudent.educator_id == educator_id,
            EducatorStudent.status == LinkStatus.ACTIVE,
        )
    ).scalar_one()


def ensure_educator_link(db: Session, educator_id: int, student_id: int) -> bool:
    """Create or reactivate the link. Returns True when a student was newly added."""
    link = get_link(db, educator_id, student_id)
    if link is None:
        db.add(EducatorStudent(educator_id=educator_id, student_id=student_id, status=LinkStatus.ACTIVE))
        db.flush()
        return True
    if link.status != LinkStatus.ACTIVE:
        link.status = LinkStatus.ACTIVE
        db.flush()
        return True
    return False


def list_students(db: Session, educator: User, include_inactive: bool = False) -> List[Dict[str, Any]]:
    stmt = select(EducatorStudent).where(EducatorStudent.educator_id == educator.id)
    if not include_inactive:
        stmt = stmt.where(EducatorStudent.status == LinkStatus.ACTIVE)
    links = db.execute(stmt.order_by(EducatorStudent.created_at.desc())).scalars().all()

    result = []
    for link in links:
        enrollment_count = db.execute(
            select(func.count(Enrollment.id))
            .join(Quiz, Quiz.id == Enrollment.quiz_id)
            .where(Enrollment.student_id == link.student_id, Quiz.educator_id == educator.id)
        ).scalar_one()
        result.append({
            "id": link.student.id,
            "name": link.student.name,
            "email": link.student.email,
            "status": link.status,
            "linked_at": link.created_at,
            "enrollment_count": enrollment_count,
        })
    return result


def add_student_by_email(db: Session, educator: User, email: str) -> User:
    permissions.require_permission(db, educator, "canAddStudents")
    student = db.execute(
        select(User).where(User.email == email.strip().lower())
    ).scalar_one_or_none()
    if student is None or student.role != UserRole.STUDENT:
        raise NotFoundError("No student account found with that email")

    link = get_link(db, educator.id, student.id)
    if link is not None and link.status == LinkStatus.ACTIVE:
        raise ConflictError("Student is already in your list")
    permissions.require_limit(db, educator, "maxStudents", count_active_students(db, educator.id))
    ensure_educator_link(db, educator.id, student.id)
    logger.info(f"[Students] educator {educator.id} added student {student.id}")
    return student


def deactivate_student(db: Session, educator: User, student_id: int) -> None:
    link = get_link(db, educator.id, student_id)
    if link is None:
        raise NotFoundError("Student not found")
    link.status = LinkStatus.INACTIVE
    db.flush()
    logger.info(f"[Students] educator {educator.id} deactivated student {student_id}")


# Enrollments

def _get_student(db: Session, student_id: int) -> Optional[User]:
    student = db.execute(select(User).where(User.id == student_id)).scalar_one_or_none()
    if student is None or student.role != UserRole.STUDENT:
        return None
    return student


def get_original_enrollment(db: Session, quiz_id: int, student_id: int) -> Optional[Enrollment]:
    return db.execute(
        select(Enrollment).where(
            Enrollment.quiz_id == quiz_id,
            Enrollment.student_id == student_id,
            Enrollment.is_reassignment.is_(False),
        )
    ).scalars().first()


def _require_enrollable(quiz: Quiz) -> None:
    decision = can_enroll(quiz)
    if not decision.allowed:
        raise ValidationError(decision.reason)


def _add_students_within_limit(db: Session, educator: User, student_ids: Iterable[int]) -> None:
    """Fail before enrolling anyone when the new links would exceed maxStudents."""
    new_links = []
    for student_id in student_ids:
        link = get_link(db, educator.id, student_id)
        if link is None or link.status != LinkStatus.ACTIVE:
            new_links.append(student_id)
    if not new_links:
        return
    permissions.require_permission(db, educator, "canAddStudents")
    permissions.require_limit(
        db, educator, "maxStudents", count_active_students(db, educator.id), adding=len(new_links)
    )


def _create_enrollment(db: Session, quiz: Quiz, student_id: int, group_enrollment_id: Optional[int] = None) -> Enrollment:
    enrollment = Enrollment(
        quiz_id=quiz.id,
        student_id=student_id,
        status=EnrollmentStatus.ENROLLED,
        enrolled_at=utcnow(),
        group_enrollment_id=group_enrollment_id,
    )
    db.add(enrollment)
    ensure_educator_link(db, quiz.educator_id, student_id)
    db.flush()
    return enrollment


def enroll_student(db: Session, quiz: Quiz, student_id: int, educator: Optional[User] = None) -> Enrollment:
    _require_enrollable(quiz)
    if _get_student(db, student_id) is None:
        raise NotFoundError("Student not found")
    if get_original_enrollment(db, quiz.id, student_id) is not None:
        raise ConflictError("Student is already enrolled in this quiz")
    if educator is not None:
        _add_students_within_limit(db, educator, [student_id])
    enrollment = _create_enrollment(db, quiz, student_id)
    logger.info(f"[Enrollment] student {student_id} enrolled in quiz {quiz.id}")
    return enrollment


def bulk_enroll(db: Session, educator: User, quiz: Quiz, student_ids: List[int]) -> BulkEnrollResult:
    _require_enrollable(quiz)
    result = BulkEnrollResult()
    candidates = []
    for student_id in dict.fromkeys(student_ids):
        if _get_student(db, student_id) is None:
            result.not_found.append(student_id)
        elif get_original_enrollment(db, quiz.id, student_id) is not None:
            result.skipped.append(student_id)
        else:
            candidates.append(student_id)

    _add_students_within_limit(db, educator, candidates)
    for student_id in candidates:
        _create_enrollment(db, quiz, student_id)
        result.enrolled.append(student_id)

    logger.info(
        f"[Enrollment] bulk enroll quiz {quiz.id}: {len(result.enrolled)} enrolled, "
        f"{len(result.skipped)} already enrolled, {len(result.not_found)} not found"
    )
    return result


def assign_group(
    db: Session,
    educator: User,
    quiz: Quiz,
    group_id: int,
    excluded_student_ids: Optional[List[int]] = None,
) -> Dict[str, Any]:
    _require_enrollable(quiz)
    group = get_group(db, educator, group_id)
    excluded = set(excluded_student_ids or [])

    record = GroupEnrollment(
        group_id=group.id,
        quiz_id=quiz.id,
        enrolled_by=educator.id,
        excluded_student_ids=sorted(excluded),
    )
    db.add(record)
    db.flush()

    candidates, skipped = [], []
    for member in group.active_members:
        if member.student_id in excluded:
            continue
        if get_original_enrollment(db, quiz.id, member.student_id) is not None:
            skipped.append(member.student_id)
        else:
            candidates.append(member.student_id)

    _add_students_within_limit(db, educator, candidates)
    for student_id in candidates:
        _create_enrollment(db, quiz, student_id, group_enrollment_id=record.id)

    logger.info(f"[Enrollment] group {group.id} assigned to quiz {quiz.id}: {len(candidates)} enrolled")
    return {
        "group_enrollment_id": record.id,
        "enrolled": candidates,
        "skipped": skipped,
        "excluded": sorted(excluded),
    }


def reassign_quiz(
    db: Session,
    educator: User,
    quiz: Quiz,
    student_ids: List[int],
    reason: str = DEFAULT_REASSIGNMENT_REASON,
) -> ReassignResult:
    if quiz.status != QuizStatus.PUBLISHED:
        raise ValidationError("Only published quizzes can be reassigned")

    result = ReassignResult()
    now = utcnow()
    for student_id in dict.fromkeys(student_ids):
        original = get_original_enrollment(db, quiz.id, student_id)
        if original is None:
            result.not_enrolled.append(student_id)
            continue
        if original.status == EnrollmentStatus.COMPLETED:
            logger.info(f"[Reassign] student {student_id} already completed quiz {quiz.id}, skipping")
            result.skipped_completed.append(student_id)
            continue
        previous = db.execute(
            select(Enrollment.id).where(
                Enrollment.quiz_id == quiz.id,
                Enrollment.student_id == student_id,
                Enrollment.is_reassignment.is_(True),
            )
        ).scalars().first()
        if previous is not None:
            result.skipped_already_reassigned.append(student_id)
            continue

        db.add(Enrollment(
            quiz_id=quiz.id,
            student_id=student_id,
            status=EnrollmentStatus.ENROLLED,
            enrolled_at=now,
            is_reassignment=True,
            parent_enrollment_id=original.id,
            reassignment_reason=reason,
            reassigned_at=now,
            reassigned_by=educator.id,
        ))
        result.reassigned.append(student_id)

    if not result.reassigned:
        raise ValidationError(
            "No eligible students for reassignment (all have completed, were already "
            "reassigned or have no original enrollment)",
            result.to_dict(),
        )
    db.flush()
    logger.info(f"[Reassign] quiz {quiz.id} reassigned to {len(result.reassigned)} students")
    return result


def list_quiz_enrollments(db: Session, quiz: Quiz) -> List[Dict[str, Any]]:
    rows = db.execute(
        select(Enrollment, User)
        .join(User, User.id == Enrollment.student_id)
        .where(Enrollment.quiz_id == quiz.id)
        .order_by(Enrollment.enrolled_at)
    ).all()
    return [
        {
            "id": enrollment.id,
            "student_id": student.id,
            "student_name": student.name,
            "student_email": student.email,
            "status": enrollment.status,
            "enrolled_at": enrollment.enrolled_at,
            "started_at": enrollment.started_at,
            "completed_at": enrollment.completed_at,
            "is_reassignment": enrollment.is_reassignment,
            "reassignment_reason": enrollment.reassignment_reason,
        }
        for enrollment, student in rows
    ]


# Share links

def _new_share_code(db: Session) -> str:
    while True:
        code = secrets.token_hex(4).upper()
        exists = db.execute(
            select(QuizShareLink.id).where(QuizShareLink.share_code == code)
        ).scalar_one_or_none()
        if exists is None:
            return code


def get_or_create_share_link(db: Session, quiz: Quiz, created_by: int) -> QuizShareLink:
    link = quiz.share_link
    if link is not None:
        if not link.is_active:
            link.is_active = True
            db.flush()
        return link
    link = QuizShareLink(quiz_id=quiz.id, share_code=_new_share_code(db), created_by=created_by)
    db.add(link)
    db.flush()
    logger.info(f"[Share] created share link {link.share_code} for quiz {quiz.id}")
    return link


def resolve_share_code(db: Session, code: str) -> QuizShareLink:
    link = db.execute(
        select(QuizShareLink).where(QuizShareLink.share_code == code)
    ).scalar_one_or_none()
    if link is None or not link.is_active:
        raise NotFoundError("Invalid or expired share link")
    return link


def enroll_via_share_code(db: Session, code: str, student: User) -> Dict[str, Any]:
    link = resolve_share_code(db, code)
    quiz = link.quiz
    link.access_count = (link.access_count or 0) + 1

    existing = get_original_enrollment(db, quiz.id, student.id)
    if existing is not None:
        ensure_educator_link(db, quiz.educator_id, student.id)
        return {"enrollment_id": existing.id, "quiz_id": quiz.id, "already_enrolled": True}

    _require_enrollable(quiz)
    enrollment = _create_enrollment(db, quiz, student.id)
    logger.info(f"[Share] student {student.id} enrolled in quiz {quiz.id} via {code}")
    return {"enrollment_id": enrollment.id, "quiz_id": quiz.id, "already_enrolled": False}


# Groups

def get_group(db: Session, educator: User, group_id: int) -> StudentGroup:
    group = db.execute(select(StudentGroup).where(StudentGroup.id == group_id)).scalar_one_or_none()
    if group is None or not group.is_active:
        raise NotFoundError("Group not found")
    if group.educator_id != educator.id:
        raise PermissionDeniedError("You do not have access to this group")
    return group


def list_groups(db: Session, educator: User) -> List[StudentGroup]:
    return db.execute(
        select(StudentGroup)
        .where(StudentGroup.educator_id == educator.id, StudentGroup.is_active.is_(True))
        .order_by(StudentGroup.created_at.desc())
    ).scalars().all()


def create_group(db: Session, educator: User, name: str, **fields) -> StudentGroup:
    group = StudentGroup(educator_id=educator.id, name=name, **fields)
    db.add(group)
    db.flush()
    logger.info(f"[Groups] educator {educator.id} created group {group.id}")
    return group


def update_group(db: Session, educator: User, group_id: int, **changes) -> StudentGroup:
    group = get_group(db, educator, group_id)
    if "max_size" in changes and changes["max_size"] is not None \
            and changes["max_size"] < len(group.active_members):
        raise ValidationError("Group size cannot be smaller than the current number of members")
    for key, value in changes.items():
        if value is not None:
            setattr(group, key, value)
    db.flush()
    return group


def delete_group(db: Session, educator: User, group_id: int) -> None:
    group = get_group(db, educator, group_id)
    group.is_active = False
    db.flush()
    logger.info(f"[Groups] group {group.id} deactivated")


def add_group_members(db: Session, educator: User, group_id: int, student_ids: List[int]) -> Dict[str, Any]:
    group = get_group(db, educator, group_id)
    by_student = {member.student_id: member for member in group.members}
    to_add = [sid for sid in dict.fromkeys(student_ids)
              if sid not in by_student or not by_student[sid].is_active]

    if len(group.active_members) + len(to_add) > group.max_size:
        raise ValidationError(
            f"Group is limited to {group.max_size} members",
            {"max_size": group.max_size, "current": len(group.active_members)},
        )

    added, invalid = [], []
    now = utcnow()
    for student_id in to_add:
        link = get_link(db, educator.id, student_id)
        if link is None or link.status != LinkStatus.ACTIVE:
            invalid.append(student_id)
            continue
        member = by_student.get(student_id)
        if member is None:
            group.members.append(GroupMember(student_id=student_id, added_by=educator.id, added_at=now))
        else:
            member.is_active = True
            member.added_by = educator.id
            member.added_at = now
            member.removed_at = None
            member.removed_by = None
        added.append(student_id)
    db.flush()
    return {"added": added, "invalid": invalid}


def remove_group_member(db: Session, educator: User, group_id: int, student_id: int) -> None:
    group = get_group(db, educator, group_id)
    member = next((m for m in group.members if m.student_id == student_id and m.is_active), None)
    if member is None:
        raise NotFoundError("Student is not a member of this group")
    member.is_active = False
    member.removed_at = utcnow()
    member.removed_by = educator.id
    db.flush()


def groups_for_student(db: Session, student: User) -> List[Dict[str, Any]]:
    rows = db.execute(
        select(StudentGroup, User)
        .join(GroupMember, GroupMember.group_id == StudentGroup.id)
        .join(User, User.id == StudentGroup.educator_id)
        .where(
            GroupMember.student_id == student.id,
            GroupMember.is_active.is_(True),
            StudentGroup.is_active.is_(True),
        )
    ).all()
    return [
        {
            "id": group.id,
            "name": group.name,
            "description": group.description,
            "theme": group.theme,
            "color": group.color,
            "educator_name": educator.name,
            "member_count": len(group.active_members),
        }
        for group, educator in rows
    ]
