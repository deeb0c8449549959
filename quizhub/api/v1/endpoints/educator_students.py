"""
Educator roster and student groups
"""

from fastapi import APIRouter, status, Depends, Query
from sqlalchemy.orm import Session
import logging

from quizhub.api.dependencies import require_educator
from quizhub.db.database import get_db
from quizhub.models.user import User
from quizhub.schemas.enrollment import (
    AddStudentRequest,
    StudentResponse,
    GroupCreateRequest,
    GroupUpdateRequest,
    GroupMembersRequest,
    GroupResponse,
)
from quizhub.services import enrollment_service

logger = logging.getLogger(__name__)
router = APIRouter()


def _group_response(group, with_members: bool = False) -> GroupResponse:
    members = group.active_members
    return GroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        theme=group.theme,
        color=group.color,
        max_size=group.max_size,
        is_active=group.is_active,
        member_count=len(members),
        members=[StudentResponse.model_validate(m.student) for m in members] if with_members else [],
        created_at=group.created_at,
    )


@router.get("/students")
def list_students(
    include_inactive: bool = Query(False),
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    students = enrollment_service.list_students(db, current_user, include_inactive)
    return {"students": students, "total": len(students)}


@router.post("/students", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
def add_student(
    payload: AddStudentRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    """Link an existing student account to this educator."""
    student = enrollment_service.add_student_by_email(db, current_user, payload.email)
    db.commit()
    return student


@router.delete("/students/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_student(
    student_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    enrollment_service.deactivate_student(db, current_user, student_id)
    db.commit()
    return None


# Groups

@router.get("/groups")
def list_groups(
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    groups = enrollment_service.list_groups(db, current_user)
    return {"groups": [_group_response(g) for g in groups], "total": len(groups)}


@router.post("/groups", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
def create_group(
    payload: GroupCreateRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    fields = payload.model_dump()
    name = fields.pop("name")
    group = enrollment_service.create_group(db, current_user, name, **fields)
    db.commit()
    return _group_response(group)


@router.get("/groups/{group_id}", response_model=GroupResponse)
def get_group(
    group_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    return _group_response(enrollment_service.get_group(db, current_user, group_id), with_members=True)


@router.patch("/groups/{group_id}", response_model=GroupResponse)
def update_group(
    group_id: int,
    payload: GroupUpdateRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    group = enrollment_service.update_group(
        db, current_user, group_id, **payload.model_dump(exclude_unset=True)
    )
    db.commit()
    return _group_response(group, with_members=True)


@router.delete("/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(
    group_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    enrollment_service.delete_group(db, current_user, group_id)
    db.commit()
    return None


@router.post("/groups/{group_id}/members")
def add_group_members(
    group_id: int,
    payload: GroupMembersRequest,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    """Only students already linked to the educator can join; others come back as invalid."""
    result = enrollment_service.add_group_members(db, current_user, group_id, payload.student_ids)
    db.commit()
    return result


@router.delete("/groups/{group_id}/members/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_group_member(
    group_id: int,
    student_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    enrollment_service.remove_group_member(db, current_user, group_id, student_id)
    db.commit()
    return None
