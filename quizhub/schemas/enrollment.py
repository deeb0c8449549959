from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime


class EnrollRequest(BaseModel):
    student_id: int


class BulkEnrollRequest(BaseModel):
    student_ids: List[int] = Field(..., min_length=1)


class AssignGroupRequest(BaseModel):
    group_id: int
    excluded_student_ids: List[int] = Field(default_factory=list)


class ReassignRequest(BaseModel):
    student_ids: List[int] = Field(..., min_length=1)
    reason: Optional[str] = Field(None, description="Shown to the student")


class AddStudentRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class StudentResponse(BaseModel):
    id: int
    name: str
    email: str
    timezone: Optional[str] = None

    class Config:
        from_attributes = True


class GroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    theme: Optional[str] = None
    color: Optional[str] = None
    max_size: int = Field(30, ge=1, le=500)


class GroupUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    theme: Optional[str] = None
    color: Optional[str] = None
    max_size: Optional[int] = Field(None, ge=1, le=500)


class GroupMembersRequest(BaseModel):
    student_ids: List[int] = Field(..., min_length=1)


class GroupResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    theme: Optional[str] = None
    color: Optional[str] = None
    max_size: int
    is_active: bool
    member_count: int = 0
    members: List[StudentResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
