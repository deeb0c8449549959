from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any
from datetime import datetime

from quizhub.core.timezone import is_valid_timezone


def _normalize_email(value: str) -> str:
    value = (value or "").strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("Invalid email address")
    return value


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_timezone(value):
        raise ValueError(f"Invalid timezone: {value}")
    return value


class SignupRequest(BaseModel):
    """Account registration"""
    name: str = Field(..., min_length=1, description="Display name")
    email: str = Field(..., description="Login email, stored lower-cased")
    password: str = Field(..., min_length=8, description="Plain-text password")
    role: str = Field("student", pattern="^(student|educator)$", description="student or educator")
    timezone: Optional[str] = Field(None, description="IANA timezone name")
    phone_number: Optional[str] = Field(None, description="Optional contact number")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Asha Rao",
                "email": "asha@example.com",
                "password": "correct-horse",
                "role": "educator",
                "timezone": "Asia/Kolkata"
            }
        }


class LoginRequest(BaseModel):
    email: str = Field(..., description="Login email")
    password: str = Field(..., description="Password")

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return (v or "").strip().lower()


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    timezone: Optional[str] = Field(None, description="IANA timezone name")
    phone_number: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class UserResponse(BaseModel):
    """User as returned to clients"""
    id: int
    name: str
    email: str
    role: str
    approval_status: str
    timezone: str
    phone_number: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str = Field(..., description="JWT carrying the session id")
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token lifetime in seconds")
    user: UserResponse


class RoleResponse(BaseModel):
    role: str
    approval_status: str
    rejection_reason: Optional[str] = None
    permissions: Dict[str, Any] = Field(default_factory=dict, description="Effective permissions")
