"""
Admin context schemas
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime


class AdminLoginRequest(BaseModel):
    email: str
    password: str


class AdminSessionResponse(BaseModel):
    id: int
    email: str
    name: str
    role: str
    expires_in: Optional[int] = Field(None, description="Seconds until the admin session ends")


class ApproveRequest(BaseModel):
    template_id: Optional[int] = Field(None, description="Permission template; the default one when omitted")


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class PermissionsRequest(BaseModel):
    permissions: Dict[str, Any] = Field(..., description="Custom permission override")


class TemplateAssignRequest(BaseModel):
    template_id: int


class AttachStudentRequest(BaseModel):
    educator_id: int


class PromoteRequest(BaseModel):
    email: str


class TemplateCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    permissions: Dict[str, Any]
    is_default: bool = False


class TemplateUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    permissions: Optional[Dict[str, Any]] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class TemplateResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    permissions: Dict[str, Any]
    is_default: bool
    is_active: bool
    user_count: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SettingRequest(BaseModel):
    value: Any = Field(..., description="JSON value")
    description: Optional[str] = None


class SettingResponse(BaseModel):
    setting_key: str
    setting_value: Any
    description: Optional[str] = None
    updated_by: Optional[int] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
