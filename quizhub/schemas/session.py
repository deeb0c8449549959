"""
Session status and extension schemas
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class SessionStatusResponse(BaseModel):
    state: str = Field(..., description="active, idle, warning, expired, quiz_active or extended")
    remaining_seconds: int
    idle_seconds: int
    extensions: int
    max_extensions: int
    can_extend: bool
    quiz_active: bool
    started_at: datetime
    last_activity: datetime
    role: str
    quiz_id: Optional[int] = None


class QuizSessionRequest(BaseModel):
    quiz_id: int = Field(..., description="Quiz being taken")
