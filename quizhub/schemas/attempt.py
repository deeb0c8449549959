"""
Quiz-taking schemas
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Any


class AnswerItem(BaseModel):
    """One answer as sent by the quiz player"""
    questionId: int = Field(..., description="Question id")
    answer: Optional[str] = Field(None, description="Selected option id")
    timeSpent: Optional[int] = Field(None, description="Seconds spent on the question")
    markedForReview: bool = False


class AutosaveRequest(BaseModel):
    attempt_id: int
    answers: List[AnswerItem] = Field(default_factory=list)
    current_question_index: int = Field(0, ge=0)
    time_remaining: Optional[int] = Field(None, description="Seconds left on the client timer")


class SubmitRequest(BaseModel):
    attempt_id: int
    answers: List[AnswerItem] = Field(default_factory=list)
    time_spent: Optional[int] = Field(None, ge=0, description="Total seconds; derived from the start time if omitted")

    class Config:
        json_schema_extra = {
            "example": {
                "attempt_id": 12,
                "answers": [{"questionId": 3, "answer": "b", "timeSpent": 40}],
                "time_spent": 600
            }
        }


class AttemptRequest(BaseModel):
    attempt_id: int


class SubmitResponse(BaseModel):
    success: bool
    attempt_id: int
    message: str


class AutosaveState(BaseModel):
    attempt_id: int
    answers: List[Any]
    current_question_index: int
    time_remaining: Optional[int] = None
    last_saved: Optional[str] = None


class AutosaveResponse(BaseModel):
    has_autosave: bool
    autosave_data: Optional[AutosaveState] = None
