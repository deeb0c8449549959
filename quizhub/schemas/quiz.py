"""
Quiz authoring schemas
Creation, editing, scheduling and question updates
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Any, Union
from datetime import datetime

from quizhub.core.timezone import is_valid_timezone
from quizhub.models.enums import Difficulty, BloomsLevel, SchedulingStatus


class QuizCreateRequest(BaseModel):
    """Create a quiz from processed documents"""
    title: str = Field(..., min_length=1, description="Quiz title")
    description: Optional[str] = Field(None, description="Quiz description")
    document_ids: List[int] = Field(..., min_length=1, description="Source document ids")
    question_count: int = Field(10, ge=1, le=100, description="Number of questions to generate")
    duration: int = Field(30, ge=1, le=600, description="Time limit in minutes")
    difficulty: str = Field(Difficulty.INTERMEDIATE, description="easy, intermediate or hard")
    blooms_levels: List[str] = Field(default_factory=lambda: [BloomsLevel.KNOWLEDGE])
    topics: List[str] = Field(default_factory=list)
    books: List[str] = Field(default_factory=list)
    chapters: List[str] = Field(default_factory=list)
    scheduling_mode: str = Field(SchedulingStatus.LEGACY, description="legacy (start time required) or deferred")
    start_time: Optional[datetime] = Field(None, description="Start time; naive values are read in `timezone`")
    timezone: Optional[str] = Field(None, description="IANA timezone, defaults to the educator's")
    passing_score: int = Field(70, ge=0, le=100)
    shuffle_questions: bool = False
    validate_questions: bool = Field(True, description="Check questions against the knowledge graph")

    @field_validator("difficulty")
    @classmethod
    def check_difficulty(cls, v: str) -> str:
        if v not in Difficulty.ALL:
            raise ValueError(f"difficulty must be one of {', '.join(Difficulty.ALL)}")
        return v

    @field_validator("blooms_levels")
    @classmethod
    def check_blooms(cls, v: List[str]) -> List[str]:
        unknown = [level for level in v if level not in BloomsLevel.ALL]
        if unknown:
            raise ValueError(f"Unknown Bloom's levels: {', '.join(unknown)}")
        return v

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_timezone(v):
            raise ValueError(f"Invalid timezone: {v}")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Cell Biology - Chapter 3",
                "document_ids": [1],
                "question_count": 10,
                "duration": 30,
                "difficulty": "intermediate",
                "blooms_levels": ["knowledge", "application"],
                "scheduling_mode": "deferred"
            }
        }


class QuizUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    duration: Optional[int] = Field(None, ge=1, le=600)
    passing_score: Optional[int] = Field(None, ge=0, le=100)
    shuffle_questions: Optional[bool] = None


class QuizScheduleRequest(BaseModel):
    start_time: datetime = Field(..., description="New start time")
    timezone: Optional[str] = Field(None, description="IANA timezone for a naive start time")


class OptionItem(BaseModel):
    id: str
    text: str


class QuestionUpdateRequest(BaseModel):
    question_text: Optional[str] = Field(None, min_length=1)
    options: Optional[List[OptionItem]] = None
    correct_answer: Optional[str] = Field(None, description="Option id")
    explanation: Optional[str] = None
    difficulty: Optional[str] = None
    blooms_level: Optional[str] = None
    topic: Optional[str] = None
    book: Optional[str] = None
    chapter: Optional[str] = None


class QuestionValidateItem(BaseModel):
    id: Optional[Union[int, str]] = Field(None, description="Client key for the result; defaults to the list position")
    question_text: str = Field(..., min_length=1)
    options: List[OptionItem] = Field(..., min_length=2)
    correct_answer: str
    explanation: Optional[str] = None


class QuestionValidateRequest(BaseModel):
    """Inline questions, stored question ids, or both."""
    questions: List[QuestionValidateItem] = Field(default_factory=list)
    question_ids: List[int] = Field(default_factory=list, description="Saved questions of this educator")
    single: bool = Field(False, description="Return one validation instead of a batch")


class QuestionResponse(BaseModel):
    id: int
    question_text: str
    options: List[Dict[str, Any]]
    correct_answer: str
    explanation: Optional[str] = None
    difficulty: Optional[str] = None
    blooms_level: Optional[str] = None
    topic: Optional[str] = None
    book: Optional[str] = None
    chapter: Optional[str] = None
    order_index: int

    class Config:
        from_attributes = True


class QuizSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: str
    duration: int
    total_questions: int
    passing_score: int
    shuffle_questions: bool
    scheduling_status: str
    start_time: Optional[datetime] = None
    timezone: str
    created_at: Optional[datetime] = None
    enrollment_count: int = 0

    class Config:
        from_attributes = True


class QuizListResponse(BaseModel):
    quizzes: List[QuizSummary]
    total: int


class QuizCreateResponse(BaseModel):
    quiz: Dict[str, Any] = Field(..., description="Quiz detail including questions")
    used_fallback: bool = Field(..., description="Sample questions were used instead of generated ones")
    message: Optional[str] = None
    validation: Optional[Dict[str, Any]] = Field(None, description="Question validation summary")


class ShareLinkResponse(BaseModel):
    share_code: str
    share_url: Optional[str] = None
    access_count: int
    created_at: Optional[datetime] = None
