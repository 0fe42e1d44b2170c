"""
API Schemas Module

Request and response models of the HTTP layer.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from learnai.progress.models import SessionData


class SessionProgressRequest(BaseModel):
    problems_attempted: int = Field(0, ge=0, description="Problems tried in the session")
    problems_correct: int = Field(0, ge=0, description="Problems answered correctly")
    duration_minutes: int = Field(0, ge=0, description="Session length in minutes")
    points_earned: int = Field(0, ge=0, description="Points awarded for the session")
    concepts: List[str] = Field(default_factory=list, description="Concept ids practiced")

    def to_session_data(self) -> SessionData:
        return SessionData(
            problems_attempted=self.problems_attempted,
            problems_correct=self.problems_correct,
            duration_minutes=self.duration_minutes,
            points_earned=self.points_earned,
            concepts=list(self.concepts),
        )


class ProgressResponse(BaseModel):
    id: str
    student_id: str
    subject_id: str
    topic_id: str
    mastery_level: float
    total_time_minutes: int
    sessions_count: int
    last_practiced_at: Optional[str] = None
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: str


class RecommendationResponse(BaseModel):
    topic_id: str
    topic_name: str
    subject_id: str
    subject_name: str
    reason: str
    priority: float
    type: str
    current_mastery: Optional[float] = None


class RecommendationSetResponse(BaseModel):
    success: bool = True
    recommendations: List[RecommendationResponse]
    total: int
    strategies: Dict[str, int]


class PathAction(str, Enum):
    PATH = "path"
    VISUALIZATION = "visualization"


class AdjustPathRequest(BaseModel):
    student_id: str
    topic_id: str
    accuracy: float = Field(..., ge=0, le=1, description="Recent accuracy on a 0-1 scale")
    time_spent: Optional[float] = Field(None, ge=0, description="Time spent in minutes")
    attempts: int = Field(0, ge=0, description="Attempts on the current problem set")


class ReviewQueryAction(str, Enum):
    DUE = "due"
    SCHEDULE = "schedule"
    STATISTICS = "statistics"


class ReviewAction(str, Enum):
    REVIEW = "review"
    SCHEDULE = "schedule"


class ReviewRequest(BaseModel):
    action: ReviewAction = ReviewAction.REVIEW
    student_id: str
    concept_id: str
    quality: Optional[float] = Field(None, description="Recall quality 0-5")
    subject_id: Optional[str] = None
    session_id: Optional[str] = None


class ErrorResponse(BaseModel):
    status: str = "error"
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
