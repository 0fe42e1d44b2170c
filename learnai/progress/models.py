"""
Progress Domain Model Module

Domain entities of the progress engine: the curriculum the engine reads
(students, subjects, topics, concepts, learning sessions) and the state it
writes (per-topic progress, daily activity, spaced-repetition reviews).

All timestamps are naive UTC datetimes.
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from learnai.common.error_handling import ValidationError
from learnai.common.utils import new_id, parse_date, parse_datetime, safe_divide, utcnow


class Difficulty(enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


@dataclass
class Student:
    id: str
    grade_level: int = 0
    first_name: Optional[str] = None


@dataclass
class Subject:
    id: str
    name: str


@dataclass
class Topic:
    """
    A node of the curriculum graph.

    Attributes:
        id: Topic identifier
        subject_id: Owning subject
        name: Display name
        grade_level: School grade the topic belongs to
        order_index: Position of the topic within its subject
        difficulty: Difficulty band
        prerequisites: Ids of topics that should be mastered first
        parent_topic_id: Parent in the topic tree, unlocked children follow it
        is_active: Inactive topics are never recommended
    """
    id: str
    subject_id: str
    name: str
    grade_level: int = 0
    order_index: int = 0
    difficulty: Difficulty = Difficulty.MEDIUM
    prerequisites: List[str] = field(default_factory=list)
    parent_topic_id: Optional[str] = None
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'subject_id': self.subject_id,
            'name': self.name,
            'grade_level': self.grade_level,
            'order_index': self.order_index,
            'difficulty': self.difficulty.value,
            'prerequisites': list(self.prerequisites),
            'parent_topic_id': self.parent_topic_id,
            'is_active': self.is_active,
        }


@dataclass
class Concept:
    id: str
    name: str
    subject_id: Optional[str] = None


@dataclass
class LearningSession:
    id: str
    student_id: str
    subject_id: str
    topic_id: str
    started_at: datetime = field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    duration_minutes: int = 0
    problems_attempted: int = 0
    problems_correct: int = 0


@dataclass
class SessionData:
    """
    Performance reported when a learning session ends.

    Attributes:
        problems_attempted: Number of problems the student tried
        problems_correct: Number answered correctly
        duration_minutes: Time spent in the session
        points_earned: Gamification points awarded for the session
        concepts: Concept ids practiced during the session
    """
    problems_attempted: int = 0
    problems_correct: int = 0
    duration_minutes: int = 0
    points_earned: int = 0
    concepts: List[str] = field(default_factory=list)

    def validate(self) -> None:
        for name in ('problems_attempted', 'problems_correct', 'duration_minutes', 'points_earned'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"{name} must be a non-negative number", details={name: value})
        if self.problems_correct > self.problems_attempted:
            raise ValidationError(
                "problems_correct cannot exceed problems_attempted",
                details={
                    'problems_attempted': self.problems_attempted,
                    'problems_correct': self.problems_correct,
                },
            )

    @property
    def accuracy(self) -> float:
        """Percentage of correct answers, 0 when nothing was attempted."""
        return safe_divide(self.problems_correct, self.problems_attempted) * 100


@dataclass
class StudentProgress:
    """
    Mastery state of one student on one topic.

    ``mastery_level`` is stored on a 0-100 scale. ``strengths`` and
    ``weaknesses`` hold at most five concept ids each, oldest first, and
    never share an entry.
    """
    id: str
    student_id: str
    subject_id: str
    topic_id: str
    mastery_level: float = 0.0
    total_time_minutes: int = 0
    sessions_count: int = 0
    last_practiced_at: Optional[datetime] = None
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(cls, student_id: str, subject_id: str, topic_id: str, **values: Any) -> 'StudentProgress':
        return cls(id=new_id(), student_id=student_id, subject_id=subject_id, topic_id=topic_id, **values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'student_id': self.student_id,
            'subject_id': self.subject_id,
            'topic_id': self.topic_id,
            'mastery_level': self.mastery_level,
            'total_time_minutes': self.total_time_minutes,
            'sessions_count': self.sessions_count,
            'last_practiced_at': self.last_practiced_at.isoformat() if self.last_practiced_at else None,
            'strengths': list(self.strengths),
            'weaknesses': list(self.weaknesses),
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StudentProgress':
        return cls(
            id=data['id'],
            student_id=data['student_id'],
            subject_id=data['subject_id'],
            topic_id=data['topic_id'],
            mastery_level=data.get('mastery_level', 0.0),
            total_time_minutes=data.get('total_time_minutes', 0),
            sessions_count=data.get('sessions_count', 0),
            last_practiced_at=parse_datetime(data.get('last_practiced_at')),
            strengths=list(data.get('strengths') or []),
            weaknesses=list(data.get('weaknesses') or []),
            created_at=parse_datetime(data.get('created_at')) or utcnow(),
            updated_at=parse_datetime(data.get('updated_at')) or utcnow(),
        )


@dataclass
class DailyActivity:
    """One row per student per calendar day."""
    id: str
    student_id: str
    activity_date: date
    minutes_learned: int = 0
    sessions_count: int = 0
    points_earned: int = 0
    topics_studied: List[str] = field(default_factory=list)
    streak_day: int = 1

    @classmethod
    def create(cls, student_id: str, activity_date: date, **values: Any) -> 'DailyActivity':
        return cls(id=new_id(), student_id=student_id, activity_date=activity_date, **values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'student_id': self.student_id,
            'activity_date': self.activity_date.isoformat(),
            'minutes_learned': self.minutes_learned,
            'sessions_count': self.sessions_count,
            'points_earned': self.points_earned,
            'topics_studied': list(self.topics_studied),
            'streak_day': self.streak_day,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DailyActivity':
        return cls(
            id=data['id'],
            student_id=data['student_id'],
            activity_date=parse_date(data['activity_date']),
            minutes_learned=data.get('minutes_learned', 0),
            sessions_count=data.get('sessions_count', 0),
            points_earned=data.get('points_earned', 0),
            topics_studied=list(data.get('topics_studied') or []),
            streak_day=data.get('streak_day', 1),
        )


@dataclass
class ConceptReview:
    """
    SM-2 scheduling state of one concept for one student.

    Attributes:
        ease_factor: Interval multiplier, never below 1.3
        interval: Days until the next review
        repetitions: Consecutive successful reviews since the last failure
        next_review_date: The review is due once this moment has passed
        total_reviews: Number of recorded reviews
        average_quality: Running mean of review quality (0-5)
    """
    id: str
    student_id: str
    concept_id: str
    next_review_date: datetime
    subject_id: Optional[str] = None
    ease_factor: float = 2.5
    interval: int = 1
    repetitions: int = 0
    last_reviewed_at: Optional[datetime] = None
    total_reviews: int = 0
    average_quality: float = 0.0
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(cls, student_id: str, concept_id: str, next_review_date: datetime,
               subject_id: Optional[str] = None, **values: Any) -> 'ConceptReview':
        return cls(
            id=new_id(),
            student_id=student_id,
            concept_id=concept_id,
            next_review_date=next_review_date,
            subject_id=subject_id,
            **values
        )

    def is_due(self, now: datetime) -> bool:
        return self.next_review_date <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'student_id': self.student_id,
            'concept_id': self.concept_id,
            'subject_id': self.subject_id,
            'ease_factor': self.ease_factor,
            'interval': self.interval,
            'repetitions': self.repetitions,
            'next_review_date': self.next_review_date.isoformat(),
            'last_reviewed_at': self.last_reviewed_at.isoformat() if self.last_reviewed_at else None,
            'total_reviews': self.total_reviews,
            'average_quality': self.average_quality,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConceptReview':
        return cls(
            id=data['id'],
            student_id=data['student_id'],
            concept_id=data['concept_id'],
            subject_id=data.get('subject_id'),
            next_review_date=parse_datetime(data['next_review_date']),
            ease_factor=data.get('ease_factor', 2.5),
            interval=data.get('interval', 1),
            repetitions=data.get('repetitions', 0),
            last_reviewed_at=parse_datetime(data.get('last_reviewed_at')),
            total_reviews=data.get('total_reviews', 0),
            average_quality=data.get('average_quality', 0.0),
            created_at=parse_datetime(data.get('created_at')) or utcnow(),
        )


@dataclass
class ReviewLog:
    """A single recorded review of a concept."""
    id: str
    review_id: str
    quality: float
    reviewed_at: datetime
    session_id: Optional[str] = None

    @classmethod
    def create(cls, review_id: str, quality: float, reviewed_at: datetime,
               session_id: Optional[str] = None) -> 'ReviewLog':
        return cls(id=new_id(), review_id=review_id, quality=quality,
                   reviewed_at=reviewed_at, session_id=session_id)
