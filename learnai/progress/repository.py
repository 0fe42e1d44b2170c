"""
Progress Repository Module

Repository interfaces for every entity the progress engine reads or
writes. Services depend only on these interfaces; in-memory and
SQLAlchemy implementations live in ``memory_repository`` and
``sql_repository``.
"""

import abc
import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from .models import (
    Concept,
    ConceptReview,
    DailyActivity,
    LearningSession,
    ReviewLog,
    Student,
    StudentProgress,
    Subject,
    Topic,
)


class ProgressOrder(enum.Enum):
    LAST_PRACTICED_DESC = "last_practiced_desc"
    MASTERY_ASC = "mastery_asc"
    MASTERY_DESC = "mastery_desc"


@dataclass
class ProgressFilter:
    """
    Filtered query over a student's progress records.

    Bounds are optional; ``mastery_gt`` and ``mastery_lt`` are exclusive,
    ``mastery_gte`` and ``min_sessions`` inclusive.
    """
    student_id: str
    subject_id: Optional[str] = None
    topic_ids: Optional[Sequence[str]] = None
    mastery_gt: Optional[float] = None
    mastery_gte: Optional[float] = None
    mastery_lt: Optional[float] = None
    min_sessions: Optional[int] = None
    order: ProgressOrder = ProgressOrder.LAST_PRACTICED_DESC
    limit: Optional[int] = None

    def matches(self, progress: StudentProgress) -> bool:
        if progress.student_id != self.student_id:
            return False
        if self.subject_id is not None and progress.subject_id != self.subject_id:
            return False
        if self.topic_ids is not None and progress.topic_id not in self.topic_ids:
            return False
        if self.mastery_gt is not None and not progress.mastery_level > self.mastery_gt:
            return False
        if self.mastery_gte is not None and not progress.mastery_level >= self.mastery_gte:
            return False
        if self.mastery_lt is not None and not progress.mastery_level < self.mastery_lt:
            return False
        if self.min_sessions is not None and progress.sessions_count < self.min_sessions:
            return False
        return True


@dataclass
class TopicFilter:
    """
    Filtered query over curriculum topics, ordered by ``order_index``.

    ``grade_above`` keeps topics whose grade level is strictly greater.
    """
    subject_id: Optional[str] = None
    grade_level: Optional[int] = None
    grade_above: Optional[int] = None
    parent_topic_id: Optional[str] = None
    without_prerequisites: bool = False
    active_only: bool = True
    limit: Optional[int] = None

    def matches(self, topic: Topic) -> bool:
        if self.active_only and not topic.is_active:
            return False
        if self.subject_id is not None and topic.subject_id != self.subject_id:
            return False
        if self.grade_level is not None and topic.grade_level != self.grade_level:
            return False
        if self.grade_above is not None and not topic.grade_level > self.grade_above:
            return False
        if self.parent_topic_id is not None and topic.parent_topic_id != self.parent_topic_id:
            return False
        if self.without_prerequisites and topic.prerequisites:
            return False
        return True


class StudentRepository(abc.ABC):

    @abc.abstractmethod
    async def get_by_id(self, student_id: str) -> Optional[Student]:
        pass


class SessionRepository(abc.ABC):

    @abc.abstractmethod
    async def get_by_id(self, session_id: str) -> Optional[LearningSession]:
        pass


class CurriculumRepository(abc.ABC):
    """Read access to subjects, topics and concepts."""

    @abc.abstractmethod
    async def get_topic(self, topic_id: str) -> Optional[Topic]:
        pass

    @abc.abstractmethod
    async def get_topics(self, topic_ids: Sequence[str]) -> List[Topic]:
        """Topics for the given ids; unknown ids are skipped."""

    @abc.abstractmethod
    async def find_topics(self, topic_filter: TopicFilter) -> List[Topic]:
        pass

    @abc.abstractmethod
    async def get_subjects(self, subject_ids: Sequence[str]) -> Dict[str, Subject]:
        """Subjects keyed by id; unknown ids are skipped."""

    @abc.abstractmethod
    async def get_concepts(self, concept_ids: Sequence[str]) -> Dict[str, Concept]:
        """Concepts keyed by id; unknown ids are skipped."""

    async def get_subject(self, subject_id: str) -> Optional[Subject]:
        return (await self.get_subjects([subject_id])).get(subject_id)


class ProgressRepository(abc.ABC):

    @abc.abstractmethod
    async def get(self, student_id: str, topic_id: str) -> Optional[StudentProgress]:
        pass

    @abc.abstractmethod
    async def save(self, progress: StudentProgress) -> StudentProgress:
        """
        Create or update a progress record.

        Records are matched by (student, topic); the last write wins.
        """

    @abc.abstractmethod
    async def find(self, progress_filter: ProgressFilter) -> List[StudentProgress]:
        pass


class ActivityRepository(abc.ABC):

    @abc.abstractmethod
    async def get(self, student_id: str, activity_date: date) -> Optional[DailyActivity]:
        pass

    @abc.abstractmethod
    async def save(self, activity: DailyActivity) -> DailyActivity:
        """Create or update the record of (student, date)."""

    @abc.abstractmethod
    async def list_recent(self, student_id: str, limit: int = 30) -> List[DailyActivity]:
        """The most recent ``limit`` records, newest first."""

    @abc.abstractmethod
    async def list_since(self, student_id: str, start: date) -> List[DailyActivity]:
        """Records dated on or after ``start``, oldest first."""

    @abc.abstractmethod
    async def longest_streak(self, student_id: str) -> int:
        """Highest ``streak_day`` ever recorded, 0 without activity."""


class ReviewRepository(abc.ABC):

    @abc.abstractmethod
    async def get(self, student_id: str, concept_id: str) -> Optional[ConceptReview]:
        pass

    @abc.abstractmethod
    async def save(self, review: ConceptReview) -> ConceptReview:
        """Create or update the review of (student, concept)."""

    @abc.abstractmethod
    async def find_due(self, student_id: str, now: datetime,
                       subject_id: Optional[str] = None) -> List[ConceptReview]:
        """Reviews with ``next_review_date <= now``, earliest due first."""

    @abc.abstractmethod
    async def list_for_student(self, student_id: str,
                               subject_id: Optional[str] = None) -> List[ConceptReview]:
        """All reviews of a student, earliest due first."""

    @abc.abstractmethod
    async def add_log(self, log: ReviewLog) -> ReviewLog:
        pass

    @abc.abstractmethod
    async def list_logs(self, review_id: str) -> List[ReviewLog]:
        pass
