"""
Memory Progress Repository Module

In-memory implementations of the progress repositories for development
and testing. Entities are copied on the way in and out so callers cannot
mutate stored state without calling ``save``.
"""

import copy
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

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
from .repository import (
    ActivityRepository,
    CurriculumRepository,
    ProgressFilter,
    ProgressOrder,
    ProgressRepository,
    ReviewRepository,
    SessionRepository,
    StudentRepository,
    TopicFilter,
)
from .streaks import longest_streak

T = TypeVar("T")


def _copy(entity: Optional[T]) -> Optional[T]:
    return copy.deepcopy(entity)


class MemoryStudentRepository(StudentRepository):

    def __init__(self, initial_data: Optional[Iterable[Student]] = None):
        self._students: Dict[str, Student] = {s.id: s for s in initial_data or []}

    def add(self, student: Student) -> None:
        self._students[student.id] = _copy(student)

    async def get_by_id(self, student_id: str) -> Optional[Student]:
        return _copy(self._students.get(student_id))


class MemorySessionRepository(SessionRepository):

    def __init__(self, initial_data: Optional[Iterable[LearningSession]] = None):
        self._sessions: Dict[str, LearningSession] = {s.id: s for s in initial_data or []}

    def add(self, session: LearningSession) -> None:
        self._sessions[session.id] = _copy(session)

    async def get_by_id(self, session_id: str) -> Optional[LearningSession]:
        return _copy(self._sessions.get(session_id))


class MemoryCurriculumRepository(CurriculumRepository):

    def __init__(
        self,
        subjects: Optional[Iterable[Subject]] = None,
        topics: Optional[Iterable[Topic]] = None,
        concepts: Optional[Iterable[Concept]] = None
    ):
        self._subjects: Dict[str, Subject] = {s.id: s for s in subjects or []}
        self._topics: Dict[str, Topic] = {t.id: t for t in topics or []}
        self._concepts: Dict[str, Concept] = {c.id: c for c in concepts or []}

    def add_subject(self, subject: Subject) -> None:
        self._subjects[subject.id] = _copy(subject)

    def add_topic(self, topic: Topic) -> None:
        self._topics[topic.id] = _copy(topic)

    def add_concept(self, concept: Concept) -> None:
        self._concepts[concept.id] = _copy(concept)

    async def get_topic(self, topic_id: str) -> Optional[Topic]:
        return _copy(self._topics.get(topic_id))

    async def get_topics(self, topic_ids: Sequence[str]) -> List[Topic]:
        return [_copy(self._topics[tid]) for tid in topic_ids if tid in self._topics]

    async def find_topics(self, topic_filter: TopicFilter) -> List[Topic]:
        topics = sorted(
            (t for t in self._topics.values() if topic_filter.matches(t)),
            key=lambda t: (t.order_index, t.id),
        )
        if topic_filter.limit is not None:
            topics = topics[:topic_filter.limit]
        return [_copy(t) for t in topics]

    async def get_subjects(self, subject_ids: Sequence[str]) -> Dict[str, Subject]:
        return {sid: _copy(self._subjects[sid]) for sid in subject_ids if sid in self._subjects}

    async def get_concepts(self, concept_ids: Sequence[str]) -> Dict[str, Concept]:
        return {cid: _copy(self._concepts[cid]) for cid in concept_ids if cid in self._concepts}


def _sort_progress(records: List[StudentProgress], order: ProgressOrder) -> List[StudentProgress]:
    if order is ProgressOrder.MASTERY_ASC:
        return sorted(records, key=lambda p: p.mastery_level)
    if order is ProgressOrder.MASTERY_DESC:
        return sorted(records, key=lambda p: p.mastery_level, reverse=True)
    # Newest first, never-practiced records last.
    practiced = sorted((p for p in records if p.last_practiced_at), key=lambda p: p.last_practiced_at, reverse=True)
    return practiced + [p for p in records if not p.last_practiced_at]


class MemoryProgressRepository(ProgressRepository):

    def __init__(self, initial_data: Optional[Iterable[StudentProgress]] = None):
        self._records: Dict[Tuple[str, str], StudentProgress] = {}
        for progress in initial_data or []:
            self._records[(progress.student_id, progress.topic_id)] = progress

    async def get(self, student_id: str, topic_id: str) -> Optional[StudentProgress]:
        return _copy(self._records.get((student_id, topic_id)))

    async def save(self, progress: StudentProgress) -> StudentProgress:
        self._records[(progress.student_id, progress.topic_id)] = _copy(progress)
        return progress

    async def find(self, progress_filter: ProgressFilter) -> List[StudentProgress]:
        records = [p for p in self._records.values() if progress_filter.matches(p)]
        records = _sort_progress(records, progress_filter.order)
        if progress_filter.limit is not None:
            records = records[:progress_filter.limit]
        return [_copy(p) for p in records]

    def all(self) -> List[StudentProgress]:
        return [_copy(p) for p in self._records.values()]


class MemoryActivityRepository(ActivityRepository):

    def __init__(self, initial_data: Optional[Iterable[DailyActivity]] = None):
        self._records: Dict[Tuple[str, date], DailyActivity] = {}
        for activity in initial_data or []:
            self._records[(activity.student_id, activity.activity_date)] = activity

    async def get(self, student_id: str, activity_date: date) -> Optional[DailyActivity]:
        return _copy(self._records.get((student_id, activity_date)))

    async def save(self, activity: DailyActivity) -> DailyActivity:
        self._records[(activity.student_id, activity.activity_date)] = _copy(activity)
        return activity

    def _for_student(self, student_id: str) -> List[DailyActivity]:
        return [a for (sid, _), a in self._records.items() if sid == student_id]

    async def list_recent(self, student_id: str, limit: int = 30) -> List[DailyActivity]:
        records = sorted(self._for_student(student_id), key=lambda a: a.activity_date, reverse=True)
        return [_copy(a) for a in records[:limit]]

    async def list_since(self, student_id: str, start: date) -> List[DailyActivity]:
        records = sorted(
            (a for a in self._for_student(student_id) if a.activity_date >= start),
            key=lambda a: a.activity_date,
        )
        return [_copy(a) for a in records]

    async def longest_streak(self, student_id: str) -> int:
        return longest_streak(self._for_student(student_id))


class MemoryReviewRepository(ReviewRepository):

    def __init__(self, initial_data: Optional[Iterable[ConceptReview]] = None):
        self._reviews: Dict[Tuple[str, str], ConceptReview] = {}
        self._logs: List[ReviewLog] = []
        for review in initial_data or []:
            self._reviews[(review.student_id, review.concept_id)] = review

    async def get(self, student_id: str, concept_id: str) -> Optional[ConceptReview]:
        return _copy(self._reviews.get((student_id, concept_id)))

    async def save(self, review: ConceptReview) -> ConceptReview:
        self._reviews[(review.student_id, review.concept_id)] = _copy(review)
        return review

    async def list_for_student(self, student_id: str,
                               subject_id: Optional[str] = None) -> List[ConceptReview]:
        reviews = [
            r for r in self._reviews.values()
            if r.student_id == student_id and (subject_id is None or r.subject_id == subject_id)
        ]
        reviews.sort(key=lambda r: r.next_review_date)
        return [_copy(r) for r in reviews]

    async def find_due(self, student_id: str, now: datetime,
                       subject_id: Optional[str] = None) -> List[ConceptReview]:
        return [r for r in await self.list_for_student(student_id, subject_id) if r.is_due(now)]

    async def add_log(self, log: ReviewLog) -> ReviewLog:
        self._logs.append(_copy(log))
        return log

    async def list_logs(self, review_id: str) -> List[ReviewLog]:
        logs = [entry for entry in self._logs if entry.review_id == review_id]
        logs.sort(key=lambda entry: entry.reviewed_at)
        return [_copy(entry) for entry in logs]
