"""
SQL Progress Repository Module

SQLAlchemy (async) implementations of the progress repositories.

Every repository call runs in its own session. SQLAlchemy exceptions are
translated into ``DatabaseConnectionError`` (connection-level failures,
retried by the shared retry policy) or ``DatabaseQueryError`` (everything
else, surfaced immediately).
"""

import dataclasses
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from learnai.common.error_handling import (
    DatabaseConnectionError,
    DatabaseQueryError,
    RetryPolicy,
)
from learnai.common.logger import app_logger
from learnai.database import models as orm

from .models import (
    Concept,
    ConceptReview,
    DailyActivity,
    Difficulty,
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

logger = app_logger.getChild("progress.sql_repository")

T = TypeVar("T")


def is_connection_failure(error: BaseException) -> bool:
    return isinstance(error, DatabaseConnectionError)


class SqlRepository:
    """Shared session handling and error translation for the SQL repositories."""

    def __init__(self, session_factory: sessionmaker, retry_policy: Optional[RetryPolicy] = None,
                 database_name: str = "primary"):
        self._session_factory = session_factory
        self._retry = (retry_policy or RetryPolicy()).with_predicate(is_connection_failure)
        self._database_name = database_name

    async def _run(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]],
                   commit: bool = False) -> T:
        async def attempt() -> T:
            try:
                async with self._session_factory() as session:
                    result = await work(session)
                    if commit:
                        await session.commit()
                    return result
            except (OperationalError, InterfaceError) as e:
                raise DatabaseConnectionError(self._database_name, details={"operation": operation}, cause=e)
            except DBAPIError as e:
                if e.connection_invalidated:
                    raise DatabaseConnectionError(self._database_name, details={"operation": operation}, cause=e)
                raise DatabaseQueryError(operation, cause=e)
            except SQLAlchemyError as e:
                raise DatabaseQueryError(operation, cause=e)

        attempt.__name__ = operation
        return await self._retry.run(attempt)


def _values(entity: Any, exclude: Sequence[str] = ("id",)) -> Dict[str, Any]:
    return {k: v for k, v in dataclasses.asdict(entity).items() if k not in exclude}


def _to_student(row: orm.Student) -> Student:
    return Student(id=row.id, grade_level=row.grade_level, first_name=row.first_name)


def _to_topic(row: orm.Topic) -> Topic:
    return Topic(
        id=row.id,
        subject_id=row.subject_id,
        name=row.name,
        grade_level=row.grade_level,
        order_index=row.order_index,
        difficulty=Difficulty(row.difficulty),
        prerequisites=list(row.prerequisites or []),
        parent_topic_id=row.parent_topic_id,
        is_active=row.is_active,
    )


def _to_session(row: orm.LearningSession) -> LearningSession:
    return LearningSession(
        id=row.id,
        student_id=row.student_id,
        subject_id=row.subject_id,
        topic_id=row.topic_id,
        started_at=row.started_at,
        ended_at=row.ended_at,
        duration_minutes=row.duration_minutes,
        problems_attempted=row.problems_attempted,
        problems_correct=row.problems_correct,
    )


def _to_progress(row: orm.StudentProgress) -> StudentProgress:
    return StudentProgress(
        id=row.id,
        student_id=row.student_id,
        subject_id=row.subject_id,
        topic_id=row.topic_id,
        mastery_level=row.mastery_level,
        total_time_minutes=row.total_time_minutes,
        sessions_count=row.sessions_count,
        last_practiced_at=row.last_practiced_at,
        strengths=list(row.strengths or []),
        weaknesses=list(row.weaknesses or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_activity(row: orm.DailyActivity) -> DailyActivity:
    return DailyActivity(
        id=row.id,
        student_id=row.student_id,
        activity_date=row.activity_date,
        minutes_learned=row.minutes_learned,
        sessions_count=row.sessions_count,
        points_earned=row.points_earned,
        topics_studied=list(row.topics_studied or []),
        streak_day=row.streak_day,
    )


def _to_review(row: orm.ConceptReview) -> ConceptReview:
    return ConceptReview(
        id=row.id,
        student_id=row.student_id,
        concept_id=row.concept_id,
        subject_id=row.subject_id,
        next_review_date=row.next_review_date,
        ease_factor=row.ease_factor,
        interval=row.interval,
        repetitions=row.repetitions,
        last_reviewed_at=row.last_reviewed_at,
        total_reviews=row.total_reviews,
        average_quality=row.average_quality,
        created_at=row.created_at,
    )


def _to_log(row: orm.ReviewSession) -> ReviewLog:
    return ReviewLog(
        id=row.id,
        review_id=row.review_id,
        quality=row.quality,
        reviewed_at=row.reviewed_at,
        session_id=row.session_id,
    )


class SqlStudentRepository(SqlRepository, StudentRepository):

    async def get_by_id(self, student_id: str) -> Optional[Student]:
        async def work(session: AsyncSession):
            row = await session.get(orm.Student, student_id)
            return _to_student(row) if row else None

        return await self._run("get_student", work)


class SqlSessionRepository(SqlRepository, SessionRepository):

    async def get_by_id(self, session_id: str) -> Optional[LearningSession]:
        async def work(session: AsyncSession):
            row = await session.get(orm.LearningSession, session_id)
            return _to_session(row) if row else None

        return await self._run("get_learning_session", work)


class SqlCurriculumRepository(SqlRepository, CurriculumRepository):

    async def get_topic(self, topic_id: str) -> Optional[Topic]:
        async def work(session: AsyncSession):
            row = await session.get(orm.Topic, topic_id)
            return _to_topic(row) if row else None

        return await self._run("get_topic", work)

    async def get_topics(self, topic_ids: Sequence[str]) -> List[Topic]:
        if not topic_ids:
            return []

        async def work(session: AsyncSession):
            result = await session.execute(select(orm.Topic).where(orm.Topic.id.in_(list(topic_ids))))
            by_id = {row.id: _to_topic(row) for row in result.scalars()}
            return [by_id[tid] for tid in topic_ids if tid in by_id]

        return await self._run("get_topics", work)

    async def find_topics(self, topic_filter: TopicFilter) -> List[Topic]:
        stmt = select(orm.Topic)
        if topic_filter.active_only:
            stmt = stmt.where(orm.Topic.is_active.is_(True))
        if topic_filter.subject_id is not None:
            stmt = stmt.where(orm.Topic.subject_id == topic_filter.subject_id)
        if topic_filter.grade_level is not None:
            stmt = stmt.where(orm.Topic.grade_level == topic_filter.grade_level)
        if topic_filter.grade_above is not None:
            stmt = stmt.where(orm.Topic.grade_level > topic_filter.grade_above)
        if topic_filter.parent_topic_id is not None:
            stmt = stmt.where(orm.Topic.parent_topic_id == topic_filter.parent_topic_id)
        stmt = stmt.order_by(orm.Topic.order_index, orm.Topic.id)

        async def work(session: AsyncSession):
            result = await session.execute(stmt)
            return [_to_topic(row) for row in result.scalars()]

        # Prerequisite emptiness lives in a JSON column, filtered here for portability.
        topics = [t for t in await self._run("find_topics", work) if topic_filter.matches(t)]
        if topic_filter.limit is not None:
            topics = topics[:topic_filter.limit]
        return topics

    async def get_subjects(self, subject_ids: Sequence[str]) -> Dict[str, Subject]:
        if not subject_ids:
            return {}

        async def work(session: AsyncSession):
            result = await session.execute(select(orm.Subject).where(orm.Subject.id.in_(list(subject_ids))))
            return {row.id: Subject(id=row.id, name=row.name) for row in result.scalars()}

        return await self._run("get_subjects", work)

    async def get_concepts(self, concept_ids: Sequence[str]) -> Dict[str, Concept]:
        if not concept_ids:
            return {}

        async def work(session: AsyncSession):
            result = await session.execute(select(orm.Concept).where(orm.Concept.id.in_(list(concept_ids))))
            return {
                row.id: Concept(id=row.id, name=row.name, subject_id=row.subject_id)
                for row in result.scalars()
            }

        return await self._run("get_concepts", work)


class SqlProgressRepository(SqlRepository, ProgressRepository):

    async def get(self, student_id: str, topic_id: str) -> Optional[StudentProgress]:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(orm.StudentProgress).where(
                    orm.StudentProgress.student_id == student_id,
                    orm.StudentProgress.topic_id == topic_id,
                )
            )
            row = result.scalar_one_or_none()
            return _to_progress(row) if row else None

        return await self._run("get_progress", work)

    async def save(self, progress: StudentProgress) -> StudentProgress:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(orm.StudentProgress).where(
                    orm.StudentProgress.student_id == progress.student_id,
                    orm.StudentProgress.topic_id == progress.topic_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = orm.StudentProgress(id=progress.id)
                session.add(row)
            row.update(_values(progress))
            await session.flush()
            return _to_progress(row)

        return await self._run("save_progress", work, commit=True)

    async def find(self, progress_filter: ProgressFilter) -> List[StudentProgress]:
        table = orm.StudentProgress
        stmt = select(table).where(table.student_id == progress_filter.student_id)
        if progress_filter.subject_id is not None:
            stmt = stmt.where(table.subject_id == progress_filter.subject_id)
        if progress_filter.topic_ids is not None:
            stmt = stmt.where(table.topic_id.in_(list(progress_filter.topic_ids)))
        if progress_filter.mastery_gt is not None:
            stmt = stmt.where(table.mastery_level > progress_filter.mastery_gt)
        if progress_filter.mastery_gte is not None:
            stmt = stmt.where(table.mastery_level >= progress_filter.mastery_gte)
        if progress_filter.mastery_lt is not None:
            stmt = stmt.where(table.mastery_level < progress_filter.mastery_lt)
        if progress_filter.min_sessions is not None:
            stmt = stmt.where(table.sessions_count >= progress_filter.min_sessions)

        if progress_filter.order is ProgressOrder.MASTERY_ASC:
            stmt = stmt.order_by(table.mastery_level.asc())
        elif progress_filter.order is ProgressOrder.MASTERY_DESC:
            stmt = stmt.order_by(table.mastery_level.desc())
        else:
            stmt = stmt.order_by(table.last_practiced_at.is_(None), table.last_practiced_at.desc())

        if progress_filter.limit is not None:
            stmt = stmt.limit(progress_filter.limit)

        async def work(session: AsyncSession):
            result = await session.execute(stmt)
            return [_to_progress(row) for row in result.scalars()]

        return await self._run("find_progress", work)


class SqlActivityRepository(SqlRepository, ActivityRepository):

    async def get(self, student_id: str, activity_date: date) -> Optional[DailyActivity]:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(orm.DailyActivity).where(
                    orm.DailyActivity.student_id == student_id,
                    orm.DailyActivity.activity_date == activity_date,
                )
            )
            row = result.scalar_one_or_none()
            return _to_activity(row) if row else None

        return await self._run("get_daily_activity", work)

    async def save(self, activity: DailyActivity) -> DailyActivity:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(orm.DailyActivity).where(
                    orm.DailyActivity.student_id == activity.student_id,
                    orm.DailyActivity.activity_date == activity.activity_date,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = orm.DailyActivity(id=activity.id)
                session.add(row)
            row.update(_values(activity))
            await session.flush()
            return _to_activity(row)

        return await self._run("save_daily_activity", work, commit=True)

    async def list_recent(self, student_id: str, limit: int = 30) -> List[DailyActivity]:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(orm.DailyActivity)
                .where(orm.DailyActivity.student_id == student_id)
                .order_by(orm.DailyActivity.activity_date.desc())
                .limit(limit)
            )
            return [_to_activity(row) for row in result.scalars()]

        return await self._run("list_recent_activity", work)

    async def list_since(self, student_id: str, start: date) -> List[DailyActivity]:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(orm.DailyActivity)
                .where(
                    orm.DailyActivity.student_id == student_id,
                    orm.DailyActivity.activity_date >= start,
                )
                .order_by(orm.DailyActivity.activity_date.asc())
            )
            return [_to_activity(row) for row in result.scalars()]

        return await self._run("list_activity_since", work)

    async def longest_streak(self, student_id: str) -> int:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(func.max(orm.DailyActivity.streak_day))
                .where(orm.DailyActivity.student_id == student_id)
            )
            return result.scalar() or 0

        return await self._run("longest_streak", work)


class SqlReviewRepository(SqlRepository, ReviewRepository):

    async def get(self, student_id: str, concept_id: str) -> Optional[ConceptReview]:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(orm.ConceptReview).where(
                    orm.ConceptReview.student_id == student_id,
                    orm.ConceptReview.concept_id == concept_id,
                )
            )
            row = result.scalar_one_or_none()
            return _to_review(row) if row else None

        return await self._run("get_concept_review", work)

    async def save(self, review: ConceptReview) -> ConceptReview:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(orm.ConceptReview).where(
                    orm.ConceptReview.student_id == review.student_id,
                    orm.ConceptReview.concept_id == review.concept_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = orm.ConceptReview(id=review.id)
                session.add(row)
            row.update(_values(review))
            await session.flush()
            return _to_review(row)

        return await self._run("save_concept_review", work, commit=True)

    def _student_reviews(self, student_id: str, subject_id: Optional[str]):
        stmt = select(orm.ConceptReview).where(orm.ConceptReview.student_id == student_id)
        if subject_id is not None:
            stmt = stmt.where(orm.ConceptReview.subject_id == subject_id)
        return stmt

    async def find_due(self, student_id: str, now: datetime,
                       subject_id: Optional[str] = None) -> List[ConceptReview]:
        stmt = (
            self._student_reviews(student_id, subject_id)
            .where(orm.ConceptReview.next_review_date <= now)
            .order_by(orm.ConceptReview.next_review_date.asc())
        )

        async def work(session: AsyncSession):
            result = await session.execute(stmt)
            return [_to_review(row) for row in result.scalars()]

        return await self._run("find_due_reviews", work)

    async def list_for_student(self, student_id: str,
                               subject_id: Optional[str] = None) -> List[ConceptReview]:
        stmt = self._student_reviews(student_id, subject_id).order_by(orm.ConceptReview.next_review_date.asc())

        async def work(session: AsyncSession):
            result = await session.execute(stmt)
            return [_to_review(row) for row in result.scalars()]

        return await self._run("list_concept_reviews", work)

    async def add_log(self, log: ReviewLog) -> ReviewLog:
        async def work(session: AsyncSession):
            session.add(orm.ReviewSession(
                id=log.id,
                review_id=log.review_id,
                session_id=log.session_id,
                quality=log.quality,
                reviewed_at=log.reviewed_at,
            ))
            return log

        return await self._run("add_review_log", work, commit=True)

    async def list_logs(self, review_id: str) -> List[ReviewLog]:
        async def work(session: AsyncSession):
            result = await session.execute(
                select(orm.ReviewSession)
                .where(orm.ReviewSession.review_id == review_id)
                .order_by(orm.ReviewSession.reviewed_at.asc())
            )
            return [_to_log(row) for row in result.scalars()]

        return await self._run("list_review_logs", work)
