"""
Progress Tracker Module

Orchestrates what happens when a learning session ends:
1. Mastery smoothing and strength/weakness classification for the topic
2. Persistence of the student's topic progress
3. Daily activity and streak bookkeeping
4. Initial spaced-repetition reviews for the concepts practiced

Also serves progress summaries (cached) and manual progress updates.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from learnai.common.cache import CacheService, KeyBuilder
from learnai.common.error_handling import NotFoundError, TransientIOError, log_error
from learnai.common.logger import app_logger, log_execution_time, with_context
from learnai.common.utils import round_half_up, safe_divide, unique, utcnow

from .mastery import (
    MASTERED_THRESHOLD,
    ConceptClassification,
    calculate_mastery_level,
    update_strengths_weaknesses,
)
from .models import DailyActivity, SessionData, StudentProgress
from .repository import (
    ActivityRepository,
    CurriculumRepository,
    ProgressFilter,
    ProgressRepository,
    SessionRepository,
)
from .review_service import DEFAULT_INITIAL_QUALITY, SpacedRepetitionService
from .spaced_repetition import MAX_QUALITY
from .streaks import STREAK_HISTORY_DAYS, calculate_streak, next_streak_day

logger = app_logger.getChild("progress.tracker")

PROGRESS_CACHE = "progress"
RECOMMENDATIONS_CACHE = "recommendations"


def initial_review_quality(session_data: SessionData) -> int:
    """SM-2 quality used to schedule the first review of a session's concepts."""
    if session_data.problems_attempted > 0:
        return min(MAX_QUALITY, round_half_up(session_data.problems_correct / session_data.problems_attempted * MAX_QUALITY))
    return DEFAULT_INITIAL_QUALITY


class ProgressTracker:
    """
    Service tracking student progress per topic.

    Args:
        sessions: Learning session lookup
        progress: Topic progress persistence
        activities: Daily activity persistence
        curriculum: Topic and subject lookup
        review_service: Schedules reviews of practiced concepts
        cache: Cache for progress summaries
        progress_ttl: Lifetime of cached summaries in seconds
        streak_history_days: Number of daily records inspected for streaks
        clock: Source of the current (naive UTC) time
    """

    def __init__(
        self,
        sessions: SessionRepository,
        progress: ProgressRepository,
        activities: ActivityRepository,
        curriculum: CurriculumRepository,
        review_service: SpacedRepetitionService,
        cache: Optional[CacheService] = None,
        progress_ttl: Optional[float] = 300,
        streak_history_days: int = STREAK_HISTORY_DAYS,
        clock: Callable[[], datetime] = utcnow
    ):
        self._sessions = sessions
        self._progress = progress
        self._activities = activities
        self._curriculum = curriculum
        self._review_service = review_service
        self._cache = cache or CacheService()
        self._progress_ttl = progress_ttl
        self._streak_history_days = streak_history_days
        self._clock = clock

    @staticmethod
    def calculate_mastery_level(
        progress: Optional[StudentProgress],
        accuracy: float,
        problems_attempted: int,
        problems_correct: int = 0
    ) -> float:
        prior = progress.mastery_level if progress else 0.0
        return calculate_mastery_level(prior, accuracy, problems_attempted, problems_correct)

    @staticmethod
    def update_strengths_weaknesses(
        progress: Optional[StudentProgress],
        accuracy: float,
        concepts: Sequence[str]
    ) -> ConceptClassification:
        existing = ConceptClassification(
            strengths=list(progress.strengths) if progress else [],
            weaknesses=list(progress.weaknesses) if progress else [],
        )
        return update_strengths_weaknesses(existing, accuracy, concepts)

    @log_execution_time(logger)
    async def track_session_progress(
        self,
        session_id: str,
        session_data: Optional[SessionData] = None
    ) -> StudentProgress:
        """
        Fold the results of a finished session into the student's progress.

        Args:
            session_id: Learning session identifier
            session_data: Performance reported for the session

        Returns:
            The saved topic progress

        Raises:
            NotFoundError: If the session does not exist
            ValidationError: If the session data is inconsistent
            DatabaseError: If the progress record cannot be saved
        """
        session_data = session_data or SessionData()
        session_data.validate()

        session = await self._sessions.get_by_id(session_id)
        if session is None:
            raise NotFoundError("session", session_id)

        student_id = session.student_id
        log = with_context(logger, student_id=student_id, session_id=session_id, topic_id=session.topic_id)

        accuracy = session_data.accuracy
        now = self._clock()
        progress = await self._progress.get(student_id, session.topic_id)

        mastery = self.calculate_mastery_level(
            progress, accuracy, session_data.problems_attempted, session_data.problems_correct
        )
        classification = self.update_strengths_weaknesses(progress, accuracy, session_data.concepts)

        if progress is None:
            progress = StudentProgress.create(
                student_id=student_id,
                subject_id=session.subject_id,
                topic_id=session.topic_id,
                created_at=now,
            )

        progress.mastery_level = mastery
        progress.total_time_minutes += session_data.duration_minutes
        progress.sessions_count += 1
        progress.last_practiced_at = now
        progress.strengths = classification.strengths
        progress.weaknesses = classification.weaknesses
        progress.updated_at = now

        progress = await self._progress.save(progress)
        log.info(f"Tracked session: accuracy={accuracy:.1f}% mastery={mastery:.1f}")

        try:
            await self.update_daily_activity(
                student_id,
                minutes=session_data.duration_minutes,
                points=session_data.points_earned,
                topic_id=session.topic_id,
            )
        except TransientIOError as e:
            log_error(e, level=logging.WARNING, include_stack_trace=False,
                      context={'student_id': student_id, 'session_id': session_id}, log=logger)

        if session_data.concepts:
            quality = initial_review_quality(session_data)
            for concept_id in unique(session_data.concepts):
                try:
                    await self._review_service.schedule_initial_review(
                        student_id, concept_id, session.subject_id, quality
                    )
                except TransientIOError as e:
                    log_error(e, level=logging.WARNING, include_stack_trace=False,
                              context={'student_id': student_id, 'concept_id': concept_id}, log=logger)

        await self.invalidate_student_cache(student_id)
        return progress

    async def update_daily_activity(
        self,
        student_id: str,
        minutes: int = 0,
        points: int = 0,
        topic_id: Optional[str] = None
    ) -> DailyActivity:
        """
        Add a session to today's activity record, creating it on the first
        session of the day with the continued streak length.
        """
        today = self._clock().date()
        activity = await self._activities.get(student_id, today)

        if activity is None:
            history = await self._activities.list_recent(student_id, self._streak_history_days)
            activity = DailyActivity.create(
                student_id=student_id,
                activity_date=today,
                minutes_learned=minutes,
                sessions_count=1,
                points_earned=points,
                topics_studied=[topic_id] if topic_id else [],
                streak_day=next_streak_day(history, today),
            )
            logger.debug(f"Started day {activity.streak_day} of streak for student {student_id}")
        else:
            activity.minutes_learned += minutes
            activity.sessions_count += 1
            activity.points_earned += points
            if topic_id and topic_id not in activity.topics_studied:
                activity.topics_studied.append(topic_id)

        return await self._activities.save(activity)

    async def calculate_streak(self, student_id: str, today: Optional[date] = None) -> int:
        history = await self._activities.list_recent(student_id, self._streak_history_days)
        return calculate_streak(history, today or self._clock().date())

    async def get_progress_summary(self, student_id: str, subject_id: Optional[str] = None) -> Dict[str, Any]:
        key = KeyBuilder.entity_key(PROGRESS_CACHE, student_id, "summary", subject_id)
        return await self._cache.get_or_set(
            key, lambda: self._build_progress_summary(student_id, subject_id), self._progress_ttl
        )

    async def _build_progress_summary(self, student_id: str, subject_id: Optional[str]) -> Dict[str, Any]:
        records = await self._progress.find(ProgressFilter(student_id=student_id, subject_id=subject_id))

        topics = {t.id: t for t in await self._curriculum.get_topics(unique(p.topic_id for p in records))}
        subjects = await self._curriculum.get_subjects(unique(p.subject_id for p in records))

        total = len(records)
        average = safe_divide(sum(p.mastery_level for p in records), total)

        return {
            'total_topics': total,
            'mastered_topics': sum(1 for p in records if p.mastery_level >= MASTERED_THRESHOLD),
            'in_progress_topics': sum(1 for p in records if 0 < p.mastery_level < MASTERED_THRESHOLD),
            'average_mastery': round_half_up(average * 10) / 10,
            'total_time_minutes': sum(p.total_time_minutes for p in records),
            'total_sessions': sum(p.sessions_count for p in records),
            'progress_records': [
                self._summary_row(p, topics, subjects)
                for p in records
            ],
        }

    @staticmethod
    def _summary_row(progress: StudentProgress, topics, subjects) -> Dict[str, Any]:
        topic = topics.get(progress.topic_id)
        subject = subjects.get(progress.subject_id)
        return {
            'id': progress.id,
            'topic_id': progress.topic_id,
            'subject': subject.name if subject else None,
            'topic': topic.name if topic else None,
            'mastery_level': progress.mastery_level,
            'total_time_minutes': progress.total_time_minutes,
            'sessions_count': progress.sessions_count,
            'last_practiced_at': progress.last_practiced_at.isoformat() if progress.last_practiced_at else None,
            'strengths': list(progress.strengths),
            'weaknesses': list(progress.weaknesses),
        }

    async def get_topic_progress(self, student_id: str, topic_id: str) -> Optional[StudentProgress]:
        return await self._progress.get(student_id, topic_id)

    async def update_progress(
        self,
        student_id: str,
        topic_id: str,
        mastery_level: Optional[float] = None,
        strengths: Optional[List[str]] = None,
        weaknesses: Optional[List[str]] = None,
        subject_id: Optional[str] = None,
        **updates: Any
    ) -> StudentProgress:
        """
        Manually set progress fields, e.g. after an assessment.

        Missing records are created; the subject defaults to the topic's.

        Raises:
            NotFoundError: If a record must be created for an unknown topic
        """
        now = self._clock()
        progress = await self._progress.get(student_id, topic_id)

        if progress is None:
            if subject_id is None:
                topic = await self._curriculum.get_topic(topic_id)
                if topic is None:
                    raise NotFoundError("topic", topic_id)
                subject_id = topic.subject_id
            progress = StudentProgress.create(student_id, subject_id, topic_id, created_at=now)

        if mastery_level is not None:
            progress.mastery_level = mastery_level
        if strengths is not None:
            progress.strengths = list(strengths)
        if weaknesses is not None:
            progress.weaknesses = list(weaknesses)
        for name in ('total_time_minutes', 'sessions_count'):
            if name in updates:
                setattr(progress, name, updates.pop(name))
        if updates:
            logger.warning(f"Ignoring unknown progress fields: {sorted(updates)}")

        progress.last_practiced_at = now
        progress.updated_at = now

        progress = await self._progress.save(progress)
        await self.invalidate_student_cache(student_id)
        return progress

    async def invalidate_student_cache(self, student_id: str) -> None:
        """Drop cached summaries and recommendations of a student."""
        for entity_type in (PROGRESS_CACHE, RECOMMENDATIONS_CACHE):
            await self._cache.invalidate_prefix(KeyBuilder.entity_prefix(entity_type, student_id))
