"""
Recommendation Engine Module

Ranks the topics a student should study next. Four independent strategies
propose candidates from the student's stored progress:

1. Learning path: children and siblings of mastered topics
2. Strengthen: topics in progress, weakest first
3. Prerequisite: unmastered prerequisites of topics the student struggles with
4. Advanced: next-grade topics in subjects the student excels at

Candidates are merged per topic and ranked by priority. A failing strategy
contributes no candidates instead of failing the whole request.
"""

import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from learnai.common.cache import CacheService, KeyBuilder
from learnai.common.error_handling import NotFoundError, log_error
from learnai.common.logger import app_logger, with_context
from learnai.common.utils import round_half_up, unique
from learnai.progress.mastery import MASTERED_THRESHOLD
from learnai.progress.models import Student, StudentProgress, Subject, Topic
from learnai.progress.repository import (
    CurriculumRepository,
    ProgressFilter,
    ProgressOrder,
    ProgressRepository,
    StudentRepository,
    TopicFilter,
)

from .models import PersonalizedPath, Recommendation, RecommendationSet, RecommendationType

logger = app_logger.getChild("recommendations.engine")

RECOMMENDATIONS_CACHE = "recommendations"

DEFAULT_LIMIT = 5
PATH_LIMIT = 10

STRUGGLING_MASTERY = 50.0
STRUGGLING_MIN_SESSIONS = 2
EXCELLING_MASTERY = 90.0
UNSTARTED_MASTERY = 50.0

SIBLINGS_PER_TOPIC = 3
ADVANCED_PER_TOPIC = 2

SIBLING_PRIORITY = 70
PREREQUISITE_PRIORITY = 90
ADVANCED_PRIORITY = 60
ENTRY_POINT_PRIORITY = 50


def deduplicate_and_rank(recommendations: Iterable[Recommendation]) -> List[Recommendation]:
    """
    Merge candidates recommending the same topic and sort by priority.

    Merged entries join their reasons with ``"; "`` and their distinct
    types with ``", "``, and keep the highest priority. The input is not
    modified.
    """
    merged: Dict[str, Recommendation] = {}

    for rec in recommendations:
        existing = merged.get(rec.topic_id)
        if existing is None:
            merged[rec.topic_id] = Recommendation(**vars(rec))
            continue

        existing.reason = f"{existing.reason}; {rec.reason}"
        existing.priority = max(existing.priority, rec.priority)
        existing.type = ", ".join(unique(existing.types + [rec.type]))
        if existing.current_mastery is None:
            existing.current_mastery = rec.current_mastery

    return sorted(merged.values(), key=lambda r: r.priority, reverse=True)


class RecommendationEngine:
    """
    Produces ranked topic recommendations from stored progress.

    Args:
        students: Student lookup
        progress: Topic progress queries
        curriculum: Topic and subject lookup
        cache: Cache for computed recommendation sets
        cache_ttl: Lifetime of cached sets in seconds
        default_limit: Number of recommendations returned when no limit is given
    """

    def __init__(
        self,
        students: StudentRepository,
        progress: ProgressRepository,
        curriculum: CurriculumRepository,
        cache: Optional[CacheService] = None,
        cache_ttl: Optional[float] = 300,
        default_limit: int = DEFAULT_LIMIT
    ):
        self._students = students
        self._progress = progress
        self._curriculum = curriculum
        self._cache = cache or CacheService()
        self._cache_ttl = cache_ttl
        self._default_limit = default_limit

    async def get_recommendations(
        self,
        student_id: str,
        subject_id: Optional[str] = None,
        limit: Optional[int] = None,
        include_prerequisites: bool = True
    ) -> RecommendationSet:
        """
        Get ranked recommendations for a student.

        Args:
            student_id: Student identifier
            subject_id: Restrict to one subject
            limit: Maximum number of recommendations
            include_prerequisites: Whether the prerequisite strategy runs

        Returns:
            The top ``limit`` recommendations, the number of merged candidates
            and the candidate count of each strategy

        Raises:
            NotFoundError: If the student does not exist
        """
        limit = limit or self._default_limit
        key = KeyBuilder.entity_key(RECOMMENDATIONS_CACHE, student_id, subject_id, limit, include_prerequisites)

        cached = await self._cache.get(key)
        if cached is not None:
            return RecommendationSet.from_dict(cached)

        student = await self._students.get_by_id(student_id)
        if student is None:
            raise NotFoundError("student", student_id)

        strategies: List[Tuple[str, Callable[[], Awaitable[List[Recommendation]]]]] = [
            (RecommendationType.LEARNING_PATH,
             lambda: self.get_learning_path_recommendations(student, subject_id, limit)),
            (RecommendationType.STRENGTHEN,
             lambda: self.get_strengthen_recommendations(student_id, subject_id, limit)),
        ]
        if include_prerequisites:
            strategies.append((RecommendationType.PREREQUISITE,
                               lambda: self.get_prerequisite_recommendations(student_id, subject_id)))
        strategies.append((RecommendationType.ADVANCED,
                           lambda: self.get_advanced_recommendations(student, subject_id)))

        candidates: List[Recommendation] = []
        counts = {name: 0 for name in RecommendationType.ALL}
        for name, strategy in strategies:
            found = await self._run_strategy(name, strategy, student_id, subject_id)
            counts[name] = len(found)
            candidates.extend(found)

        ranked = deduplicate_and_rank(candidates)
        result = RecommendationSet(recommendations=ranked[:limit], total=len(ranked), strategies=counts)

        with_context(logger, student_id=student_id).debug(
            f"Built {len(result.recommendations)} of {result.total} recommendations: {counts}"
        )
        await self._cache.set(key, result.to_dict(), self._cache_ttl)
        return result

    async def get_personalized_path(self, student_id: str, subject_id: Optional[str] = None) -> PersonalizedPath:
        """Top recommendations grouped by subject."""
        result = await self.get_recommendations(student_id, subject_id, limit=PATH_LIMIT, include_prerequisites=True)

        by_subject: Dict[str, List[Recommendation]] = {}
        for rec in result.recommendations:
            by_subject.setdefault(rec.subject_id, []).append(rec)

        return PersonalizedPath(learning_path=result.recommendations, by_subject=by_subject,
                                strategies=result.strategies)

    async def _run_strategy(
        self,
        name: str,
        strategy: Callable[[], Awaitable[List[Recommendation]]],
        student_id: str,
        subject_id: Optional[str]
    ) -> List[Recommendation]:
        try:
            return await strategy()
        except Exception as e:
            log_error(e, level=logging.ERROR, include_stack_trace=False,
                      context={'strategy': name, 'student_id': student_id, 'subject_id': subject_id},
                      log=logger)
            return []

    async def _progress_by_topic(self, student_id: str, topic_ids: Sequence[str]) -> Dict[str, StudentProgress]:
        if not topic_ids:
            return {}
        records = await self._progress.find(ProgressFilter(student_id=student_id, topic_ids=list(topic_ids)))
        return {p.topic_id: p for p in records}

    async def _topics_by_id(self, topic_ids: Sequence[str]) -> Dict[str, Topic]:
        return {t.id: t for t in await self._curriculum.get_topics(unique(topic_ids))}

    async def _subjects_by_id(self, subject_ids: Iterable[str]) -> Dict[str, Subject]:
        return await self._curriculum.get_subjects(unique(subject_ids))

    @staticmethod
    def _name(entities: Dict[str, object], entity_id: str) -> str:
        entity = entities.get(entity_id)
        return entity.name if entity is not None else "Unknown"

    async def get_learning_path_recommendations(
        self,
        student: Student,
        subject_id: Optional[str],
        limit: int
    ) -> List[Recommendation]:
        """
        Children and same-grade siblings of mastered topics.

        A student without any progress gets entry points instead.
        """
        records = await self._progress.find(ProgressFilter(student_id=student.id, subject_id=subject_id))
        if not records:
            return await self.get_entry_points(student, subject_id, limit)

        mastered = [p for p in records if p.mastery_level >= MASTERED_THRESHOLD]
        if not mastered:
            return []

        topics = await self._topics_by_id([p.topic_id for p in mastered])
        subjects = await self._subjects_by_id(t.subject_id for t in topics.values())

        children: Dict[str, List[Topic]] = {}
        siblings: Dict[Tuple[str, int], List[Topic]] = {}
        for progress in mastered:
            topic = topics.get(progress.topic_id)
            if topic is None:
                continue
            children[topic.id] = await self._curriculum.find_topics(TopicFilter(parent_topic_id=topic.id))
            group = (topic.subject_id, topic.grade_level)
            if group not in siblings:
                siblings[group] = await self._curriculum.find_topics(
                    TopicFilter(subject_id=topic.subject_id, grade_level=topic.grade_level)
                )

        candidate_ids = [t.id for group in list(children.values()) + list(siblings.values()) for t in group]
        known = await self._progress_by_topic(student.id, unique(candidate_ids))

        def mastery_of(topic_id: str) -> float:
            p = known.get(topic_id)
            return p.mastery_level if p else 0.0

        recommendations = []
        for progress in mastered:
            topic = topics.get(progress.topic_id)
            if topic is None:
                continue
            subject_name = self._name(subjects, topic.subject_id)

            for child in children.get(topic.id, []):
                if mastery_of(child.id) < MASTERED_THRESHOLD:
                    recommendations.append(Recommendation(
                        topic_id=child.id,
                        topic_name=child.name,
                        subject_id=child.subject_id,
                        subject_name=subject_name,
                        reason=f"Next step after mastering {topic.name}",
                        priority=progress.mastery_level,
                        type=RecommendationType.LEARNING_PATH,
                    ))

            nearby = [t for t in siblings[(topic.subject_id, topic.grade_level)] if t.id != topic.id]
            for sibling in nearby[:SIBLINGS_PER_TOPIC]:
                if mastery_of(sibling.id) < UNSTARTED_MASTERY:
                    recommendations.append(Recommendation(
                        topic_id=sibling.id,
                        topic_name=sibling.name,
                        subject_id=sibling.subject_id,
                        subject_name=subject_name,
                        reason=f"Continue learning {subject_name}",
                        priority=SIBLING_PRIORITY,
                        type=RecommendationType.LEARNING_PATH,
                    ))

        return recommendations

    async def get_entry_points(self, student: Student, subject_id: Optional[str], limit: int) -> List[Recommendation]:
        """Topics without prerequisites, at the student's grade when there are any."""
        topics = await self._curriculum.find_topics(TopicFilter(
            subject_id=subject_id, grade_level=student.grade_level, without_prerequisites=True, limit=limit
        ))
        if not topics:
            topics = await self._curriculum.find_topics(TopicFilter(
                subject_id=subject_id, without_prerequisites=True, limit=limit
            ))

        subjects = await self._subjects_by_id(t.subject_id for t in topics)
        return [
            Recommendation(
                topic_id=topic.id,
                topic_name=topic.name,
                subject_id=topic.subject_id,
                subject_name=self._name(subjects, topic.subject_id),
                reason="Good starting point",
                priority=ENTRY_POINT_PRIORITY,
                type=RecommendationType.LEARNING_PATH,
            )
            for topic in topics
        ]

    async def get_strengthen_recommendations(
        self,
        student_id: str,
        subject_id: Optional[str],
        limit: int
    ) -> List[Recommendation]:
        records = await self._progress.find(ProgressFilter(
            student_id=student_id,
            subject_id=subject_id,
            mastery_gt=0,
            mastery_lt=MASTERED_THRESHOLD,
            order=ProgressOrder.MASTERY_ASC,
            limit=limit * 2,
        ))
        topics = await self._topics_by_id([p.topic_id for p in records])
        subjects = await self._subjects_by_id(p.subject_id for p in records)

        recommendations = []
        for progress in records:
            topic_name = self._name(topics, progress.topic_id)
            recommendations.append(Recommendation(
                topic_id=progress.topic_id,
                topic_name=topic_name,
                subject_id=progress.subject_id,
                subject_name=self._name(subjects, progress.subject_id),
                reason=f"Strengthen {topic_name} ({round_half_up(progress.mastery_level)}% mastery)",
                priority=100 - progress.mastery_level,
                type=RecommendationType.STRENGTHEN,
                current_mastery=progress.mastery_level,
            ))
        return recommendations

    async def get_prerequisite_recommendations(self, student_id: str,
                                               subject_id: Optional[str]) -> List[Recommendation]:
        struggling = await self._progress.find(ProgressFilter(
            student_id=student_id,
            subject_id=subject_id,
            mastery_lt=STRUGGLING_MASTERY,
            min_sessions=STRUGGLING_MIN_SESSIONS,
        ))
        if not struggling:
            return []

        topics = await self._topics_by_id([p.topic_id for p in struggling])
        prerequisite_ids = unique(
            prereq
            for p in struggling if p.topic_id in topics
            for prereq in topics[p.topic_id].prerequisites
        )
        if not prerequisite_ids:
            return []

        prerequisites = await self._topics_by_id(prerequisite_ids)
        subjects = await self._subjects_by_id(t.subject_id for t in prerequisites.values())
        known = await self._progress_by_topic(student_id, prerequisite_ids)

        recommendations = []
        for progress in struggling:
            topic = topics.get(progress.topic_id)
            if topic is None:
                continue
            for prereq_id in topic.prerequisites:
                prereq_progress = known.get(prereq_id)
                if prereq_progress is not None and prereq_progress.mastery_level >= MASTERED_THRESHOLD:
                    continue
                prereq = prerequisites.get(prereq_id)
                if prereq is None:
                    continue
                recommendations.append(Recommendation(
                    topic_id=prereq.id,
                    topic_name=prereq.name,
                    subject_id=prereq.subject_id,
                    subject_name=self._name(subjects, prereq.subject_id),
                    reason=f"Prerequisite for {topic.name}",
                    priority=PREREQUISITE_PRIORITY,
                    type=RecommendationType.PREREQUISITE,
                ))
        return recommendations

    async def get_advanced_recommendations(self, student: Student,
                                           subject_id: Optional[str]) -> List[Recommendation]:
        excelling = await self._progress.find(ProgressFilter(
            student_id=student.id,
            subject_id=subject_id,
            mastery_gte=EXCELLING_MASTERY,
        ))
        if not excelling:
            return []

        subject_ids = unique(p.subject_id for p in excelling)
        subjects = await self._subjects_by_id(subject_ids)

        next_grade: Dict[str, List[Topic]] = {}
        for sid in subject_ids:
            next_grade[sid] = await self._curriculum.find_topics(
                TopicFilter(subject_id=sid, grade_above=student.grade_level)
            )
        known = await self._progress_by_topic(
            student.id, [t.id for topics in next_grade.values() for t in topics]
        )

        recommendations = []
        for progress in excelling:
            subject_name = self._name(subjects, progress.subject_id)
            for topic in next_grade[progress.subject_id][:ADVANCED_PER_TOPIC]:
                topic_progress = known.get(topic.id)
                if topic_progress is not None and topic_progress.mastery_level >= UNSTARTED_MASTERY:
                    continue
                recommendations.append(Recommendation(
                    topic_id=topic.id,
                    topic_name=topic.name,
                    subject_id=topic.subject_id,
                    subject_name=subject_name,
                    reason=f"Advanced topic for {subject_name}",
                    priority=ADVANCED_PRIORITY,
                    type=RecommendationType.ADVANCED,
                ))
        return recommendations
