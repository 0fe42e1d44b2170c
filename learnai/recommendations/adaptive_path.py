"""
Adaptive Learning Path Module

Builds a student's path through the topics of one subject from their
stored progress, and adjusts it from the performance of a running
session. Path thresholds are expressed on a 0-1 mastery scale.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from learnai.common.error_handling import NotFoundError
from learnai.common.logger import app_logger, with_context
from learnai.common.utils import utcnow
from learnai.progress.mastery import mastery_fraction
from learnai.progress.models import Difficulty, StudentProgress, Topic
from learnai.progress.repository import CurriculumRepository, ProgressFilter, ProgressRepository, TopicFilter

from .models import (
    LearningPath,
    PathRecommendation,
    PathStep,
    PerformanceAnalysis,
    PrerequisiteStatus,
)

logger = app_logger.getChild("recommendations.adaptive_path")

COMPLETED_THRESHOLD = 0.8
ADVANCE_THRESHOLD = 0.7
WEAK_THRESHOLD = 0.5

STRUGGLING_ACCURACY = 0.6
STRUGGLING_ATTEMPTS = 5
STRONG_ACCURACY = 0.8
STRONG_ATTEMPTS = 2

MAX_NEXT_TOPICS = 5
MAX_ENTRY_POINTS = 3
MAX_ENRICHMENT_TOPICS = 3
DEFAULT_MAX_DEPTH = 10


class TopicMastery:
    """0-1 mastery of the topics of one subject for one student."""

    def __init__(self, records: List[StudentProgress]):
        self._levels = {p.topic_id: mastery_fraction(p.mastery_level) for p in records}

    def of(self, topic: Topic) -> float:
        return self._levels.get(topic.id, 0.0)


def analyze_performance(accuracy: float, attempts: int) -> PerformanceAnalysis:
    return PerformanceAnalysis(
        is_struggling=accuracy < STRUGGLING_ACCURACY or attempts > STRUGGLING_ATTEMPTS,
        is_strong=accuracy >= STRONG_ACCURACY and attempts <= STRONG_ATTEMPTS,
    )


def calculate_priority(topic: Topic, mastery: float) -> float:
    """Earlier topics first, with a bonus for unstarted and weak topics."""
    priority = (100 - topic.order_index) * 0.1
    if mastery == 0:
        priority += 50
    elif mastery < WEAK_THRESHOLD:
        priority += 30
    return priority + 20


def recommendation_reason(mastery: float) -> str:
    if mastery == 0:
        return "Next topic in sequence"
    if mastery < WEAK_THRESHOLD:
        return "Needs more practice"
    if mastery < COMPLETED_THRESHOLD:
        return "Continue building mastery"
    return "Ready for next challenge"


def node_status(mastery: float) -> str:
    if mastery >= COMPLETED_THRESHOLD:
        return "completed"
    if mastery > 0:
        return "in_progress"
    return "not_started"


class AdaptiveLearningPathService:
    """
    Adaptive learning paths over the curriculum graph.

    Args:
        progress: Topic progress queries
        curriculum: Topic lookup
        max_depth: Default number of later topics considered for ``next``
        clock: Source of the current (naive UTC) time
    """

    def __init__(
        self,
        progress: ProgressRepository,
        curriculum: CurriculumRepository,
        max_depth: int = DEFAULT_MAX_DEPTH,
        clock: Callable[[], datetime] = utcnow
    ):
        self._progress = progress
        self._curriculum = curriculum
        self._max_depth = max_depth
        self._clock = clock

    async def _load(self, student_id: str, subject_id: str):
        topics = await self._curriculum.find_topics(TopicFilter(subject_id=subject_id))
        records = await self._progress.find(ProgressFilter(student_id=student_id, subject_id=subject_id))
        return topics, TopicMastery(records)

    async def get_learning_path(
        self,
        student_id: str,
        subject_id: str,
        current_topic_id: Optional[str] = None,
        include_prerequisites: bool = True,
        include_enrichment: bool = True,
        max_depth: Optional[int] = None
    ) -> LearningPath:
        """
        Build the learning path of a student through a subject.

        Args:
            student_id: Student identifier
            subject_id: Subject whose active topics form the path
            current_topic_id: Topic the student is working on; when omitted
                the next topics are entry points
            include_prerequisites: Whether prerequisite gates and status apply
            include_enrichment: Whether enrichment topics are listed
            max_depth: Number of later topics considered for ``next``

        Returns:
            The categorized path with next, remediation and enrichment steps

        Raises:
            NotFoundError: If ``current_topic_id`` is not an active topic of the subject
        """
        topics, mastery = await self._load(student_id, subject_id)
        return self._build_path(
            student_id, subject_id, topics, mastery, current_topic_id,
            include_prerequisites, include_enrichment, max_depth,
        )

    def _build_path(
        self,
        student_id: str,
        subject_id: str,
        topics: List[Topic],
        mastery: TopicMastery,
        current_topic_id: Optional[str] = None,
        include_prerequisites: bool = True,
        include_enrichment: bool = True,
        max_depth: Optional[int] = None
    ) -> LearningPath:
        by_id = {t.id: t for t in topics}

        completed = [t for t in topics if mastery.of(t) >= COMPLETED_THRESHOLD]
        in_progress = [t for t in topics if 0 < mastery.of(t) < COMPLETED_THRESHOLD]
        not_started = [t for t in topics if mastery.of(t) == 0]
        weak = [t for t in topics if 0 < mastery.of(t) < WEAK_THRESHOLD]

        path = LearningPath(completed=completed, in_progress=in_progress, not_started=not_started)

        if current_topic_id is not None:
            current = by_id.get(current_topic_id)
            if current is None:
                raise NotFoundError("topic", current_topic_id)
            path.current = current
            path.next = self.get_next_topics(
                current, topics, mastery, include_prerequisites,
                max_depth if max_depth is not None else self._max_depth,
            )
        else:
            path.current = (in_progress or not_started or [None])[0]
            path.next = self.get_entry_points(topics, mastery)

        path.remediation = [
            PathStep(topic=t, reason="Low mastery - needs review", priority="high",
                     action="review", mastery=mastery.of(t))
            for t in weak
        ]

        if include_enrichment:
            path.enrichment = self.get_enrichment_topics(topics, completed)

        if include_prerequisites and path.next:
            path.prerequisites = self.get_prerequisites(path.next[0].topic, by_id, mastery)

        path.recommendations = self.generate_recommendations(path)

        with_context(logger, student_id=student_id, subject_id=subject_id).debug(
            f"Built path: {len(completed)} completed, {len(in_progress)} in progress, "
            f"{len(path.next)} next"
        )
        return path

    @staticmethod
    def _prerequisites_met(topic: Topic, by_id: Dict[str, Topic], mastery: TopicMastery) -> bool:
        # Prerequisites outside the subject's active topics count as met.
        return all(
            mastery.of(by_id[prereq_id]) >= ADVANCE_THRESHOLD
            for prereq_id in topic.prerequisites
            if prereq_id in by_id
        )

    def get_next_topics(
        self,
        current: Topic,
        topics: List[Topic],
        mastery: TopicMastery,
        include_prerequisites: bool = True,
        max_depth: int = DEFAULT_MAX_DEPTH
    ) -> List[PathStep]:
        """
        Topics to move on to from ``current``.

        Until the current topic reaches 0.7 mastery the only step is to keep
        practicing it. Afterwards later topics up to one grade ahead whose
        prerequisites are met are ranked by ``calculate_priority``.
        """
        if mastery.of(current) < ADVANCE_THRESHOLD:
            return [PathStep(topic=current, reason="Continue practicing to master this topic",
                             priority="high", action="practice", mastery=mastery.of(current))]

        by_id = {t.id: t for t in topics}
        later = [
            t for t in topics
            if t.order_index > current.order_index and t.grade_level <= current.grade_level + 1
        ][:max_depth]

        if include_prerequisites:
            later = [t for t in later if self._prerequisites_met(t, by_id, mastery)]

        steps = [
            PathStep(topic=t, reason=recommendation_reason(mastery.of(t)), mastery=mastery.of(t),
                     score=calculate_priority(t, mastery.of(t)))
            for t in later
        ]
        steps.sort(key=lambda s: s.score, reverse=True)
        return steps[:MAX_NEXT_TOPICS]

    def get_entry_points(self, topics: List[Topic], mastery: TopicMastery) -> List[PathStep]:
        by_id = {t.id: t for t in topics}
        entry_points = [t for t in topics if self._prerequisites_met(t, by_id, mastery)]
        return [
            PathStep(topic=t, reason="Good starting point", priority="medium")
            for t in entry_points[:MAX_ENTRY_POINTS]
        ]

    @staticmethod
    def get_enrichment_topics(topics: List[Topic], completed: List[Topic]) -> List[PathStep]:
        """Hard topics, or topics above the grade of the first completed one."""
        strong_grade = completed[0].grade_level if completed else None
        enrichment = [
            t for t in topics
            if t.difficulty is Difficulty.HARD or (strong_grade is not None and t.grade_level > strong_grade)
        ]
        return [
            PathStep(topic=t, reason="You're ready for advanced content!", priority="low")
            for t in enrichment[:MAX_ENRICHMENT_TOPICS]
        ]

    @staticmethod
    def get_prerequisites(topic: Topic, by_id: Dict[str, Topic], mastery: TopicMastery) -> List[PrerequisiteStatus]:
        statuses = []
        for prereq_id in topic.prerequisites:
            prereq = by_id.get(prereq_id)
            if prereq is None:
                continue
            level = mastery.of(prereq)
            statuses.append(PrerequisiteStatus(topic=prereq, mastery=level, is_completed=level >= ADVANCE_THRESHOLD))
        return statuses

    @staticmethod
    def generate_recommendations(path: LearningPath) -> List[PathRecommendation]:
        recommendations = []
        if path.next:
            recommendations.append(PathRecommendation(
                type="next", topic=path.next[0].topic, reason=path.next[0].reason,
                priority="high", action="start",
            ))
        if path.remediation:
            recommendations.append(PathRecommendation(
                type="remediation", topic=path.remediation[0].topic, reason="Strengthen weak areas",
                priority="high", action="review",
            ))
        if path.enrichment:
            recommendations.append(PathRecommendation(
                type="enrichment", topic=path.enrichment[0].topic,
                reason="Challenge yourself with advanced content", priority="low", action="explore",
            ))
        return recommendations

    async def adjust_path(
        self,
        student_id: str,
        topic_id: str,
        accuracy: float,
        time_spent: Optional[float] = None,
        attempts: int = 0
    ) -> LearningPath:
        """
        Rebuild the path around ``topic_id`` after recent performance.

        Struggling students get a review of the topic first; strong ones get
        an advance step and enrichment topics.

        Raises:
            NotFoundError: If the topic does not exist
        """
        topic = await self._curriculum.get_topic(topic_id)
        if topic is None:
            raise NotFoundError("topic", topic_id)

        analysis = analyze_performance(accuracy, attempts)
        path = await self.get_learning_path(
            student_id,
            topic.subject_id,
            current_topic_id=topic_id,
            include_prerequisites=True,
            include_enrichment=analysis.is_strong,
        )

        if analysis.is_struggling:
            path.recommendations.insert(0, PathRecommendation(
                type="remediation", topic=topic,
                reason="Consider reviewing fundamentals before continuing",
                priority="high", action="review",
            ))
        elif analysis.is_strong:
            path.recommendations.insert(0, PathRecommendation(
                type="advance", topic=path.next[0].topic if path.next else None,
                reason="You're doing great! Ready for the next challenge?",
                priority="medium", action="advance",
            ))

        path.performance_analysis = analysis
        path.adjusted_at = self._clock()

        with_context(logger, student_id=student_id, topic_id=topic_id).info(
            f"Adjusted path: {analysis.recommendation} (accuracy={accuracy}, attempts={attempts}, "
            f"time_spent={time_spent})"
        )
        return path

    async def get_path_visualization(self, student_id: str, subject_id: str) -> Dict[str, Any]:
        """Topic nodes with mastery and status, and prerequisite edges between them."""
        topics, mastery = await self._load(student_id, subject_id)
        path = self._build_path(student_id, subject_id, topics, mastery)

        nodes = [
            {
                'id': t.id,
                'label': t.name,
                'mastery': mastery.of(t),
                'status': node_status(mastery.of(t)),
                'grade_level': t.grade_level,
                'difficulty': t.difficulty.value,
                'order_index': t.order_index,
            }
            for t in topics
        ]
        edges = [
            {'from': prereq_id, 'to': t.id, 'type': 'prerequisite'}
            for t in topics
            for prereq_id in t.prerequisites
        ]

        return {
            'nodes': nodes,
            'edges': edges,
            'current': path.current.id if path.current else None,
            'next': [step.topic.id for step in path.next],
            'recommendations': [r.to_dict() for r in path.recommendations],
        }
