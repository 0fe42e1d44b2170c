"""
Recommendation Models Module

Value objects returned by the recommendation engine and the adaptive
learning path service. They are plain dataclasses with ``to_dict`` helpers
for the HTTP layer and the cache.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from learnai.progress.models import Topic


class RecommendationType:
    LEARNING_PATH = "learning_path"
    STRENGTHEN = "strengthen"
    PREREQUISITE = "prerequisite"
    ADVANCED = "advanced"

    ALL = (LEARNING_PATH, STRENGTHEN, PREREQUISITE, ADVANCED)


@dataclass
class Recommendation:
    """
    A topic suggested to a student.

    Attributes:
        topic_id: Recommended topic
        topic_name: Display name of the topic
        subject_id: Subject of the topic
        subject_name: Display name of the subject
        reason: Why the topic is recommended; merged reasons are ``"; "``-joined
        priority: Ranking score, higher first
        type: Strategy that produced it; merged types are ``", "``-joined
        current_mastery: Mastery of the topic, set by the strengthen strategy
    """
    topic_id: str
    topic_name: str
    subject_id: str
    subject_name: str
    reason: str
    priority: float
    type: str
    current_mastery: Optional[float] = None

    @property
    def types(self) -> List[str]:
        return self.type.split(", ")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'topic_id': self.topic_id,
            'topic_name': self.topic_name,
            'subject_id': self.subject_id,
            'subject_name': self.subject_name,
            'reason': self.reason,
            'priority': self.priority,
            'type': self.type,
        }
        if self.current_mastery is not None:
            data['current_mastery'] = self.current_mastery
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Recommendation':
        return cls(
            topic_id=data['topic_id'],
            topic_name=data['topic_name'],
            subject_id=data['subject_id'],
            subject_name=data['subject_name'],
            reason=data['reason'],
            priority=data['priority'],
            type=data['type'],
            current_mastery=data.get('current_mastery'),
        )


@dataclass
class RecommendationSet:
    """Ranked recommendations with the candidate count of each strategy."""
    recommendations: List[Recommendation] = field(default_factory=list)
    total: int = 0
    strategies: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recommendations': [r.to_dict() for r in self.recommendations],
            'total': self.total,
            'strategies': dict(self.strategies),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecommendationSet':
        return cls(
            recommendations=[Recommendation.from_dict(r) for r in data.get('recommendations', [])],
            total=data.get('total', 0),
            strategies=dict(data.get('strategies', {})),
        )


@dataclass
class PersonalizedPath:
    learning_path: List[Recommendation]
    by_subject: Dict[str, List[Recommendation]]
    strategies: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'learning_path': [r.to_dict() for r in self.learning_path],
            'by_subject': {sid: [r.to_dict() for r in recs] for sid, recs in self.by_subject.items()},
            'strategies': dict(self.strategies),
        }


def _topic_dict(topic: Optional[Topic]) -> Optional[Dict[str, Any]]:
    return topic.to_dict() if topic else None


@dataclass
class PathStep:
    """
    One entry of a path segment (next, remediation, enrichment).

    ``priority`` is a label (high, medium, low); ranked next topics also
    carry their numeric ``score``.
    """
    topic: Topic
    reason: str
    priority: str = "medium"
    action: Optional[str] = None
    mastery: Optional[float] = None
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'topic': self.topic.to_dict(),
            'reason': self.reason,
            'priority': self.priority,
        }
        if self.action is not None:
            data['action'] = self.action
        if self.mastery is not None:
            data['mastery'] = self.mastery
        if self.score is not None:
            data['score'] = self.score
        return data


@dataclass
class PrerequisiteStatus:
    topic: Topic
    mastery: float
    is_completed: bool
    is_required: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'topic': self.topic.to_dict(),
            'mastery': self.mastery,
            'is_completed': self.is_completed,
            'is_required': self.is_required,
        }


@dataclass
class PathRecommendation:
    type: str
    topic: Optional[Topic]
    reason: str
    priority: str
    action: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'topic': _topic_dict(self.topic),
            'reason': self.reason,
            'priority': self.priority,
            'action': self.action,
        }


@dataclass
class PerformanceAnalysis:
    is_struggling: bool
    is_strong: bool

    @property
    def is_average(self) -> bool:
        return not self.is_struggling and not self.is_strong

    @property
    def recommendation(self) -> str:
        if self.is_struggling:
            return "remediation"
        if self.is_strong:
            return "advance"
        return "continue"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_struggling': self.is_struggling,
            'is_strong': self.is_strong,
            'is_average': self.is_average,
            'recommendation': self.recommendation,
        }


@dataclass
class LearningPath:
    """Adaptive path of a student through one subject."""
    current: Optional[Topic] = None
    next: List[PathStep] = field(default_factory=list)
    remediation: List[PathStep] = field(default_factory=list)
    enrichment: List[PathStep] = field(default_factory=list)
    prerequisites: List[PrerequisiteStatus] = field(default_factory=list)
    completed: List[Topic] = field(default_factory=list)
    in_progress: List[Topic] = field(default_factory=list)
    not_started: List[Topic] = field(default_factory=list)
    recommendations: List[PathRecommendation] = field(default_factory=list)
    performance_analysis: Optional[PerformanceAnalysis] = None
    adjusted_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'current': _topic_dict(self.current),
            'next': [s.to_dict() for s in self.next],
            'remediation': [s.to_dict() for s in self.remediation],
            'enrichment': [s.to_dict() for s in self.enrichment],
            'prerequisites': [p.to_dict() for p in self.prerequisites],
            'completed': [t.to_dict() for t in self.completed],
            'in_progress': [t.to_dict() for t in self.in_progress],
            'not_started': [t.to_dict() for t in self.not_started],
            'recommendations': [r.to_dict() for r in self.recommendations],
        }
        if self.performance_analysis is not None:
            data['performance_analysis'] = self.performance_analysis.to_dict()
        if self.adjusted_at is not None:
            data['adjusted_at'] = self.adjusted_at.isoformat()
        return data
