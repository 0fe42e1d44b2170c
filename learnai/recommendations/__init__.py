"""
Topic recommendations and adaptive learning paths.
"""

from learnai.recommendations.adaptive_path import AdaptiveLearningPathService, analyze_performance
from learnai.recommendations.engine import RecommendationEngine, deduplicate_and_rank
from learnai.recommendations.models import (
    LearningPath,
    PathRecommendation,
    PathStep,
    PerformanceAnalysis,
    PersonalizedPath,
    PrerequisiteStatus,
    Recommendation,
    RecommendationSet,
    RecommendationType,
)

__all__ = [
    'AdaptiveLearningPathService',
    'analyze_performance',
    'RecommendationEngine',
    'deduplicate_and_rank',
    'LearningPath',
    'PathRecommendation',
    'PathStep',
    'PerformanceAnalysis',
    'PersonalizedPath',
    'PrerequisiteStatus',
    'Recommendation',
    'RecommendationSet',
    'RecommendationType',
]
