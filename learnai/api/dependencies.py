"""
FastAPI dependencies resolving services from the application's container.
"""

from fastapi import Request

from learnai.container import ServiceContainer
from learnai.progress.review_service import SpacedRepetitionService
from learnai.progress.streak_service import StreakService
from learnai.progress.tracker import ProgressTracker
from learnai.recommendations.adaptive_path import AdaptiveLearningPathService
from learnai.recommendations.engine import RecommendationEngine


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_tracker(request: Request) -> ProgressTracker:
    return get_container(request).tracker


def get_streak_service(request: Request) -> StreakService:
    return get_container(request).streaks


def get_recommendation_engine(request: Request) -> RecommendationEngine:
    return get_container(request).recommendations


def get_learning_path_service(request: Request) -> AdaptiveLearningPathService:
    return get_container(request).learning_paths


def get_review_service(request: Request) -> SpacedRepetitionService:
    return get_container(request).reviews
