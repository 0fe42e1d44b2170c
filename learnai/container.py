"""
Service Container Module

Wires repositories, cache and services together. Services receive their
collaborators through their constructors; the container is built once at
startup (or per test) and handed to the HTTP layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from learnai.common.cache import CacheService, create_cache_service
from learnai.common.config import AppConfig, get_config
from learnai.common.error_handling import RetryPolicy
from learnai.common.logger import app_logger
from learnai.common.utils import utcnow
from learnai.database.init_db import close_database, create_session_factory, initialize_database
from learnai.progress.memory_repository import (
    MemoryActivityRepository,
    MemoryCurriculumRepository,
    MemoryProgressRepository,
    MemoryReviewRepository,
    MemorySessionRepository,
    MemoryStudentRepository,
)
from learnai.progress.repository import (
    ActivityRepository,
    CurriculumRepository,
    ProgressRepository,
    ReviewRepository,
    SessionRepository,
    StudentRepository,
)
from learnai.progress.review_service import SpacedRepetitionService
from learnai.progress.spaced_repetition import SpacedRepetitionScheduler
from learnai.progress.sql_repository import (
    SqlActivityRepository,
    SqlCurriculumRepository,
    SqlProgressRepository,
    SqlReviewRepository,
    SqlSessionRepository,
    SqlStudentRepository,
)
from learnai.progress.streak_service import StreakService
from learnai.progress.tracker import ProgressTracker
from learnai.recommendations.adaptive_path import AdaptiveLearningPathService
from learnai.recommendations.engine import RecommendationEngine

logger = app_logger.getChild("container")


@dataclass
class Repositories:
    students: StudentRepository
    sessions: SessionRepository
    curriculum: CurriculumRepository
    progress: ProgressRepository
    activities: ActivityRepository
    reviews: ReviewRepository


@dataclass
class ServiceContainer:
    """Every service of the progress engine, plus the resources to release on shutdown."""
    config: AppConfig
    repositories: Repositories
    cache: CacheService
    reviews: SpacedRepetitionService
    tracker: ProgressTracker
    streaks: StreakService
    recommendations: RecommendationEngine
    learning_paths: AdaptiveLearningPathService
    engine: Optional[AsyncEngine] = None
    _closed: bool = field(default=False, repr=False)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.cache.close()
        if self.engine is not None:
            await close_database(self.engine)


def build_services(
    config: AppConfig,
    repositories: Repositories,
    cache: Optional[CacheService] = None,
    clock: Callable[[], datetime] = utcnow,
    engine: Optional[AsyncEngine] = None
) -> ServiceContainer:
    """Construct the services over the given repositories."""
    if cache is None:
        cache = create_cache_service(config.cache)

    reviews = SpacedRepetitionService(
        repositories.reviews, repositories.curriculum, SpacedRepetitionScheduler(), clock=clock
    )
    tracker = ProgressTracker(
        sessions=repositories.sessions,
        progress=repositories.progress,
        activities=repositories.activities,
        curriculum=repositories.curriculum,
        review_service=reviews,
        cache=cache,
        progress_ttl=config.cache.progress_ttl,
        streak_history_days=config.learning.streak_history_days,
        clock=clock,
    )

    return ServiceContainer(
        config=config,
        repositories=repositories,
        cache=cache,
        reviews=reviews,
        tracker=tracker,
        streaks=StreakService(repositories.activities, clock=clock),
        recommendations=RecommendationEngine(
            repositories.students,
            repositories.progress,
            repositories.curriculum,
            cache=cache,
            cache_ttl=config.cache.recommendations_ttl,
            default_limit=config.learning.default_recommendation_limit,
        ),
        learning_paths=AdaptiveLearningPathService(
            repositories.progress,
            repositories.curriculum,
            max_depth=config.learning.max_path_depth,
            clock=clock,
        ),
        engine=engine,
    )


def memory_repositories() -> Repositories:
    return Repositories(
        students=MemoryStudentRepository(),
        sessions=MemorySessionRepository(),
        curriculum=MemoryCurriculumRepository(),
        progress=MemoryProgressRepository(),
        activities=MemoryActivityRepository(),
        reviews=MemoryReviewRepository(),
    )


def sql_repositories(session_factory, retry_policy: Optional[RetryPolicy] = None) -> Repositories:
    return Repositories(
        students=SqlStudentRepository(session_factory, retry_policy),
        sessions=SqlSessionRepository(session_factory, retry_policy),
        curriculum=SqlCurriculumRepository(session_factory, retry_policy),
        progress=SqlProgressRepository(session_factory, retry_policy),
        activities=SqlActivityRepository(session_factory, retry_policy),
        reviews=SqlReviewRepository(session_factory, retry_policy),
    )


def build_memory_container(
    config: Optional[AppConfig] = None,
    clock: Callable[[], datetime] = utcnow
) -> ServiceContainer:
    """Services over in-memory repositories and an in-memory cache."""
    config = config or get_config()
    cache = CacheService(default_ttl=config.cache.default_ttl, enabled=config.cache.enabled)
    return build_services(config, memory_repositories(), cache=cache, clock=clock)


async def create_container(config: Optional[AppConfig] = None) -> ServiceContainer:
    """
    Services over the configured database and cache.

    Connects to the database (creating the schema when configured) and
    builds the cache backend; both share one retry policy.
    """
    config = config or get_config()
    retry_policy = RetryPolicy.from_config(config.retry)

    engine = await initialize_database(config.database, retry_policy=retry_policy)
    cache = create_cache_service(config.cache, config.redis, retry_policy=retry_policy)
    repositories = sql_repositories(create_session_factory(engine), retry_policy)

    logger.info(f"Service container ready (environment: {config.environment.env})")
    return build_services(config, repositories, cache=cache, engine=engine)
