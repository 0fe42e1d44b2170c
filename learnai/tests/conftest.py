"""
Shared fixtures for the progress engine tests.

Every service is built over in-memory repositories and a controllable
clock so that streak and review dates are deterministic.
"""

from datetime import datetime, timedelta

import pytest

from learnai.common.cache import CacheService
from learnai.common.config import AppConfig
from learnai.container import Repositories, build_services, memory_repositories
from learnai.progress.models import (
    Concept,
    Difficulty,
    LearningSession,
    Student,
    StudentProgress,
    Subject,
    Topic,
)

START = datetime(2024, 3, 14, 10, 0, 0)  # a Thursday


class FakeClock:
    """Callable returning a fixed naive UTC time that tests can move forward."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now = self.now + timedelta(days=days, hours=hours)


def make_topics():
    return [
        Topic("t-count", "math", "Counting", grade_level=1, order_index=1, difficulty=Difficulty.EASY),
        Topic("t-add", "math", "Addition", grade_level=1, order_index=2,
              prerequisites=["t-count"], parent_topic_id="t-count"),
        Topic("t-sub", "math", "Subtraction", grade_level=1, order_index=3,
              prerequisites=["t-add"], parent_topic_id="t-add"),
        Topic("t-mul", "math", "Multiplication", grade_level=2, order_index=4, prerequisites=["t-add"]),
        Topic("t-div", "math", "Division", grade_level=2, order_index=5,
              difficulty=Difficulty.HARD, prerequisites=["t-mul"]),
        Topic("t-frac", "math", "Fractions", grade_level=3, order_index=6,
              difficulty=Difficulty.HARD, prerequisites=["t-div"]),
        Topic("t-old", "math", "Retired Topic", grade_level=1, order_index=7, is_active=False),
        Topic("s-plants", "science", "Plants", grade_level=1, order_index=1),
    ]


def progress_record(topic_id: str, mastery: float, sessions: int = 1, subject_id: str = "math",
                    student_id: str = "student-1", practiced_at: datetime = START) -> StudentProgress:
    return StudentProgress.create(
        student_id=student_id,
        subject_id=subject_id,
        topic_id=topic_id,
        mastery_level=mastery,
        sessions_count=sessions,
        last_practiced_at=practiced_at,
    )


def seed(repositories: Repositories) -> Repositories:
    """Load the shared curriculum, one student and one learning session."""
    curriculum = repositories.curriculum
    curriculum.add_subject(Subject("math", "Mathematics"))
    curriculum.add_subject(Subject("science", "Science"))
    for topic in make_topics():
        curriculum.add_topic(topic)
    for concept in (Concept("c-carry", "Carrying", "math"), Concept("c-zero", "Adding zero", "math")):
        curriculum.add_concept(concept)

    repositories.students.add(Student("student-1", grade_level=1, first_name="Sam"))
    repositories.students.add(Student("student-2", grade_level=2))
    repositories.sessions.add(LearningSession(
        id="session-1",
        student_id="student-1",
        subject_id="math",
        topic_id="t-add",
        started_at=START,
    ))
    return repositories


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return AppConfig()


@pytest.fixture
def repositories():
    return seed(memory_repositories())


@pytest.fixture
def cache():
    return CacheService(default_ttl=300)


@pytest.fixture
def container(config, repositories, cache, clock):
    return build_services(config, repositories, cache=cache, clock=clock)
