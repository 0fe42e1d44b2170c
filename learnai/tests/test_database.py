"""
Tests for the SQLAlchemy repositories over an aiosqlite database file.

Each test creates its own engine and schema under ``tmp_path`` and
disposes the engine before finishing.
"""

from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from learnai.common.cache import CacheService
from learnai.common.config import AppConfig, DatabaseConfig
from learnai.common.error_handling import (
    DatabaseConnectionError,
    DatabaseQueryError,
    RetryPolicy,
)
from learnai.container import build_services, sql_repositories
from learnai.database import models as orm
from learnai.database.init_db import (
    check_connection,
    close_database,
    create_session_factory,
    initialize_database,
)
from learnai.progress.models import (
    ConceptReview,
    DailyActivity,
    ReviewLog,
    SessionData,
    StudentProgress,
)
from learnai.progress.repository import ProgressFilter, ProgressOrder, TopicFilter

from conftest import START, FakeClock, make_topics


def database_config(tmp_path) -> DatabaseConfig:
    return DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'learnai-test.db'}", create_schema=True)


def no_wait_policy() -> RetryPolicy:
    return RetryPolicy(max_retries=2, base_delay=0, jitter=0, sleep=AsyncMock())


async def open_database(tmp_path):
    engine = await initialize_database(database_config(tmp_path))
    factory = create_session_factory(engine)
    async with factory() as session:
        session.add_all([
            orm.Student(id="student-1", grade_level=1, first_name="Sam"),
            orm.Subject(id="math", name="Mathematics"),
            orm.Topic(id="t-count", subject_id="math", name="Counting", grade_level=1, order_index=1,
                      difficulty="EASY", prerequisites=[]),
            orm.Topic(id="t-add", subject_id="math", name="Addition", grade_level=1, order_index=2,
                      prerequisites=["t-count"], parent_topic_id="t-count"),
            orm.Topic(id="t-mul", subject_id="math", name="Multiplication", grade_level=2, order_index=3,
                      prerequisites=["t-add"]),
            orm.Topic(id="t-old", subject_id="math", name="Retired", grade_level=1, order_index=4,
                      prerequisites=[], is_active=False),
            orm.Concept(id="c-carry", subject_id="math", name="Carrying"),
            orm.LearningSession(id="session-1", student_id="student-1", subject_id="math",
                                topic_id="t-add", started_at=START),
        ])
        await session.commit()
    return engine, factory


@pytest.mark.asyncio
async def test_curriculum_queries(tmp_path):
    engine, factory = await open_database(tmp_path)
    try:
        repos = sql_repositories(factory, no_wait_policy())

        student = await repos.students.get_by_id("student-1")
        assert student.grade_level == 1
        assert await repos.students.get_by_id("nobody") is None

        session = await repos.sessions.get_by_id("session-1")
        assert session.topic_id == "t-add"

        topic = await repos.curriculum.get_topic("t-add")
        assert topic.prerequisites == ["t-count"]
        assert topic.difficulty.value == "MEDIUM"

        topics = await repos.curriculum.find_topics(TopicFilter(subject_id="math"))
        assert [t.id for t in topics] == ["t-count", "t-add", "t-mul"]

        entry = await repos.curriculum.find_topics(TopicFilter(subject_id="math", without_prerequisites=True))
        assert [t.id for t in entry] == ["t-count"]

        children = await repos.curriculum.find_topics(TopicFilter(parent_topic_id="t-count"))
        assert [t.id for t in children] == ["t-add"]

        above = await repos.curriculum.find_topics(TopicFilter(subject_id="math", grade_above=1, limit=1))
        assert [t.id for t in above] == ["t-mul"]

        assert [t.id for t in await repos.curriculum.get_topics(["t-mul", "t-x", "t-count"])] == ["t-mul", "t-count"]
        assert (await repos.curriculum.get_subject("math")).name == "Mathematics"
        assert set(await repos.curriculum.get_concepts(["c-carry", "c-x"])) == {"c-carry"}
    finally:
        await close_database(engine)


@pytest.mark.asyncio
async def test_progress_save_and_find(tmp_path):
    engine, factory = await open_database(tmp_path)
    try:
        repos = sql_repositories(factory, no_wait_policy())
        first = StudentProgress.create("student-1", "math", "t-count", mastery_level=90, sessions_count=3,
                                       last_practiced_at=START, strengths=["c-carry"])
        second = StudentProgress.create("student-1", "math", "t-add", mastery_level=40, sessions_count=2,
                                        last_practiced_at=START + timedelta(hours=1))
        never = StudentProgress.create("student-1", "math", "t-mul", mastery_level=0)
        for record in (first, second, never):
            await repos.progress.save(record)

        stored = await repos.progress.get("student-1", "t-count")
        assert stored.id == first.id
        assert stored.strengths == ["c-carry"]

        stored.mastery_level = 95
        await repos.progress.save(stored)
        assert (await repos.progress.get("student-1", "t-count")).mastery_level == 95

        recent = await repos.progress.find(ProgressFilter(student_id="student-1"))
        assert [p.topic_id for p in recent] == ["t-add", "t-count", "t-mul"]

        weakest = await repos.progress.find(ProgressFilter(
            student_id="student-1", mastery_gt=0, mastery_lt=80, order=ProgressOrder.MASTERY_ASC
        ))
        assert [p.topic_id for p in weakest] == ["t-add"]

        struggling = await repos.progress.find(ProgressFilter(
            student_id="student-1", mastery_lt=50, min_sessions=2
        ))
        assert [p.topic_id for p in struggling] == ["t-add"]

        best = await repos.progress.find(ProgressFilter(
            student_id="student-1", topic_ids=["t-count", "t-add"], order=ProgressOrder.MASTERY_DESC, limit=1
        ))
        assert [p.topic_id for p in best] == ["t-count"]
    finally:
        await close_database(engine)


@pytest.mark.asyncio
async def test_activity_queries(tmp_path):
    engine, factory = await open_database(tmp_path)
    try:
        repos = sql_repositories(factory, no_wait_policy())
        today = date(2024, 3, 14)
        for days_ago, streak in ((3, 1), (1, 1), (0, 2)):
            await repos.activities.save(DailyActivity.create(
                "student-1", today - timedelta(days=days_ago), minutes_learned=10, streak_day=streak
            ))

        todays = await repos.activities.get("student-1", today)
        todays.minutes_learned += 5
        todays.topics_studied.append("t-add")
        await repos.activities.save(todays)

        stored = await repos.activities.get("student-1", today)
        assert stored.minutes_learned == 15
        assert stored.topics_studied == ["t-add"]

        recent = await repos.activities.list_recent("student-1", limit=2)
        assert [a.activity_date for a in recent] == [today, today - timedelta(days=1)]

        since = await repos.activities.list_since("student-1", today - timedelta(days=1))
        assert [a.activity_date for a in since] == [today - timedelta(days=1), today]

        assert await repos.activities.longest_streak("student-1") == 2
        assert await repos.activities.longest_streak("nobody") == 0
    finally:
        await close_database(engine)


@pytest.mark.asyncio
async def test_review_queries(tmp_path):
    engine, factory = await open_database(tmp_path)
    try:
        repos = sql_repositories(factory, no_wait_policy())
        now = datetime(2024, 3, 14, 10, 0)
        due = ConceptReview.create("student-1", "c-carry", now - timedelta(days=1), subject_id="math")
        later = ConceptReview.create("student-1", "c-later", now + timedelta(days=3))
        await repos.reviews.save(due)
        await repos.reviews.save(later)

        assert [r.concept_id for r in await repos.reviews.find_due("student-1", now)] == ["c-carry"]
        assert [r.concept_id for r in await repos.reviews.find_due("student-1", now, "math")] == ["c-carry"]
        assert [r.concept_id for r in await repos.reviews.list_for_student("student-1")] == ["c-carry", "c-later"]

        await repos.reviews.add_log(ReviewLog.create(due.id, 4, now, session_id="session-1"))
        logs = await repos.reviews.list_logs(due.id)
        assert [(entry.quality, entry.session_id) for entry in logs] == [(4, "session-1")]
    finally:
        await close_database(engine)


def test_topic_filter_matches():
    topics = {t.id: t for t in make_topics()}

    assert TopicFilter(subject_id="math").matches(topics["t-add"])
    assert not TopicFilter(subject_id="math").matches(topics["t-old"])
    assert TopicFilter(subject_id="math", active_only=False).matches(topics["t-old"])
    assert not TopicFilter(without_prerequisites=True).matches(topics["t-add"])
    assert TopicFilter(grade_above=1).matches(topics["t-mul"])
    assert not TopicFilter(parent_topic_id="t-count").matches(topics["t-sub"])

    with pytest.raises(TypeError):
        TopicFilter(exclude_ids=["t-add"])


def test_model_update_sets_only_columns():
    row = orm.StudentProgress(id="p-1", student_id="student-1", subject_id="math", topic_id="t-add")
    row.update({"mastery_level": 42.0, "strengths": ["c-carry"], "not_a_column": 1})

    assert row.mastery_level == 42.0
    assert row.strengths == ["c-carry"]
    assert not hasattr(row, "not_a_column")


@pytest.mark.asyncio
async def test_saved_progress_reads_back_through_new_session(tmp_path):
    engine, factory = await open_database(tmp_path)
    try:
        record = StudentProgress.create("student-1", "math", "t-add", mastery_level=42.0, total_time_minutes=35,
                                        sessions_count=2, last_practiced_at=START,
                                        strengths=["c-carry"], weaknesses=["c-borrow"])
        await sql_repositories(factory, no_wait_policy()).progress.save(record)

        record.mastery_level = 55.5
        record.weaknesses = []
        await sql_repositories(factory, no_wait_policy()).progress.save(record)

        stored = await sql_repositories(factory, no_wait_policy()).progress.get("student-1", "t-add")
        assert stored.id == record.id
        assert stored.mastery_level == pytest.approx(55.5)
        assert stored.total_time_minutes == 35
        assert stored.sessions_count == 2
        assert stored.last_practiced_at == START
        assert stored.strengths == ["c-carry"]
        assert stored.weaknesses == []
    finally:
        await close_database(engine)


@pytest.mark.asyncio
async def test_tracking_a_session_against_the_database(tmp_path):
    engine, factory = await open_database(tmp_path)
    try:
        clock = FakeClock()
        services = build_services(AppConfig(), sql_repositories(factory, no_wait_policy()),
                                  cache=CacheService(), clock=clock, engine=engine)

        data = SessionData(problems_attempted=4, problems_correct=4, duration_minutes=15, concepts=["c-carry"])
        progress = await services.tracker.track_session_progress("session-1", data)

        assert progress.mastery_level == pytest.approx(30.0)
        assert progress.strengths == ["c-carry"]

        info = await services.streaks.get_streak_info("student-1")
        assert info["current_streak"] == 1

        due = await services.reviews.get_concepts_due_for_review("student-1")
        assert due == []
        clock.advance(days=2)
        due = await services.reviews.get_concepts_due_for_review("student-1")
        assert [d.concept_name for d in due] == ["Carrying"]

        summary = await services.tracker.get_progress_summary("student-1")
        assert summary["progress_records"][0]["topic"] == "Addition"
    finally:
        await close_database(engine)


@pytest.mark.asyncio
async def test_connection_failures_are_retried_then_raised(tmp_path):
    engine, factory = await open_database(tmp_path)
    try:
        policy = no_wait_policy()
        repo = sql_repositories(factory, policy).students
        work = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("database is locked")))

        with pytest.raises(DatabaseConnectionError):
            await repo._run("get_student", work)
        assert work.await_count == 3
    finally:
        await close_database(engine)


@pytest.mark.asyncio
async def test_query_failures_are_not_retried(tmp_path):
    engine, factory = await open_database(tmp_path)
    try:
        repo = sql_repositories(factory, no_wait_policy()).students
        work = AsyncMock(side_effect=ProgrammingError("SELECT nope", {}, Exception("syntax error")))

        with pytest.raises(DatabaseQueryError):
            await repo._run("get_student", work)
        assert work.await_count == 1
    finally:
        await close_database(engine)


@pytest.mark.asyncio
async def test_unreachable_database():
    config = DatabaseConfig(url="sqlite+aiosqlite:////nonexistent-dir/learnai.db")

    with pytest.raises(DatabaseConnectionError):
        await initialize_database(config)


@pytest.mark.asyncio
async def test_check_connection(tmp_path):
    engine, _ = await open_database(tmp_path)
    try:
        await check_connection(engine)
    finally:
        await close_database(engine)
