"""
Tests for the recommendation engine.
"""

from unittest.mock import AsyncMock

import pytest

from learnai.common.error_handling import NotFoundError
from learnai.recommendations.engine import deduplicate_and_rank
from learnai.recommendations.models import Recommendation, RecommendationType

from conftest import progress_record


def rec(topic_id, priority, type_=RecommendationType.LEARNING_PATH, reason="because", mastery=None):
    return Recommendation(
        topic_id=topic_id,
        topic_name=topic_id.title(),
        subject_id="math",
        subject_name="Mathematics",
        reason=reason,
        priority=priority,
        type=type_,
        current_mastery=mastery,
    )


class TestDeduplicateAndRank:

    def test_merges_same_topic(self):
        candidates = [
            rec("t-add", 70, reason="Continue learning Mathematics"),
            rec("t-add", 40, RecommendationType.STRENGTHEN, reason="Strengthen Addition", mastery=60),
            rec("t-add", 90, RecommendationType.PREREQUISITE, reason="Prerequisite for Subtraction"),
        ]
        ranked = deduplicate_and_rank(candidates)

        assert len(ranked) == 1
        merged = ranked[0]
        assert merged.priority == 90
        assert merged.reason == (
            "Continue learning Mathematics; Strengthen Addition; Prerequisite for Subtraction"
        )
        assert merged.type == "learning_path, strengthen, prerequisite"
        assert merged.current_mastery == 60

    def test_repeated_type_is_listed_once(self):
        ranked = deduplicate_and_rank([rec("t-add", 70), rec("t-add", 90)])
        assert ranked[0].type == RecommendationType.LEARNING_PATH
        assert ranked[0].types == [RecommendationType.LEARNING_PATH]

    def test_sorted_by_priority_descending(self):
        ranked = deduplicate_and_rank([rec("a", 10), rec("b", 90), rec("c", 50)])
        assert [r.topic_id for r in ranked] == ["b", "c", "a"]

    def test_input_is_not_modified(self):
        first = rec("t-add", 70)
        deduplicate_and_rank([first, rec("t-add", 90, RecommendationType.ADVANCED)])

        assert first.priority == 70
        assert first.type == RecommendationType.LEARNING_PATH
        assert first.reason == "because"

    def test_empty(self):
        assert deduplicate_and_rank([]) == []


@pytest.mark.asyncio
async def test_cold_start_recommends_entry_points(container):
    result = await container.recommendations.get_recommendations("student-1")

    assert [r.topic_id for r in result.recommendations] == ["s-plants", "t-count"]
    assert all(r.reason == "Good starting point" for r in result.recommendations)
    assert all(r.priority == 50 for r in result.recommendations)
    assert result.strategies[RecommendationType.LEARNING_PATH] == 2


@pytest.mark.asyncio
async def test_cold_start_within_subject(container):
    result = await container.recommendations.get_recommendations("student-1", subject_id="math")
    assert [r.topic_id for r in result.recommendations] == ["t-count"]
    assert result.recommendations[0].subject_name == "Mathematics"


@pytest.mark.asyncio
async def test_cold_start_falls_back_to_any_grade(container):
    result = await container.recommendations.get_recommendations("student-2", subject_id="math")
    assert [r.topic_id for r in result.recommendations] == ["t-count"]


@pytest.mark.asyncio
async def test_mastered_topic_leads_to_children_siblings_and_advanced(container, repositories):
    await repositories.progress.save(progress_record("t-count", 90))

    result = await container.recommendations.get_recommendations("student-1", subject_id="math")

    assert [r.topic_id for r in result.recommendations] == ["t-add", "t-sub", "t-mul", "t-div"]
    top = result.recommendations[0]
    assert top.priority == 90
    assert top.type == RecommendationType.LEARNING_PATH
    assert top.reason == "Next step after mastering Counting; Continue learning Mathematics"
    assert result.recommendations[2].type == RecommendationType.ADVANCED
    assert result.total == 4
    assert result.strategies == {
        RecommendationType.LEARNING_PATH: 3,
        RecommendationType.STRENGTHEN: 0,
        RecommendationType.PREREQUISITE: 0,
        RecommendationType.ADVANCED: 2,
    }


@pytest.mark.asyncio
async def test_struggling_topic_surfaces_prerequisite_and_strengthen(container, repositories):
    await repositories.progress.save(progress_record("t-add", 30, sessions=3))

    result = await container.recommendations.get_recommendations("student-1", subject_id="math")

    assert [(r.topic_id, r.type) for r in result.recommendations] == [
        ("t-count", RecommendationType.PREREQUISITE),
        ("t-add", RecommendationType.STRENGTHEN),
    ]
    assert result.recommendations[0].reason == "Prerequisite for Addition"
    assert result.recommendations[1].priority == 70
    assert result.recommendations[1].current_mastery == 30
    assert result.recommendations[1].reason == "Strengthen Addition (30% mastery)"


@pytest.mark.asyncio
async def test_prerequisites_can_be_excluded(container, repositories):
    await repositories.progress.save(progress_record("t-add", 30, sessions=3))

    result = await container.recommendations.get_recommendations(
        "student-1", subject_id="math", include_prerequisites=False
    )

    assert [r.topic_id for r in result.recommendations] == ["t-add"]
    assert result.strategies[RecommendationType.PREREQUISITE] == 0


@pytest.mark.asyncio
async def test_mastered_prerequisite_is_not_recommended(container, repositories):
    await repositories.progress.save(progress_record("t-count", 85))
    await repositories.progress.save(progress_record("t-add", 30, sessions=3))

    result = await container.recommendations.get_recommendations("student-1", subject_id="math")

    assert RecommendationType.PREREQUISITE not in {t for r in result.recommendations for t in r.types}


@pytest.mark.asyncio
async def test_limit(container, repositories):
    await repositories.progress.save(progress_record("t-count", 90))

    result = await container.recommendations.get_recommendations("student-1", subject_id="math", limit=2)

    assert len(result.recommendations) == 2
    assert result.total == 4


@pytest.mark.asyncio
async def test_unknown_student(container):
    with pytest.raises(NotFoundError):
        await container.recommendations.get_recommendations("ghost")


@pytest.mark.asyncio
async def test_failing_strategy_contributes_nothing(container, repositories):
    await repositories.progress.save(progress_record("t-count", 90))
    engine = container.recommendations
    engine.get_advanced_recommendations = AsyncMock(side_effect=RuntimeError("boom"))

    result = await engine.get_recommendations("student-1", subject_id="math")

    assert [r.topic_id for r in result.recommendations] == ["t-add", "t-sub"]
    assert result.strategies[RecommendationType.ADVANCED] == 0


@pytest.mark.asyncio
async def test_results_are_cached_until_invalidated(container, repositories):
    first = await container.recommendations.get_recommendations("student-1", subject_id="math")
    assert [r.topic_id for r in first.recommendations] == ["t-count"]

    await repositories.progress.save(progress_record("t-count", 90))
    cached = await container.recommendations.get_recommendations("student-1", subject_id="math")
    assert [r.topic_id for r in cached.recommendations] == ["t-count"]

    await container.tracker.invalidate_student_cache("student-1")
    fresh = await container.recommendations.get_recommendations("student-1", subject_id="math")
    assert fresh.recommendations[0].topic_id == "t-add"


@pytest.mark.asyncio
async def test_personalized_path_groups_by_subject(container, repositories):
    await repositories.progress.save(progress_record("t-count", 90))
    await repositories.progress.save(progress_record("s-plants", 40, subject_id="science"))

    path = await container.recommendations.get_personalized_path("student-1")

    assert set(path.by_subject) == {"math", "science"}
    assert [r.topic_id for r in path.by_subject["science"]] == ["s-plants"]
    assert len(path.learning_path) == sum(len(recs) for recs in path.by_subject.values())
    data = path.to_dict()
    assert data["by_subject"]["science"][0]["current_mastery"] == 40
