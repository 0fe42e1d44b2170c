"""
Tests for the spaced repetition service.
"""

from datetime import timedelta

import pytest

from learnai.common.error_handling import ValidationError

from conftest import START


@pytest.mark.asyncio
async def test_first_review_creates_schedule(container, repositories):
    outcome = await container.reviews.record_review("student-1", "c-carry", 4, subject_id="math",
                                                    session_id="session-1")

    review = outcome.review
    assert review.interval == 1
    assert review.repetitions == 1
    assert review.ease_factor == pytest.approx(2.5)
    assert review.total_reviews == 1
    assert review.average_quality == 4
    assert review.next_review_date == START + timedelta(days=1)
    assert outcome.mastery == 63

    logs = await repositories.reviews.list_logs(review.id)
    assert len(logs) == 1
    assert logs[0].session_id == "session-1"


@pytest.mark.asyncio
async def test_repeated_reviews_update_running_average(container, clock):
    await container.reviews.record_review("student-1", "c-carry", 4, subject_id="math")
    clock.advance(days=1)
    outcome = await container.reviews.record_review("student-1", "c-carry", 5)

    review = outcome.review
    assert review.interval == 6
    assert review.repetitions == 2
    assert review.ease_factor == pytest.approx(2.6)
    assert review.total_reviews == 2
    assert review.average_quality == pytest.approx(4.5)
    assert review.subject_id == "math"
    assert review.last_reviewed_at == clock.now
    assert outcome.mastery == 71


@pytest.mark.asyncio
async def test_out_of_range_quality_is_clamped(container):
    outcome = await container.reviews.record_review("student-1", "c-zero", 11)
    assert outcome.review.average_quality == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("quality", ["good", None, True])
async def test_non_numeric_quality_is_rejected(container, quality):
    with pytest.raises(ValidationError):
        await container.reviews.record_review("student-1", "c-carry", quality)


@pytest.mark.asyncio
async def test_due_concepts_are_resolved_with_names(container, clock):
    await container.reviews.record_review("student-1", "c-carry", 4, subject_id="math")
    await container.reviews.record_review("student-1", "c-unknown", 4)

    assert await container.reviews.get_concepts_due_for_review("student-1") == []

    clock.advance(days=3)
    due = await container.reviews.get_concepts_due_for_review("student-1")

    by_concept = {d.review.concept_id: d for d in due}
    assert by_concept["c-carry"].concept_name == "Carrying"
    assert by_concept["c-carry"].subject_name == "Mathematics"
    assert by_concept["c-carry"].days_overdue == 2
    assert by_concept["c-unknown"].concept_name == "Unknown"
    assert by_concept["c-unknown"].subject_name == "Unknown"

    only_math = await container.reviews.get_concepts_due_for_review("student-1", subject_id="math")
    assert [d.review.concept_id for d in only_math] == ["c-carry"]
    assert only_math[0].to_dict()["days_overdue"] == 2


@pytest.mark.asyncio
async def test_schedule_of_unreviewed_concept(container, clock):
    schedule = await container.reviews.get_review_schedule("student-1", "c-carry")

    assert schedule.is_new is True
    assert schedule.next_review_date == clock.now
    assert schedule.interval == 1
    assert schedule.mastery == 0


@pytest.mark.asyncio
async def test_schedule_of_reviewed_concept(container, clock):
    await container.reviews.record_review("student-1", "c-carry", 4)
    await container.reviews.record_review("student-1", "c-carry", 4)

    schedule = await container.reviews.get_review_schedule("student-1", "c-carry")
    assert schedule.is_new is False
    assert schedule.is_due is False
    assert schedule.days_until_review == 6
    assert schedule.total_reviews == 2

    clock.advance(days=7)
    schedule = await container.reviews.get_review_schedule("student-1", "c-carry")
    assert schedule.is_due is True
    assert schedule.days_until_review == 0


@pytest.mark.asyncio
async def test_review_statistics(container, clock):
    await container.reviews.record_review("student-1", "c-carry", 5)
    await container.reviews.record_review("student-1", "c-zero", 1)
    clock.advance(days=1)

    stats = await container.reviews.get_review_statistics("student-1")

    assert stats["total_concepts"] == 2
    assert stats["due_for_review"] == 2
    assert stats["upcoming_reviews"] == 0
    assert stats["total_reviews"] == 2
    assert sum(stats["concepts_by_mastery"].values()) == 2


@pytest.mark.asyncio
async def test_review_statistics_without_reviews(container):
    stats = await container.reviews.get_review_statistics("student-1")

    assert stats["total_concepts"] == 0
    assert stats["average_mastery"] == 0
    assert stats["concepts_by_mastery"] == {"mastered": 0, "learning": 0, "new": 0}


@pytest.mark.asyncio
async def test_schedule_initial_review_is_idempotent(container):
    first = await container.reviews.schedule_initial_review("student-1", "c-carry", "math", 3)

    assert first.interval == 1
    assert first.repetitions == 1
    assert first.ease_factor == pytest.approx(2.36)
    assert first.total_reviews == 1

    again = await container.reviews.schedule_initial_review("student-1", "c-carry", "math", 5)
    assert again.id == first.id
    assert again.ease_factor == pytest.approx(2.36)
