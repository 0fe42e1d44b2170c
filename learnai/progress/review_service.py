"""
Spaced Repetition Service

Applies the SM-2 scheduler to stored concept reviews: records reviews,
lists concepts due for review and reports per-concept schedules and
per-student statistics.
"""

import numbers
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from learnai.common.error_handling import ValidationError
from learnai.common.logger import app_logger, with_context
from learnai.common.utils import round_half_up, utcnow

from .models import ConceptReview, ReviewLog
from .repository import CurriculumRepository, ReviewRepository
from .spaced_repetition import (
    INITIAL_EASE_FACTOR,
    INITIAL_INTERVAL,
    ReviewState,
    SpacedRepetitionScheduler,
)

logger = app_logger.getChild("progress.review_service")

DEFAULT_INITIAL_QUALITY = 3
UPCOMING_WINDOW_DAYS = 7


@dataclass
class ReviewOutcome:
    review: ConceptReview
    mastery: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'review': {
                'id': self.review.id,
                'next_review_date': self.review.next_review_date.isoformat(),
                'interval': self.review.interval,
                'repetitions': self.review.repetitions,
                'ease_factor': self.review.ease_factor,
            },
            'mastery': self.mastery,
        }


@dataclass
class DueConcept:
    review: ConceptReview
    concept_name: str
    subject_name: str
    days_overdue: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.review.id,
            'concept_id': self.review.concept_id,
            'concept_name': self.concept_name,
            'subject_id': self.review.subject_id,
            'subject_name': self.subject_name,
            'last_reviewed': self.review.last_reviewed_at.isoformat() if self.review.last_reviewed_at else None,
            'next_review': self.review.next_review_date.isoformat(),
            'ease_factor': self.review.ease_factor,
            'interval': self.review.interval,
            'repetitions': self.review.repetitions,
            'days_overdue': self.days_overdue,
        }


@dataclass
class ReviewSchedule:
    is_new: bool
    next_review_date: datetime
    interval: int
    repetitions: int
    mastery: int
    ease_factor: float = INITIAL_EASE_FACTOR
    is_due: bool = True
    days_until_review: int = 0
    total_reviews: int = 0
    average_quality: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_new': self.is_new,
            'next_review_date': self.next_review_date.isoformat(),
            'interval': self.interval,
            'repetitions': self.repetitions,
            'ease_factor': self.ease_factor,
            'mastery': self.mastery,
            'is_due': self.is_due,
            'days_until_review': self.days_until_review,
            'total_reviews': self.total_reviews,
            'average_quality': self.average_quality,
        }


class SpacedRepetitionService:
    """
    Stores and schedules concept reviews for students.

    Args:
        reviews: Review persistence
        curriculum: Used to resolve concept and subject names
        scheduler: SM-2 rules
        clock: Source of the current (naive UTC) time
    """

    def __init__(
        self,
        reviews: ReviewRepository,
        curriculum: CurriculumRepository,
        scheduler: Optional[SpacedRepetitionScheduler] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self._reviews = reviews
        self._curriculum = curriculum
        self._scheduler = scheduler or SpacedRepetitionScheduler()
        self._clock = clock

    def calculate_mastery(self, review: ConceptReview) -> int:
        return self._scheduler.calculate_mastery(review.average_quality, review.repetitions, review.ease_factor)

    def _validate_quality(self, quality: Any) -> float:
        if isinstance(quality, bool) or not isinstance(quality, numbers.Real):
            raise ValidationError("Review quality must be a number between 0 and 5", details={'quality': quality})
        return self._scheduler.clamp_quality(quality)

    async def record_review(
        self,
        student_id: str,
        concept_id: str,
        quality: float,
        subject_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> ReviewOutcome:
        """
        Record a review and reschedule the concept.

        Args:
            student_id: Reviewing student
            concept_id: Reviewed concept
            quality: Recall quality 0-5, clamped into range
            subject_id: Subject stored on a newly created review
            session_id: Learning session the review happened in, if any

        Returns:
            The updated review and its mastery score
        """
        log = with_context(logger, student_id=student_id, concept_id=concept_id)
        quality = self._validate_quality(quality)
        now = self._clock()

        review = await self._reviews.get(student_id, concept_id)
        state = ReviewState(review.ease_factor, review.interval, review.repetitions) if review else ReviewState()
        scheduled = self._scheduler.next_review(state, quality, now)

        if review is None:
            review = ConceptReview.create(
                student_id=student_id,
                concept_id=concept_id,
                subject_id=subject_id,
                next_review_date=scheduled.next_review_date,
                total_reviews=1,
                average_quality=quality,
            )
        else:
            review.average_quality = self._scheduler.running_average(
                review.average_quality, review.total_reviews, quality
            )
            review.total_reviews += 1
            review.next_review_date = scheduled.next_review_date

        review.ease_factor = scheduled.ease_factor
        review.interval = scheduled.interval
        review.repetitions = scheduled.repetitions
        review.last_reviewed_at = now

        review = await self._reviews.save(review)
        await self._reviews.add_log(ReviewLog.create(review.id, quality, now, session_id))

        mastery = self.calculate_mastery(review)
        log.info(f"Recorded review quality={quality} next_interval={review.interval}d mastery={mastery}")
        return ReviewOutcome(review=review, mastery=mastery)

    async def get_concepts_due_for_review(self, student_id: str,
                                          subject_id: Optional[str] = None) -> List[DueConcept]:
        """Concepts whose review date has passed, most overdue first."""
        now = self._clock()
        reviews = await self._reviews.find_due(student_id, now, subject_id)
        if not reviews:
            return []

        concepts = await self._curriculum.get_concepts([r.concept_id for r in reviews])
        subjects = await self._curriculum.get_subjects([r.subject_id for r in reviews if r.subject_id])

        return [
            DueConcept(
                review=review,
                concept_name=concepts[review.concept_id].name if review.concept_id in concepts else "Unknown",
                subject_name=subjects[review.subject_id].name if review.subject_id in subjects else "Unknown",
                days_overdue=self._scheduler.days_overdue(review.next_review_date, now),
            )
            for review in reviews
        ]

    async def get_review_schedule(self, student_id: str, concept_id: str) -> ReviewSchedule:
        now = self._clock()
        review = await self._reviews.get(student_id, concept_id)
        if review is None:
            return ReviewSchedule(is_new=True, next_review_date=now, interval=INITIAL_INTERVAL,
                                  repetitions=0, mastery=0)

        is_due = review.is_due(now)
        return ReviewSchedule(
            is_new=False,
            next_review_date=review.next_review_date,
            interval=review.interval,
            repetitions=review.repetitions,
            ease_factor=review.ease_factor,
            mastery=self.calculate_mastery(review),
            is_due=is_due,
            days_until_review=0 if is_due else self._scheduler.days_until(review.next_review_date, now),
            total_reviews=review.total_reviews,
            average_quality=review.average_quality,
        )

    async def get_review_statistics(self, student_id: str) -> Dict[str, Any]:
        now = self._clock()
        reviews = await self._reviews.list_for_student(student_id)
        masteries = [self.calculate_mastery(r) for r in reviews]

        upcoming = [
            r for r in reviews
            if 0 < self._scheduler.days_until(r.next_review_date, now) <= UPCOMING_WINDOW_DAYS
        ]

        return {
            'total_concepts': len(reviews),
            'due_for_review': sum(1 for r in reviews if r.is_due(now)),
            'upcoming_reviews': len(upcoming),
            'average_mastery': round_half_up(sum(masteries) / len(masteries)) if masteries else 0,
            'total_reviews': sum(r.total_reviews for r in reviews),
            'concepts_by_mastery': {
                'mastered': sum(1 for m in masteries if m >= 80),
                'learning': sum(1 for m in masteries if 50 <= m < 80),
                'new': sum(1 for m in masteries if m < 50),
            },
        }

    async def schedule_initial_review(
        self,
        student_id: str,
        concept_id: str,
        subject_id: Optional[str] = None,
        initial_quality: float = DEFAULT_INITIAL_QUALITY
    ) -> ConceptReview:
        """
        Create the first review of a freshly learned concept.

        An existing review is returned unchanged.
        """
        existing = await self._reviews.get(student_id, concept_id)
        if existing is not None:
            return existing

        quality = self._validate_quality(initial_quality)
        now = self._clock()
        scheduled = self._scheduler.next_review(ReviewState(), quality, now)

        review = ConceptReview.create(
            student_id=student_id,
            concept_id=concept_id,
            subject_id=subject_id,
            next_review_date=scheduled.next_review_date,
            ease_factor=scheduled.ease_factor,
            interval=scheduled.interval,
            repetitions=scheduled.repetitions,
            last_reviewed_at=now,
            total_reviews=1,
            average_quality=quality,
        )
        review = await self._reviews.save(review)
        logger.debug(f"Scheduled initial review of {concept_id} for {student_id} in {review.interval}d")
        return review
